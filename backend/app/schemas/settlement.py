"""
Schemas Pydantic de Liquidación
Proyecto: Liquidador de Facturas de Proveedores

Contiene:
- PaymentLineIn: par (medio de pago, monto) de un pago partido
- Liquidación individual y por lote (con resultado por factura)
- Vista previa de un lote
- Validación de pago partido
- Recalculo de valor_real_a_pagar
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class PaymentLineIn(BaseModel):
    """Monto pagado por un medio de pago."""

    medio_pago: str = Field("", max_length=50, description="Medio de pago")
    monto: Decimal = Field(..., description="Monto pagado por este medio")


# -------------------------------------------------------------------
# Validación de pago partido
# -------------------------------------------------------------------

class SplitValidationRequest(BaseModel):
    """Validación previa de un pago partido contra un valor objetivo."""

    target: Decimal = Field(..., ge=0, description="Valor a cubrir")
    lineas: list[PaymentLineIn] = Field(..., min_length=1)


class SplitValidationResult(BaseModel):
    """Resultado de la validación."""

    valido: bool
    target: Decimal
    suma: Decimal
    diferencia: Decimal


# -------------------------------------------------------------------
# Liquidación
# -------------------------------------------------------------------

class SettleRequest(BaseModel):
    """
    Liquidación de una factura.

    Se indica un único `metodo_pago` o varias `lineas` (pago partido).
    """

    metodo_pago: Optional[str] = Field(None, max_length=50)
    lineas: Optional[list[PaymentLineIn]] = Field(None, min_length=1)
    apply_early_payment: bool = Field(False, description="Tomar el descuento por pronto pago")
    fecha_pago: Optional[datetime] = Field(None, description="Por defecto: ahora")

    @model_validator(mode="after")
    def validate_method_or_lines(self) -> "SettleRequest":
        if not self.metodo_pago and not self.lineas:
            raise ValueError("Indique un medio de pago o las líneas del pago partido")
        if self.metodo_pago and self.lineas:
            raise ValueError("Use medio de pago único o pago partido, no ambos")
        return self

    @property
    def is_split(self) -> bool:
        return bool(self.lineas)


class SplitPaymentLineRead(BaseModel):
    """Línea de pago escrita al liquidar."""

    medio_pago: str
    monto: Decimal


class SettlementResult(BaseModel):
    """Factura liquidada."""

    invoice_id: uuid.UUID
    estado_mercancia: str
    metodo_pago: str
    uso_pronto_pago: bool
    fecha_pago: datetime
    valor_real_a_pagar: Decimal
    lineas: list[SplitPaymentLineRead]


class BatchSettleRequest(BaseModel):
    """
    Liquidación de varias facturas con un mismo medio de pago.

    El pronto pago se decide por factura (`early_payment_ids`).
    """

    invoice_ids: list[uuid.UUID] = Field(..., min_length=1)
    metodo_pago: str = Field(..., min_length=1, max_length=50)
    early_payment_ids: list[uuid.UUID] = Field(default_factory=list)
    fecha_pago: Optional[datetime] = None

    @model_validator(mode="after")
    def validate_ids(self) -> "BatchSettleRequest":
        if len(set(self.invoice_ids)) != len(self.invoice_ids):
            raise ValueError("Las facturas del lote no pueden repetirse")
        outside = set(self.early_payment_ids) - set(self.invoice_ids)
        if outside:
            raise ValueError("El pronto pago solo puede marcarse en facturas del lote")
        return self


class BatchOutcomeStatus(str, Enum):
    """Resultado de cada factura de un lote."""
    PAGADA = "pagada"
    YA_PAGADA = "ya_pagada"
    FALLIDA = "fallida"


class BatchSettleOutcome(BaseModel):
    invoice_id: uuid.UUID
    status: BatchOutcomeStatus
    valor_real_a_pagar: Optional[Decimal] = None
    error: Optional[str] = None


class BatchSettleResult(BaseModel):
    """Resultado del lote: "procesadas N de M" y detalle por factura."""

    procesadas: int = Field(..., ge=0)
    total: int = Field(..., ge=0)
    completo: bool
    resultados: list[BatchSettleOutcome]

    @property
    def mensaje(self) -> str:
        return f"Procesadas {self.procesadas} de {self.total} facturas"


# -------------------------------------------------------------------
# Vista previa de lote
# -------------------------------------------------------------------

class BatchPreviewRequest(BaseModel):
    invoice_ids: list[uuid.UUID] = Field(..., min_length=1)
    early_payment_ids: list[uuid.UUID] = Field(default_factory=list)


class BatchPreviewLine(BaseModel):
    invoice_id: uuid.UUID
    numero_factura: str
    emisor_nombre: str
    total_a_pagar: Decimal
    factura_iva: Decimal
    retencion: Decimal
    descuento_pronto_pago: Decimal
    total_descuentos: Decimal
    saldos_aplicados: Decimal
    valor_a_pagar: Decimal


class BatchPreview(BaseModel):
    """Totales del lote antes de pagar."""

    total_original: Decimal
    total_iva: Decimal
    total_retenciones: Decimal
    total_pronto_pago: Decimal
    total_descuentos: Decimal
    total_saldos_aplicados: Decimal
    total_a_pagar: Decimal
    facturas: list[BatchPreviewLine]


# -------------------------------------------------------------------
# Recalculo
# -------------------------------------------------------------------

class RecomputeResult(BaseModel):
    """Resumen del recalculo de valor_real_a_pagar."""

    revisadas: int = Field(..., ge=0)
    actualizadas: int = Field(..., ge=0)
    lotes: int = Field(..., ge=0)
