"""
Schemas Pydantic de Saldos a Favor
Proyecto: Liquidador de Facturas de Proveedores
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MotivoSaldo(str, Enum):
    """Origen del saldo a favor."""
    PAGO_EXCESO = "pago_exceso"
    NOTA_CREDITO = "nota_credito"
    AJUSTE_MANUAL = "ajuste_manual"


class EstadoSaldo(str, Enum):
    """Ciclo de vida del saldo: activo → agotado | cancelado."""
    ACTIVO = "activo"
    AGOTADO = "agotado"
    CANCELADO = "cancelado"


# -------------------------------------------------------------------
# Saldos
# -------------------------------------------------------------------

class BalanceCreate(BaseModel):
    """Creación de un saldo a favor."""

    emisor_nit: str = Field(..., min_length=1, max_length=50)
    emisor_nombre: str = Field(..., min_length=1, max_length=255)
    monto_inicial: Decimal = Field(..., gt=0, description="Monto del saldo")
    motivo: MotivoSaldo
    medio_pago: Optional[str] = Field(None, max_length=50)
    factura_origen_id: Optional[uuid.UUID] = None
    numero_factura_origen: Optional[str] = Field(None, max_length=100)
    descripcion: Optional[str] = None

    @field_validator("emisor_nit")
    @classmethod
    def strip_nit(cls, v: str) -> str:
        return v.strip()


class BalanceRead(BaseModel):
    """Saldo a favor."""

    id: uuid.UUID
    emisor_nit: str
    emisor_nombre: str
    monto_inicial: Decimal
    saldo_disponible: Decimal
    motivo: str
    medio_pago: Optional[str] = None
    estado: str
    factura_origen_id: Optional[uuid.UUID] = None
    numero_factura_origen: Optional[str] = None
    descripcion: Optional[str] = None
    fecha_generacion: datetime

    model_config = ConfigDict(from_attributes=True)


class BalanceApplicationRead(BaseModel):
    """Aplicación de un saldo contra una factura."""

    id: uuid.UUID
    balance_id: uuid.UUID
    invoice_id: uuid.UUID
    monto_aplicado: Decimal
    medio_pago: Optional[str] = None
    fecha_aplicacion: datetime

    model_config = ConfigDict(from_attributes=True)


class SupplierBalanceSummary(BaseModel):
    """Saldos de un proveedor agrupados por NIT."""

    emisor_nit: str
    emisor_nombre: str
    total_disponible: Decimal = Field(..., description="Suma de saldos activos")
    saldos_activos: int = Field(..., ge=0)
    saldos: list[BalanceRead] = Field(default_factory=list)


# -------------------------------------------------------------------
# Aplicación
# -------------------------------------------------------------------

class BalanceApplyRequest(BaseModel):
    """Aplicar parte de un saldo a una factura."""

    invoice_id: uuid.UUID
    amount: Decimal = Field(..., gt=0)


class BalanceBatchApplyRequest(BaseModel):
    """Aplicar un saldo repartido en partes iguales entre varias facturas."""

    invoice_ids: list[uuid.UUID] = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)

    @field_validator("invoice_ids")
    @classmethod
    def unique_ids(cls, v: list[uuid.UUID]) -> list[uuid.UUID]:
        if len(set(v)) != len(v):
            raise ValueError("Las facturas del lote no pueden repetirse")
        return v


class BalanceApplicationResult(BaseModel):
    """Resultado de una aplicación: saldo restante y nuevo valor de la factura."""

    balance_id: uuid.UUID
    invoice_id: uuid.UUID
    monto_aplicado: Decimal
    saldo_disponible: Decimal
    estado_saldo: EstadoSaldo
    valor_real_a_pagar: Decimal


class BalanceBatchApplicationResult(BaseModel):
    """Resultado de aplicar un saldo a un lote de facturas."""

    balance_id: uuid.UUID
    saldo_disponible: Decimal
    estado_saldo: EstadoSaldo
    aplicaciones: list[BalanceApplicationResult]
