"""
Libro de ajustes de una factura
Proyecto: Liquidador de Facturas de Proveedores

Documento JSON guardado en `invoices.notas`. Los registros se agregan y
nunca se modifican; los totales vigentes se obtienen plegando las listas.

Claves del documento:
- snapshot original (total_original, iva_original, total_sin_iva_original,
  retencion_original, retencion_porcentaje), tomado una sola vez
- retencion_actual, valor_real_a_pagar: último resultado del plegado
- notas_credito: registros de notas de crédito aplicadas
- saldos_aplicados: registros de saldos a favor aplicados
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer

# Los montos se guardan como números JSON, no como cadenas
Money = Annotated[
    Decimal,
    PlainSerializer(lambda v: float(v), return_type=float, when_used="json"),
]


class CreditNoteRecord(BaseModel):
    """Nota de crédito aplicada a la factura."""

    tipo: Literal["nota_credito"] = "nota_credito"
    factura_id: str
    numero_factura: str
    valor_descuento: Money = Field(..., description="Total con IVA de la nota de crédito")
    descuento_sin_iva: Money = Field(..., description="Base antes de IVA de la nota")
    iva_descuento: Money = Field(..., description="IVA de la nota")
    retencion_reducida: Money = Field(Decimal("0"), description="Retención que la nota desplaza")
    fecha_aplicacion: datetime

    model_config = ConfigDict(extra="allow", frozen=True)


class BalanceAppliedRecord(BaseModel):
    """Saldo a favor descontado del valor real a pagar."""

    tipo: Literal["saldo_aplicado"] = "saldo_aplicado"
    saldo_favor_id: str
    monto: Money
    fecha_aplicacion: datetime

    model_config = ConfigDict(extra="allow", frozen=True)


# Claves que deben estar todas para plegar notas de crédito
SNAPSHOT_KEYS = (
    "total_original",
    "iva_original",
    "total_sin_iva_original",
    "retencion_original",
    "retencion_porcentaje",
)


class AdjustmentLedger(BaseModel):
    """Documento completo guardado en `notas`."""

    total_original: Optional[Money] = None
    iva_original: Optional[Money] = None
    total_sin_iva_original: Optional[Money] = None
    retencion_original: Optional[Money] = None
    retencion_porcentaje: Optional[Money] = None
    retencion_actual: Optional[Money] = None
    valor_real_a_pagar: Optional[Money] = None
    notas_credito: list[CreditNoteRecord] = Field(default_factory=list)
    saldos_aplicados: list[BalanceAppliedRecord] = Field(default_factory=list)

    # Claves desconocidas se conservan al reescribir el documento
    model_config = ConfigDict(extra="allow")

    @property
    def has_snapshot(self) -> bool:
        return all(getattr(self, key) is not None for key in SNAPSHOT_KEYS)

    @property
    def is_empty(self) -> bool:
        return not self.has_snapshot and not self.notas_credito and not self.saldos_aplicados


class CreditFold(BaseModel):
    """Totales que resultan de plegar todas las notas de crédito."""

    total_sin_iva: Decimal
    factura_iva: Decimal
    total_a_pagar: Decimal
    retencion: Decimal
    valor_real: Decimal
