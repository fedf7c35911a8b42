"""
Schemas Pydantic de Facturación
Proyecto: Liquidador de Facturas de Proveedores

Contiene:
- Enums: Clasificacion, EstadoMercancia, EstadoNotaCredito, TipoDescuento
- DiscountItem: descuento antes de IVA
- InvoiceFinancials: vista de solo lectura usada por la calculadora
- Schemas de creación, clasificación, lectura y listado de facturas
- Schemas de aplicación de notas de crédito
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# -------------------------------------------------------------------
# Enum
# -------------------------------------------------------------------

class Clasificacion(str, Enum):
    """Clasificación contable de la factura."""
    MERCANCIA = "mercancia"
    GASTOS = "gastos"
    NOTA_CREDITO = "nota_credito"


class EstadoMercancia(str, Enum):
    """Estado de pago de la factura."""
    PENDIENTE = "pendiente"
    PAGADA = "pagada"


class EstadoNotaCredito(str, Enum):
    """Estado de una nota de crédito (o de la factura original anulada)."""
    PENDIENTE = "pendiente"
    APLICADA = "aplicada"
    ANULADA = "anulada"


class TipoDescuento(str, Enum):
    """Forma de cálculo de un descuento antes de IVA."""
    PORCENTAJE = "porcentaje"
    VALOR_FIJO = "valor_fijo"


# -------------------------------------------------------------------
# Descuentos antes de IVA
# -------------------------------------------------------------------

class DiscountItem(BaseModel):
    """Descuento antes de IVA: porcentaje de la base o valor fijo."""

    id: Optional[str] = Field(None, description="Identificador opcional del descuento")
    concepto: str = Field(..., min_length=1, max_length=255, description="Concepto del descuento")
    valor: Decimal = Field(..., ge=0, description="Porcentaje o valor fijo")
    tipo: TipoDescuento = Field(..., description="porcentaje | valor_fijo")

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    @model_validator(mode="after")
    def validate_percentage_range(self) -> "DiscountItem":
        if self.tipo == TipoDescuento.PORCENTAJE and self.valor > 100:
            raise ValueError("Un descuento porcentual no puede superar el 100%")
        return self


class DiscountsUpdate(BaseModel):
    """Reemplazo completo de la lista de descuentos de una factura."""

    descuentos: list[DiscountItem] = Field(default_factory=list)


# -------------------------------------------------------------------
# Vista financiera (entrada de la calculadora)
# -------------------------------------------------------------------

class InvoiceFinancials(BaseModel):
    """
    Campos de una factura que intervienen en el valor real a pagar.

    Se construye con `InvoiceFinancials.model_validate(invoice)` desde el
    modelo ORM o desde cualquier objeto con los mismos atributos. Los
    nulos de la base de datos se normalizan a cero / lista vacía.
    """

    total_a_pagar: Decimal = Decimal("0")
    factura_iva: Decimal = Decimal("0")
    total_sin_iva: Optional[Decimal] = None
    tiene_retencion: bool = False
    monto_retencion: Decimal = Decimal("0")
    porcentaje_pronto_pago: Decimal = Decimal("0")
    uso_pronto_pago: Optional[bool] = None
    descuentos_antes_iva: list[DiscountItem] = Field(default_factory=list)
    clasificacion: Optional[Clasificacion] = None
    estado_nota_credito: Optional[EstadoNotaCredito] = None
    notas: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator(
        "total_a_pagar",
        "factura_iva",
        "monto_retencion",
        "porcentaje_pronto_pago",
        mode="before",
    )
    @classmethod
    def none_as_zero(cls, v):
        return Decimal("0") if v is None else v

    @field_validator("tiene_retencion", mode="before")
    @classmethod
    def none_as_false(cls, v):
        return bool(v)

    @field_validator("descuentos_antes_iva", mode="before")
    @classmethod
    def none_as_empty(cls, v):
        return [] if v is None else v

    @property
    def base(self) -> Decimal:
        """Base antes de IVA: total_sin_iva o, si falta, total menos IVA."""
        if self.total_sin_iva is not None:
            return self.total_sin_iva
        return self.total_a_pagar - self.factura_iva


# -------------------------------------------------------------------
# Creación / clasificación
# -------------------------------------------------------------------

class InvoiceCreate(BaseModel):
    """Registro manual de una factura o nota de crédito."""

    numero_factura: str = Field(..., min_length=1, max_length=100)
    emisor_nombre: str = Field(..., min_length=1, max_length=255)
    emisor_nit: str = Field(..., min_length=1, max_length=50)
    clasificacion: Optional[Clasificacion] = None
    descripcion: Optional[str] = None
    fecha_emision: Optional[date] = None
    fecha_vencimiento: Optional[date] = None
    total_a_pagar: Decimal = Field(..., ge=0, description="Total con IVA")
    factura_iva: Decimal = Field(Decimal("0"), ge=0, description="Valor del IVA")
    factura_iva_porcentaje: Optional[Decimal] = Field(None, ge=0, le=100)
    total_sin_iva: Optional[Decimal] = Field(None, ge=0)
    tiene_retencion: bool = False
    monto_retencion: Decimal = Field(Decimal("0"), ge=0, le=100, description="Porcentaje de retención")
    porcentaje_pronto_pago: Decimal = Field(Decimal("0"), ge=0, le=100)
    descuentos_antes_iva: list[DiscountItem] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_amounts(self) -> "InvoiceCreate":
        if self.factura_iva > self.total_a_pagar:
            raise ValueError("El IVA no puede superar el total de la factura")
        if self.fecha_emision and self.fecha_vencimiento and self.fecha_vencimiento < self.fecha_emision:
            raise ValueError("La fecha de vencimiento no puede ser anterior a la de emisión")
        return self


class InvoiceClassification(BaseModel):
    """Datos que se asignan al clasificar una factura."""

    clasificacion: Clasificacion
    descripcion: Optional[str] = None
    tiene_retencion: bool = False
    monto_retencion: Decimal = Field(Decimal("0"), ge=0, le=100)
    porcentaje_pronto_pago: Decimal = Field(Decimal("0"), ge=0, le=100)

    @model_validator(mode="after")
    def validate_retention(self) -> "InvoiceClassification":
        if self.tiene_retencion and self.monto_retencion <= 0:
            raise ValueError("Indique el porcentaje de retención")
        return self


# -------------------------------------------------------------------
# Lectura
# -------------------------------------------------------------------

class InvoiceRead(BaseModel):
    """Factura completa."""

    id: uuid.UUID
    numero_factura: str
    emisor_nombre: str
    emisor_nit: str
    clasificacion: Optional[str] = None
    descripcion: Optional[str] = None
    fecha_emision: Optional[date] = None
    fecha_vencimiento: Optional[date] = None
    total_a_pagar: Decimal
    factura_iva: Decimal
    factura_iva_porcentaje: Optional[Decimal] = None
    total_sin_iva: Optional[Decimal] = None
    tiene_retencion: bool
    monto_retencion: Decimal
    porcentaje_pronto_pago: Decimal
    uso_pronto_pago: Optional[bool] = None
    descuentos_antes_iva: Optional[list[DiscountItem]] = None
    valor_real_a_pagar: Optional[Decimal] = None
    estado_mercancia: str
    estado_nota_credito: Optional[str] = None
    factura_original_id: Optional[uuid.UUID] = None
    metodo_pago: Optional[str] = None
    fecha_pago: Optional[datetime] = None
    notas: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InvoiceList(BaseModel):
    """Listado paginado de facturas."""

    items: list[InvoiceRead]
    total: int = Field(..., ge=0)
    page: int = Field(..., ge=1)
    per_page: int = Field(..., ge=1)

    @property
    def pages(self) -> int:
        return (self.total + self.per_page - 1) // self.per_page if self.total else 0


class ValorRealBreakdown(BaseModel):
    """Desglose de cada paso del cálculo del valor real a pagar."""

    base: Decimal = Field(..., description="Base antes de IVA")
    total_descuentos: Decimal = Field(..., description="Suma de descuentos antes de IVA")
    base_ajustada: Decimal = Field(..., description="Base menos descuentos (>= 0)")
    retencion: Decimal = Field(..., description="Retención sobre la base ajustada")
    descuento_pronto_pago: Decimal = Field(..., description="Pronto pago sobre la base sin descuentos")
    total_con_descuentos: Decimal = Field(..., description="Total con IVA menos descuentos")
    valor_real: Decimal = Field(..., ge=0, description="Valor neto a pagar")


class InvoiceValorReal(BaseModel):
    """Valor real de una factura, con y sin pronto pago, y lo pendiente."""

    invoice_id: uuid.UUID
    sin_pronto_pago: ValorRealBreakdown
    con_pronto_pago: ValorRealBreakdown
    saldos_aplicados: Decimal
    pendiente_por_pagar: Decimal
    total_real: Decimal


# -------------------------------------------------------------------
# Notas de crédito
# -------------------------------------------------------------------

class CreditNoteApply(BaseModel):
    """Solicitud de aplicación de una nota de crédito a la factura original."""

    credit_note_id: uuid.UUID = Field(..., description="Factura que actúa como nota de crédito")


class CreditNoteApplyResult(BaseModel):
    """Estado de la factura original después de aplicar la nota de crédito."""

    original_id: uuid.UUID
    credit_note_id: uuid.UUID
    total_sin_iva: Decimal
    factura_iva: Decimal
    total_a_pagar: Decimal
    retencion: Decimal
    valor_real_a_pagar: Decimal
    anulada: bool
    notas_aplicadas: int = Field(..., ge=1)


class CreditNoteSummary(BaseModel):
    """Nota de crédito con la factura a la que se aplicó."""

    nota_credito: InvoiceRead
    factura_original: Optional[InvoiceRead] = None


class CreditNoteGroups(BaseModel):
    """Notas de crédito agrupadas por estado."""

    pendientes: list[CreditNoteSummary] = Field(default_factory=list)
    aplicadas: list[CreditNoteSummary] = Field(default_factory=list)
    anuladas: list[CreditNoteSummary] = Field(default_factory=list)
