"""
Modelos SQLAlchemy de Facturación
Proyecto: Liquidador de Facturas de Proveedores

Contiene:
- Invoice: factura de proveedor (incluye las notas de crédito, que son facturas
  con clasificacion = "nota_credito")
- SplitPaymentLine: línea de pago por medio de pago al liquidar la factura
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models import Base
from app.models.mixins import TimestampMixin, UUIDMixin


class Invoice(Base, UUIDMixin, TimestampMixin):
    """
    Factura de proveedor.

    Los campos monetarios "brutos" (total_a_pagar, factura_iva, total_sin_iva)
    se sobrescriben con el residual cuando se aplican notas de crédito; los
    valores originales quedan en el libro de ajustes guardado en `notas`.

    valor_real_a_pagar es una caché: siempre se puede volver a calcular a
    partir de los demás campos y del libro de ajustes.
    """

    __tablename__ = "invoices"

    # ------------------------------------------------------------
    # Identificación
    # ------------------------------------------------------------
    numero_factura: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        doc="Número de la factura del proveedor",
    )

    emisor_nombre: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        doc="Razón social del proveedor",
    )

    emisor_nit: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        doc="NIT del proveedor",
    )

    clasificacion: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        doc="mercancia | gastos | nota_credito (None = sin clasificar)",
    )

    descripcion: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Descripción libre asignada al clasificar",
    )

    fecha_emision: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True,
        doc="Fecha de emisión",
    )

    fecha_vencimiento: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True,
        doc="Fecha de vencimiento",
    )

    # ------------------------------------------------------------
    # Importes
    # ------------------------------------------------------------
    total_a_pagar: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
        doc="Total bruto con IVA (residual tras notas de crédito)",
    )

    factura_iva: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="Valor del IVA",
    )

    factura_iva_porcentaje: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(5, 2),
        nullable=True,
        doc="Porcentaje de IVA",
    )

    total_sin_iva: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(14, 2),
        nullable=True,
        doc="Base antes de IVA; si falta se deriva como total_a_pagar - factura_iva",
    )

    # ------------------------------------------------------------
    # Retención, pronto pago y descuentos
    # ------------------------------------------------------------
    tiene_retencion: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        doc="Aplica retención en la fuente",
    )

    monto_retencion: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        default=Decimal("0"),
        doc="Porcentaje de retención (a pesar del nombre)",
    )

    porcentaje_pronto_pago: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        default=Decimal("0"),
        doc="Porcentaje de descuento por pronto pago",
    )

    uso_pronto_pago: Mapped[Optional[bool]] = mapped_column(
        Boolean,
        nullable=True,
        doc="Se tomó el pronto pago al liquidar",
    )

    descuentos_antes_iva: Mapped[Optional[list]] = mapped_column(
        JSON,
        nullable=True,
        doc="Lista ordenada de {concepto, valor, tipo: porcentaje|valor_fijo}",
    )

    valor_real_a_pagar: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(14, 2),
        nullable=True,
        doc="Último valor neto calculado o liquidado (caché)",
    )

    # ------------------------------------------------------------
    # Estados y notas de crédito
    # ------------------------------------------------------------
    estado_mercancia: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pendiente",
        doc="pendiente | pagada",
    )

    estado_nota_credito: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        doc="pendiente | aplicada | anulada",
    )

    factura_original_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("invoices.id", ondelete="SET NULL"),
        nullable=True,
        doc="Factura a la que se aplicó esta nota de crédito",
    )

    notas: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Libro de ajustes en JSON (snapshot original, notas de crédito, saldos aplicados)",
    )

    # ------------------------------------------------------------
    # Pago
    # ------------------------------------------------------------
    metodo_pago: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        doc="Medio de pago o 'Pago Partido'",
    )

    fecha_pago: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="Fecha de pago",
    )

    split_payment_lines: Mapped[List["SplitPaymentLine"]] = relationship(
        "SplitPaymentLine",
        back_populates="invoice",
        cascade="all, delete-orphan",
        lazy="raise",
    )

    __table_args__ = (
        Index("ix_invoices_emisor_nit", "emisor_nit"),
        Index("ix_invoices_estado_mercancia", "estado_mercancia"),
        Index("ix_invoices_clasificacion", "clasificacion"),
        Index("ix_invoices_factura_original_id", "factura_original_id"),
        CheckConstraint("total_a_pagar >= 0", name="ck_invoices_total_a_pagar_positive"),
        CheckConstraint("factura_iva >= 0", name="ck_invoices_factura_iva_positive"),
        CheckConstraint(
            "valor_real_a_pagar IS NULL OR valor_real_a_pagar >= 0",
            name="ck_invoices_valor_real_positive",
        ),
        CheckConstraint(
            "estado_mercancia IN ('pendiente', 'pagada')",
            name="ck_invoices_estado_mercancia",
        ),
        CheckConstraint(
            "estado_nota_credito IS NULL OR estado_nota_credito IN ('pendiente', 'aplicada', 'anulada')",
            name="ck_invoices_estado_nota_credito",
        ),
        CheckConstraint(
            "factura_original_id IS NULL OR factura_original_id <> id",
            name="ck_invoices_nota_credito_distinta",
        ),
    )

    @property
    def is_paid(self) -> bool:
        return self.estado_mercancia == "pagada"

    def __repr__(self) -> str:
        return (
            f"<Invoice(id={self.id}, numero_factura='{self.numero_factura}', "
            f"emisor_nit='{self.emisor_nit}', total_a_pagar={self.total_a_pagar})>"
        )


class SplitPaymentLine(Base, UUIDMixin, TimestampMixin):
    """
    Línea de pago de una factura liquidada.

    Una factura pagada tiene una o más líneas; su suma es el
    valor_real_a_pagar final.
    """

    __tablename__ = "split_payment_lines"

    invoice_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        doc="Factura liquidada",
    )

    medio_pago: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        doc="Medio de pago (Pago Banco, Pago Tobías, Caja)",
    )

    monto: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
        doc="Monto pagado por este medio",
    )

    fecha_pago: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        doc="Fecha del pago",
    )

    invoice: Mapped["Invoice"] = relationship(
        "Invoice",
        back_populates="split_payment_lines",
        lazy="raise",
    )

    __table_args__ = (
        Index("ix_split_payment_lines_invoice_id", "invoice_id"),
        CheckConstraint("monto > 0", name="ck_split_payment_lines_monto_positive"),
    )

    def __repr__(self) -> str:
        return (
            f"<SplitPaymentLine(invoice_id={self.invoice_id}, "
            f"medio_pago='{self.medio_pago}', monto={self.monto})>"
        )
