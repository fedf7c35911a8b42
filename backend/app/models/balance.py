"""
Modelos SQLAlchemy de Saldos a Favor
Proyecto: Liquidador de Facturas de Proveedores

Contiene:
- BalanceEntry: saldo a favor de un proveedor
- BalanceApplication: aplicación de un saldo contra una factura
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.models import Base
from app.models.mixins import TimestampMixin, UUIDMixin


class BalanceEntry(Base, UUIDMixin, TimestampMixin):
    """
    Saldo a favor de un proveedor.

    saldo_disponible solo decrece: activo → agotado al llegar a 0,
    activo → cancelado por acción explícita. Nunca vuelve a activo.
    """

    __tablename__ = "balance_entries"

    emisor_nit: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        doc="NIT del proveedor dueño del saldo",
    )

    emisor_nombre: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        doc="Razón social del proveedor",
    )

    monto_inicial: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
        doc="Monto con el que se creó el saldo",
    )

    saldo_disponible: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
        doc="monto_inicial menos lo ya aplicado",
    )

    motivo: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        doc="pago_exceso | nota_credito | ajuste_manual",
    )

    medio_pago: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        doc="Medio de pago por el que entró el saldo",
    )

    estado: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="activo",
        doc="activo | agotado | cancelado",
    )

    factura_origen_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("invoices.id", ondelete="SET NULL"),
        nullable=True,
        doc="Factura que originó el saldo",
    )

    numero_factura_origen: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
    )

    descripcion: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    fecha_generacion: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        doc="Fecha de creación del saldo",
    )

    applications: Mapped[List["BalanceApplication"]] = relationship(
        "BalanceApplication",
        back_populates="balance",
        lazy="raise",
    )

    __table_args__ = (
        Index("ix_balance_entries_emisor_nit", "emisor_nit"),
        Index("ix_balance_entries_estado", "estado"),
        CheckConstraint("monto_inicial > 0", name="ck_balance_entries_monto_inicial_positive"),
        CheckConstraint(
            "saldo_disponible >= 0 AND saldo_disponible <= monto_inicial",
            name="ck_balance_entries_saldo_range",
        ),
        CheckConstraint(
            "estado IN ('activo', 'agotado', 'cancelado')",
            name="ck_balance_entries_estado",
        ),
        CheckConstraint(
            "motivo IN ('pago_exceso', 'nota_credito', 'ajuste_manual')",
            name="ck_balance_entries_motivo",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<BalanceEntry(id={self.id}, emisor_nit='{self.emisor_nit}', "
            f"saldo_disponible={self.saldo_disponible}, estado='{self.estado}')>"
        )


class BalanceApplication(Base, UUIDMixin, TimestampMixin):
    """Aplicación de un saldo a favor contra una factura."""

    __tablename__ = "balance_applications"

    balance_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("balance_entries.id", ondelete="RESTRICT"),
        nullable=False,
    )

    invoice_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("invoices.id", ondelete="RESTRICT"),
        nullable=False,
    )

    monto_aplicado: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
    )

    medio_pago: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        doc="Medio de pago heredado del saldo",
    )

    fecha_aplicacion: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    balance: Mapped["BalanceEntry"] = relationship(
        "BalanceEntry",
        back_populates="applications",
        lazy="raise",
    )

    __table_args__ = (
        Index("ix_balance_applications_balance_id", "balance_id"),
        Index("ix_balance_applications_invoice_id", "invoice_id"),
        CheckConstraint("monto_aplicado > 0", name="ck_balance_applications_monto_positive"),
    )

    def __repr__(self) -> str:
        return (
            f"<BalanceApplication(balance_id={self.balance_id}, "
            f"invoice_id={self.invoice_id}, monto_aplicado={self.monto_aplicado})>"
        )
