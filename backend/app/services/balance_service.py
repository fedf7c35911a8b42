"""
Service Layer de Saldos a Favor
Proyecto: Liquidador de Facturas de Proveedores

Crea, cancela y aplica saldos a favor de proveedores contra sus facturas.
Cada aplicación descuenta el saldo, registra la aplicación y reduce el
valor_real_a_pagar de la factura en la misma transacción.
"""

import logging
import uuid
from collections import OrderedDict
from datetime import datetime, timezone
from decimal import Decimal, ROUND_DOWN
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import commit_or_rollback
from app.core.exceptions import BusinessValidationError, ConflictError, NotFoundError
from app.models import BalanceApplication, BalanceEntry, Invoice
from app.schemas.adjustment_ledger import AdjustmentLedger
from app.schemas.balance import (
    BalanceApplicationResult,
    BalanceBatchApplicationResult,
    BalanceCreate,
    BalanceRead,
    EstadoSaldo,
    SupplierBalanceSummary,
)
from app.schemas.invoice import EstadoMercancia
from app.services.adjustment_ledger import (
    append_balance,
    balances_applied,
    dump_ledger,
    parse_ledger,
)
from app.services.valor_real import CENT, ZERO, quantize_money, remaining_payable

logger = logging.getLogger(__name__)


def split_evenly(amount: Decimal, parts: int) -> list[Decimal]:
    """
    Reparte un monto en partes iguales por cantidad de facturas.

    Los centavos sobrantes van a la última parte, de modo que la suma
    es exactamente el monto.
    """
    if parts < 1:
        raise ValueError("parts debe ser >= 1")
    amount = quantize_money(amount)
    share = (amount / parts).quantize(CENT, rounding=ROUND_DOWN)
    return [share] * (parts - 1) + [amount - share * (parts - 1)]


class BalanceLedgerService:
    """
    Service de saldos a favor.

    Las aplicaciones bloquean la fila del saldo (SELECT ... FOR UPDATE), así
    dos aplicaciones simultáneas del mismo saldo se ejecutan una tras otra.
    """

    # ------------------------------------------------------------
    # Alta y baja
    # ------------------------------------------------------------

    async def create(self, db: AsyncSession, data: BalanceCreate) -> BalanceEntry:
        """Registra un saldo a favor activo con saldo_disponible = monto_inicial."""
        if data.factura_origen_id is not None:
            origin = await db.get(Invoice, data.factura_origen_id)
            if not origin:
                raise NotFoundError(f"Factura de origen {data.factura_origen_id} no encontrada")

        monto = quantize_money(data.monto_inicial)
        balance = BalanceEntry(
            emisor_nit=data.emisor_nit,
            emisor_nombre=data.emisor_nombre,
            monto_inicial=monto,
            saldo_disponible=monto,
            motivo=data.motivo.value,
            medio_pago=data.medio_pago,
            estado=EstadoSaldo.ACTIVO.value,
            factura_origen_id=data.factura_origen_id,
            numero_factura_origen=data.numero_factura_origen,
            descripcion=data.descripcion,
            fecha_generacion=datetime.now(timezone.utc),
        )
        db.add(balance)
        await commit_or_rollback(db, "el saldo a favor")
        await db.refresh(balance)

        logger.info("Saldo a favor %s creado para %s por %s", balance.id, data.emisor_nit, monto)
        return balance

    async def cancel(self, db: AsyncSession, balance_id: uuid.UUID) -> BalanceEntry:
        """Cancela un saldo activo. Un saldo cancelado no vuelve a activarse."""
        balance = await db.get(BalanceEntry, balance_id, with_for_update=True)
        if not balance:
            raise NotFoundError(f"Saldo a favor {balance_id} no encontrado")
        if balance.estado != EstadoSaldo.ACTIVO.value:
            raise ConflictError(
                f"Solo se puede cancelar un saldo activo (estado actual: {balance.estado})",
                error_code="BALANCE_NOT_ACTIVE",
            )

        balance.estado = EstadoSaldo.CANCELADO.value
        await commit_or_rollback(db, "la cancelación del saldo")
        logger.info("Saldo a favor %s cancelado", balance_id)
        return balance

    # ------------------------------------------------------------
    # Aplicación
    # ------------------------------------------------------------

    async def apply(
        self,
        db: AsyncSession,
        balance_id: uuid.UUID,
        invoice_id: uuid.UUID,
        amount: Decimal,
    ) -> BalanceApplicationResult:
        """
        Aplica `amount` del saldo a una factura.

        Raises:
            NotFoundError: saldo o factura inexistente
            ConflictError: saldo no activo o factura pagada
            BusinessValidationError: monto fuera de rango o proveedor distinto
            PersistenceError: fallo al guardar (nada queda escrito)
        """
        amount = self._validate_amount(amount)
        balance = await self._lock_active_balance(db, balance_id)
        if amount > balance.saldo_disponible:
            raise BusinessValidationError(
                f"El monto ({amount}) supera el saldo disponible ({balance.saldo_disponible})",
                error_code="BALANCE_INSUFFICIENT",
            )

        invoice, ledger = await self._load_target(db, balance, invoice_id, amount)
        now = datetime.now(timezone.utc)
        result = self._apply_balance_favor(db, balance, invoice, ledger, amount, now)

        await commit_or_rollback(db, "la aplicación del saldo a favor")
        logger.info(
            "Saldo %s aplicado a factura %s por %s (disponible: %s)",
            balance.id,
            invoice.numero_factura,
            amount,
            balance.saldo_disponible,
        )
        return result

    async def apply_to_batch(
        self,
        db: AsyncSession,
        balance_id: uuid.UUID,
        invoice_ids: Sequence[uuid.UUID],
        amount: Decimal,
    ) -> BalanceBatchApplicationResult:
        """
        Aplica un saldo a varias facturas del mismo proveedor.

        El monto se reparte en partes iguales por cantidad de facturas
        (no en proporción al valor de cada una). Todas las partes se
        validan antes de escribir y el lote se guarda en un solo commit.
        """
        if not invoice_ids:
            raise BusinessValidationError("Seleccione al menos una factura")
        if len(set(invoice_ids)) != len(invoice_ids):
            raise BusinessValidationError("Las facturas del lote no pueden repetirse")

        amount = self._validate_amount(amount)
        balance = await self._lock_active_balance(db, balance_id)
        if amount > balance.saldo_disponible:
            raise BusinessValidationError(
                f"El monto ({amount}) supera el saldo disponible ({balance.saldo_disponible})",
                error_code="BALANCE_INSUFFICIENT",
            )

        shares = split_evenly(amount, len(invoice_ids))
        if any(share <= ZERO for share in shares):
            raise BusinessValidationError(
                "El monto es demasiado pequeño para repartirlo entre las facturas",
                error_code="BALANCE_SHARE_TOO_SMALL",
            )

        targets: list[tuple[Invoice, AdjustmentLedger, Decimal]] = []
        for invoice_id, share in zip(invoice_ids, shares):
            invoice, ledger = await self._load_target(db, balance, invoice_id, share)
            targets.append((invoice, ledger, share))

        now = datetime.now(timezone.utc)
        results = [
            self._apply_balance_favor(db, balance, invoice, ledger, share, now)
            for invoice, ledger, share in targets
        ]

        await commit_or_rollback(db, "la aplicación del saldo a favor al lote")
        logger.info(
            "Saldo %s aplicado a %d facturas por %s (disponible: %s)",
            balance.id,
            len(results),
            amount,
            balance.saldo_disponible,
        )
        return BalanceBatchApplicationResult(
            balance_id=balance.id,
            saldo_disponible=balance.saldo_disponible,
            estado_saldo=EstadoSaldo(balance.estado),
            aplicaciones=results,
        )

    def _apply_balance_favor(
        self,
        db: AsyncSession,
        balance: BalanceEntry,
        invoice: Invoice,
        ledger: AdjustmentLedger,
        amount: Decimal,
        applied_at: datetime,
    ) -> BalanceApplicationResult:
        """
        Paso atómico: descuenta el saldo, registra la aplicación y reduce la factura.

        No confirma la transacción; el llamador hace un único commit.
        """
        balance.saldo_disponible = quantize_money(balance.saldo_disponible - amount)
        if balance.saldo_disponible <= ZERO:
            balance.saldo_disponible = ZERO
            balance.estado = EstadoSaldo.AGOTADO.value

        db.add(
            BalanceApplication(
                balance_id=balance.id,
                invoice_id=invoice.id,
                monto_aplicado=amount,
                medio_pago=balance.medio_pago,
                fecha_aplicacion=applied_at,
            )
        )

        ledger = append_balance(ledger, balance.id, amount, applied_at)
        invoice.notas = dump_ledger(ledger)
        invoice.valor_real_a_pagar = remaining_payable(invoice, balances_applied(ledger))

        return BalanceApplicationResult(
            balance_id=balance.id,
            invoice_id=invoice.id,
            monto_aplicado=amount,
            saldo_disponible=balance.saldo_disponible,
            estado_saldo=EstadoSaldo(balance.estado),
            valor_real_a_pagar=invoice.valor_real_a_pagar,
        )

    @staticmethod
    def _validate_amount(amount: Decimal) -> Decimal:
        amount = quantize_money(amount)
        if amount <= ZERO:
            raise BusinessValidationError(
                "El monto a aplicar debe ser mayor que cero",
                error_code="BALANCE_AMOUNT_NOT_POSITIVE",
            )
        return amount

    async def _lock_active_balance(self, db: AsyncSession, balance_id: uuid.UUID) -> BalanceEntry:
        balance = await db.get(BalanceEntry, balance_id, with_for_update=True)
        if not balance:
            raise NotFoundError(f"Saldo a favor {balance_id} no encontrado")
        if balance.estado != EstadoSaldo.ACTIVO.value:
            raise ConflictError(
                f"El saldo a favor no está activo (estado: {balance.estado})",
                error_code="BALANCE_NOT_ACTIVE",
            )
        return balance

    async def _load_target(
        self,
        db: AsyncSession,
        balance: BalanceEntry,
        invoice_id: uuid.UUID,
        amount: Decimal,
    ) -> tuple[Invoice, AdjustmentLedger]:
        invoice = await db.get(Invoice, invoice_id, with_for_update=True)
        if not invoice:
            raise NotFoundError(f"Factura {invoice_id} no encontrada")
        if invoice.estado_mercancia == EstadoMercancia.PAGADA.value:
            raise ConflictError(
                f"La factura {invoice.numero_factura} ya está pagada",
                error_code="INVOICE_ALREADY_PAID",
            )
        if invoice.emisor_nit != balance.emisor_nit:
            raise BusinessValidationError(
                f"La factura {invoice.numero_factura} no es del proveedor del saldo",
                error_code="BALANCE_SUPPLIER_MISMATCH",
            )

        ledger = parse_ledger(invoice.notas)
        pending = remaining_payable(invoice, balances_applied(ledger))
        if amount > pending:
            raise BusinessValidationError(
                f"El monto ({amount}) supera lo pendiente de la factura "
                f"{invoice.numero_factura} ({pending})",
                error_code="BALANCE_EXCEEDS_INVOICE",
                extra={"pendiente": str(pending)},
            )
        return invoice, ledger

    # ------------------------------------------------------------
    # Consultas
    # ------------------------------------------------------------

    async def fetch_saldos_disponibles(self, db: AsyncSession, emisor_nit: str) -> list[BalanceEntry]:
        """Saldos activos con disponible > 0 de un proveedor, los más antiguos primero."""
        stmt = (
            select(BalanceEntry)
            .where(
                BalanceEntry.emisor_nit == emisor_nit,
                BalanceEntry.estado == EstadoSaldo.ACTIVO.value,
                BalanceEntry.saldo_disponible > 0,
            )
            .order_by(BalanceEntry.fecha_generacion.asc())
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def get_all(
        self,
        db: AsyncSession,
        emisor_nit: Optional[str] = None,
        estado: Optional[EstadoSaldo] = None,
    ) -> list[BalanceEntry]:
        stmt = select(BalanceEntry)
        if emisor_nit:
            stmt = stmt.where(BalanceEntry.emisor_nit == emisor_nit)
        if estado:
            stmt = stmt.where(BalanceEntry.estado == estado.value)
        stmt = stmt.order_by(BalanceEntry.fecha_generacion.desc())
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def get_applications(self, db: AsyncSession, balance_id: uuid.UUID) -> list[BalanceApplication]:
        """Historial de aplicaciones de un saldo, la más reciente primero."""
        balance = await db.get(BalanceEntry, balance_id)
        if not balance:
            raise NotFoundError(f"Saldo a favor {balance_id} no encontrado")
        stmt = (
            select(BalanceApplication)
            .where(BalanceApplication.balance_id == balance_id)
            .order_by(BalanceApplication.fecha_aplicacion.desc())
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def get_supplier_summaries(self, db: AsyncSession) -> list[SupplierBalanceSummary]:
        """Saldos agrupados por NIT; el total solo suma saldos activos."""
        balances = await self.get_all(db)
        grouped: "OrderedDict[str, list[BalanceEntry]]" = OrderedDict()
        for balance in sorted(balances, key=lambda b: b.emisor_nombre.lower()):
            grouped.setdefault(balance.emisor_nit, []).append(balance)

        summaries = []
        for nit, entries in grouped.items():
            active = [b for b in entries if b.estado == EstadoSaldo.ACTIVO.value]
            summaries.append(
                SupplierBalanceSummary(
                    emisor_nit=nit,
                    emisor_nombre=entries[0].emisor_nombre,
                    total_disponible=sum((b.saldo_disponible for b in active), ZERO),
                    saldos_activos=len(active),
                    saldos=[BalanceRead.model_validate(b) for b in entries],
                )
            )
        return summaries
