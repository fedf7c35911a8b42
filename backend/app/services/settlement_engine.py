"""
Motor de Liquidación
Proyecto: Liquidador de Facturas de Proveedores

Punto de entrada único para todo lo que calcula o modifica el valor a
pagar de una factura. La API despacha comandos aquí y nunca recalcula
totales por su cuenta.
"""

import logging
import uuid
from decimal import Decimal
from typing import Any, Optional, Sequence, Union

from sqlalchemy.ext.asyncio import AsyncSession

from app.schemas.balance import BalanceApplicationResult, BalanceBatchApplicationResult
from app.schemas.commands import ApplyBalance, ApplyCreditNote, RecordPayment, ValidateSplit
from app.schemas.invoice import CreditNoteApplyResult
from app.schemas.settlement import (
    BatchPreview,
    BatchPreviewRequest,
    BatchSettleRequest,
    BatchSettleResult,
    PaymentLineIn,
    SettlementResult,
    SettleRequest,
    SplitValidationResult,
)
from app.services.balance_service import BalanceLedgerService
from app.services.credit_note_service import CreditNoteService
from app.services.settlement_service import SettlementService
from app.services import split_payment, valor_real

logger = logging.getLogger(__name__)

CommandResult = Union[
    CreditNoteApplyResult,
    BalanceApplicationResult,
    SettlementResult,
    SplitValidationResult,
]


class SettlementEngine:
    """Fachada sobre calculadora, notas de crédito, saldos, pago partido y liquidación."""

    def __init__(
        self,
        credit_notes: Optional[CreditNoteService] = None,
        balances: Optional[BalanceLedgerService] = None,
        settlements: Optional[SettlementService] = None,
    ) -> None:
        self.credit_notes = credit_notes or CreditNoteService()
        self.balances = balances or BalanceLedgerService()
        self.settlements = settlements or SettlementService()

    @staticmethod
    def compute_valor_real(invoice: Any, apply_early_payment: bool) -> Decimal:
        return valor_real.compute_valor_real(invoice, apply_early_payment)

    async def apply_credit_note(
        self, db: AsyncSession, credit_note_id: uuid.UUID, original_id: uuid.UUID
    ) -> CreditNoteApplyResult:
        return await self.credit_notes.apply(db, credit_note_id, original_id)

    async def apply_balance(
        self, db: AsyncSession, balance_id: uuid.UUID, invoice_id: uuid.UUID, amount: Decimal
    ) -> BalanceApplicationResult:
        return await self.balances.apply(db, balance_id, invoice_id, amount)

    @staticmethod
    def validate_split(target: Decimal, lines: Sequence[PaymentLineIn]) -> SplitValidationResult:
        return split_payment.validate_split(target, lines)

    async def settle(
        self, db: AsyncSession, invoice_id: uuid.UUID, request: SettleRequest
    ) -> SettlementResult:
        return await self.settlements.settle(db, invoice_id, request)

    async def settle_batch(self, db: AsyncSession, request: BatchSettleRequest) -> BatchSettleResult:
        return await self.settlements.settle_batch(db, request)

    async def preview_batch(self, db: AsyncSession, request: BatchPreviewRequest) -> BatchPreview:
        return await self.settlements.preview_batch(db, request)

    async def apply_balance_batch(
        self,
        db: AsyncSession,
        balance_id: uuid.UUID,
        invoice_ids: Sequence[uuid.UUID],
        amount: Decimal,
    ) -> BalanceBatchApplicationResult:
        return await self.balances.apply_to_batch(db, balance_id, invoice_ids, amount)

    async def dispatch(
        self,
        db: AsyncSession,
        command: Union[ApplyCreditNote, ApplyBalance, RecordPayment, ValidateSplit],
    ) -> CommandResult:
        """Ejecuta un comando y devuelve el estado resultante."""
        logger.debug("Comando recibido: %s", command.comando)

        if isinstance(command, ApplyCreditNote):
            return await self.apply_credit_note(db, command.credit_note_id, command.original_id)
        if isinstance(command, ApplyBalance):
            return await self.apply_balance(db, command.balance_id, command.invoice_id, command.amount)
        if isinstance(command, RecordPayment):
            return await self.settle(db, command.invoice_id, command.payment)
        if isinstance(command, ValidateSplit):
            return self.validate_split(command.target, command.lineas)

        raise TypeError(f"Comando no soportado: {type(command).__name__}")


settlement_engine = SettlementEngine()
