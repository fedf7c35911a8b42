"""
Unit tests for SettlementEngine command dispatch.
"""

import asyncio
import uuid
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import TypeAdapter

from app.core.exceptions import BusinessValidationError
from app.schemas.commands import ApplyBalance, ApplyCreditNote, Command, RecordPayment, ValidateSplit
from app.schemas.settlement import BatchPreviewRequest, BatchSettleRequest, PaymentLineIn, SettleRequest
from app.services.settlement_engine import SettlementEngine
from conftest import MockInvoice


@pytest.fixture
def services():
    credit_notes = MagicMock()
    credit_notes.apply = AsyncMock(return_value="credit")
    balances = MagicMock()
    balances.apply = AsyncMock(return_value="balance")
    balances.apply_to_batch = AsyncMock(return_value="balance-batch")
    settlements = MagicMock()
    settlements.settle = AsyncMock(return_value="settled")
    settlements.settle_batch = AsyncMock(return_value="settled-batch")
    settlements.preview_batch = AsyncMock(return_value="preview")
    return credit_notes, balances, settlements


@pytest.fixture
def engine(services):
    credit_notes, balances, settlements = services
    return SettlementEngine(credit_notes=credit_notes, balances=balances, settlements=settlements)


class TestDispatch:

    def test_apply_credit_note(self, engine, services, mock_db):
        command = ApplyCreditNote(credit_note_id=uuid.uuid4(), original_id=uuid.uuid4())

        assert asyncio.run(engine.dispatch(mock_db, command)) == "credit"
        services[0].apply.assert_awaited_once_with(mock_db, command.credit_note_id, command.original_id)

    def test_apply_balance(self, engine, services, mock_db):
        command = ApplyBalance(balance_id=uuid.uuid4(), invoice_id=uuid.uuid4(), amount=Decimal("500"))

        assert asyncio.run(engine.dispatch(mock_db, command)) == "balance"
        services[1].apply.assert_awaited_once_with(mock_db, command.balance_id, command.invoice_id, Decimal("500"))

    def test_record_payment(self, engine, services, mock_db):
        command = RecordPayment(invoice_id=uuid.uuid4(), payment=SettleRequest(metodo_pago="Caja"))

        assert asyncio.run(engine.dispatch(mock_db, command)) == "settled"
        services[2].settle.assert_awaited_once_with(mock_db, command.invoice_id, command.payment)

    def test_validate_split_runs_without_session_writes(self, engine, mock_db):
        command = ValidateSplit(
            target=Decimal("70000"),
            lineas=[PaymentLineIn(medio_pago="Pago Banco", monto=Decimal("40000")),
                    PaymentLineIn(medio_pago="Caja", monto=Decimal("30000"))],
        )

        result = asyncio.run(engine.dispatch(mock_db, command))

        assert result.valido
        mock_db.commit.assert_not_awaited()

    def test_validate_split_mismatch_raises(self, engine, mock_db):
        command = ValidateSplit(
            target=Decimal("70000"),
            lineas=[PaymentLineIn(medio_pago="Pago Banco", monto=Decimal("40000")),
                    PaymentLineIn(medio_pago="Caja", monto=Decimal("29500"))],
        )

        with pytest.raises(BusinessValidationError):
            asyncio.run(engine.dispatch(mock_db, command))

    def test_unknown_command_rejected(self, engine, mock_db):
        with pytest.raises(TypeError):
            asyncio.run(engine.dispatch(mock_db, MagicMock(comando="borrar_todo")))


class TestBatchOperations:

    def test_settle_batch(self, engine, services, mock_db):
        request = BatchSettleRequest(invoice_ids=[uuid.uuid4(), uuid.uuid4()], metodo_pago="Caja")

        assert asyncio.run(engine.settle_batch(mock_db, request)) == "settled-batch"
        services[2].settle_batch.assert_awaited_once_with(mock_db, request)

    def test_preview_batch(self, engine, services, mock_db):
        request = BatchPreviewRequest(invoice_ids=[uuid.uuid4()])

        assert asyncio.run(engine.preview_batch(mock_db, request)) == "preview"
        services[2].preview_batch.assert_awaited_once_with(mock_db, request)

    def test_apply_balance_batch(self, engine, services, mock_db):
        balance_id, invoice_ids = uuid.uuid4(), [uuid.uuid4(), uuid.uuid4()]

        result = asyncio.run(engine.apply_balance_batch(mock_db, balance_id, invoice_ids, Decimal("3000")))

        assert result == "balance-batch"
        services[1].apply_to_batch.assert_awaited_once_with(mock_db, balance_id, invoice_ids, Decimal("3000"))


class TestCommandParsing:

    def test_discriminator_selects_command(self):
        adapter = TypeAdapter(Command)
        command = adapter.validate_python({
            "comando": "apply_balance",
            "balance_id": str(uuid.uuid4()),
            "invoice_id": str(uuid.uuid4()),
            "amount": "1500.50",
        })

        assert isinstance(command, ApplyBalance)
        assert command.amount == Decimal("1500.50")

    def test_unknown_tag_rejected(self):
        with pytest.raises(ValueError):
            TypeAdapter(Command).validate_python({"comando": "borrar_todo"})

    def test_calculator_exposed(self):
        assert SettlementEngine.compute_valor_real(MockInvoice(), False) == Decimal("119000.00")
