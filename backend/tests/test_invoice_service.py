"""
Unit tests for InvoiceService.

Registration, classification, discount edits and the valor_real_a_pagar
recompute, against the mocked session from conftest.
"""

import asyncio
import uuid
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from app.core.config import Settings
from app.core.exceptions import BusinessValidationError, ConflictError, NotFoundError
from app.models import Invoice
from app.schemas.adjustment_ledger import AdjustmentLedger
from app.schemas.invoice import Clasificacion, DiscountItem, InvoiceClassification, InvoiceCreate
from app.services import invoice_service as invoice_service_module
from app.services.adjustment_ledger import (
    append_balance,
    append_credit_note,
    build_credit_note_record,
    dump_ledger,
    parse_ledger,
    take_snapshot,
)
from app.services.invoice_service import InvoiceService, cached_valor_real
from conftest import MockInvoice, scalars_result

APPLIED_AT = datetime(2024, 4, 2, tzinfo=timezone.utc)


@pytest.fixture
def service():
    return InvoiceService()


def ledger_with_balance(amount):
    return dump_ledger(append_balance(AdjustmentLedger(), uuid.uuid4(), Decimal(amount), APPLIED_AT))


def ledger_with_credit_note(invoice):
    ledger = take_snapshot(AdjustmentLedger(), invoice)
    note = MockInvoice(numero_factura="NC-1", total_a_pagar=Decimal("11900"),
                       factura_iva=Decimal("1900"), total_sin_iva=Decimal("10000"))
    record = build_credit_note_record(note, ledger.retencion_porcentaje, APPLIED_AT)
    return dump_ledger(append_credit_note(ledger, record))


# ============================================================
# Registro
# ============================================================


class TestCreate:

    def test_base_derived_from_total_and_iva(self, service, mock_db):
        data = InvoiceCreate(
            numero_factura=" FE-1001 ",
            emisor_nombre="Distribuidora Andina S.A.S.",
            emisor_nit="900123456-7",
            total_a_pagar=Decimal("119000"),
            factura_iva=Decimal("19000"),
            tiene_retencion=True,
            monto_retencion=Decimal("2.5"),
        )

        invoice = asyncio.run(service.create(mock_db, data))

        assert isinstance(invoice, Invoice)
        assert invoice.numero_factura == "FE-1001"
        assert invoice.total_sin_iva == Decimal("100000.00")
        assert invoice.valor_real_a_pagar == Decimal("116500.00")
        assert invoice.estado_mercancia == "pendiente"
        assert invoice.estado_nota_credito is None
        mock_db.add.assert_called_once_with(invoice)
        mock_db.commit.assert_awaited_once()
        mock_db.refresh.assert_awaited_once_with(invoice)

    def test_retention_percentage_dropped_without_retention(self, service, mock_db):
        data = InvoiceCreate(
            numero_factura="FE-1002",
            emisor_nombre="Distribuidora Andina S.A.S.",
            emisor_nit="900123456-7",
            total_a_pagar=Decimal("1000"),
            monto_retencion=Decimal("2.5"),
        )

        invoice = asyncio.run(service.create(mock_db, data))

        assert invoice.monto_retencion == Decimal("0")
        assert invoice.valor_real_a_pagar == Decimal("1000.00")

    def test_credit_note_starts_pending_with_zero_value(self, service, mock_db):
        data = InvoiceCreate(
            numero_factura="NC-1",
            emisor_nombre="Distribuidora Andina S.A.S.",
            emisor_nit="900123456-7",
            clasificacion=Clasificacion.NOTA_CREDITO,
            total_a_pagar=Decimal("11900"),
            factura_iva=Decimal("1900"),
        )

        invoice = asyncio.run(service.create(mock_db, data))

        assert invoice.estado_nota_credito == "pendiente"
        assert invoice.valor_real_a_pagar == Decimal("0")

    def test_iva_above_total_rejected(self):
        with pytest.raises(ValueError):
            InvoiceCreate(
                numero_factura="FE-1",
                emisor_nombre="X",
                emisor_nit="1",
                total_a_pagar=Decimal("100"),
                factura_iva=Decimal("200"),
            )


# ============================================================
# Clasificación
# ============================================================


class TestClassify:

    def test_retention_refreshes_cached_value(self, service, mock_db, add_invoice):
        invoice = add_invoice(clasificacion=None)
        data = InvoiceClassification(
            clasificacion=Clasificacion.GASTOS,
            tiene_retencion=True,
            monto_retencion=Decimal("2.5"),
        )

        asyncio.run(service.classify(mock_db, invoice.id, data))

        assert invoice.clasificacion == "gastos"
        assert invoice.valor_real_a_pagar == Decimal("116500.00")
        mock_db.commit.assert_awaited_once()

    def test_without_retention_percentage_is_zero(self, service, mock_db, add_invoice):
        invoice = add_invoice(tiene_retencion=True, monto_retencion=Decimal("2.5"))
        data = InvoiceClassification(clasificacion=Clasificacion.MERCANCIA)

        asyncio.run(service.classify(mock_db, invoice.id, data))

        assert invoice.tiene_retencion is False
        assert invoice.monto_retencion == Decimal("0")
        assert invoice.valor_real_a_pagar == Decimal("119000.00")

    def test_as_credit_note_marks_pending(self, service, mock_db, add_invoice):
        invoice = add_invoice()

        asyncio.run(service.classify(mock_db, invoice.id, InvoiceClassification(clasificacion=Clasificacion.NOTA_CREDITO)))

        assert invoice.estado_nota_credito == "pendiente"
        assert invoice.valor_real_a_pagar == Decimal("0")

    def test_pending_credit_note_reclassified_as_invoice(self, service, mock_db, add_invoice):
        invoice = add_invoice(clasificacion="nota_credito", estado_nota_credito="pendiente")

        asyncio.run(service.classify(mock_db, invoice.id, InvoiceClassification(clasificacion=Clasificacion.GASTOS)))

        assert invoice.estado_nota_credito is None
        assert invoice.valor_real_a_pagar == Decimal("119000.00")

    def test_applied_credit_note_cannot_be_reclassified(self, service, mock_db, add_invoice):
        invoice = add_invoice(clasificacion="nota_credito", estado_nota_credito="aplicada")

        with pytest.raises(ConflictError):
            asyncio.run(service.classify(mock_db, invoice.id, InvoiceClassification(clasificacion=Clasificacion.GASTOS)))

    def test_credited_invoice_cannot_become_credit_note(self, service, mock_db, add_invoice):
        invoice = add_invoice()
        invoice.notas = ledger_with_credit_note(invoice)

        with pytest.raises(BusinessValidationError) as exc:
            asyncio.run(service.classify(mock_db, invoice.id, InvoiceClassification(clasificacion=Clasificacion.NOTA_CREDITO)))

        assert exc.value.error_code == "INVOICE_HAS_CREDIT_NOTES"

    def test_new_retention_stored_in_ledger_snapshot(self, service, mock_db, add_invoice):
        invoice = add_invoice()
        invoice.notas = ledger_with_credit_note(invoice)
        data = InvoiceClassification(
            clasificacion=Clasificacion.MERCANCIA,
            tiene_retencion=True,
            monto_retencion=Decimal("3.5"),
        )

        asyncio.run(service.classify(mock_db, invoice.id, data))

        ledger = parse_ledger(invoice.notas)
        assert ledger.retencion_porcentaje == Decimal("3.5")
        assert len(ledger.notas_credito) == 1

    def test_paid_invoice_rejected(self, service, mock_db, add_invoice):
        invoice = add_invoice(estado_mercancia="pagada")

        with pytest.raises(ConflictError):
            asyncio.run(service.classify(mock_db, invoice.id, InvoiceClassification(clasificacion=Clasificacion.GASTOS)))

    def test_retention_flag_requires_percentage(self):
        with pytest.raises(ValueError):
            InvoiceClassification(clasificacion=Clasificacion.GASTOS, tiene_retencion=True)


# ============================================================
# Descuentos
# ============================================================


class TestUpdateDiscounts:

    def test_discounts_replace_list_and_refresh_value(self, service, mock_db, add_invoice):
        invoice = add_invoice(descuentos_antes_iva=[{"concepto": "Viejo", "valor": "1", "tipo": "valor_fijo"}])
        discounts = [DiscountItem(concepto="Volumen", valor=Decimal("10"), tipo="porcentaje")]

        asyncio.run(service.update_discounts(mock_db, invoice.id, discounts))

        assert invoice.descuentos_antes_iva == [{"concepto": "Volumen", "valor": "10", "tipo": "porcentaje"}]
        assert invoice.valor_real_a_pagar == Decimal("109000.00")

    def test_empty_list_clears_discounts(self, service, mock_db, add_invoice):
        invoice = add_invoice(descuentos_antes_iva=[{"concepto": "Viejo", "valor": "9000", "tipo": "valor_fijo"}])

        asyncio.run(service.update_discounts(mock_db, invoice.id, []))

        assert invoice.descuentos_antes_iva is None
        assert invoice.valor_real_a_pagar == Decimal("119000.00")

    def test_applied_balances_still_subtracted(self, service, mock_db, add_invoice):
        invoice = add_invoice(notas=ledger_with_balance("20000"))
        discounts = [DiscountItem(concepto="Acuerdo", valor=Decimal("9000"), tipo="valor_fijo")]

        asyncio.run(service.update_discounts(mock_db, invoice.id, discounts))

        assert invoice.valor_real_a_pagar == Decimal("90000.00")

    def test_discounts_below_applied_balances_rejected(self, service, mock_db, add_invoice):
        invoice = add_invoice(notas=ledger_with_balance("100000"))
        discounts = [DiscountItem(concepto="Devolución", valor=Decimal("50000"), tipo="valor_fijo")]

        with pytest.raises(BusinessValidationError) as exc:
            asyncio.run(service.update_discounts(mock_db, invoice.id, discounts))

        assert exc.value.error_code == "DISCOUNTS_BELOW_APPLIED_BALANCES"
        assert invoice.descuentos_antes_iva is None
        mock_db.commit.assert_not_awaited()

    def test_percentage_over_hundred_rejected(self):
        with pytest.raises(ValueError):
            DiscountItem(concepto="Error", valor=Decimal("150"), tipo="porcentaje")


# ============================================================
# Consultas y recalculo
# ============================================================


class TestValorRealQueries:

    def test_breakdown_with_and_without_early_payment(self, service, mock_db, add_invoice):
        invoice = add_invoice(porcentaje_pronto_pago=Decimal("2"), notas=ledger_with_balance("1000"))

        view = asyncio.run(service.get_valor_real(mock_db, invoice.id))

        assert view.sin_pronto_pago.valor_real == Decimal("119000.00")
        assert view.con_pronto_pago.valor_real == Decimal("117000.00")
        assert view.saldos_aplicados == Decimal("1000.00")
        assert view.pendiente_por_pagar == Decimal("118000.00")

    def test_missing_invoice(self, service, mock_db):
        with pytest.raises(NotFoundError):
            asyncio.run(service.get_by_id(mock_db, uuid.uuid4()))

    def test_linked_credit_note_cached_as_zero(self):
        note = MockInvoice(clasificacion="nota_credito", estado_nota_credito="aplicada",
                           factura_original_id=uuid.uuid4())
        assert cached_valor_real(note) == Decimal("0")


class TestRecompute:

    def test_batches_until_short_page(self, service, mock_db, monkeypatch):
        monkeypatch.setattr(invoice_service_module, "settings", Settings(recompute_batch_size=2))
        missing = MockInvoice(valor_real_a_pagar=None)
        paid = MockInvoice(estado_mercancia="pagada", valor_real_a_pagar=Decimal("100.00"))
        current = MockInvoice(valor_real_a_pagar=Decimal("119000.00"))
        mock_db.execute.side_effect = [
            scalars_result([missing, paid]),
            scalars_result([current]),
        ]

        result = asyncio.run(service.recompute_valor_real(mock_db, only_missing=False))

        assert result.revisadas == 3
        assert result.actualizadas == 1
        assert result.lotes == 2
        assert missing.valor_real_a_pagar == Decimal("119000.00")
        assert paid.valor_real_a_pagar == Decimal("100.00")
        assert mock_db.commit.await_count == 2

    def test_nothing_to_recompute(self, service, mock_db):
        mock_db.execute.return_value = scalars_result([])

        result = asyncio.run(service.recompute_valor_real(mock_db))

        assert result.lotes == 0
        mock_db.commit.assert_not_awaited()
