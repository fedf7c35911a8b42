"""
Unit tests for the adjustment ledger stored on invoices.notas.
"""

import json
import uuid
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from app.schemas.adjustment_ledger import AdjustmentLedger
from app.services.adjustment_ledger import (
    append_balance,
    append_credit_note,
    balances_applied,
    build_credit_note_record,
    dump_ledger,
    fold_credit_notes,
    parse_ledger,
    take_snapshot,
)
from conftest import MockInvoice

APPLIED_AT = datetime(2024, 4, 2, 10, 30, tzinfo=timezone.utc)


def original_invoice(**kwargs):
    defaults = dict(
        total_a_pagar=Decimal("119000"),
        factura_iva=Decimal("19000"),
        total_sin_iva=Decimal("100000"),
        tiene_retencion=True,
        monto_retencion=Decimal("2.5"),
    )
    defaults.update(kwargs)
    return MockInvoice(**defaults)


def credit_note(sin_iva, iva, numero="NC-1"):
    return MockInvoice(
        numero_factura=numero,
        clasificacion="nota_credito",
        total_sin_iva=Decimal(sin_iva),
        factura_iva=Decimal(iva),
        total_a_pagar=Decimal(sin_iva) + Decimal(iva),
    )


class TestParseLedger:

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_empty_text_is_empty_ledger(self, raw):
        assert parse_ledger(raw).is_empty

    @pytest.mark.parametrize(
        "raw",
        [
            "{not json",
            "Factura revisada por contabilidad",
            "[1, 2, 3]",
            json.dumps({"notas_credito": [{"factura_id": "x"}]}),
        ],
    )
    def test_malformed_document_degrades_to_empty(self, raw, caplog):
        with caplog.at_level("WARNING"):
            ledger = parse_ledger(raw)

        assert ledger.is_empty
        assert "Libro de ajustes ilegible" in caplog.text

    def test_reads_document_written_as_numbers(self):
        raw = json.dumps({
            "total_original": 119000,
            "iva_original": 19000,
            "total_sin_iva_original": 100000,
            "retencion_porcentaje": 2.5,
            "notas_credito": [{
                "factura_id": "abc",
                "numero_factura": "NC-9",
                "valor_descuento": 50000,
                "descuento_sin_iva": 50000,
                "iva_descuento": 0,
                "fecha_aplicacion": "2024-04-02T10:30:00+00:00",
                "retencion_reducida": 1250,
            }],
        })
        ledger = parse_ledger(raw)

        assert ledger.total_sin_iva_original == Decimal("100000")
        assert ledger.notas_credito[0].tipo == "nota_credito"
        assert ledger.notas_credito[0].descuento_sin_iva == Decimal("50000")

    def test_unknown_keys_survive_rewrite(self):
        raw = json.dumps({"total_original": 1000, "iva_original": 0,
                          "total_sin_iva_original": 1000, "observacion": "revisar"})
        dumped = json.loads(dump_ledger(parse_ledger(raw)))

        assert dumped["observacion"] == "revisar"
        assert dumped["total_original"] == 1000


class TestSnapshot:

    def test_snapshot_taken_from_current_fields(self):
        ledger = take_snapshot(AdjustmentLedger(), original_invoice())

        assert ledger.total_original == Decimal("119000.00")
        assert ledger.iva_original == Decimal("19000.00")
        assert ledger.total_sin_iva_original == Decimal("100000.00")
        assert ledger.retencion_porcentaje == Decimal("2.5")
        assert ledger.retencion_original == Decimal("2500.00")

    def test_snapshot_taken_only_once(self):
        ledger = take_snapshot(AdjustmentLedger(), original_invoice())
        reduced = original_invoice(total_a_pagar=Decimal("69000"), total_sin_iva=Decimal("50000"))

        assert take_snapshot(ledger, reduced).total_original == Decimal("119000.00")

    def test_no_retention_snapshot_percentage_zero(self):
        ledger = take_snapshot(AdjustmentLedger(), original_invoice(tiene_retencion=False))
        assert ledger.retencion_porcentaje == Decimal("0")
        assert ledger.retencion_original == Decimal("0.00")

    def test_partial_snapshot_completed_from_invoice(self, caplog):
        partial = parse_ledger(json.dumps({"total_original": 119000}))
        assert not partial.has_snapshot

        with caplog.at_level("WARNING"):
            ledger = take_snapshot(partial, original_invoice())

        assert ledger.has_snapshot
        assert ledger.total_original == Decimal("119000")
        assert ledger.total_sin_iva_original == Decimal("100000.00")
        assert ledger.iva_original == Decimal("19000.00")
        assert ledger.retencion_porcentaje == Decimal("2.5")
        assert "Snapshot incompleto" in caplog.text

    def test_partial_snapshot_keeps_stored_keys(self):
        partial = parse_ledger(json.dumps({"total_original": 119000, "total_sin_iva_original": 100000}))
        reduced = original_invoice(total_a_pagar=Decimal("69000"), total_sin_iva=Decimal("50000"))

        ledger = take_snapshot(partial, reduced)

        assert ledger.total_sin_iva_original == Decimal("100000")
        assert ledger.iva_original == Decimal("19000.00")


class TestFold:

    def test_single_credit_note(self):
        ledger = take_snapshot(AdjustmentLedger(), original_invoice())
        record = build_credit_note_record(credit_note("50000", "0"), ledger.retencion_porcentaje, APPLIED_AT)
        ledger = append_credit_note(ledger, record)
        fold = fold_credit_notes(ledger)

        assert record.retencion_reducida == Decimal("1250.00")
        assert fold.total_sin_iva == Decimal("50000.00")
        assert fold.factura_iva == Decimal("19000.00")
        assert fold.total_a_pagar == Decimal("69000.00")
        assert fold.retencion == Decimal("1250.00")
        assert fold.valor_real == Decimal("67750.00")
        assert ledger.retencion_actual == Decimal("1250.00")
        assert ledger.valor_real_a_pagar == Decimal("67750.00")

    def test_fold_is_idempotent_after_serialization(self):
        ledger = take_snapshot(AdjustmentLedger(), original_invoice())
        for i, (base, iva) in enumerate([("30000", "5700"), ("20000", "3800")]):
            record = build_credit_note_record(
                credit_note(base, iva, numero=f"NC-{i}"), ledger.retencion_porcentaje, APPLIED_AT
            )
            ledger = append_credit_note(ledger, record)

        first = fold_credit_notes(ledger)
        reparsed = parse_ledger(dump_ledger(ledger))

        assert fold_credit_notes(reparsed) == first
        assert fold_credit_notes(reparsed) == fold_credit_notes(reparsed)
        assert first.total_a_pagar == Decimal("59500.00")

    def test_full_credit_reaches_zero(self):
        ledger = take_snapshot(AdjustmentLedger(), original_invoice())
        record = build_credit_note_record(credit_note("100000", "19000"), ledger.retencion_porcentaje, APPLIED_AT)
        fold = fold_credit_notes(append_credit_note(ledger, record))

        assert fold.total_a_pagar == Decimal("0.00")
        assert fold.valor_real == Decimal("0.00")

    def test_same_credit_note_cannot_be_appended_twice(self):
        ledger = take_snapshot(AdjustmentLedger(), original_invoice())
        record = build_credit_note_record(credit_note("1000", "190"), ledger.retencion_porcentaje, APPLIED_AT)
        ledger = append_credit_note(ledger, record)

        with pytest.raises(ValueError):
            append_credit_note(ledger, record)

    def test_fold_requires_snapshot(self):
        with pytest.raises(ValueError):
            fold_credit_notes(AdjustmentLedger())

    def test_fold_rejects_partial_snapshot(self):
        with pytest.raises(ValueError):
            fold_credit_notes(parse_ledger(json.dumps({"total_original": 119000})))


class TestBalanceRecords:

    def test_balances_accumulate(self):
        balance_id = uuid.uuid4()
        ledger = append_balance(AdjustmentLedger(), balance_id, Decimal("30000"), APPLIED_AT)
        ledger = append_balance(ledger, balance_id, Decimal("1500.5"), APPLIED_AT)

        assert balances_applied(ledger) == Decimal("31500.50")
        assert ledger.saldos_aplicados[0].tipo == "saldo_aplicado"
        assert ledger.saldos_aplicados[0].saldo_favor_id == str(balance_id)

    def test_balance_records_do_not_touch_credit_fold(self):
        ledger = take_snapshot(AdjustmentLedger(), original_invoice())
        ledger = append_balance(ledger, uuid.uuid4(), Decimal("10000"), APPLIED_AT)

        assert fold_credit_notes(ledger).total_a_pagar == Decimal("119000.00")
