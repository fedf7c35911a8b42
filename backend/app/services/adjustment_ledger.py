"""
Libro de ajustes: lectura, escritura y plegado
Proyecto: Liquidador de Facturas de Proveedores

Los totales de una factura con notas de crédito se obtienen siempre
plegando la lista completa de registros contra el snapshot original, nunca
restando sobre el valor ya reducido. Plegar dos veces la misma lista da el
mismo resultado.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from pydantic import ValidationError

from app.schemas.adjustment_ledger import (
    AdjustmentLedger,
    BalanceAppliedRecord,
    CreditFold,
    CreditNoteRecord,
)
from app.services.valor_real import ZERO, as_financials, quantize_money, retention_amount

logger = logging.getLogger(__name__)


def parse_ledger(raw: Optional[str]) -> AdjustmentLedger:
    """
    Lee el libro de ajustes de `invoices.notas`.

    Un texto vacío, JSON inválido o un documento con otra forma se tratan
    como "sin ajustes previos" y devuelven un libro vacío.
    """
    if not raw or not raw.strip():
        return AdjustmentLedger()
    try:
        return AdjustmentLedger.model_validate_json(raw)
    except ValidationError as e:
        logger.warning(
            "Libro de ajustes ilegible, se trata como vacío: %s",
            e.errors(include_url=False)[:1],
        )
        return AdjustmentLedger()


def dump_ledger(ledger: AdjustmentLedger) -> str:
    """Serializa el libro para guardarlo en `notas`."""
    return ledger.model_dump_json(exclude_none=True)


def take_snapshot(ledger: AdjustmentLedger, invoice: Any) -> AdjustmentLedger:
    """
    Guarda los valores originales de la factura la primera vez.

    Si el libro ya tiene snapshot se devuelve sin cambios: las notas
    siguientes se pliegan contra el original, no contra el residual. Un
    snapshot incompleto conserva las claves que trae y completa las demás
    con los campos actuales de la factura.
    """
    if ledger.has_snapshot:
        return ledger

    data = as_financials(invoice)
    percentage = data.monto_retencion if data.tiene_retencion else ZERO
    base = data.base
    current = {
        "total_original": quantize_money(data.total_a_pagar),
        "iva_original": quantize_money(data.factura_iva),
        "total_sin_iva_original": quantize_money(base),
        "retencion_porcentaje": percentage,
        "retencion_original": quantize_money(retention_amount(base, percentage)),
    }
    missing = {key: value for key, value in current.items() if getattr(ledger, key) is None}
    if len(missing) < len(current):
        logger.warning("Snapshot incompleto en el libro de ajustes, se completa: %s", sorted(missing))
    return ledger.model_copy(update=missing)


def build_credit_note_record(
    credit_note: Any,
    retention_percentage: Decimal,
    applied_at: Optional[datetime] = None,
) -> CreditNoteRecord:
    """Registro de una nota de crédito con la retención que desplaza."""
    data = as_financials(credit_note)
    base = data.base
    return CreditNoteRecord(
        factura_id=str(credit_note.id),
        numero_factura=credit_note.numero_factura,
        valor_descuento=quantize_money(data.total_a_pagar),
        descuento_sin_iva=quantize_money(base),
        iva_descuento=quantize_money(data.factura_iva),
        retencion_reducida=quantize_money(retention_amount(base, retention_percentage)),
        fecha_aplicacion=applied_at or datetime.now(timezone.utc),
    )


def fold_credit_notes(ledger: AdjustmentLedger) -> CreditFold:
    """
    Totales vigentes tras todas las notas de crédito.

    new_sin_iva = max(0, sin_iva_original - Σ descuento_sin_iva)
    new_iva     = max(0, iva_original - Σ iva_descuento)
    new_total   = new_sin_iva + new_iva
    retención   = new_sin_iva * retencion_porcentaje / 100
    valor_real  = max(0, new_total - retención)
    """
    if not ledger.has_snapshot:
        raise ValueError("El libro de ajustes no tiene snapshot original")

    credited_base = sum((r.descuento_sin_iva for r in ledger.notas_credito), ZERO)
    credited_iva = sum((r.iva_descuento for r in ledger.notas_credito), ZERO)

    new_sin_iva = max(ZERO, ledger.total_sin_iva_original - credited_base)
    new_iva = max(ZERO, (ledger.iva_original or ZERO) - credited_iva)
    new_total = new_sin_iva + new_iva
    new_retention = retention_amount(new_sin_iva, ledger.retencion_porcentaje)
    new_valor_real = max(ZERO, new_total - new_retention)

    return CreditFold(
        total_sin_iva=quantize_money(new_sin_iva),
        factura_iva=quantize_money(new_iva),
        total_a_pagar=quantize_money(new_total),
        retencion=quantize_money(new_retention),
        valor_real=quantize_money(new_valor_real),
    )


def append_credit_note(ledger: AdjustmentLedger, record: CreditNoteRecord) -> AdjustmentLedger:
    """Agrega el registro y actualiza retencion_actual / valor_real_a_pagar."""
    if any(r.factura_id == record.factura_id for r in ledger.notas_credito):
        raise ValueError(f"La nota de crédito {record.numero_factura} ya está en el libro")
    updated = ledger.model_copy(update={"notas_credito": [*ledger.notas_credito, record]})
    fold = fold_credit_notes(updated)
    return updated.model_copy(
        update={"retencion_actual": fold.retencion, "valor_real_a_pagar": fold.valor_real}
    )


def balances_applied(ledger: AdjustmentLedger) -> Decimal:
    """Suma de los saldos a favor descontados de la factura."""
    return sum((r.monto for r in ledger.saldos_aplicados), ZERO)


def append_balance(
    ledger: AdjustmentLedger,
    balance_id: Any,
    amount: Decimal,
    applied_at: Optional[datetime] = None,
) -> AdjustmentLedger:
    """Agrega un registro de saldo aplicado."""
    record = BalanceAppliedRecord(
        saldo_favor_id=str(balance_id),
        monto=quantize_money(amount),
        fecha_aplicacion=applied_at or datetime.now(timezone.utc),
    )
    return ledger.model_copy(update={"saldos_aplicados": [*ledger.saldos_aplicados, record]})
