"""
Service Layer de Notas de Crédito
Proyecto: Liquidador de Facturas de Proveedores

Aplica una nota de crédito (factura clasificada como nota_credito) a la
factura original que reduce. Las dos facturas se escriben en una sola
transacción.
"""

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import commit_or_rollback
from app.core.exceptions import BusinessValidationError, ConflictError, NotFoundError
from app.models import Invoice
from app.schemas.invoice import (
    Clasificacion,
    CreditNoteApplyResult,
    CreditNoteGroups,
    CreditNoteSummary,
    EstadoMercancia,
    EstadoNotaCredito,
    InvoiceRead,
)
from app.schemas.adjustment_ledger import CreditNoteRecord
from app.services.adjustment_ledger import (
    append_credit_note,
    balances_applied,
    build_credit_note_record,
    dump_ledger,
    fold_credit_notes,
    parse_ledger,
    take_snapshot,
)
from app.services.valor_real import ZERO, as_financials, remaining_payable

logger = logging.getLogger(__name__)


class CreditState(str, Enum):
    """Estado de una factura original respecto a las notas de crédito."""
    UNTOUCHED = "untouched"
    PARTIALLY_CREDITED = "partially_credited"
    VOIDED = "voided"


def credit_state(invoice: Invoice) -> CreditState:
    if invoice.estado_nota_credito == EstadoNotaCredito.ANULADA.value and invoice.clasificacion == Clasificacion.NOTA_CREDITO.value:
        return CreditState.VOIDED
    if parse_ledger(invoice.notas).notas_credito:
        return CreditState.PARTIALLY_CREDITED
    return CreditState.UNTOUCHED


class CreditNoteService:
    """
    Aplicación de notas de crédito.

    Estados de la factura original: untouched → partially_credited → voided.
    La nota de crédito conserva sus propios importes; solo cambia su estado
    y el enlace a la original.
    """

    async def apply(
        self,
        db: AsyncSession,
        credit_note_id: uuid.UUID,
        original_id: uuid.UUID,
    ) -> CreditNoteApplyResult:
        """
        Aplica la nota de crédito a la factura original.

        Steps:
        1. Validar (antes de cualquier escritura)
        2. Tomar el snapshot original si es la primera nota
        3. Agregar el registro al libro y plegar todos los registros
        4. Sobrescribir total_sin_iva, factura_iva, total_a_pagar y
           valor_real_a_pagar de la original
        5. Si el nuevo total es 0: anular la original y la nota
        6. Enlazar la nota con la original y marcarla aplicada
        7. Un único commit

        Raises:
            NotFoundError: alguna de las facturas no existe
            BusinessValidationError: montos fuera de rango, facturas iguales o
                total por debajo de los saldos a favor aplicados
            ConflictError: nota ya aplicada, original anulada o pagada
            PersistenceError: fallo al guardar (nada queda escrito)
        """
        if credit_note_id == original_id:
            raise BusinessValidationError(
                "La nota de crédito y la factura original deben ser distintas",
                error_code="CREDIT_NOTE_SAME_INVOICE",
            )

        credit_note = await db.get(Invoice, credit_note_id, with_for_update=True)
        if not credit_note:
            raise NotFoundError(f"Nota de crédito {credit_note_id} no encontrada")

        original = await db.get(Invoice, original_id, with_for_update=True)
        if not original:
            raise NotFoundError(f"Factura original {original_id} no encontrada")

        self._validate(credit_note, original)

        now = datetime.now(timezone.utc)
        ledger = take_snapshot(parse_ledger(original.notas), original)
        record = build_credit_note_record(credit_note, ledger.retencion_porcentaje, now)
        ledger = append_credit_note(ledger, record)
        fold = fold_credit_notes(ledger)

        applied = balances_applied(ledger)
        if applied:
            preview = as_financials(original).model_copy(
                update={
                    "total_sin_iva": fold.total_sin_iva,
                    "factura_iva": fold.factura_iva,
                    "total_a_pagar": fold.total_a_pagar,
                }
            )
            if remaining_payable(preview) < applied:
                raise BusinessValidationError(
                    "La nota de crédito deja la factura por debajo de los saldos a favor ya aplicados",
                    error_code="CREDIT_NOTE_BELOW_APPLIED_BALANCES",
                    extra={
                        "saldos_aplicados": str(applied),
                        "total_resultante": str(fold.total_a_pagar),
                    },
                )

        original.total_sin_iva = fold.total_sin_iva
        original.factura_iva = fold.factura_iva
        original.total_a_pagar = fold.total_a_pagar
        original.notas = dump_ledger(ledger)

        voided = fold.total_a_pagar <= ZERO
        if voided:
            original.estado_nota_credito = EstadoNotaCredito.ANULADA.value
            original.clasificacion = Clasificacion.NOTA_CREDITO.value
            original.valor_real_a_pagar = ZERO
            credit_note.estado_nota_credito = EstadoNotaCredito.ANULADA.value
        else:
            original.valor_real_a_pagar = remaining_payable(original, applied)
            credit_note.estado_nota_credito = EstadoNotaCredito.APLICADA.value

        credit_note.factura_original_id = original.id
        credit_note.clasificacion = Clasificacion.NOTA_CREDITO.value
        credit_note.valor_real_a_pagar = ZERO

        await commit_or_rollback(db, f"la nota de crédito {credit_note.numero_factura}")

        logger.info(
            "Nota de crédito %s aplicada a factura %s: total %s -> %s%s",
            credit_note.numero_factura,
            original.numero_factura,
            ledger.total_original,
            fold.total_a_pagar,
            " (anulada)" if voided else "",
        )

        return CreditNoteApplyResult(
            original_id=original.id,
            credit_note_id=credit_note.id,
            total_sin_iva=fold.total_sin_iva,
            factura_iva=fold.factura_iva,
            total_a_pagar=fold.total_a_pagar,
            retencion=fold.retencion,
            valor_real_a_pagar=original.valor_real_a_pagar,
            anulada=voided,
            notas_aplicadas=len(ledger.notas_credito),
        )

    def _validate(self, credit_note: Invoice, original: Invoice) -> None:
        if credit_note.estado_nota_credito in (
            EstadoNotaCredito.APLICADA.value,
            EstadoNotaCredito.ANULADA.value,
        ):
            raise ConflictError(
                f"La nota de crédito {credit_note.numero_factura} ya fue aplicada",
                error_code="CREDIT_NOTE_ALREADY_APPLIED",
            )

        if credit_note.factura_original_id is not None:
            raise ConflictError(
                f"La nota de crédito {credit_note.numero_factura} ya está enlazada a otra factura",
                error_code="CREDIT_NOTE_ALREADY_APPLIED",
            )

        if credit_state(original) == CreditState.VOIDED:
            raise ConflictError(
                f"La factura {original.numero_factura} ya está anulada",
                error_code="INVOICE_VOIDED",
            )

        if original.clasificacion == Clasificacion.NOTA_CREDITO.value:
            raise BusinessValidationError(
                "No se puede aplicar una nota de crédito a otra nota de crédito",
                error_code="CREDIT_NOTE_ON_CREDIT_NOTE",
            )

        if original.estado_mercancia == EstadoMercancia.PAGADA.value:
            raise ConflictError(
                f"La factura {original.numero_factura} ya está pagada",
                error_code="INVOICE_ALREADY_PAID",
            )

        if credit_note.total_a_pagar is None or credit_note.total_a_pagar <= ZERO:
            raise BusinessValidationError(
                "El valor de la nota de crédito debe ser mayor que cero",
                error_code="CREDIT_NOTE_NOT_POSITIVE",
            )

        if credit_note.total_a_pagar > original.total_a_pagar:
            raise BusinessValidationError(
                f"La nota de crédito ({credit_note.total_a_pagar}) supera el total "
                f"de la factura original ({original.total_a_pagar})",
                error_code="CREDIT_NOTE_EXCEEDS_ORIGINAL",
                extra={
                    "valor_nota": str(credit_note.total_a_pagar),
                    "total_original": str(original.total_a_pagar),
                },
            )

    # ------------------------------------------------------------
    # Consultas
    # ------------------------------------------------------------

    async def get_history(self, db: AsyncSession, invoice_id: uuid.UUID) -> list[CreditNoteRecord]:
        """Notas de crédito aplicadas a una factura, en orden de aplicación."""
        invoice = await db.get(Invoice, invoice_id)
        if not invoice:
            raise NotFoundError(f"Factura {invoice_id} no encontrada")
        return list(parse_ledger(invoice.notas).notas_credito)

    async def list_grouped(
        self,
        db: AsyncSession,
        emisor_nit: Optional[str] = None,
    ) -> CreditNoteGroups:
        """Notas de crédito agrupadas por estado, con su factura original."""
        stmt = select(Invoice).where(
            Invoice.clasificacion == Clasificacion.NOTA_CREDITO.value,
            Invoice.estado_nota_credito.is_not(None),
        )
        if emisor_nit:
            stmt = stmt.where(Invoice.emisor_nit == emisor_nit)
        stmt = stmt.order_by(Invoice.fecha_emision.desc().nulls_last())

        result = await db.execute(stmt)
        notes = list(result.scalars().all())

        original_ids = {n.factura_original_id for n in notes if n.factura_original_id}
        originals: dict[uuid.UUID, Invoice] = {}
        if original_ids:
            orig_result = await db.execute(select(Invoice).where(Invoice.id.in_(original_ids)))
            originals = {inv.id: inv for inv in orig_result.scalars().all()}

        groups = CreditNoteGroups()
        for note in notes:
            # Una original anulada también queda como nota_credito/anulada sin enlace
            if note.factura_original_id is None and note.estado_nota_credito != EstadoNotaCredito.PENDIENTE.value:
                continue
            original = originals.get(note.factura_original_id)
            summary = CreditNoteSummary(
                nota_credito=InvoiceRead.model_validate(note),
                factura_original=InvoiceRead.model_validate(original) if original else None,
            )
            if note.estado_nota_credito == EstadoNotaCredito.APLICADA.value:
                groups.aplicadas.append(summary)
            elif note.estado_nota_credito == EstadoNotaCredito.ANULADA.value:
                groups.anuladas.append(summary)
            else:
                groups.pendientes.append(summary)
        return groups
