"""
Service Layer de Facturas
Proyecto: Liquidador de Facturas de Proveedores

Registro manual, consulta, clasificación y edición de descuentos de
facturas, más el recalculo de la caché valor_real_a_pagar.
"""

import logging
import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import commit_or_rollback
from app.core.exceptions import BusinessValidationError, ConflictError, NotFoundError
from app.models import Invoice
from app.schemas.adjustment_ledger import AdjustmentLedger
from app.schemas.invoice import (
    Clasificacion,
    DiscountItem,
    EstadoMercancia,
    EstadoNotaCredito,
    InvoiceClassification,
    InvoiceCreate,
    InvoiceList,
    InvoiceRead,
    InvoiceValorReal,
)
from app.schemas.settlement import RecomputeResult
from app.services.adjustment_ledger import balances_applied, dump_ledger, parse_ledger
from app.services.valor_real import (
    ZERO,
    as_financials,
    compute_breakdown,
    display_total,
    quantize_money,
    remaining_payable,
)

logger = logging.getLogger(__name__)


def cached_valor_real(invoice: Invoice) -> Decimal:
    """
    Valor que corresponde a valor_real_a_pagar según el estado actual.

    Una nota de crédito enlazada a su factura original vale 0.
    """
    if invoice.factura_original_id is not None:
        return ZERO
    return remaining_payable(invoice, balances_applied(parse_ledger(invoice.notas)))


class InvoiceService:
    """
    Service de facturas.

    Métodos asíncronos sin dependencias de FastAPI.
    """

    async def create(self, db: AsyncSession, data: InvoiceCreate) -> Invoice:
        """
        Registra una factura manualmente.

        Si no se indica total_sin_iva se deriva como total - IVA. Las notas
        de crédito nacen en estado "pendiente".
        """
        total_sin_iva = data.total_sin_iva
        if total_sin_iva is None:
            total_sin_iva = data.total_a_pagar - data.factura_iva

        invoice = Invoice(
            numero_factura=data.numero_factura.strip(),
            emisor_nombre=data.emisor_nombre.strip(),
            emisor_nit=data.emisor_nit.strip(),
            clasificacion=data.clasificacion.value if data.clasificacion else None,
            descripcion=data.descripcion,
            fecha_emision=data.fecha_emision,
            fecha_vencimiento=data.fecha_vencimiento,
            total_a_pagar=quantize_money(data.total_a_pagar),
            factura_iva=quantize_money(data.factura_iva),
            factura_iva_porcentaje=data.factura_iva_porcentaje,
            total_sin_iva=quantize_money(total_sin_iva),
            tiene_retencion=data.tiene_retencion,
            monto_retencion=data.monto_retencion if data.tiene_retencion else ZERO,
            porcentaje_pronto_pago=data.porcentaje_pronto_pago,
            descuentos_antes_iva=[d.model_dump(mode="json", exclude_none=True) for d in data.descuentos_antes_iva] or None,
            estado_mercancia=EstadoMercancia.PENDIENTE.value,
            estado_nota_credito=(
                EstadoNotaCredito.PENDIENTE.value
                if data.clasificacion == Clasificacion.NOTA_CREDITO
                else None
            ),
        )
        invoice.valor_real_a_pagar = (
            ZERO if data.clasificacion == Clasificacion.NOTA_CREDITO else remaining_payable(invoice)
        )

        db.add(invoice)
        await commit_or_rollback(db, f"la factura {invoice.numero_factura}")
        await db.refresh(invoice)
        logger.info("Factura %s de %s registrada", invoice.numero_factura, invoice.emisor_nit)
        return invoice

    async def get_by_id(self, db: AsyncSession, invoice_id: uuid.UUID) -> Invoice:
        invoice = await db.get(Invoice, invoice_id)
        if not invoice:
            raise NotFoundError(f"Factura {invoice_id} no encontrada")
        return invoice

    async def get_all(
        self,
        db: AsyncSession,
        estado_mercancia: Optional[EstadoMercancia] = None,
        clasificacion: Optional[Clasificacion] = None,
        emisor_nit: Optional[str] = None,
        sin_clasificar: bool = False,
        page: int = 1,
        per_page: int = 20,
    ) -> InvoiceList:
        """Listado paginado con filtros por estado, clasificación y proveedor."""
        stmt = select(Invoice)
        if estado_mercancia:
            stmt = stmt.where(Invoice.estado_mercancia == estado_mercancia.value)
        if sin_clasificar:
            stmt = stmt.where(Invoice.clasificacion.is_(None))
        elif clasificacion:
            stmt = stmt.where(Invoice.clasificacion == clasificacion.value)
        if emisor_nit:
            stmt = stmt.where(Invoice.emisor_nit == emisor_nit)

        count_stmt = select(func.count()).select_from(stmt.subquery())
        total = (await db.execute(count_stmt)).scalar_one()

        stmt = (
            stmt.order_by(Invoice.fecha_emision.desc().nulls_last(), Invoice.created_at.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        result = await db.execute(stmt)
        items = [InvoiceRead.model_validate(inv) for inv in result.scalars().all()]
        return InvoiceList(items=items, total=total, page=page, per_page=per_page)

    async def classify(
        self,
        db: AsyncSession,
        invoice_id: uuid.UUID,
        data: InvoiceClassification,
    ) -> Invoice:
        """
        Clasifica la factura y refresca valor_real_a_pagar.

        Sin retención el porcentaje queda en 0. Una factura con notas de
        crédito aplicadas no puede convertirse en nota de crédito.
        """
        invoice = await db.get(Invoice, invoice_id, with_for_update=True)
        if not invoice:
            raise NotFoundError(f"Factura {invoice_id} no encontrada")
        if invoice.estado_mercancia == EstadoMercancia.PAGADA.value:
            raise ConflictError(
                f"La factura {invoice.numero_factura} ya está pagada",
                error_code="INVOICE_ALREADY_PAID",
            )

        ledger = parse_ledger(invoice.notas)
        if data.clasificacion == Clasificacion.NOTA_CREDITO:
            if ledger.notas_credito:
                raise BusinessValidationError(
                    "Una factura con notas de crédito aplicadas no puede ser nota de crédito",
                    error_code="INVOICE_HAS_CREDIT_NOTES",
                )
            if invoice.estado_nota_credito is None:
                invoice.estado_nota_credito = EstadoNotaCredito.PENDIENTE.value
        elif invoice.estado_nota_credito == EstadoNotaCredito.PENDIENTE.value:
            invoice.estado_nota_credito = None
        elif invoice.estado_nota_credito is not None:
            raise ConflictError(
                f"{invoice.numero_factura} ya fue aplicada como nota de crédito",
                error_code="CREDIT_NOTE_ALREADY_APPLIED",
            )

        invoice.clasificacion = data.clasificacion.value
        invoice.descripcion = data.descripcion
        invoice.tiene_retencion = data.tiene_retencion
        invoice.monto_retencion = data.monto_retencion if data.tiene_retencion else ZERO
        invoice.porcentaje_pronto_pago = data.porcentaje_pronto_pago

        if ledger.has_snapshot:
            # La retención de las próximas notas de crédito usa el nuevo porcentaje
            invoice.notas = dump_ledger(ledger.model_copy(
                update={"retencion_porcentaje": invoice.monto_retencion}
            ))

        invoice.valor_real_a_pagar = (
            ZERO if data.clasificacion == Clasificacion.NOTA_CREDITO else cached_valor_real(invoice)
        )

        await commit_or_rollback(db, f"la clasificación de {invoice.numero_factura}")
        logger.info("Factura %s clasificada como %s", invoice.numero_factura, invoice.clasificacion)
        return invoice

    async def update_discounts(
        self,
        db: AsyncSession,
        invoice_id: uuid.UUID,
        discounts: list[DiscountItem],
    ) -> Invoice:
        """Reemplaza los descuentos antes de IVA y refresca valor_real_a_pagar."""
        invoice = await db.get(Invoice, invoice_id, with_for_update=True)
        if not invoice:
            raise NotFoundError(f"Factura {invoice_id} no encontrada")
        if invoice.estado_mercancia == EstadoMercancia.PAGADA.value:
            raise ConflictError(
                f"La factura {invoice.numero_factura} ya está pagada",
                error_code="INVOICE_ALREADY_PAID",
            )

        applied = balances_applied(parse_ledger(invoice.notas))
        preview = as_financials(invoice).model_copy(update={"descuentos_antes_iva": list(discounts)})
        if applied and remaining_payable(preview) < applied:
            raise BusinessValidationError(
                "Los descuentos dejan la factura por debajo de los saldos a favor ya aplicados",
                error_code="DISCOUNTS_BELOW_APPLIED_BALANCES",
            )

        invoice.descuentos_antes_iva = [d.model_dump(mode="json", exclude_none=True) for d in discounts] or None
        new_value = remaining_payable(preview, applied)
        invoice.valor_real_a_pagar = new_value

        await commit_or_rollback(db, f"los descuentos de {invoice.numero_factura}")
        logger.info(
            "Descuentos de factura %s actualizados (%d), valor real %s",
            invoice.numero_factura,
            len(discounts),
            new_value,
        )
        return invoice

    async def get_valor_real(self, db: AsyncSession, invoice_id: uuid.UUID) -> InvoiceValorReal:
        """Desglose con y sin pronto pago y lo que falta por pagar."""
        invoice = await self.get_by_id(db, invoice_id)
        applied = balances_applied(parse_ledger(invoice.notas))
        return InvoiceValorReal(
            invoice_id=invoice.id,
            sin_pronto_pago=compute_breakdown(invoice, False),
            con_pronto_pago=compute_breakdown(invoice, True),
            saldos_aplicados=applied,
            pendiente_por_pagar=cached_valor_real(invoice),
            total_real=display_total(invoice),
        )

    async def get_ledger(self, db: AsyncSession, invoice_id: uuid.UUID) -> AdjustmentLedger:
        invoice = await self.get_by_id(db, invoice_id)
        return parse_ledger(invoice.notas)

    async def recompute_valor_real(
        self,
        db: AsyncSession,
        only_missing: bool = True,
    ) -> RecomputeResult:
        """
        Recalcula valor_real_a_pagar por lotes.

        Con only_missing solo toca facturas con la caché vacía. Las facturas
        pagadas conservan el valor liquidado salvo que esté vacío. Cada lote
        se confirma por separado.
        """
        batch_size = settings.recompute_batch_size
        reviewed = updated = batches = 0
        last_id: Optional[uuid.UUID] = None

        while True:
            stmt = select(Invoice).order_by(Invoice.id).limit(batch_size)
            if only_missing:
                stmt = stmt.where(Invoice.valor_real_a_pagar.is_(None))
            if last_id is not None:
                stmt = stmt.where(Invoice.id > last_id)

            result = await db.execute(stmt)
            invoices = list(result.scalars().all())
            if not invoices:
                break

            batches += 1
            for invoice in invoices:
                reviewed += 1
                if invoice.estado_mercancia == EstadoMercancia.PAGADA.value and invoice.valor_real_a_pagar is not None:
                    continue
                value = cached_valor_real(invoice)
                if invoice.valor_real_a_pagar != value:
                    invoice.valor_real_a_pagar = value
                    updated += 1

            await commit_or_rollback(db, f"el lote {batches} de recalculo")
            logger.info("Recalculo lote %d: %d facturas revisadas", batches, len(invoices))
            last_id = invoices[-1].id

            if len(invoices) < batch_size:
                break

        logger.info("Recalculo terminado: %d revisadas, %d actualizadas", reviewed, updated)
        return RecomputeResult(revisadas=reviewed, actualizadas=updated, lotes=batches)
