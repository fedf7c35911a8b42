"""
Service Layer de Liquidación
Proyecto: Liquidador de Facturas de Proveedores

Marca facturas como pagadas, escribe las líneas de pago por medio y guarda
el valor final pagado. En lotes, cada factura se confirma por separado y un
reintento solo toca las que siguen pendientes.
"""

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import commit_or_rollback
from app.core.exceptions import (
    AppException,
    BusinessValidationError,
    ConflictError,
    NotFoundError,
    PersistenceError,
)
from app.models import Invoice
from app.schemas.invoice import Clasificacion, EstadoMercancia
from app.schemas.settlement import (
    BatchOutcomeStatus,
    BatchPreview,
    BatchPreviewLine,
    BatchPreviewRequest,
    BatchSettleOutcome,
    BatchSettleRequest,
    BatchSettleResult,
    PaymentLineIn,
    SettlementResult,
    SettleRequest,
    SplitPaymentLineRead,
)
from app.services.adjustment_ledger import balances_applied, parse_ledger
from app.services.split_payment import (
    build_lines,
    reconcile_lines,
    validate_channels,
    validate_split,
)
from app.services.valor_real import ZERO, compute_breakdown, remaining_payable

logger = logging.getLogger(__name__)


class SettlementService:
    """
    Registro del pago de facturas.

    Al liquidar:
    - estado_mercancia = "pagada"
    - metodo_pago = medio único o "Pago Partido"
    - fecha_pago, uso_pronto_pago
    - valor_real_a_pagar = valor real (con o sin pronto pago) menos saldos aplicados
    - una línea en split_payment_lines por medio de pago
    """

    async def settle(
        self,
        db: AsyncSession,
        invoice_id: uuid.UUID,
        request: SettleRequest,
    ) -> SettlementResult:
        """
        Liquida una factura.

        Raises:
            NotFoundError: la factura no existe
            ConflictError: ya está pagada
            BusinessValidationError: nota de crédito, medio inválido o pago partido que no cuadra
            PersistenceError: fallo al guardar
        """
        invoice = await db.get(Invoice, invoice_id, with_for_update=True)
        if not invoice:
            raise NotFoundError(f"Factura {invoice_id} no encontrada")

        if invoice.estado_mercancia == EstadoMercancia.PAGADA.value:
            raise ConflictError(
                f"La factura {invoice.numero_factura} ya está pagada",
                error_code="INVOICE_ALREADY_PAID",
            )
        if invoice.clasificacion == Clasificacion.NOTA_CREDITO.value:
            raise BusinessValidationError(
                f"{invoice.numero_factura} es una nota de crédito y no se paga",
                error_code="CREDIT_NOTE_NOT_PAYABLE",
            )

        ledger = parse_ledger(invoice.notas)
        final_amount = remaining_payable(
            invoice,
            balances_applied(ledger),
            apply_early_payment=request.apply_early_payment,
        )

        if request.is_split:
            validate_split(final_amount, request.lineas)
            validate_channels(request.lineas)
            lines = reconcile_lines(final_amount, request.lineas)
            method = settings.split_payment_method_label
        else:
            method = request.metodo_pago.strip()
            lines = [PaymentLineIn(medio_pago=method, monto=final_amount)]
            validate_channels(lines)

        # Una factura cubierta por completo con saldos no genera líneas de pago
        lines = [line for line in lines if line.monto > ZERO]

        paid_at = request.fecha_pago or datetime.now(timezone.utc)
        invoice.estado_mercancia = EstadoMercancia.PAGADA.value
        invoice.metodo_pago = method
        invoice.fecha_pago = paid_at
        invoice.uso_pronto_pago = request.apply_early_payment
        invoice.valor_real_a_pagar = final_amount
        db.add_all(build_lines(invoice.id, lines, paid_at))

        await commit_or_rollback(db, f"el pago de la factura {invoice.numero_factura}")
        logger.info(
            "Factura %s pagada: %s por %s%s",
            invoice.numero_factura,
            final_amount,
            method,
            " (pronto pago)" if request.apply_early_payment else "",
        )

        return SettlementResult(
            invoice_id=invoice.id,
            estado_mercancia=invoice.estado_mercancia,
            metodo_pago=method,
            uso_pronto_pago=request.apply_early_payment,
            fecha_pago=paid_at,
            valor_real_a_pagar=final_amount,
            lineas=[SplitPaymentLineRead(medio_pago=l.medio_pago, monto=l.monto) for l in lines],
        )

    async def settle_batch(self, db: AsyncSession, request: BatchSettleRequest) -> BatchSettleResult:
        """
        Liquida un lote de facturas con un mismo medio de pago.

        Cada factura se confirma de forma independiente: un fallo en la
        factura k no revierte las anteriores. Las facturas ya pagadas se
        omiten, así que repetir el mismo lote completa solo las pendientes.
        Un error del almacenamiento en una factura la deja como fallida y el
        lote continúa con la siguiente.
        """
        paid_at = request.fecha_pago or datetime.now(timezone.utc)
        early = set(request.early_payment_ids)
        outcomes: list[BatchSettleOutcome] = []

        for invoice_id in request.invoice_ids:
            single = SettleRequest(
                metodo_pago=request.metodo_pago,
                apply_early_payment=invoice_id in early,
                fecha_pago=paid_at,
            )
            try:
                settled = await self.settle(db, invoice_id, single)
            except ConflictError as e:
                await db.rollback()
                if e.error_code == "INVOICE_ALREADY_PAID":
                    outcomes.append(
                        BatchSettleOutcome(invoice_id=invoice_id, status=BatchOutcomeStatus.YA_PAGADA)
                    )
                else:
                    outcomes.append(self._failed(invoice_id, e))
            except AppException as e:
                await db.rollback()
                outcomes.append(self._failed(invoice_id, e))
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error("Error de almacenamiento liquidando factura %s: %s", invoice_id, e)
                outcomes.append(
                    self._failed(invoice_id, PersistenceError(f"No fue posible liquidar la factura {invoice_id}"))
                )
            else:
                outcomes.append(
                    BatchSettleOutcome(
                        invoice_id=invoice_id,
                        status=BatchOutcomeStatus.PAGADA,
                        valor_real_a_pagar=settled.valor_real_a_pagar,
                    )
                )

        done = sum(1 for o in outcomes if o.status != BatchOutcomeStatus.FALLIDA)
        result = BatchSettleResult(
            procesadas=done,
            total=len(outcomes),
            completo=done == len(outcomes),
            resultados=outcomes,
        )
        if result.completo:
            logger.info(result.mensaje)
        else:
            logger.warning("%s; pendientes por reintentar", result.mensaje)
        return result

    @staticmethod
    def _failed(invoice_id: uuid.UUID, error: AppException) -> BatchSettleOutcome:
        logger.warning("Factura %s no liquidada: %s", invoice_id, error.detail)
        return BatchSettleOutcome(
            invoice_id=invoice_id,
            status=BatchOutcomeStatus.FALLIDA,
            error=error.detail,
        )

    async def preview_batch(self, db: AsyncSession, request: BatchPreviewRequest) -> BatchPreview:
        """Totales del lote (original, IVA, retenciones, pronto pago, a pagar) antes de pagar."""
        early = set(request.early_payment_ids)
        lines: list[BatchPreviewLine] = []

        for invoice_id in request.invoice_ids:
            invoice = await db.get(Invoice, invoice_id)
            if not invoice:
                raise NotFoundError(f"Factura {invoice_id} no encontrada")

            apply_early = invoice_id in early
            breakdown = compute_breakdown(invoice, apply_early)
            applied = balances_applied(parse_ledger(invoice.notas))
            lines.append(
                BatchPreviewLine(
                    invoice_id=invoice.id,
                    numero_factura=invoice.numero_factura,
                    emisor_nombre=invoice.emisor_nombre,
                    total_a_pagar=invoice.total_a_pagar,
                    factura_iva=invoice.factura_iva or ZERO,
                    retencion=breakdown.retencion,
                    descuento_pronto_pago=breakdown.descuento_pronto_pago,
                    total_descuentos=breakdown.total_descuentos,
                    saldos_aplicados=applied,
                    valor_a_pagar=remaining_payable(invoice, applied, apply_early_payment=apply_early),
                )
            )

        def total(field: str) -> Decimal:
            return sum((getattr(line, field) for line in lines), ZERO)

        return BatchPreview(
            total_original=total("total_a_pagar"),
            total_iva=total("factura_iva"),
            total_retenciones=total("retencion"),
            total_pronto_pago=total("descuento_pronto_pago"),
            total_descuentos=total("total_descuentos"),
            total_saldos_aplicados=total("saldos_aplicados"),
            total_a_pagar=total("valor_a_pagar"),
            facturas=lines,
        )
