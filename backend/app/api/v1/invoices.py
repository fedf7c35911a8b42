"""
Router FastAPI de Facturas
Proyecto: Liquidador de Facturas de Proveedores

Endpoints de registro, consulta, clasificación, descuentos, notas de
crédito y liquidación de facturas. Los endpoints que cambian totales
pasan por el SettlementEngine.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.schemas.adjustment_ledger import AdjustmentLedger
from app.schemas.commands import ApplyCreditNote, RecordPayment, ValidateSplit
from app.schemas.invoice import (
    Clasificacion,
    CreditNoteApply,
    CreditNoteApplyResult,
    CreditNoteGroups,
    DiscountsUpdate,
    EstadoMercancia,
    InvoiceClassification,
    InvoiceCreate,
    InvoiceList,
    InvoiceRead,
    InvoiceValorReal,
)
from app.schemas.settlement import (
    BatchPreview,
    BatchPreviewRequest,
    BatchSettleRequest,
    BatchSettleResult,
    RecomputeResult,
    SettlementResult,
    SettleRequest,
    SplitValidationRequest,
    SplitValidationResult,
)
from app.services.credit_note_service import CreditNoteService
from app.services.invoice_service import InvoiceService
from app.services.settlement_engine import settlement_engine

logger = logging.getLogger(__name__)

invoice_service = InvoiceService()
credit_note_service = CreditNoteService()

router = APIRouter(
    prefix="/invoices",
    tags=["Facturas"],
)

credit_notes_router = APIRouter(
    prefix="/credit-notes",
    tags=["Notas de Crédito"],
)


# -------------------------------------------------------------------
# Facturas
# -------------------------------------------------------------------

@router.get(
    "/",
    name="facturas_lista",
    summary="Lista de facturas",
    description="Listado paginado con filtros por estado de pago, clasificación y proveedor.",
    response_model=InvoiceList,
    status_code=status.HTTP_200_OK,
)
async def get_invoices(
    estado_mercancia: Optional[EstadoMercancia] = Query(None, description="pendiente | pagada"),
    clasificacion: Optional[Clasificacion] = Query(None, description="mercancia | gastos | nota_credito"),
    emisor_nit: Optional[str] = Query(None, description="NIT del proveedor"),
    sin_clasificar: bool = Query(False, description="Solo facturas sin clasificar"),
    page: int = Query(1, ge=1, description="Número de página"),
    per_page: int = Query(20, ge=1, le=100, description="Elementos por página"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceList:
    return await invoice_service.get_all(
        db=db,
        estado_mercancia=estado_mercancia,
        clasificacion=clasificacion,
        emisor_nit=emisor_nit,
        sin_clasificar=sin_clasificar,
        page=page,
        per_page=per_page,
    )


@router.post(
    "/",
    name="factura_crear",
    summary="Registrar factura",
    description="Registro manual de una factura o nota de crédito.",
    response_model=InvoiceRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_invoice(
    data: InvoiceCreate,
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    invoice = await invoice_service.create(db, data)
    return InvoiceRead.model_validate(invoice)


@router.post(
    "/recompute",
    name="facturas_recalcular",
    summary="Recalcular valor real",
    description="Recalcula valor_real_a_pagar por lotes (por defecto solo donde falta).",
    response_model=RecomputeResult,
    status_code=status.HTTP_200_OK,
)
async def recompute_invoices(
    only_missing: bool = Query(True, description="Solo facturas sin valor calculado"),
    db: AsyncSession = Depends(get_db),
) -> RecomputeResult:
    return await invoice_service.recompute_valor_real(db, only_missing=only_missing)


@router.post(
    "/validate-split",
    name="pago_partido_validar",
    summary="Validar pago partido",
    description="Comprueba que las líneas cubran el valor objetivo (tolerancia < 1).",
    response_model=SplitValidationResult,
    status_code=status.HTTP_200_OK,
)
async def validate_split(
    data: SplitValidationRequest,
    db: AsyncSession = Depends(get_db),
) -> SplitValidationResult:
    return await settlement_engine.dispatch(db, ValidateSplit(target=data.target, lineas=data.lineas))


@router.post(
    "/preview-batch",
    name="lote_vista_previa",
    summary="Vista previa de pago en lote",
    description="Totales del lote (IVA, retenciones, pronto pago, a pagar) antes de liquidar.",
    response_model=BatchPreview,
    status_code=status.HTTP_200_OK,
)
async def preview_batch(
    data: BatchPreviewRequest,
    db: AsyncSession = Depends(get_db),
) -> BatchPreview:
    return await settlement_engine.preview_batch(db, data)


@router.post(
    "/settle-batch",
    name="lote_liquidar",
    summary="Pagar facturas en lote",
    description=(
        "Liquida cada factura por separado. Devuelve 'procesadas N de M' y el "
        "resultado de cada factura; repetir el lote solo toca las pendientes."
    ),
    response_model=BatchSettleResult,
    status_code=status.HTTP_200_OK,
)
async def settle_batch(
    data: BatchSettleRequest,
    db: AsyncSession = Depends(get_db),
) -> BatchSettleResult:
    return await settlement_engine.settle_batch(db, data)


@router.get(
    "/{invoice_id}",
    name="factura_detalle",
    summary="Detalle de factura",
    response_model=InvoiceRead,
    status_code=status.HTTP_200_OK,
)
async def get_invoice(
    invoice_id: uuid.UUID = Path(..., description="UUID de la factura"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    invoice = await invoice_service.get_by_id(db, invoice_id)
    return InvoiceRead.model_validate(invoice)


@router.get(
    "/{invoice_id}/valor-real",
    name="factura_valor_real",
    summary="Valor real a pagar",
    description="Desglose con y sin pronto pago, saldos aplicados y pendiente por pagar.",
    response_model=InvoiceValorReal,
    status_code=status.HTTP_200_OK,
)
async def get_valor_real(
    invoice_id: uuid.UUID = Path(..., description="UUID de la factura"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceValorReal:
    return await invoice_service.get_valor_real(db, invoice_id)


@router.get(
    "/{invoice_id}/ledger",
    name="factura_libro_ajustes",
    summary="Libro de ajustes",
    description="Snapshot original, notas de crédito y saldos aplicados a la factura.",
    response_model=AdjustmentLedger,
    status_code=status.HTTP_200_OK,
)
async def get_ledger(
    invoice_id: uuid.UUID = Path(..., description="UUID de la factura"),
    db: AsyncSession = Depends(get_db),
) -> AdjustmentLedger:
    return await invoice_service.get_ledger(db, invoice_id)


@router.patch(
    "/{invoice_id}/classification",
    name="factura_clasificar",
    summary="Clasificar factura",
    description="Asigna clasificación, retención y pronto pago.",
    response_model=InvoiceRead,
    status_code=status.HTTP_200_OK,
)
async def classify_invoice(
    data: InvoiceClassification,
    invoice_id: uuid.UUID = Path(..., description="UUID de la factura"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    invoice = await invoice_service.classify(db, invoice_id, data)
    return InvoiceRead.model_validate(invoice)


@router.put(
    "/{invoice_id}/discounts",
    name="factura_descuentos",
    summary="Descuentos antes de IVA",
    description="Reemplaza la lista de descuentos antes de IVA.",
    response_model=InvoiceRead,
    status_code=status.HTTP_200_OK,
)
async def update_discounts(
    data: DiscountsUpdate,
    invoice_id: uuid.UUID = Path(..., description="UUID de la factura"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    invoice = await invoice_service.update_discounts(db, invoice_id, data.descuentos)
    return InvoiceRead.model_validate(invoice)


@router.post(
    "/{invoice_id}/credit-notes",
    name="factura_aplicar_nota_credito",
    summary="Aplicar nota de crédito",
    description="Aplica una nota de crédito a esta factura (la original).",
    response_model=CreditNoteApplyResult,
    status_code=status.HTTP_200_OK,
)
async def apply_credit_note(
    data: CreditNoteApply,
    invoice_id: uuid.UUID = Path(..., description="UUID de la factura original"),
    db: AsyncSession = Depends(get_db),
) -> CreditNoteApplyResult:
    return await settlement_engine.dispatch(
        db, ApplyCreditNote(credit_note_id=data.credit_note_id, original_id=invoice_id)
    )


@router.post(
    "/{invoice_id}/settle",
    name="factura_liquidar",
    summary="Pagar factura",
    description="Marca la factura como pagada con un medio de pago o pago partido.",
    response_model=SettlementResult,
    status_code=status.HTTP_200_OK,
)
async def settle_invoice(
    data: SettleRequest,
    invoice_id: uuid.UUID = Path(..., description="UUID de la factura"),
    db: AsyncSession = Depends(get_db),
) -> SettlementResult:
    return await settlement_engine.dispatch(db, RecordPayment(invoice_id=invoice_id, payment=data))


# -------------------------------------------------------------------
# Notas de crédito
# -------------------------------------------------------------------

@credit_notes_router.get(
    "/",
    name="notas_credito_lista",
    summary="Notas de crédito",
    description="Notas de crédito agrupadas en pendientes, aplicadas y anuladas.",
    response_model=CreditNoteGroups,
    status_code=status.HTTP_200_OK,
)
async def get_credit_notes(
    emisor_nit: Optional[str] = Query(None, description="NIT del proveedor"),
    db: AsyncSession = Depends(get_db),
) -> CreditNoteGroups:
    return await credit_note_service.list_grouped(db, emisor_nit=emisor_nit)
