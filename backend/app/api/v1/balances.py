"""
Router FastAPI de Saldos a Favor
Proyecto: Liquidador de Facturas de Proveedores
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.schemas.balance import (
    BalanceApplicationRead,
    BalanceApplicationResult,
    BalanceApplyRequest,
    BalanceBatchApplicationResult,
    BalanceBatchApplyRequest,
    BalanceCreate,
    BalanceRead,
    EstadoSaldo,
    SupplierBalanceSummary,
)
from app.schemas.commands import ApplyBalance
from app.services.balance_service import BalanceLedgerService
from app.services.settlement_engine import settlement_engine

balance_service = BalanceLedgerService()

router = APIRouter(
    prefix="/balances",
    tags=["Saldos a Favor"],
)


@router.get(
    "/",
    name="saldos_lista",
    summary="Lista de saldos a favor",
    response_model=list[BalanceRead],
    status_code=status.HTTP_200_OK,
)
async def get_balances(
    emisor_nit: Optional[str] = Query(None, description="NIT del proveedor"),
    estado: Optional[EstadoSaldo] = Query(None, description="activo | agotado | cancelado"),
    db: AsyncSession = Depends(get_db),
) -> list[BalanceRead]:
    balances = await balance_service.get_all(db, emisor_nit=emisor_nit, estado=estado)
    return [BalanceRead.model_validate(b) for b in balances]


@router.post(
    "/",
    name="saldo_crear",
    summary="Registrar saldo a favor",
    response_model=BalanceRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_balance(
    data: BalanceCreate,
    db: AsyncSession = Depends(get_db),
) -> BalanceRead:
    balance = await balance_service.create(db, data)
    return BalanceRead.model_validate(balance)


@router.get(
    "/suppliers",
    name="saldos_por_proveedor",
    summary="Saldos agrupados por proveedor",
    description="Total disponible (saldos activos) por NIT.",
    response_model=list[SupplierBalanceSummary],
    status_code=status.HTTP_200_OK,
)
async def get_supplier_summaries(
    db: AsyncSession = Depends(get_db),
) -> list[SupplierBalanceSummary]:
    return await balance_service.get_supplier_summaries(db)


@router.get(
    "/available/{emisor_nit}",
    name="saldos_disponibles",
    summary="Saldos disponibles de un proveedor",
    response_model=list[BalanceRead],
    status_code=status.HTTP_200_OK,
)
async def get_available_balances(
    emisor_nit: str = Path(..., description="NIT del proveedor"),
    db: AsyncSession = Depends(get_db),
) -> list[BalanceRead]:
    balances = await balance_service.fetch_saldos_disponibles(db, emisor_nit)
    return [BalanceRead.model_validate(b) for b in balances]


@router.get(
    "/{balance_id}/applications",
    name="saldo_aplicaciones",
    summary="Historial de aplicaciones",
    response_model=list[BalanceApplicationRead],
    status_code=status.HTTP_200_OK,
)
async def get_applications(
    balance_id: uuid.UUID = Path(..., description="UUID del saldo"),
    db: AsyncSession = Depends(get_db),
) -> list[BalanceApplicationRead]:
    applications = await balance_service.get_applications(db, balance_id)
    return [BalanceApplicationRead.model_validate(a) for a in applications]


@router.post(
    "/{balance_id}/cancel",
    name="saldo_cancelar",
    summary="Cancelar saldo a favor",
    response_model=BalanceRead,
    status_code=status.HTTP_200_OK,
)
async def cancel_balance(
    balance_id: uuid.UUID = Path(..., description="UUID del saldo"),
    db: AsyncSession = Depends(get_db),
) -> BalanceRead:
    balance = await balance_service.cancel(db, balance_id)
    return BalanceRead.model_validate(balance)


@router.post(
    "/{balance_id}/apply",
    name="saldo_aplicar",
    summary="Aplicar saldo a una factura",
    response_model=BalanceApplicationResult,
    status_code=status.HTTP_200_OK,
)
async def apply_balance(
    data: BalanceApplyRequest,
    balance_id: uuid.UUID = Path(..., description="UUID del saldo"),
    db: AsyncSession = Depends(get_db),
) -> BalanceApplicationResult:
    return await settlement_engine.dispatch(
        db, ApplyBalance(balance_id=balance_id, invoice_id=data.invoice_id, amount=data.amount)
    )


@router.post(
    "/{balance_id}/apply-batch",
    name="saldo_aplicar_lote",
    summary="Aplicar saldo a varias facturas",
    description="El monto se reparte en partes iguales entre las facturas seleccionadas.",
    response_model=BalanceBatchApplicationResult,
    status_code=status.HTTP_200_OK,
)
async def apply_balance_batch(
    data: BalanceBatchApplyRequest,
    balance_id: uuid.UUID = Path(..., description="UUID del saldo"),
    db: AsyncSession = Depends(get_db),
) -> BalanceBatchApplicationResult:
    return await settlement_engine.apply_balance_batch(db, balance_id, data.invoice_ids, data.amount)
