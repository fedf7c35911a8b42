"""
Router FastAPI de Comandos
Proyecto: Liquidador de Facturas de Proveedores

Recibe cualquier comando del motor (campo `comando` como discriminador).
"""

from typing import Union

from fastapi import APIRouter, Body, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.schemas.balance import BalanceApplicationResult
from app.schemas.commands import Command
from app.schemas.invoice import CreditNoteApplyResult
from app.schemas.settlement import SettlementResult, SplitValidationResult
from app.services.settlement_engine import settlement_engine

router = APIRouter(
    prefix="/commands",
    tags=["Motor de Liquidación"],
)


@router.post(
    "/",
    name="comando_ejecutar",
    summary="Ejecutar comando",
    description="apply_credit_note | apply_balance | record_payment | validate_split",
    response_model=Union[
        CreditNoteApplyResult,
        BalanceApplicationResult,
        SettlementResult,
        SplitValidationResult,
    ],
    status_code=status.HTTP_200_OK,
)
async def execute_command(
    command: Command = Body(...),
    db: AsyncSession = Depends(get_db),
):
    return await settlement_engine.dispatch(db, command)
