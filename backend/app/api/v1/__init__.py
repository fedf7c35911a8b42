"""
API v1
Proyecto: Liquidador de Facturas de Proveedores

Router de la versión 1 del API.
"""

from fastapi import APIRouter

from app.api.v1 import balances, commands, invoices

api_v1_router = APIRouter(prefix="/api/v1")

api_v1_router.include_router(invoices.router)
api_v1_router.include_router(invoices.credit_notes_router)
api_v1_router.include_router(balances.router)
api_v1_router.include_router(commands.router)

__all__ = ["api_v1_router"]
