"""
API Routes
Proyecto: Liquidador de Facturas de Proveedores

Agrupa los routers versionados.
"""

from app.api.v1 import api_v1_router

__all__ = ["api_v1_router"]
