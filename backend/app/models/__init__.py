"""
Modelos SQLAlchemy
Proyecto: Liquidador de Facturas de Proveedores

Import centralizado de todos los modelos (create_all / reset_db).

Modelos:
- Invoice: facturas y notas de crédito
- SplitPaymentLine: líneas de pago de una factura liquidada
- BalanceEntry: saldos a favor por proveedor
- BalanceApplication: aplicaciones de saldo contra facturas
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Clase base de todos los modelos."""
    pass


from app.models.invoice import Invoice, SplitPaymentLine
from app.models.balance import BalanceEntry, BalanceApplication

__all__ = [
    "Base",
    "Invoice",
    "SplitPaymentLine",
    "BalanceEntry",
    "BalanceApplication",
]
