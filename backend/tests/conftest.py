"""
Pytest configuration and fixtures for the settlement services.

Services are exercised against a mocked AsyncSession: `db.get` resolves
objects from an in-memory store keyed by (model, id) so the services see
the same instances across calls, like an identity map.
"""

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import BalanceEntry, Invoice


# ============================================================
# Sesión mock
# ============================================================


class FakeStore:
    """Registro en memoria que alimenta db.get."""

    def __init__(self):
        self.objects = {}

    def put(self, model, obj):
        self.objects[(model, obj.id)] = obj
        return obj

    async def get(self, model, ident, **kwargs):
        return self.objects.get((model, ident))


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def mock_db(store):
    """Mock de AsyncSession conectado al store."""
    db = AsyncMock(spec=AsyncSession)
    db.get = AsyncMock(side_effect=store.get)
    db.execute = AsyncMock()
    db.add = MagicMock()
    db.add_all = MagicMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.flush = AsyncMock()
    db.refresh = AsyncMock()
    return db


def added_objects(db, model):
    """Objetos de `model` pasados a db.add / db.add_all."""
    found = []
    for call in db.add.call_args_list:
        if isinstance(call.args[0], model):
            found.append(call.args[0])
    for call in db.add_all.call_args_list:
        found.extend(obj for obj in call.args[0] if isinstance(obj, model))
    return found


def scalars_result(items):
    """Simula el resultado de db.execute(...).scalars().all()."""
    result = MagicMock()
    result.scalars.return_value.all.return_value = list(items)
    return result


# ============================================================
# Mocks de dominio
# ============================================================


class MockInvoice:
    """Mock del modelo Invoice."""

    def __init__(self, **kwargs):
        self.id = kwargs.get("id", uuid.uuid4())
        self.numero_factura = kwargs.get("numero_factura", "FE-1001")
        self.emisor_nombre = kwargs.get("emisor_nombre", "Distribuidora Andina S.A.S.")
        self.emisor_nit = kwargs.get("emisor_nit", "900123456-7")
        self.clasificacion = kwargs.get("clasificacion", "mercancia")
        self.descripcion = kwargs.get("descripcion", None)
        self.fecha_emision = kwargs.get("fecha_emision", date(2024, 3, 1))
        self.fecha_vencimiento = kwargs.get("fecha_vencimiento", date(2024, 3, 31))
        self.total_a_pagar = kwargs.get("total_a_pagar", Decimal("119000.00"))
        self.factura_iva = kwargs.get("factura_iva", Decimal("19000.00"))
        self.factura_iva_porcentaje = kwargs.get("factura_iva_porcentaje", Decimal("19"))
        self.total_sin_iva = kwargs.get("total_sin_iva", Decimal("100000.00"))
        self.tiene_retencion = kwargs.get("tiene_retencion", False)
        self.monto_retencion = kwargs.get("monto_retencion", Decimal("0"))
        self.porcentaje_pronto_pago = kwargs.get("porcentaje_pronto_pago", Decimal("0"))
        self.uso_pronto_pago = kwargs.get("uso_pronto_pago", None)
        self.descuentos_antes_iva = kwargs.get("descuentos_antes_iva", None)
        self.valor_real_a_pagar = kwargs.get("valor_real_a_pagar", None)
        self.estado_mercancia = kwargs.get("estado_mercancia", "pendiente")
        self.estado_nota_credito = kwargs.get("estado_nota_credito", None)
        self.factura_original_id = kwargs.get("factura_original_id", None)
        self.metodo_pago = kwargs.get("metodo_pago", None)
        self.fecha_pago = kwargs.get("fecha_pago", None)
        self.notas = kwargs.get("notas", None)
        self.created_at = kwargs.get("created_at", datetime(2024, 3, 1, tzinfo=timezone.utc))
        self.updated_at = kwargs.get("updated_at", datetime(2024, 3, 1, tzinfo=timezone.utc))


class MockBalance:
    """Mock del modelo BalanceEntry."""

    def __init__(self, **kwargs):
        monto = kwargs.get("monto_inicial", Decimal("50000.00"))
        self.id = kwargs.get("id", uuid.uuid4())
        self.emisor_nit = kwargs.get("emisor_nit", "900123456-7")
        self.emisor_nombre = kwargs.get("emisor_nombre", "Distribuidora Andina S.A.S.")
        self.monto_inicial = monto
        self.saldo_disponible = kwargs.get("saldo_disponible", monto)
        self.motivo = kwargs.get("motivo", "pago_exceso")
        self.medio_pago = kwargs.get("medio_pago", "Pago Banco")
        self.estado = kwargs.get("estado", "activo")
        self.factura_origen_id = kwargs.get("factura_origen_id", None)
        self.numero_factura_origen = kwargs.get("numero_factura_origen", None)
        self.descripcion = kwargs.get("descripcion", None)
        self.fecha_generacion = kwargs.get("fecha_generacion", datetime(2024, 2, 1, tzinfo=timezone.utc))


@pytest.fixture
def add_invoice(store):
    """Registra una factura mock en el store y la devuelve."""
    def _add(**kwargs):
        return store.put(Invoice, MockInvoice(**kwargs))
    return _add


@pytest.fixture
def add_balance(store):
    """Registra un saldo mock en el store y lo devuelve."""
    def _add(**kwargs):
        return store.put(BalanceEntry, MockBalance(**kwargs))
    return _add


