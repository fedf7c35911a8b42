"""
Base de datos - SQLAlchemy 2.0 Async
Proyecto: Liquidador de Facturas de Proveedores

Engine, fábrica de sesiones, dependencia FastAPI y helper de commit.
"""

import logging
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import settings
from app.core.exceptions import PersistenceError

logger = logging.getLogger(__name__)

# ------------------------------------------------------------
# Engine
# ------------------------------------------------------------
engine: AsyncEngine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
)


# ------------------------------------------------------------
# Session Factory
# ------------------------------------------------------------
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependencia FastAPI: una sesión por request.

    Example:
        @router.get("/facturas")
        async def listar(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def commit_or_rollback(db: AsyncSession, operation: str) -> None:
    """
    Confirma la transacción en curso.

    Si el almacenamiento falla, revierte la sesión completa y lanza
    PersistenceError: ninguna escritura de la operación queda aplicada.

    Args:
        db: sesión en uso
        operation: descripción corta para el log
    """
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Error guardando %s: %s", operation, e)
        raise PersistenceError(
            f"No fue posible guardar {operation}",
            extra={"operation": operation},
        ) from e


async def init_db() -> None:
    """Verifica que la base de datos responda."""
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Conexión a la base de datos establecida")
    except Exception as e:
        logger.error("Error de conexión a la base de datos: %s", e)
        raise


async def close_db() -> None:
    """Cierra el pool de conexiones (shutdown)."""
    await engine.dispose()
    logger.info("Conexiones a la base de datos cerradas")
