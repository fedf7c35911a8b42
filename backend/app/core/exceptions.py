"""
Excepciones del dominio.
Proyecto: Liquidador de Facturas de Proveedores

Cada excepción lleva su código HTTP y un error_code estable que el
frontend usa para mostrar el mensaje correcto.

NOTA: BusinessValidationError no es pydantic.ValidationError.
- pydantic.ValidationError: formato/tipo de los datos de entrada (FastAPI → 422)
- BusinessValidationError: reglas de liquidación violadas (nuestro handler → 422)
"""

from typing import Any, Dict, Optional

__all__ = [
    "AppException",
    "NotFoundError",
    "BusinessValidationError",
    "ConflictError",
    "PersistenceError",
]


class AppException(Exception):
    """
    Excepción base de la aplicación.

    Attributes:
        status_code: código HTTP devuelto al cliente
        error_code: identificador estable del error
        detail: mensaje legible
        extra: datos adicionales para el frontend
    """

    status_code: int = 500
    error_code: str = "INTERNAL_SERVER_ERROR"

    def __init__(
        self,
        detail: str,
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.detail = detail
        self.error_code = error_code if error_code is not None else self.error_code
        self.extra = extra
        self.status_code = self.__class__.status_code
        super().__init__(detail)


class NotFoundError(AppException):
    """La factura, el saldo o la aplicación buscada no existe."""

    status_code: int = 404
    error_code: str = "RESOURCE_NOT_FOUND"

    def __init__(
        self,
        detail: str = "Recurso no encontrado",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class BusinessValidationError(ValueError, AppException):
    """
    Violación de una regla de liquidación.

    Hereda de ValueError para poder lanzarse desde validadores pydantic.
    Siempre se lanza antes de cualquier escritura.

    Ejemplos:
        - "El monto supera el saldo disponible"
        - "La suma del pago partido no coincide con el valor a pagar"
        - "La nota de crédito supera el total de la factura original"
    """

    status_code: int = 422
    error_code: str = "BUSINESS_VALIDATION_ERROR"

    def __init__(
        self,
        detail: str = "Validación de negocio fallida",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        # Se llama AppException.__init__ directamente para no pasar por ValueError
        AppException.__init__(self, detail, error_code, extra)


class ConflictError(AppException):
    """
    Conflicto con el estado actual del recurso.

    P. ej. liquidar una factura ya pagada o aplicar un saldo cancelado.
    """

    status_code: int = 409
    error_code: str = "CONFLICT_STATE"

    def __init__(
        self,
        detail: str = "Conflicto de estado",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class PersistenceError(AppException):
    """
    Fallo del almacenamiento al confirmar una operación.

    La sesión ya fue revertida cuando se lanza; el llamador puede
    reintentar la operación completa.
    """

    status_code: int = 503
    error_code: str = "PERSISTENCE_ERROR"

    def __init__(
        self,
        detail: str = "No fue posible guardar los cambios",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)
