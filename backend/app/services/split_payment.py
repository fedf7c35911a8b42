"""
Pago Partido
Proyecto: Liquidador de Facturas de Proveedores

Valida que un pago repartido entre varios medios cubra el valor a pagar.
La validación ocurre antes de cualquier escritura.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence

from app.core.config import settings
from app.core.exceptions import BusinessValidationError
from app.models import SplitPaymentLine
from app.schemas.settlement import PaymentLineIn, SplitValidationResult
from app.services.valor_real import ZERO, quantize_money


def check_split(
    target: Decimal,
    lines: Sequence[PaymentLineIn],
    tolerance: Optional[Decimal] = None,
) -> SplitValidationResult:
    """
    Evalúa un pago partido sin lanzar excepciones.

    Válido si cada línea tiene medio de pago y monto > 0, y la suma
    difiere del objetivo en menos de `tolerance` (por defecto 1 unidad).
    """
    if tolerance is None:
        tolerance = settings.split_payment_tolerance

    total = quantize_money(sum((line.monto for line in lines), ZERO))
    difference = quantize_money(total - target)
    complete = bool(lines) and all(line.medio_pago.strip() and line.monto > ZERO for line in lines)
    return SplitValidationResult(
        valido=complete and abs(difference) < tolerance,
        target=quantize_money(target),
        suma=total,
        diferencia=difference,
    )


def validate_split(
    target: Decimal,
    lines: Sequence[PaymentLineIn],
    tolerance: Optional[Decimal] = None,
) -> SplitValidationResult:
    """
    Igual que check_split pero lanza BusinessValidationError si no es válido.

    Raises:
        BusinessValidationError: líneas incompletas o suma fuera de tolerancia
    """
    if not lines:
        raise BusinessValidationError(
            "El pago partido necesita al menos una línea",
            error_code="SPLIT_PAYMENT_EMPTY",
        )

    for index, line in enumerate(lines, start=1):
        if not line.medio_pago.strip():
            raise BusinessValidationError(
                f"La línea {index} no tiene medio de pago",
                error_code="SPLIT_PAYMENT_INCOMPLETE",
            )
        if line.monto <= ZERO:
            raise BusinessValidationError(
                f"La línea {index} debe tener un monto mayor que cero",
                error_code="SPLIT_PAYMENT_INCOMPLETE",
            )

    result = check_split(target, lines, tolerance)
    if not result.valido:
        raise BusinessValidationError(
            f"La suma del pago partido ({result.suma}) no coincide con el valor a pagar ({result.target})",
            error_code="SPLIT_PAYMENT_MISMATCH",
            extra={"diferencia": str(result.diferencia)},
        )
    return result


def validate_channels(lines: Sequence[PaymentLineIn]) -> None:
    """Cada medio de pago debe estar entre los configurados."""
    allowed = set(settings.payment_channels)
    unknown = sorted({line.medio_pago for line in lines} - allowed)
    if unknown:
        raise BusinessValidationError(
            f"Medio de pago no válido: {', '.join(unknown)}",
            error_code="PAYMENT_CHANNEL_UNKNOWN",
            extra={"permitidos": sorted(allowed)},
        )


def reconcile_lines(target: Decimal, lines: Sequence[PaymentLineIn]) -> list[PaymentLineIn]:
    """
    Ajusta la última línea para que la suma sea exactamente el objetivo.

    Solo absorbe la diferencia ya aceptada por validate_split (< 1 unidad).
    """
    target = quantize_money(target)
    adjusted = [line.model_copy(update={"monto": quantize_money(line.monto)}) for line in lines]
    difference = target - sum((line.monto for line in adjusted), ZERO)
    if difference:
        last = adjusted[-1]
        new_amount = last.monto + difference
        if new_amount <= ZERO:
            raise BusinessValidationError(
                "La última línea del pago partido quedaría en cero",
                error_code="SPLIT_PAYMENT_INCOMPLETE",
            )
        adjusted[-1] = last.model_copy(update={"monto": new_amount})
    return adjusted


def build_lines(
    invoice_id: uuid.UUID,
    lines: Sequence[PaymentLineIn],
    paid_at: datetime,
) -> list[SplitPaymentLine]:
    """Convierte las líneas ya validadas en filas de split_payment_lines."""
    return [
        SplitPaymentLine(
            invoice_id=invoice_id,
            medio_pago=line.medio_pago.strip(),
            monto=quantize_money(line.monto),
            fecha_pago=paid_at,
        )
        for line in lines
    ]
