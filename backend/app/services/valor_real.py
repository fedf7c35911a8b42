"""
Calculadora del Valor Real a Pagar
Proyecto: Liquidador de Facturas de Proveedores

Funciones puras: reciben los campos financieros de una factura y devuelven
el neto a pagar. Sin acceso a base de datos ni efectos secundarios; el mismo
input produce siempre el mismo resultado.

Orden del cálculo:
1. base = total_sin_iva, o total_a_pagar - factura_iva si falta
2. descuentos = suma de (porcentaje de la base | valor fijo)
3. base_ajustada = max(0, base - descuentos)
4. retención = base_ajustada * monto_retencion / 100 (si tiene_retencion)
5. pronto pago = base * porcentaje_pronto_pago / 100 (solo si se aplica;
   sobre la base SIN descuentos)
6. total_con_descuentos = total_a_pagar - descuentos (el IVA no cambia)
7. valor_real = max(0, total_con_descuentos - retención - pronto pago)
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional

from app.schemas.invoice import (
    Clasificacion,
    EstadoNotaCredito,
    InvoiceFinancials,
    TipoDescuento,
    ValorRealBreakdown,
)

CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def quantize_money(value: Decimal) -> Decimal:
    """Redondea un monto a centavos (ROUND_HALF_UP)."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def as_financials(invoice: Any) -> InvoiceFinancials:
    """Acepta un modelo ORM, un objeto con los mismos atributos o un InvoiceFinancials."""
    if isinstance(invoice, InvoiceFinancials):
        return invoice
    if isinstance(invoice, dict):
        return InvoiceFinancials.model_validate(invoice)
    return InvoiceFinancials.model_validate(invoice, from_attributes=True)


def retention_amount(base: Decimal, percentage: Optional[Decimal]) -> Decimal:
    """Retención en la fuente sobre una base."""
    if not percentage:
        return ZERO
    return max(ZERO, base) * Decimal(percentage) / HUNDRED


def discounts_total(data: InvoiceFinancials) -> Decimal:
    """Suma de los descuentos antes de IVA, en orden."""
    base = data.base
    total = ZERO
    for discount in data.descuentos_antes_iva:
        if discount.tipo == TipoDescuento.PORCENTAJE:
            total += base * discount.valor / HUNDRED
        else:
            total += discount.valor
    return total


def compute_breakdown(invoice: Any, apply_early_payment: bool) -> ValorRealBreakdown:
    """Devuelve todos los pasos intermedios del cálculo, redondeados a centavos."""
    data = as_financials(invoice)

    base = data.base
    discounts = discounts_total(data)
    adjusted_base = max(ZERO, base - discounts)

    retention = ZERO
    if data.tiene_retencion:
        retention = retention_amount(adjusted_base, data.monto_retencion)

    early_payment = ZERO
    if apply_early_payment and data.porcentaje_pronto_pago > 0:
        early_payment = base * data.porcentaje_pronto_pago / HUNDRED

    gross_after_discounts = data.total_a_pagar - discounts
    valor_real = max(ZERO, gross_after_discounts - retention - early_payment)

    return ValorRealBreakdown(
        base=quantize_money(base),
        total_descuentos=quantize_money(discounts),
        base_ajustada=quantize_money(adjusted_base),
        retencion=quantize_money(retention),
        descuento_pronto_pago=quantize_money(early_payment),
        total_con_descuentos=quantize_money(gross_after_discounts),
        valor_real=quantize_money(valor_real),
    )


def compute_valor_real(invoice: Any, apply_early_payment: bool) -> Decimal:
    """
    Valor real a pagar de una factura (>= 0).

    Args:
        invoice: factura (ORM u objeto equivalente)
        apply_early_payment: si el pagador toma el pronto pago

    Returns:
        Decimal: neto a pagar redondeado a centavos
    """
    return compute_breakdown(invoice, apply_early_payment).valor_real


def is_settled_credit_note(invoice: Any) -> bool:
    """Nota de crédito ya aplicada, o factura anulada por notas de crédito."""
    data = as_financials(invoice)
    return data.estado_nota_credito in (EstadoNotaCredito.APLICADA, EstadoNotaCredito.ANULADA)


def display_total(invoice: Any) -> Decimal:
    """
    Total que se muestra en listados.

    Una nota de crédito aplicada o anulada se muestra en 0; el resto, el
    total con IVA menos los descuentos antes de IVA.
    """
    data = as_financials(invoice)
    if is_settled_credit_note(data):
        return ZERO
    return quantize_money(max(ZERO, data.total_a_pagar - discounts_total(data)))


def remaining_payable(
    invoice: Any,
    balances_applied: Decimal = ZERO,
    apply_early_payment: Optional[bool] = None,
) -> Decimal:
    """
    Lo que falta pagar: valor real menos saldos a favor ya aplicados.

    Es el valor que se guarda en valor_real_a_pagar. Si no se indica
    apply_early_payment se usa uso_pronto_pago de la factura.
    """
    data = as_financials(invoice)
    if is_settled_credit_note(data) and data.clasificacion == Clasificacion.NOTA_CREDITO:
        return ZERO
    if apply_early_payment is None:
        apply_early_payment = bool(data.uso_pronto_pago)
    valor_real = compute_valor_real(data, apply_early_payment)
    return quantize_money(max(ZERO, valor_real - balances_applied))
