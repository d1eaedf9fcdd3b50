"""
Helpers de importes.

Todos los importes del circuito se manejan como Decimal con dos decimales.
Los valores vacíos o no numéricos que llegan desde formularios cuentan como 0.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable

CENT = Decimal('0.01')
ZERO = Decimal('0.00')


def to_money(value: Any) -> Decimal:
    """Convierte un valor de entrada a Decimal con dos decimales."""
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return ZERO
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return ZERO
    if not amount.is_finite():
        return ZERO
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def money_sum(values: Iterable[Any]) -> Decimal:
    total = ZERO
    for value in values:
        total += to_money(value)
    return total


def within_epsilon(a: Decimal, b: Decimal, epsilon: Decimal = CENT) -> bool:
    """|a - b| < epsilon"""
    return abs(to_money(a) - to_money(b)) < epsilon
