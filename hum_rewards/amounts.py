"""Raw amount <-> UI amount math for plain, interest-bearing and scaled mints.

Mirrors the token program's `amount_to_ui_amount` / `ui_amount_to_amount`
processing without simulating a transaction. Scaling by an interest or
multiplier factor is an f64 product (or quotient) truncated toward zero, as
the program computes it. Division by the decimal factor is exact, and
amounts above 2**53, which an f64 cannot hold, are scaled in `Decimal`
against the shortest repr of the factor.
"""
from __future__ import annotations

import math
from decimal import ROUND_DOWN, Decimal, InvalidOperation, localcontext
from typing import Union

from .errors import ArithmeticOverflow, InvalidUiAmount

ONE_IN_BASIS_POINTS = 10_000
SECONDS_PER_YEAR = 60 * 60 * 24 * 365.24

# largest integer an f64 holds exactly
MAX_SAFE_INTEGER = 2**53

_PRECISION = 100

UiAmountInput = Union[str, int, Decimal]


def decimal_factor(decimals: int) -> int:
    """10 ** decimals, e.g. 100 for 2 decimals"""
    if isinstance(decimals, bool) or not isinstance(decimals, int) or decimals < 0:
        raise ValueError(f"decimals must be a non-negative integer, got {decimals!r}")
    return 10 ** decimals


def interest_exponent(t1: int, t2: int, rate: int) -> float:
    """Continuous-compounding growth factor e^(r * t) over [t1, t2] at `rate` basis points a year"""
    try:
        timespan = t2 - t1
        numerator = rate * timespan
        exponent = numerator / (SECONDS_PER_YEAR * ONE_IN_BASIS_POINTS)
        value = math.exp(exponent)
    except OverflowError as exc:
        raise ArithmeticOverflow(f"interest exponent overflows for rate {rate}bp over [{t1}, {t2}]") from exc
    if not math.isfinite(value):
        raise ArithmeticOverflow(f"interest exponent is not finite for rate {rate}bp over [{t1}, {t2}]")
    return value


def total_interest_scale(
    current_timestamp: int,
    last_update_timestamp: int,
    initialization_timestamp: int,
    pre_update_average_rate: int,
    current_rate: int,
) -> float:
    """e^(r1 * t1) * e^(r2 * t2): accrual before and after the last rate update"""
    pre_update_exp = interest_exponent(initialization_timestamp, last_update_timestamp, pre_update_average_rate)
    post_update_exp = interest_exponent(last_update_timestamp, current_timestamp, current_rate)
    return _finite(pre_update_exp * post_update_exp, "total interest scale")


def _finite(value: float, what: str) -> float:
    if not math.isfinite(value):
        raise ArithmeticOverflow(f"{what} is not finite: {value!r}")
    return value


def _raw(amount: int) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise TypeError(f"raw amount must be an int, got {type(amount).__name__}")
    if amount < 0:
        raise ValueError(f"raw amount must be non-negative, got {amount}")
    return amount


def _format(value: Decimal) -> str:
    # plain notation, no trailing fractional zeros
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text if text not in ("", "-0") else "0"


def _to_ui(raw: int, decimals: int) -> str:
    decimal_factor(decimals)
    return _format(Decimal(f"{raw}E-{decimals}"))


def _truncated_product(amount: int, factor: float) -> int:
    if amount <= MAX_SAFE_INTEGER:
        return math.trunc(_finite(amount * factor, "scaled amount"))
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        ctx.rounding = ROUND_DOWN
        return int(Decimal(amount) * Decimal(repr(factor)))


def _truncated_quotient(value: Decimal, factor: float) -> int:
    if factor == 0:
        raise ArithmeticOverflow("cannot invert a zero scale factor")
    if abs(value) <= MAX_SAFE_INTEGER:
        try:
            unscaled = float(value) / factor
        except OverflowError as exc:
            raise ArithmeticOverflow(f"unscaled amount overflows for factor {factor!r}") from exc
        return math.trunc(_finite(unscaled, "unscaled amount"))
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        ctx.rounding = ROUND_DOWN
        return int(value / Decimal(repr(factor)))


def parse_ui_amount(ui_amount: UiAmountInput) -> Decimal:
    try:
        value = Decimal(str(ui_amount).strip())
    except InvalidOperation:
        raise InvalidUiAmount(f"invalid UI amount: {ui_amount!r}") from None
    if not value.is_finite():
        raise InvalidUiAmount(f"UI amount must be finite: {ui_amount!r}")
    if value < 0:
        raise InvalidUiAmount(f"UI amount must not be negative: {ui_amount!r}")
    return value


def ui_amount_to_atomic_ui_amount(ui_amount: UiAmountInput, decimals: int) -> Decimal:
    """Remove decimal scaling: "1.234" with 3 decimals -> 1234"""
    value = parse_ui_amount(ui_amount)
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return value * decimal_factor(decimals)


def amount_to_ui_amount_for_plain_mint(amount: int, decimals: int) -> str:
    return _to_ui(_raw(amount), decimals)


def amount_to_ui_amount_for_interest_bearing_mint(
    amount: int,
    decimals: int,
    current_timestamp: int,
    last_update_timestamp: int,
    initialization_timestamp: int,
    pre_update_average_rate: int,
    current_rate: int,
) -> str:
    """Amount scaled by accrued interest, truncated to whole atomic units, as a UI string.

    A = P * e^(r * t), split at the last rate update: the pre-update average
    rate applies from initialization to the last update, the current rate
    from the last update to `current_timestamp`. Rates are basis points.
    """
    total_scale = total_interest_scale(
        current_timestamp,
        last_update_timestamp,
        initialization_timestamp,
        pre_update_average_rate,
        current_rate,
    )
    return _to_ui(_truncated_product(_raw(amount), total_scale), decimals)


def amount_to_ui_amount_for_scaled_ui_amount_mint(amount: int, decimals: int, multiplier: float) -> str:
    multiplier = _finite(multiplier, "multiplier")
    return _to_ui(_truncated_product(_raw(amount), multiplier), decimals)


def ui_amount_to_amount_for_plain_mint(ui_amount: UiAmountInput, decimals: int) -> int:
    return int(ui_amount_to_atomic_ui_amount(ui_amount, decimals))


def ui_amount_to_amount_for_interest_bearing_mint(
    ui_amount: UiAmountInput,
    decimals: int,
    current_timestamp: int,
    last_update_timestamp: int,
    initialization_timestamp: int,
    pre_update_average_rate: int,
    current_rate: int,
) -> int:
    """Principal without interest: P = A / e^(r * t), truncated"""
    ui_amount_scaled = ui_amount_to_atomic_ui_amount(ui_amount, decimals)
    total_scale = total_interest_scale(
        current_timestamp,
        last_update_timestamp,
        initialization_timestamp,
        pre_update_average_rate,
        current_rate,
    )
    return _truncated_quotient(ui_amount_scaled, total_scale)


def ui_amount_to_amount_for_scaled_ui_amount_mint(ui_amount: UiAmountInput, decimals: int, multiplier: float) -> int:
    ui_amount_scaled = ui_amount_to_atomic_ui_amount(ui_amount, decimals)
    return _truncated_quotient(ui_amount_scaled, _finite(multiplier, "multiplier"))
