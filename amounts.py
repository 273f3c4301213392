from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Optional

CENT = Decimal("0.01")


def parse_amount(value: str, *, allow_zero: bool = False) -> Decimal:
    """Parse a user-entered amount into an exact two-place Decimal.

    Accepts a currency sign, spaces, and either ``,`` or ``.`` as the decimal
    separator. The last separator wins when several are present, so
    ``1.234,56`` and ``1,234.56`` both parse to ``1234.56``.
    """
    clean = value.strip().replace("€", "").replace("$", "").replace(" ", "")
    clean = clean.replace(",", ".")
    if clean.count(".") > 1:
        parts = clean.split(".")
        clean = "".join(parts[:-1]) + "." + parts[-1]
    if not clean:
        raise ValueError("Amount is required")
    try:
        amount = Decimal(clean)
    except InvalidOperation as exc:
        raise ValueError("Invalid amount") from exc
    if not amount.is_finite():
        raise ValueError("Invalid amount")
    amount = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    if amount < 0 or (amount == 0 and not allow_zero):
        raise ValueError("Amount must be greater than 0")
    return amount


def normalize_amount(value: Optional[str], *, allow_zero: bool = False) -> str:
    return format_amount(parse_amount(value or "", allow_zero=allow_zero))


def normalize_optional_amount(value: Optional[str]) -> str:
    if value is None or not value.strip():
        return ""
    return normalize_amount(value, allow_zero=True)


def to_decimal(value: Optional[str]) -> Decimal:
    if not value:
        return Decimal("0")
    return Decimal(value)


def format_amount(amount: Decimal) -> str:
    return str(amount.quantize(CENT, rounding=ROUND_HALF_UP))


def sum_amounts(values: Iterable[Optional[str]]) -> Decimal:
    total = Decimal("0")
    for value in values:
        total += to_decimal(value)
    return total.quantize(CENT, rounding=ROUND_HALF_UP)


def is_nonzero(value: Optional[str]) -> bool:
    return to_decimal(value) != 0
