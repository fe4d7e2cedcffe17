from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional, Union

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

RawAmount = Union[int, float, str, Decimal, None]


def parse_amount(value: Union[str, Decimal, int], *, allow_negative: bool = False) -> int:
    """Convert a user-supplied amount ("12.50", "12,50", Decimal) into cents."""
    if isinstance(value, Decimal):
        amount = value
    else:
        clean = str(value).strip().replace("€", "").replace("$", "").replace(" ", "")
        clean = clean.replace(",", ".")
        if clean.count(".") > 1:
            parts = clean.split(".")
            clean = "".join(parts[:-1]) + "." + parts[-1]
        try:
            amount = Decimal(clean)
        except InvalidOperation as exc:
            raise ValueError("Invalid amount") from exc
    if not amount.is_finite():
        raise ValueError("Invalid amount")
    cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if cents < 0 and not allow_negative:
        raise ValueError("Amount must be positive")
    return cents


def cents_to_amount(cents: int) -> Decimal:
    return (Decimal(int(cents)) / 100).quantize(CENT)


def coerce_cents(raw: RawAmount) -> Optional[int]:
    """Normalise an aggregate as returned by a DB driver into integer cents.

    ``SUM`` over an integer column comes back as ``int`` from most drivers, as
    ``Decimal`` from PostgreSQL for bigint sums, and as ``str`` from some
    drivers configured to return numerics verbatim. ``None`` means the group
    had nothing to sum.
    """
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise TypeError("Boolean is not an amount")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        return int(Decimal(repr(raw)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    try:
        value = raw if isinstance(raw, Decimal) else Decimal(str(raw).strip())
    except InvalidOperation as exc:
        raise ValueError(f"Invalid aggregate value: {raw!r}") from exc
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
