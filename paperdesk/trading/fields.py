"""
Generic field resolution for upstream brokerage records.

Each entity module declares an alias table (``canonical field -> source keys``)
and resolves every field through the helpers below, so the first key present
with a non-null value wins regardless of naming convention.
"""

import math
from numbers import Real
from typing import Any, Iterable, Mapping, Optional, Sequence

from paperdesk.trading.schemas import Number, Unparsable

AliasTable = Mapping[str, Sequence[str]]


def as_record(row: Any) -> Mapping[str, Any]:
    """Treat non-mapping rows as empty records so one bad row degrades instead of failing."""
    if isinstance(row, Mapping):
        return row
    return {}


def pick(record: Mapping[str, Any], keys: Iterable[str], default: Any = None) -> Any:
    """Return the value of the first key present with a non-null value."""
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return default


def to_number(value: Any) -> Number:
    """Strict numeric cast; anything that is not cleanly a finite number is Unparsable."""
    if isinstance(value, Real):
        try:
            number = float(value)
        except (OverflowError, ValueError):
            return Unparsable(raw=str(value))
    elif isinstance(value, str):
        text = value.strip()
        if not text or "_" in text:
            return Unparsable(raw=value)
        try:
            number = float(text)
        except ValueError:
            return Unparsable(raw=value)
    else:
        return Unparsable(raw=str(value))
    if not math.isfinite(number):
        return Unparsable(raw=str(value))
    return number


def is_number(value: Any) -> bool:
    return isinstance(value, float)


def resolve_number(
    record: Mapping[str, Any], keys: Sequence[str], default: Optional[Number] = 0.0
) -> Optional[Number]:
    value = pick(record, keys)
    if value is None:
        return default
    return to_number(value)


def resolve_string(record: Mapping[str, Any], keys: Sequence[str], default: str = "") -> str:
    value = pick(record, keys)
    if value is None:
        return default
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def first_unparsable(*values: Any) -> Optional[Unparsable]:
    for value in values:
        if isinstance(value, Unparsable):
            return value
    return None


def product(left: Number, right: Number) -> Number:
    """Multiply two resolved numbers, carrying an Unparsable operand through."""
    bad = first_unparsable(left, right)
    if bad is not None:
        return bad
    return left * right  # type: ignore[operator]


def numeric_or_zero(value: Any) -> float:
    """Value used for sorting and totals, where an unparsable cell counts as zero."""
    return value if is_number(value) else 0.0
