from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from paperdesk.trading.fields import numeric_or_zero
from paperdesk.trading.schemas import Position

SORT_DIRECTIONS = ("asc", "desc")

# Column names as the table sends them, mapped to a sort key.
_SORT_KEYS: Dict[str, Callable[[Position], Any]] = {
    "symbol": lambda p: p.symbol,
    "quantity": lambda p: numeric_or_zero(p.quantity),
    "avgPrice": lambda p: numeric_or_zero(p.avg_price),
    "marketValue": lambda p: numeric_or_zero(p.market_value),
    "unrealizedPL": lambda p: numeric_or_zero(p.unrealized_pl),
    "unrealizedPLPercent": lambda p: numeric_or_zero(p.unrealized_pl_percent),
}
SORT_FIELDS = tuple(_SORT_KEYS)


def filter_positions(positions: Iterable[Position], search: Optional[str]) -> Tuple[Position, ...]:
    term = (search or "").strip().lower()
    if not term:
        return tuple(positions)
    return tuple(p for p in positions if term in p.symbol.lower())


def sort_positions(
    positions: Iterable[Position], field: Optional[str], direction: Optional[str]
) -> Tuple[Position, ...]:
    rows = tuple(positions)
    if not field or not direction:
        return rows
    if field not in _SORT_KEYS:
        raise ValueError(f"sort must be one of {', '.join(SORT_FIELDS)}")
    if direction not in SORT_DIRECTIONS:
        raise ValueError("direction must be asc or desc")
    return tuple(sorted(rows, key=_SORT_KEYS[field], reverse=direction == "desc"))
