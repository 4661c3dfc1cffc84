from typing import Any, Iterable, Mapping, Tuple

from paperdesk.trading.fields import (
    AliasTable,
    as_record,
    first_unparsable,
    is_number,
    pick,
    product,
    resolve_number,
    resolve_string,
    to_number,
)
from paperdesk.trading.schemas import Number, Position

POSITION_ALIASES: AliasTable = {
    "id": ("id", "asset_id"),
    "symbol": ("symbol",),
    "name": ("name", "symbol"),
    "quantity": ("quantity", "qty"),
    "avg_price": ("avgPrice", "avg_price", "avg_entry_price"),
    "current_price": ("currentPrice", "current_price"),
    "market_value": ("marketValue", "market_value"),
    "unrealized_pl": ("unrealizedPL", "unrealized_pl"),
    # already on the 0-100 scale
    "unrealized_pl_percent": ("unrealizedPLPercent", "unrealized_pl_percent"),
    # 0-1 fraction, e.g. "-0.0050" for -0.50%
    "unrealized_pl_fraction": ("unrealized_plpc",),
}


def unrealized_pl_percent(
    record: Mapping[str, Any], quantity: Number, avg_price: Number, unrealized_pl: Number
) -> Number:
    """Explicit percent, else fraction x 100, else P/L over cost basis, else 0."""
    explicit = pick(record, POSITION_ALIASES["unrealized_pl_percent"])
    if explicit is not None:
        return to_number(explicit)
    fraction = pick(record, POSITION_ALIASES["unrealized_pl_fraction"])
    if fraction is not None:
        ratio = to_number(fraction)
        return ratio * 100 if is_number(ratio) else ratio
    bad = first_unparsable(avg_price, quantity)
    if bad is not None:
        return bad
    if not avg_price or not quantity:
        return 0.0
    if not is_number(unrealized_pl):
        return unrealized_pl
    return unrealized_pl / (avg_price * quantity) * 100  # type: ignore[operator]


def normalize_position(row: Any, index: int = 0) -> Position:
    record = as_record(row)
    quantity = resolve_number(record, POSITION_ALIASES["quantity"])
    avg_price = resolve_number(record, POSITION_ALIASES["avg_price"])
    current_price = resolve_number(record, POSITION_ALIASES["current_price"])
    market_value = resolve_number(record, POSITION_ALIASES["market_value"], default=None)
    if market_value is None:
        market_value = product(quantity, current_price)
    unrealized_pl = resolve_number(record, POSITION_ALIASES["unrealized_pl"])

    return Position(
        id=resolve_string(record, POSITION_ALIASES["id"], default=f"pos-{index}"),
        symbol=resolve_string(record, POSITION_ALIASES["symbol"]),
        name=resolve_string(record, POSITION_ALIASES["name"]),
        quantity=quantity,
        avg_price=avg_price,
        current_price=current_price,
        market_value=market_value,
        unrealized_pl=unrealized_pl,
        unrealized_pl_percent=unrealized_pl_percent(record, quantity, avg_price, unrealized_pl),
    )


def normalize_positions(rows: Iterable[Any]) -> Tuple[Position, ...]:
    return tuple(normalize_position(row, index) for index, row in enumerate(rows))
