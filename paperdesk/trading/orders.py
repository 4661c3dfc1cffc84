from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Tuple

from paperdesk.core.logging import get_logger
from paperdesk.trading.fields import AliasTable, as_record, pick, resolve_number, resolve_string
from paperdesk.trading.schemas import Order

logger = get_logger(__name__)

PLACEHOLDER = "—"
OPEN_LIKE_STATUSES = frozenset({"NEW", "ACCEPTED", "PENDING_NEW", "PARTIALLY_FILLED"})
STATUS_FILTERS = ("all", "open", "closed")

ORDER_ALIASES: AliasTable = {
    "id": ("id", "order_id", "orderId"),
    "symbol": ("symbol",),
    "type": ("type", "order_type"),
    "side": ("side",),
    "status": ("status",),
    "quantity": ("quantity", "qty"),
    "filled": ("filled", "filled_qty"),
    "limit_price": ("limitPrice", "limit_price"),
    "stop_price": ("stopPrice", "stop_price"),
    "avg_fill_price": ("avgFillPrice", "avg_fill_price", "filled_avg_price"),
}

# Most specific lifecycle time first.
TIMESTAMP_PRIORITY: Tuple[Tuple[str, ...], ...] = (
    ("filled_at", "filledAt"),
    ("submitted_at", "submittedAt"),
    ("created_at", "createdAt"),
    ("timestamp",),
)


def iso_now(now: Optional[datetime] = None) -> str:
    moment = now or datetime.now(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def upper_or_placeholder(value: str) -> str:
    return value.upper() or PLACEHOLDER


def canonical_status(value: str) -> str:
    """Collapse open-like broker statuses into OPEN; pass everything else through upper-cased."""
    status = value.upper()
    if status in OPEN_LIKE_STATUSES:
        return "OPEN"
    return status or PLACEHOLDER


def validate_status_filter(status: str) -> str:
    value = (status or "").strip().lower()
    if value not in STATUS_FILTERS:
        raise ValueError(f"status must be one of {', '.join(STATUS_FILTERS)}")
    return value


def order_timestamp(record: Any, fallback: str) -> str:
    for keys in TIMESTAMP_PRIORITY:
        value = pick(record, keys)
        if value is not None:
            return str(value)
    return fallback


def normalize_order(row: Any, *, now: Optional[datetime] = None) -> Order:
    record = as_record(row)
    return Order(
        id=resolve_string(record, ORDER_ALIASES["id"]),
        symbol=resolve_string(record, ORDER_ALIASES["symbol"]),
        order_type=upper_or_placeholder(resolve_string(record, ORDER_ALIASES["type"])),
        side=upper_or_placeholder(resolve_string(record, ORDER_ALIASES["side"])),
        status=canonical_status(resolve_string(record, ORDER_ALIASES["status"])),
        quantity=resolve_number(record, ORDER_ALIASES["quantity"]),
        filled=resolve_number(record, ORDER_ALIASES["filled"]),
        limit_price=resolve_number(record, ORDER_ALIASES["limit_price"], default=None),
        stop_price=resolve_number(record, ORDER_ALIASES["stop_price"], default=None),
        avg_fill_price=resolve_number(record, ORDER_ALIASES["avg_fill_price"], default=None),
        timestamp=order_timestamp(record, iso_now(now)),
    )


def normalize_orders(rows: Iterable[Any], *, now: Optional[datetime] = None) -> Tuple[Order, ...]:
    """Normalize a batch; every order missing a timestamp shares one fallback instant."""
    batch_now = now or datetime.now(timezone.utc)
    orders = tuple(normalize_order(row, now=batch_now) for row in rows)
    overfilled = [order.id for order in orders if order.overfilled]
    if overfilled:
        logger.warning(
            "orders_overfilled",
            extra={"event": "orders_overfilled", "count": len(overfilled), "order_ids": overfilled[:10]},
        )
    return orders
