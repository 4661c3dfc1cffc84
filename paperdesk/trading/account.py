from typing import Any, Iterable, Tuple

from paperdesk.trading.fields import AliasTable, as_record, resolve_number, resolve_string
from paperdesk.trading.schemas import Account, Regime, RiskLimits, WatchItem

ACCOUNT_ALIASES: AliasTable = {
    "equity": ("equity",),
    "cash": ("cash",),
    "buying_power": ("buying_power", "buyingPower"),
}

RISK_ALIASES: AliasTable = {
    "max_order_notional": ("max_order_notional", "maxOrderNotional"),
    "max_position_pct": ("max_position_pct", "maxPositionPct"),
}

WATCH_ALIASES: AliasTable = {
    "symbol": ("symbol",),
    "name": ("name",),
    "price": ("price",),
    "change": ("change",),
    "change_percent": ("changePercent", "change_percent"),
    "volume": ("volume",),
}

KNOWN_REGIMES = {"RISK_ON", "RISK_OFF"}


def normalize_account(payload: Any) -> Account:
    record = as_record(payload)
    return Account(**{field: resolve_number(record, keys) for field, keys in ACCOUNT_ALIASES.items()})


def normalize_risk(payload: Any) -> RiskLimits:
    record = as_record(payload)
    return RiskLimits(**{field: resolve_number(record, keys) for field, keys in RISK_ALIASES.items()})


def normalize_regime(payload: Any) -> Regime:
    record = as_record(payload)
    value = resolve_string(record, ("regime",), default="UNKNOWN").upper()
    return Regime(
        regime=value if value in KNOWN_REGIMES else "UNKNOWN",
        detail=resolve_string(record, ("detail",)),
    )


def normalize_watch_item(row: Any) -> WatchItem:
    if isinstance(row, str):
        return WatchItem(symbol=row, name=row)
    record = as_record(row)
    symbol = resolve_string(record, WATCH_ALIASES["symbol"])
    return WatchItem(
        symbol=symbol,
        name=resolve_string(record, WATCH_ALIASES["name"], default=symbol),
        price=resolve_number(record, WATCH_ALIASES["price"]),
        change=resolve_number(record, WATCH_ALIASES["change"]),
        change_percent=resolve_number(record, WATCH_ALIASES["change_percent"]),
        volume=resolve_number(record, WATCH_ALIASES["volume"]),
    )


def normalize_watchlist(rows: Iterable[Any]) -> Tuple[WatchItem, ...]:
    return tuple(normalize_watch_item(row) for row in rows)
