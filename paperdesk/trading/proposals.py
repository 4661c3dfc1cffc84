from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from paperdesk.core.logging import get_logger
from paperdesk.trading.fields import AliasTable, as_record, pick, resolve_number, resolve_string, to_number
from paperdesk.trading.schemas import Number, Proposal

logger = get_logger(__name__)

PROPOSAL_ALIASES: AliasTable = {
    "symbol": ("symbol",),
    "side": ("side",),
    "qty": ("qty", "quantity"),
    "est_price": ("est_price", "estPrice"),
    "reason": ("reason",),
    "confidence": ("confidence",),
    "horizon": ("horizon",),
    "signals": ("signals",),
}

HOLD_CONFIDENCE = 0.40
SIZED_TRADE_CONFIDENCE = 0.65
DEFAULT_CONFIDENCE = 0.50


def default_confidence(side: str, qty: Number) -> float:
    if side == "hold":
        return HOLD_CONFIDENCE
    if side in {"buy", "sell"} and isinstance(qty, float) and qty > 0:
        return SIZED_TRADE_CONFIDENCE
    return DEFAULT_CONFIDENCE


def normalize_confidence(value: Any, side: str, qty: Number) -> float:
    """
    Map an explicit confidence onto 0..1.

    Values above 1 are read as percentages; the result is clamped. Without a
    usable explicit value the side/size heuristic applies.
    """
    if value is not None:
        confidence = to_number(value)
        if isinstance(confidence, float):
            if confidence > 1:
                confidence = confidence / 100
            return max(0.0, min(1.0, confidence))
        logger.debug(
            "proposal_confidence_unparsable",
            extra={"event": "proposal_confidence_unparsable", "raw": str(value)},
        )
    return default_confidence(side, qty)


def _signals(record: Mapping[str, Any]) -> Dict[str, Any]:
    raw = pick(record, PROPOSAL_ALIASES["signals"])
    if isinstance(raw, Mapping):
        return {str(key): value for key, value in raw.items()}
    return {}


def normalize_proposal(row: Any) -> Proposal:
    record = as_record(row)
    side = resolve_string(record, PROPOSAL_ALIASES["side"]).lower()
    qty = resolve_number(record, PROPOSAL_ALIASES["qty"])
    horizon: Optional[str] = pick(record, PROPOSAL_ALIASES["horizon"])
    return Proposal(
        symbol=resolve_string(record, PROPOSAL_ALIASES["symbol"]),
        side=side,
        qty=qty,
        est_price=resolve_number(record, PROPOSAL_ALIASES["est_price"], default=None),
        reason=resolve_string(record, PROPOSAL_ALIASES["reason"]),
        confidence=normalize_confidence(pick(record, PROPOSAL_ALIASES["confidence"]), side, qty),
        horizon=str(horizon) if horizon is not None else None,
        signals=_signals(record),
    )


def normalize_proposals(rows: Iterable[Any]) -> Tuple[Proposal, ...]:
    return tuple(normalize_proposal(row) for row in rows)
