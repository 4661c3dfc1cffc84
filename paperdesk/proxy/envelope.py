from typing import Any, List, Mapping, Sequence

from paperdesk.core.logging import get_logger

logger = get_logger(__name__)

POSITIONS_KEYS = ("positions",)
ORDERS_KEYS = ("orders",)
PROPOSALS_KEYS = ("proposals", "trades")
WATCHLIST_KEYS = ("symbols",)


def unwrap_collection(payload: Any, keys: Sequence[str]) -> List[Any]:
    """
    Strip the response envelope and return the entity rows.

    A bare list is taken as the rows directly. A mapping is searched for the
    first of ``keys`` holding a list. Any other shape yields an empty list so a
    wrong shape guess degrades the view instead of failing the fetch.
    """
    if isinstance(payload, (list, tuple)):
        return list(payload)
    if isinstance(payload, Mapping):
        for key in keys:
            rows = payload.get(key)
            if isinstance(rows, (list, tuple)):
                return list(rows)
        logger.debug(
            "envelope_keys_missing",
            extra={"event": "envelope_keys_missing", "expected": list(keys), "found": sorted(map(str, payload))},
        )
        return []
    logger.debug(
        "envelope_unrecognized",
        extra={"event": "envelope_unrecognized", "expected": list(keys), "payload_type": type(payload).__name__},
    )
    return []
