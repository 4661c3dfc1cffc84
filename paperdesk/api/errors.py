from typing import Any, Dict, Optional

from fastapi.responses import JSONResponse

from paperdesk.proxy.proxy_client import ProxyError


def error_response(
    *,
    status_code: int,
    code: str,
    detail: str,
    context: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    """Return a consistent error payload for API responses."""
    payload: Dict[str, Any] = {"error": code, "detail": detail}
    if context:
        payload["context"] = context
    return JSONResponse(status_code=status_code, content=payload)


def upstream_error_response(exc: ProxyError) -> JSONResponse:
    """Surface a proxy failure with its message so the dashboard can show it next to a retry."""
    context: Dict[str, Any] = {}
    if exc.status_code is not None:
        context["upstream_status"] = exc.status_code
    return error_response(status_code=502, code="upstream_error", detail=str(exc), context=context or None)
