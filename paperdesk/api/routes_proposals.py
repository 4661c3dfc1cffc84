from fastapi import APIRouter, Depends, HTTPException

from paperdesk.api.errors import error_response, upstream_error_response
from paperdesk.core.logging import get_logger
from paperdesk.proxy.proxy_client import ProxyError
from paperdesk.trading.approvals import ApprovalDesk, ApprovalRejectedError, SubmissionInProgressError
from paperdesk.trading.proposals import normalize_proposal
from paperdesk.trading.schemas import ApprovalRequest, ApprovalResult, ErrorResponse, Proposal

router = APIRouter(prefix="/api", tags=["proposals"])

_desk: ApprovalDesk | None = None
logger = get_logger(__name__)


def configure_approval_desk(desk: ApprovalDesk) -> None:
    global _desk
    _desk = desk


def get_approval_desk() -> ApprovalDesk:
    if _desk is None:
        raise HTTPException(status_code=500, detail="Approval desk not configured")
    return _desk


@router.get("/proposals", response_model=list[Proposal], responses={502: {"model": ErrorResponse}})
async def list_proposals(desk: ApprovalDesk = Depends(get_approval_desk)):
    """Reload the proposed trades working set."""
    try:
        return await desk.load()
    except ProxyError as exc:
        logger.warning("list_proposals_failed", extra={"event": "list_proposals_failed", "error": str(exc)})
        return upstream_error_response(exc)
    except Exception as exc:
        logger.exception("list_proposals_failed", extra={"event": "list_proposals_failed", "error": str(exc)})
        return error_response(status_code=500, code="unexpected_error", detail="Unable to fetch proposed trades")


@router.post(
    "/proposals/approve",
    response_model=ApprovalResult,
    responses={
        400: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def approve_proposal(request: ApprovalRequest, desk: ApprovalDesk = Depends(get_approval_desk)):
    """Approve a buy/sell proposal; quantity and price default to the loaded proposal's."""
    proposal = desk.find(request.symbol, request.side)
    if proposal is None:
        if not request.qty:
            return error_response(
                status_code=400,
                code="validation_error",
                detail=f"No loaded proposal for {request.symbol} {request.side}; qty must be positive",
                context={"symbol": request.symbol, "side": request.side},
            )
        proposal = normalize_proposal(request.model_dump())
    elif request.qty is not None or request.est_price is not None:
        updates = {key: value for key, value in (("qty", request.qty), ("est_price", request.est_price)) if value is not None}
        proposal = proposal.model_copy(update=updates)
    try:
        return await desk.approve(proposal)
    except SubmissionInProgressError as exc:
        return error_response(
            status_code=409,
            code="submission_in_progress",
            detail=str(exc),
            context={"symbol": proposal.symbol, "side": proposal.side},
        )
    except (ApprovalRejectedError, ValueError) as exc:
        return error_response(status_code=400, code="validation_error", detail=str(exc))
    except ProxyError as exc:
        logger.warning(
            "approve_proposal_failed",
            extra={"event": "approve_proposal_failed", "symbol": proposal.symbol, "error": str(exc)},
        )
        return upstream_error_response(exc)
    except Exception as exc:
        logger.exception(
            "approve_proposal_failed",
            extra={"event": "approve_proposal_failed", "symbol": proposal.symbol, "error": str(exc)},
        )
        return error_response(status_code=500, code="unexpected_error", detail="Approval request failed")
