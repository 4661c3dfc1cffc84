import asyncio
from typing import Optional, Set, Tuple

from paperdesk.core.logging import get_logger
from paperdesk.trading.portfolio_manager import PortfolioManager
from paperdesk.trading.schemas import ApprovalResult, Proposal

logger = get_logger(__name__)

ProposalKey = Tuple[str, str]


class SubmissionInProgressError(Exception):
    """Raised when a proposal is approved again while its first approval is still pending."""


class ApprovalRejectedError(Exception):
    """Raised when the proxy answers an approval with ``success: false``."""


class SubmissionTracker:
    """Per (symbol, side) membership of approvals currently submitting."""

    def __init__(self) -> None:
        self._submitting: Set[ProposalKey] = set()

    def __contains__(self, key: object) -> bool:
        return key in self._submitting

    def __len__(self) -> int:
        return len(self._submitting)

    def is_submitting(self, key: ProposalKey) -> bool:
        return key in self._submitting

    def begin(self, key: ProposalKey) -> bool:
        """Move ``key`` to submitting; False when it already is."""
        if key in self._submitting:
            return False
        self._submitting.add(key)
        return True

    def finish(self, key: ProposalKey) -> None:
        self._submitting.discard(key)


class ApprovalDesk:
    """
    Working set of proposed trades and the approval flow over it.

    A successful approval drops every proposal with the same (symbol, side)
    and schedules a background refresh of orders and positions. A failed one
    keeps the proposal and re-raises to the caller.
    """

    def __init__(self, manager: PortfolioManager, tracker: Optional[SubmissionTracker] = None) -> None:
        self.manager = manager
        self.tracker = tracker or SubmissionTracker()
        self.proposals: Tuple[Proposal, ...] = ()
        self._refresh_tasks: Set[asyncio.Task] = set()

    async def load(self) -> Tuple[Proposal, ...]:
        self.proposals = await self.manager.list_proposals()
        return self.proposals

    def find(self, symbol: str, side: str) -> Optional[Proposal]:
        """Symbols compare case-insensitively; the loaded proposal's own key is what gets tracked."""
        wanted = (symbol.upper(), side.lower())
        return next(
            (proposal for proposal in self.proposals if (proposal.symbol.upper(), proposal.side) == wanted),
            None,
        )

    def _without(self, key: ProposalKey) -> Tuple[Proposal, ...]:
        return tuple(proposal for proposal in self.proposals if proposal.key != key)

    async def approve(self, proposal: Proposal) -> ApprovalResult:
        if not proposal.actionable:
            raise ValueError(f"Proposal side '{proposal.side}' cannot be approved")
        key = proposal.key
        if not self.tracker.begin(key):
            logger.warning(
                "approval_already_submitting",
                extra={"event": "approval_already_submitting", "symbol": proposal.symbol, "side": proposal.side},
            )
            raise SubmissionInProgressError(f"Approval for {proposal.symbol} {proposal.side} already submitting")
        try:
            result = await self.manager.submit_approval(proposal)
        finally:
            self.tracker.finish(key)

        if not result.success:
            logger.warning(
                "approval_rejected",
                extra={"event": "approval_rejected", "symbol": proposal.symbol, "upstream_message": result.message},
            )
            raise ApprovalRejectedError(result.message or f"Approval for {proposal.symbol} was rejected")

        self.proposals = self._without(key)
        logger.info(
            "approval_submitted",
            extra={
                "event": "approval_submitted",
                "symbol": proposal.symbol,
                "side": proposal.side,
                "order_id": result.order_id,
            },
        )
        self._schedule_refresh()
        return result

    def _schedule_refresh(self) -> None:
        task = asyncio.create_task(self._refresh_after_approval())
        self._refresh_tasks.add(task)
        task.add_done_callback(self._refresh_tasks.discard)

    async def _refresh_after_approval(self) -> None:
        results = await asyncio.gather(
            self.manager.list_orders(),
            self.manager.list_positions(),
            return_exceptions=True,
        )
        for name, outcome in zip(("orders", "positions"), results):
            if isinstance(outcome, Exception):
                logger.warning(
                    "post_approval_refresh_failed",
                    extra={"event": "post_approval_refresh_failed", "snapshot": name, "error": str(outcome)},
                )

    async def drain(self) -> None:
        """Wait for scheduled post-approval refreshes."""
        if self._refresh_tasks:
            await asyncio.gather(*self._refresh_tasks, return_exceptions=True)
