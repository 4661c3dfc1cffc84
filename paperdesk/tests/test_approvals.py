import asyncio
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from paperdesk.proxy.proxy_client import ProxyError  # noqa: E402
from paperdesk.trading.approvals import (  # noqa: E402
    ApprovalDesk,
    ApprovalRejectedError,
    SubmissionInProgressError,
    SubmissionTracker,
)
from paperdesk.trading.proposals import normalize_proposals  # noqa: E402
from paperdesk.trading.schemas import ApprovalResult  # noqa: E402


class FakeManager:
    def __init__(self, proposals=None, result=None, error=None, refresh_error=None) -> None:
        self._proposals = normalize_proposals(proposals or [])
        self.result = result or ApprovalResult(success=True, order_id="o-1")
        self.error = error
        self.refresh_error = refresh_error
        self.release = None
        self.submitted = []
        self.refreshed = []

    async def list_proposals(self):
        return self._proposals

    async def submit_approval(self, proposal):
        self.submitted.append(proposal.key)
        if self.release is not None:
            await self.release.wait()
        if self.error is not None:
            raise self.error
        return self.result

    async def list_orders(self, status=None):
        self.refreshed.append("orders")
        if self.refresh_error is not None:
            raise self.refresh_error
        return ()

    async def list_positions(self):
        self.refreshed.append("positions")
        return ()


RAW_PROPOSALS = [
    {"symbol": "AAPL", "side": "buy", "qty": 10, "est_price": 182.45},
    {"symbol": "AAPL", "side": "sell", "qty": 5},
    {"symbol": "SPY", "side": "hold"},
]


def test_tracker_allows_one_submission_per_key():
    tracker = SubmissionTracker()
    assert tracker.begin(("AAPL", "buy")) is True
    assert tracker.begin(("AAPL", "buy")) is False
    assert tracker.begin(("AAPL", "sell")) is True
    assert ("AAPL", "buy") in tracker
    assert len(tracker) == 2
    tracker.finish(("AAPL", "buy"))
    assert tracker.is_submitting(("AAPL", "buy")) is False
    assert tracker.begin(("AAPL", "buy")) is True


def test_successful_approval_removes_proposal_and_refreshes():
    manager = FakeManager(RAW_PROPOSALS)
    desk = ApprovalDesk(manager)

    async def run():
        await desk.load()
        result = await desk.approve(desk.find("AAPL", "buy"))
        await desk.drain()
        return result

    result = asyncio.run(run())
    assert result.order_id == "o-1"
    assert [p.key for p in desk.proposals] == [("AAPL", "sell"), ("SPY", "hold")]
    assert sorted(manager.refreshed) == ["orders", "positions"]
    assert len(desk.tracker) == 0


def test_concurrent_approvals_for_same_key_submit_once():
    manager = FakeManager(RAW_PROPOSALS)
    desk = ApprovalDesk(manager)

    async def run():
        manager.release = asyncio.Event()
        await desk.load()
        proposal = desk.find("AAPL", "buy")
        first = asyncio.create_task(desk.approve(proposal))
        await asyncio.sleep(0)
        assert desk.tracker.is_submitting(proposal.key)
        second = asyncio.create_task(desk.approve(proposal))
        await asyncio.sleep(0)
        manager.release.set()
        results = await asyncio.gather(first, second, return_exceptions=True)
        await desk.drain()
        return results

    first, second = asyncio.run(run())
    assert first.success is True
    assert isinstance(second, SubmissionInProgressError)
    assert manager.submitted == [("AAPL", "buy")]
    assert desk.find("AAPL", "buy") is None


def test_failed_approval_keeps_proposal_and_releases_key():
    manager = FakeManager(RAW_PROPOSALS, error=ProxyError("insufficient buying power", status_code=403))
    desk = ApprovalDesk(manager)

    async def run():
        await desk.load()
        with pytest.raises(ProxyError, match="insufficient buying power"):
            await desk.approve(desk.find("AAPL", "buy"))

    asyncio.run(run())
    assert desk.find("AAPL", "buy") is not None
    assert desk.tracker.is_submitting(("AAPL", "buy")) is False
    assert manager.refreshed == []


def test_explicit_unsuccessful_response_is_a_failure():
    manager = FakeManager(RAW_PROPOSALS, result=ApprovalResult(success=False, message="market closed"))
    desk = ApprovalDesk(manager)

    async def run():
        await desk.load()
        with pytest.raises(ApprovalRejectedError, match="market closed"):
            await desk.approve(desk.find("AAPL", "sell"))

    asyncio.run(run())
    assert len(desk.proposals) == 3


def test_hold_proposals_cannot_be_approved():
    manager = FakeManager(RAW_PROPOSALS)
    desk = ApprovalDesk(manager)

    async def run():
        await desk.load()
        with pytest.raises(ValueError):
            await desk.approve(desk.find("SPY", "hold"))

    asyncio.run(run())
    assert manager.submitted == []


def test_refresh_failure_is_logged_not_raised(caplog):
    manager = FakeManager(RAW_PROPOSALS, refresh_error=ProxyError("orders down"))
    desk = ApprovalDesk(manager)

    async def run():
        await desk.load()
        result = await desk.approve(desk.find("AAPL", "buy"))
        await desk.drain()
        return result

    with caplog.at_level("WARNING"):
        result = asyncio.run(run())
    assert result.success is True
    assert desk.find("AAPL", "buy") is None
    assert any(record.message == "post_approval_refresh_failed" for record in caplog.records)


def test_find_matches_symbol_case_insensitively():
    manager = FakeManager([{"symbol": "brk.b", "side": "buy", "qty": 2}])
    desk = ApprovalDesk(manager)
    asyncio.run(desk.load())
    found = desk.find("BRK.B", "BUY")
    assert found is not None
    assert found.key == ("brk.b", "buy")
    assert desk.find("BRK.B", "sell") is None


def test_rejection_is_logged_with_upstream_message(caplog):
    manager = FakeManager(RAW_PROPOSALS, result=ApprovalResult(success=False, message="market closed"))
    desk = ApprovalDesk(manager)

    async def run():
        await desk.load()
        with pytest.raises(ApprovalRejectedError):
            await desk.approve(desk.find("AAPL", "buy"))

    with caplog.at_level("WARNING"):
        asyncio.run(run())
    record = next(r for r in caplog.records if r.message == "approval_rejected")
    assert record.upstream_message == "market closed"
    assert desk.tracker.is_submitting(("AAPL", "buy")) is False
