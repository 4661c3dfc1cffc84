import asyncio
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from paperdesk.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class AutoRefresher(Generic[T]):
    """
    Fixed-interval re-run of a fetch pipeline.

    A fire that lands while the previous run is still in flight is skipped.
    After ``stop()`` a run that completes late is dropped instead of applied.
    """

    def __init__(
        self,
        name: str,
        interval: float,
        job: Callable[[], Awaitable[T]],
        on_result: Optional[Callable[[T], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.name = name
        self.interval = interval
        self.job = job
        self.on_result = on_result
        self.on_error = on_error
        self.runs = 0
        self.skipped = 0
        self.failures = 0
        self.last_error: Optional[str] = None
        self._alive = True
        self._timer: Optional[asyncio.Task] = None
        self._in_flight: Optional[asyncio.Task] = None

    @property
    def alive(self) -> bool:
        return self._alive

    @property
    def in_flight(self) -> Optional[asyncio.Task]:
        if self._in_flight is not None and not self._in_flight.done():
            return self._in_flight
        return None

    def start(self) -> asyncio.Task:
        if self._timer is None or self._timer.done():
            self._alive = True
            self._timer = asyncio.create_task(self._tick())
        return self._timer

    async def _tick(self) -> None:
        while self._alive:
            self.fire()
            await asyncio.sleep(self.interval)

    def fire(self) -> bool:
        """Start one run unless one is already in flight."""
        if not self._alive:
            return False
        if self.in_flight is not None:
            self.skipped += 1
            logger.info("refresh_skipped", extra={"event": "refresh_skipped", "refresher": self.name})
            return False
        self._in_flight = asyncio.create_task(self._run_once())
        return True

    async def _run_once(self) -> None:
        try:
            result = await self.job()
        except Exception as exc:
            self._record_failure(exc)
            return
        if not self._alive:
            logger.debug("refresh_result_dropped", extra={"event": "refresh_result_dropped", "refresher": self.name})
            return
        try:
            if self.on_result is not None:
                self.on_result(result)
        except Exception as exc:
            self._record_failure(exc)
            return
        self.runs += 1
        self.last_error = None

    def _record_failure(self, exc: Exception) -> None:
        self.failures += 1
        self.last_error = str(exc)
        logger.warning(
            "refresh_failed",
            extra={"event": "refresh_failed", "refresher": self.name, "error": str(exc)},
        )
        if self._alive and self.on_error is not None:
            self.on_error(exc)

    async def stop(self) -> None:
        """Cancel the timer and any run still in flight; nothing is applied afterwards."""
        self._alive = False
        for task in (self._timer, self._in_flight):
            if task is None or task.done():
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._timer = None
        self._in_flight = None
