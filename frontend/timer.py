import asyncio
import time
from typing import Callable, Optional


def format_elapsed(seconds: float) -> str:
    return f"{seconds:.1f}s"


class ElapsedTimer:
    """
    Recurring elapsed-time readout owned by one generation attempt.

    Use as an async context manager: entering starts the ticks, leaving
    stops them. stop() may also be called early and is idempotent, so the
    readout is stopped exactly once whatever the outcome.
    """

    def __init__(
        self,
        on_tick: Callable[[str], None],
        interval: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.on_tick = on_tick
        self.interval = interval
        self.clock = clock
        self.started_at: Optional[float] = None
        self.stop_count = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None

    def elapsed(self) -> float:
        if self.started_at is None:
            return 0.0
        return self.clock() - self.started_at

    def start(self) -> None:
        if self._task is not None:
            raise RuntimeError("timer already running")
        self.started_at = self.clock()
        self.on_tick(format_elapsed(0.0))
        self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.on_tick(format_elapsed(self.elapsed()))

    def stop(self) -> bool:
        """Cancel the ticks. Returns False if already stopped."""
        if self._task is None:
            return False
        self._task.cancel()
        self._task = None
        self.stop_count += 1
        return True

    async def __aenter__(self) -> "ElapsedTimer":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.stop()
