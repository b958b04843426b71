"""
Delay-coalesced task queue for the canvas client.

Tasks are keyed by name: scheduling a key that is already pending replaces
the callback and restarts its delay, which is what debouncing a burst of
pan/zoom events needs. Time comes from an injectable millisecond clock, so
tests advance a fake clock and call ``run_due`` instead of sleeping.
"""
import asyncio
import inspect
import logging
import time
from typing import Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


class DebounceScheduler:
    def __init__(self, clock: Optional[Callable[[], int]] = None, poll_ms: int = 10):
        self.clock = clock or wall_clock_ms
        self.poll_ms = poll_ms
        self._tasks: Dict[str, Tuple[int, Callable]] = {}
        self._running = False

    def __contains__(self, key: str) -> bool:
        return key in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def schedule(self, key: str, callback: Callable, delay_ms: int) -> int:
        """(Re)schedule callback under key; returns its due time in ms."""
        due = self.clock() + max(0, int(delay_ms))
        self._tasks[key] = (due, callback)
        return due

    def cancel(self, key: str) -> bool:
        return self._tasks.pop(key, None) is not None

    def due_at(self, key: str) -> Optional[int]:
        entry = self._tasks.get(key)
        return entry[0] if entry else None

    def next_due(self) -> Optional[int]:
        if not self._tasks:
            return None
        return min(due for due, _ in self._tasks.values())

    def idle_ms(self) -> int:
        """How long run() may sleep: until the next due task, at most poll_ms."""
        due = self.next_due()
        if due is None:
            return self.poll_ms
        return max(0, min(self.poll_ms, due - self.clock()))

    async def _invoke(self, key: str, callback: Callable):
        try:
            result = callback()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Scheduled task '{key}' failed: {str(e)}", exc_info=True)

    async def run_due(self, now: Optional[int] = None) -> int:
        """Run every task due at ``now``, oldest first. Returns how many ran."""
        now = self.clock() if now is None else now
        ready = sorted(
            (due, key) for key, (due, _) in self._tasks.items() if due <= now
        )
        ran = 0
        for due, key in ready:
            entry = self._tasks.get(key)
            # rescheduled by an earlier task in this pass
            if entry is None or entry[0] != due:
                continue
            del self._tasks[key]
            await self._invoke(key, entry[1])
            ran += 1
        return ran

    async def flush(self) -> int:
        """
        Run every task pending at call time, regardless of its delay.

        Tasks scheduled by those callbacks stay queued.
        """
        pending = sorted(self._tasks.items(), key=lambda item: item[1][0])
        self._tasks.clear()
        for key, (_, callback) in pending:
            await self._invoke(key, callback)
        return len(pending)

    async def run(self):
        """Drive the queue against the real event loop until stop()."""
        self._running = True
        while self._running:
            await self.run_due()
            await asyncio.sleep(self.idle_ms() / 1000)

    def stop(self):
        self._running = False
