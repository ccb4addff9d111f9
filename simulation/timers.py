"""simulation/timers.py — Virtual-time timers.

Nothing in the simulation reads the wall clock.  The session advances
these with the frame ``dt`` (milliseconds), which keeps runs
reproducible and lets tests step time by hand.

    queue = TimerQueue()
    queue.after(500.0, release_lock, tag="world.lock")
    ...
    queue.advance(dt)          # fires everything now due, earliest first

    every_30s = IntervalTimer(30_000)
    for _ in range(every_30s.advance(dt)):
        market.update_market()
"""

from __future__ import annotations
import heapq
from dataclasses import dataclass, field
from typing import Callable


@dataclass(order=True)
class Timer:
    """A single delayed callback in the queue.

    Ordered by ``due`` so the heap gives us earliest-first.
    """
    due: float
    # heapq tiebreaker (insertion order), callbacks never compared
    _seq: int = field(compare=True, repr=False)
    callback: Callable[[], None] = field(compare=False, default=lambda: None)
    tag: str = field(compare=False, default="")
    cancelled: bool = field(compare=False, default=False)


class TimerQueue:
    """Priority queue of one-shot callbacks on accumulated virtual time."""

    def __init__(self) -> None:
        self._queue: list[Timer] = []
        self._seq: int = 0
        self.now: float = 0.0
        self.fired: int = 0

    # ── Posting ──────────────────────────────────────────────────────

    def after(self, delay_ms: float, callback: Callable[[], None],
              tag: str = "") -> Timer:
        """Run *callback* once ``delay_ms`` of virtual time has passed."""
        self._seq += 1
        timer = Timer(due=self.now + max(0.0, delay_ms), _seq=self._seq,
                      callback=callback, tag=tag)
        heapq.heappush(self._queue, timer)
        return timer

    # ── Cancellation ─────────────────────────────────────────────────

    def cancel_tag(self, tag: str) -> int:
        """Cancel every pending timer carrying *tag*.  Returns count."""
        count = 0
        for timer in self._queue:
            if not timer.cancelled and timer.tag == tag:
                timer.cancelled = True
                count += 1
        return count

    # ── Tick ─────────────────────────────────────────────────────────

    def advance(self, dt_ms: float) -> int:
        """Move time forward and fire everything now due.

        Timers posted by a callback for a moment that is already due
        fire in the same call.  Returns the number fired.
        """
        self.now += dt_ms
        count = 0
        while self._queue:
            if self._queue[0].cancelled:
                heapq.heappop(self._queue)
                continue
            if self._queue[0].due > self.now:
                break
            timer = heapq.heappop(self._queue)
            timer.callback()
            count += 1
        self.fired += count
        return count

    # ── Queries ──────────────────────────────────────────────────────

    def pending_count(self, tag: str | None = None) -> int:
        return sum(1 for t in self._queue
                   if not t.cancelled and (tag is None or t.tag == tag))


class IntervalTimer:
    """Fires every ``interval_ms`` of accumulated virtual time."""

    def __init__(self, interval_ms: float) -> None:
        self.interval_ms = max(1.0, float(interval_ms))
        self.elapsed = 0.0

    def advance(self, dt_ms: float) -> int:
        """Accumulate *dt_ms*; return how many whole intervals passed."""
        self.elapsed += dt_ms
        fires = 0
        while self.elapsed >= self.interval_ms:
            self.elapsed -= self.interval_ms
            fires += 1
        return fires

    def reset(self) -> None:
        self.elapsed = 0.0
