"""
Animation timer for the simulator.

A chain of one-shot ``threading.Timer`` objects: each tick schedules the next
one only if the tick callback asks to continue. A generation counter makes
late ticks from a cancelled chain harmless, so at most one chain is ever live.
"""

import threading
from typing import Callable, Optional

import structlog

log = structlog.get_logger(__name__)


class AnimationTimer:
    def __init__(self, interval: float, tick: Callable[[], bool]):
        self.interval = interval
        self._tick = tick
        self._timer: Optional[threading.Timer] = None
        self._generation = 0
        self._lock = threading.RLock()

    @property
    def running(self) -> bool:
        with self._lock:
            return self._timer is not None

    def start(self) -> None:
        """Cancel any live chain, then schedule the first tick of a new one."""
        with self._lock:
            self._cancel_locked()
            self._generation += 1
            self._schedule_locked(self._generation)
        log.debug("animation_started", interval=self.interval)

    def cancel(self) -> None:
        with self._lock:
            self._generation += 1
            self._cancel_locked()

    def _cancel_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _schedule_locked(self, generation: int) -> None:
        timer = threading.Timer(self.interval, self._fire, args=(generation,))
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._timer = None

        # unlocked: the tick callback may cancel or restart from any thread
        keep_going = self._tick()

        with self._lock:
            if generation != self._generation:
                return
            if keep_going:
                self._schedule_locked(generation)
            else:
                log.debug("animation_finished")
