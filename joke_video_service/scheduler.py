"""Cooperative scheduling primitives shared by playback and capture.

Everything runs on one event loop. A ``Scheduler`` exposes the loop clock
and one-shot delayed callbacks; ``FrameLoop`` builds the self-rescheduling
tick on top of it and owns the only handle that can stop it.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional, Protocol

logger = logging.getLogger(__name__)


class Cancellable(Protocol):
    def cancel(self) -> Any: ...


class Scheduler(Protocol):
    def time(self) -> float: ...

    def call_later(self, delay: float, callback: Callable[[], None]) -> Cancellable: ...


class LoopScheduler:
    """Scheduler backed by an asyncio event loop (the running one by default)."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def time(self) -> float:
        return self.loop.time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self.loop.call_later(max(0.0, delay), callback)


class FrameLoop:
    """A repeating task that reschedules itself while its callback returns True."""

    def __init__(self, scheduler: Scheduler, callback: Callable[[], bool], interval: float) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._scheduler = scheduler
        self._callback = callback
        self._interval = interval
        self._handle: Optional[Cancellable] = None
        self._cancelled = False

    @property
    def active(self) -> bool:
        return self._handle is not None and not self._cancelled

    def start(self) -> "FrameLoop":
        if self._handle is not None or self._cancelled:
            raise RuntimeError("FrameLoop can only be started once")
        self._handle = self._scheduler.call_later(self._interval, self._run)
        return self

    def cancel(self) -> None:
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _run(self) -> None:
        self._handle = None
        if self._cancelled:
            return
        keep_going = self._callback()
        # the callback may have cancelled us
        if keep_going and not self._cancelled:
            self._handle = self._scheduler.call_later(self._interval, self._run)
