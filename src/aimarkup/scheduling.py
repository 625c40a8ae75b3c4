# -*- coding: utf-8 -*-
"""
Timer scheduling on a single-threaded event loop.

The typeset wait and the copy-label revert only need two primitives: a
one-shot timer and a repeating timer, both cancelable. ``AsyncioScheduler``
runs them on an asyncio loop; the Qt view provides a QTimer-based one.
"""

import asyncio
from typing import Callable, Optional, Protocol


class TimerHandle(Protocol):
    """Cancelable timer."""

    def cancel(self) -> None: ...

    @property
    def active(self) -> bool: ...


class Scheduler(Protocol):
    """Source of timers; delays are in milliseconds."""

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> TimerHandle: ...

    def call_repeating(self, interval_ms: int, callback: Callable[[], None]) -> TimerHandle: ...


class _AsyncioTimer:
    """One-shot or repeating timer on top of ``loop.call_later``."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        delay_ms: int,
        callback: Callable[[], None],
        repeat: bool,
    ):
        self._loop = loop
        self._delay = delay_ms / 1000
        self._callback = callback
        self._repeat = repeat
        self._handle: Optional[asyncio.TimerHandle] = None
        self._active = True
        self._schedule()

    def _schedule(self) -> None:
        self._handle = self._loop.call_later(self._delay, self._fire)

    def _fire(self) -> None:
        if not self._active:
            return
        if self._repeat:
            self._schedule()
        else:
            self._active = False
        self._callback()

    def cancel(self) -> None:
        self._active = False
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    @property
    def active(self) -> bool:
        return self._active


class AsyncioScheduler:
    """Scheduler bound to an asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> _AsyncioTimer:
        return _AsyncioTimer(self.loop, delay_ms, callback, repeat=False)

    def call_repeating(self, interval_ms: int, callback: Callable[[], None]) -> _AsyncioTimer:
        return _AsyncioTimer(self.loop, interval_ms, callback, repeat=True)
