"""Shared fixtures: a manual clock scheduler and fake clipboards."""

import itertools
from typing import Callable, List, Optional

import pytest


class FakeTimer:
    def __init__(self, scheduler: "FakeScheduler", due: int, interval: Optional[int],
                 callback: Callable[[], None], seq: int):
        self._scheduler = scheduler
        self.due = due
        self.interval = interval
        self.callback = callback
        self.seq = seq
        self._active = True

    def cancel(self) -> None:
        self._active = False

    @property
    def active(self) -> bool:
        return self._active


class FakeScheduler:
    """Scheduler driven by ``advance()`` instead of wall time."""

    def __init__(self):
        self.now = 0
        self.timers: List[FakeTimer] = []
        self._seq = itertools.count()

    def call_later(self, delay_ms, callback):
        timer = FakeTimer(self, self.now + delay_ms, None, callback, next(self._seq))
        self.timers.append(timer)
        return timer

    def call_repeating(self, interval_ms, callback):
        timer = FakeTimer(self, self.now + interval_ms, interval_ms, callback, next(self._seq))
        self.timers.append(timer)
        return timer

    def active_timers(self) -> List[FakeTimer]:
        return [t for t in self.timers if t.active]

    def advance(self, ms: int) -> None:
        target = self.now + ms
        while True:
            due = [t for t in self.active_timers() if t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.due, t.seq))
            self.now = timer.due
            if timer.interval is None:
                timer.cancel()
            else:
                timer.due += timer.interval
            timer.callback()
        self.now = target


class FakeClipboard:
    def __init__(self):
        self.texts: List[str] = []

    def write_text(self, text: str) -> None:
        self.texts.append(text)


class FailingClipboard:
    def write_text(self, text: str) -> None:
        raise OSError("clipboard locked")


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def clipboard() -> FakeClipboard:
    return FakeClipboard()


@pytest.fixture
def failing_clipboard() -> FailingClipboard:
    return FailingClipboard()
