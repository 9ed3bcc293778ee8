import os
from typing import Callable, List, Optional

import pytest

os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")


class ManualFrameHost:
    """Frame host driven by the test: frames only run when fire() is called."""

    def __init__(self):
        self.pending: Optional[Callable[[float], None]] = None
        self.requests = 0
        self.cancels = 0
        self._handle = 0

    def request_frame(self, callback):
        assert self.pending is None, "a frame was requested while another was outstanding"
        self.pending = callback
        self.requests += 1
        self._handle += 1
        return self._handle

    def cancel_frame(self, handle):
        if handle == self._handle:
            self.pending = None
            self.cancels += 1

    def fire(self, now_ms: float) -> bool:
        if self.pending is None:
            return False
        callback, self.pending = self.pending, None
        callback(now_ms)
        return True

    def run_frames(self, times: List[float]) -> None:
        for t in times:
            self.fire(t)


class FakeTime:
    """Controllable millisecond time source for event timestamps."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def host():
    return ManualFrameHost()


@pytest.fixture
def fake_time():
    return FakeTime()
