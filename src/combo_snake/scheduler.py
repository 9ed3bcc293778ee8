# src/combo_snake/scheduler.py
from __future__ import annotations
from dataclasses import dataclass, asdict
from enum import Enum
import logging
import time
from typing import Callable, Optional, Protocol

import pygame  # type: ignore

from .clock import FrameTimer
from .config import MAX_DELTA_MS, PERFORMANCE_INTERVAL_MS

logger = logging.getLogger(__name__)

FrameCallback = Callable[[float], None]


def wall_clock_ms() -> float:
    """Epoch milliseconds, used for event timestamps."""
    return time.time() * 1000.0


# -----------------------------------------------------------------------------
# Host: where frame callbacks come from
# -----------------------------------------------------------------------------
class FrameHost(Protocol):
    def request_frame(self, callback: FrameCallback) -> int: ...

    def cancel_frame(self, handle: int) -> None: ...


class PygameFrameHost:
    """
    Frame source backed by pygame's clock.

    Holds at most one pending callback. run() waits out the frame budget with
    Clock.tick(fps), then hands the callback pygame's millisecond tick count.
    """

    def __init__(self, fps: float = 60):
        self.fps = fps
        self.clock = pygame.time.Clock()
        self._pending: Optional[FrameCallback] = None
        self._handle = 0

    def request_frame(self, callback: FrameCallback) -> int:
        self._pending = callback
        self._handle += 1
        return self._handle

    def cancel_frame(self, handle: int) -> None:
        if handle == self._handle:
            self._pending = None

    def has_pending(self) -> bool:
        return self._pending is not None

    def now(self) -> float:
        return float(pygame.time.get_ticks())

    def run_once(self) -> bool:
        if self._pending is None:
            return False
        self.clock.tick(int(round(self.fps)))
        callback, self._pending = self._pending, None
        callback(self.now())
        return True

    def run(self, max_frames: Optional[int] = None) -> int:
        """Dispatch frames until nothing is pending (or max_frames). Returns frames run."""
        frames = 0
        while max_frames is None or frames < max_frames:
            if not self.run_once():
                break
            frames += 1
        return frames


# -----------------------------------------------------------------------------
# Scheduler
# -----------------------------------------------------------------------------
class SchedulerState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    PAUSED = "paused"


@dataclass
class PerformanceStats:
    fps: float
    smoothed_delta: float
    frame_count: int
    is_stable: bool
    target_fps: float
    runtime: float

    def to_dict(self) -> dict:
        return asdict(self)


class FrameScheduler:
    """
    Drives on_update/on_render from host frames.

    Stopped -> Running <-> Paused -> Stopped. Each frame the timer's delta is
    clamped to max_delta so a suspended host does not produce one huge
    catch-up step. Exactly one frame request is outstanding while not stopped.
    """

    def __init__(
        self,
        host: FrameHost,
        on_update: FrameCallback,
        on_render: Optional[FrameCallback] = None,
        on_performance_update: Optional[Callable[[PerformanceStats], None]] = None,
        timer: Optional[FrameTimer] = None,
        max_delta: float = MAX_DELTA_MS,
        performance_interval: float = PERFORMANCE_INTERVAL_MS,
    ):
        self.host = host
        self.on_update = on_update
        self.on_render = on_render
        self.on_performance_update = on_performance_update
        self.timer = timer or FrameTimer()
        self.max_delta = max_delta
        self.performance_interval = performance_interval

        self.state = SchedulerState.STOPPED
        self._handle: Optional[int] = None
        self._frame_count = 0
        self._start_time: Optional[float] = None
        self._last_time: Optional[float] = None
        self._last_performance_update: Optional[float] = None
        self._sync_host_fps()

    # --- lifecycle ---------------------------------------------------------
    def start(self) -> None:
        if self.state is not SchedulerState.STOPPED:
            return
        self.state = SchedulerState.RUNNING
        self.timer.reset()
        self._frame_count = 0
        self._start_time = None
        self._last_performance_update = None
        self._request()
        logger.debug("Frame scheduler started")

    def stop(self) -> None:
        if self.state is SchedulerState.STOPPED:
            return
        self.state = SchedulerState.STOPPED
        if self._handle is not None:
            self.host.cancel_frame(self._handle)
            self._handle = None
        logger.debug("Frame scheduler stopped after %d frames", self._frame_count)

    def pause(self) -> None:
        if self.state is not SchedulerState.RUNNING:
            return
        self.state = SchedulerState.PAUSED

    def resume(self) -> None:
        if self.state is not SchedulerState.PAUSED:
            return
        self.state = SchedulerState.RUNNING
        # The paused interval must not show up as one frame delta
        self.timer.restart()

    def toggle_pause(self) -> None:
        if self.state is SchedulerState.PAUSED:
            self.resume()
        else:
            self.pause()

    def is_active(self) -> bool:
        return self.state is SchedulerState.RUNNING

    def is_paused(self) -> bool:
        return self.state is SchedulerState.PAUSED

    # --- frame -------------------------------------------------------------
    def _request(self) -> None:
        if self._handle is None:
            self._handle = self.host.request_frame(self._on_frame)

    def _on_frame(self, now_ms: float) -> None:
        self._handle = None
        if self.state is SchedulerState.STOPPED:
            return

        self._frame_count += 1
        if self._start_time is None:
            self._start_time = now_ms
            self._last_performance_update = now_ms
        self._last_time = now_ms

        delta = min(self.timer.tick(now_ms), self.max_delta)

        if self.state is SchedulerState.RUNNING:
            self.on_update(delta)
            # on_update may have paused or stopped us
            if self.state is SchedulerState.RUNNING and self.on_render is not None:
                self.on_render(delta)

        if (
            self.on_performance_update is not None
            and self.state is not SchedulerState.STOPPED
            and now_ms - self._last_performance_update >= self.performance_interval
        ):
            self._last_performance_update = now_ms
            self.on_performance_update(self.get_performance_stats())

        self._sync_host_fps()
        if self.state is not SchedulerState.STOPPED:
            self._request()

    def _sync_host_fps(self) -> None:
        if hasattr(self.host, "fps"):
            self.host.fps = self.timer.target_fps

    # --- introspection -----------------------------------------------------
    def get_frame_count(self) -> int:
        return self._frame_count

    def get_runtime(self) -> float:
        """Milliseconds between the first and the latest frame."""
        if self._start_time is None or self._last_time is None:
            return 0.0
        return self._last_time - self._start_time

    def get_performance_stats(self) -> PerformanceStats:
        return PerformanceStats(
            fps=self.timer.get_current_fps(),
            smoothed_delta=self.timer.get_smoothed_delta(),
            frame_count=self._frame_count,
            is_stable=self.timer.is_stable(),
            target_fps=self.timer.target_fps,
            runtime=self.get_runtime(),
        )

    def set_target_fps(self, fps: float) -> None:
        self.timer.set_target_fps(max(1.0, min(120.0, fps)))
        self._sync_host_fps()


class FrameRateLimiter:
    """Answers whether enough time has passed to justify another render."""

    def __init__(self, target_fps: float):
        self.last_frame_time = float("-inf")
        self.set_target_fps(target_fps)

    def should_render(self, now_ms: float) -> bool:
        return now_ms - self.last_frame_time >= self.target_frame_time

    def mark_frame(self, now_ms: float) -> None:
        self.last_frame_time = now_ms

    def get_time_to_next_frame(self, now_ms: float) -> float:
        return max(0.0, self.target_frame_time - (now_ms - self.last_frame_time))

    def set_target_fps(self, fps: float) -> None:
        self.target_frame_time = 1000.0 / max(1.0, fps)
