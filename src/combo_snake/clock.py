# src/combo_snake/clock.py
"""
Timing primitives for the frame loop.

Every piece of state here is an immutable value moved forward by a pure
function that takes the current time as an argument. Nothing in this module
reads the wall clock; the scheduler boundary passes `now_ms` in.
"""
from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Optional, Tuple

import numpy as np  # type: ignore

from .config import TARGET_FPS


# -----------------------------------------------------------------------------
# Elapsed-time clock
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class ClockState:
    running: bool = False
    paused: bool = False
    start_ms: float = 0.0
    paused_elapsed_ms: float = 0.0   # elapsed time frozen at the moment of pause


def elapsed_ms(state: ClockState, now_ms: float) -> float:
    """Elapsed running time, excluding paused intervals."""
    if not state.running:
        return 0.0
    if state.paused:
        return state.paused_elapsed_ms
    return now_ms - state.start_ms


def clock_start(state: ClockState, now_ms: float) -> ClockState:
    if state.running:
        return state
    return ClockState(running=True, paused=False, start_ms=now_ms - state.paused_elapsed_ms)


def clock_stop(state: ClockState, now_ms: float) -> ClockState:
    return ClockState()


def clock_pause(state: ClockState, now_ms: float) -> ClockState:
    if not state.running or state.paused:
        return state
    return replace(state, paused=True, paused_elapsed_ms=elapsed_ms(state, now_ms))


def clock_resume(state: ClockState, now_ms: float) -> ClockState:
    if not state.running or not state.paused:
        return state
    return replace(state, paused=False, start_ms=now_ms - state.paused_elapsed_ms, paused_elapsed_ms=0.0)


def clock_reset(state: ClockState, now_ms: float) -> ClockState:
    """Zero the elapsed time; a running clock keeps running from now."""
    return ClockState(running=state.running, paused=False, start_ms=now_ms)


class PrecisionClock:
    """Stopwatch over ClockState; callers supply the current time."""

    def __init__(self):
        self.state = ClockState()

    def start(self, now_ms: float) -> None:
        self.state = clock_start(self.state, now_ms)

    def stop(self, now_ms: float) -> None:
        self.state = clock_stop(self.state, now_ms)

    def pause(self, now_ms: float) -> None:
        self.state = clock_pause(self.state, now_ms)

    def resume(self, now_ms: float) -> None:
        self.state = clock_resume(self.state, now_ms)

    def reset(self, now_ms: float) -> None:
        self.state = clock_reset(self.state, now_ms)

    def get_elapsed_time(self, now_ms: float) -> float:
        return elapsed_ms(self.state, now_ms)

    def get_elapsed_seconds(self, now_ms: float) -> float:
        return self.get_elapsed_time(now_ms) / 1000.0

    def is_running(self) -> bool:
        return self.state.running and not self.state.paused


# -----------------------------------------------------------------------------
# Frame timing
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class FrameTimingState:
    last_frame_ms: Optional[float] = None
    deltas: Tuple[float, ...] = ()


def advance_frame(state: FrameTimingState, now_ms: float, history_size: int) -> Tuple[FrameTimingState, float]:
    """
    Record a frame at now_ms. Returns (new_state, delta); the first frame
    has delta 0 and a clock running backwards yields 0 as well.
    """
    if state.last_frame_ms is None:
        delta = 0.0
    else:
        delta = max(0.0, now_ms - state.last_frame_ms)
    deltas = (state.deltas + (delta,))[-history_size:]
    return FrameTimingState(last_frame_ms=now_ms, deltas=deltas), delta


def smoothed_delta(deltas: Tuple[float, ...], fallback: float) -> float:
    """Mean of the deltas with the lowest and highest 10% dropped."""
    if not deltas:
        return fallback
    ordered = np.sort(np.asarray(deltas, dtype=np.float64))
    start = int(np.floor(len(ordered) * 0.1))
    end = int(np.ceil(len(ordered) * 0.9))
    trimmed = ordered[start:end]
    if trimmed.size == 0:
        trimmed = ordered
    return float(trimmed.mean())


class FrameTimer:
    """Per-frame delta timing with FPS estimation and stability detection."""

    def __init__(self, target_fps: float = TARGET_FPS, history_size: int = 10):
        self.history_size = history_size
        self.target_fps = max(1.0, float(target_fps))
        self.target_frame_time = 1000.0 / self.target_fps
        self.state = FrameTimingState()

    def tick(self, now_ms: float) -> float:
        self.state, delta = advance_frame(self.state, now_ms, self.history_size)
        return delta

    @property
    def history(self) -> Tuple[float, ...]:
        return self.state.deltas

    def get_smoothed_delta(self) -> float:
        return smoothed_delta(self.state.deltas, self.target_frame_time)

    def get_current_fps(self) -> float:
        avg = self.get_smoothed_delta()
        return 1000.0 / avg if avg > 0 else 0.0

    def is_stable(self, tolerance: float = 2.0) -> bool:
        """True once the history is full and its variance is within tolerance**2."""
        if len(self.state.deltas) < self.history_size:
            return False
        return float(np.var(np.asarray(self.state.deltas, dtype=np.float64))) <= tolerance ** 2

    def set_target_fps(self, fps: float) -> None:
        self.target_fps = max(1.0, float(fps))
        self.target_frame_time = 1000.0 / self.target_fps

    def restart(self) -> None:
        """Forget the previous frame so the next tick reports 0 (used after a pause)."""
        self.state = replace(self.state, last_frame_ms=None)

    def reset(self) -> None:
        self.state = FrameTimingState()


class AdaptiveFrameTimer(FrameTimer):
    """
    FrameTimer whose target FPS follows sustained measured performance.

    After `sustain_frames` ticks in a row measuring below target - threshold,
    the target drops by `step`; a sustained run above target + threshold
    raises it again, but never above the configured target. The target
    never leaves [min_fps, max_fps].
    """

    def __init__(
        self,
        target_fps: float = TARGET_FPS,
        min_fps: float = 30,
        max_fps: float = 120,
        adjustment_threshold: float = 5,
        sustain_frames: int = 60,
        step: float = 5,
        history_size: int = 10,
    ):
        if min_fps > max_fps:
            raise ValueError("min_fps must not exceed max_fps")
        self.min_fps = float(min_fps)
        self.max_fps = float(max_fps)
        self.configured_fps = min(self.max_fps, max(self.min_fps, float(target_fps)))
        self.adjustment_threshold = adjustment_threshold
        self.sustain_frames = sustain_frames
        self.step = step
        self.low_streak = 0
        self.high_streak = 0
        super().__init__(self.configured_fps, history_size)

    def tick(self, now_ms: float) -> float:
        delta = super().tick(now_ms)
        # The first tick carries no measurement
        if len(self.state.deltas) > 1 or delta > 0:
            self._observe(self.get_current_fps())
        return delta

    def _observe(self, measured_fps: float) -> None:
        if measured_fps < self.target_fps - self.adjustment_threshold:
            self.low_streak += 1
            self.high_streak = 0
        elif measured_fps > self.target_fps + self.adjustment_threshold:
            self.high_streak += 1
            self.low_streak = 0
        else:
            self.low_streak = 0
            self.high_streak = 0

        if self.low_streak >= self.sustain_frames:
            super().set_target_fps(max(self.min_fps, self.target_fps - self.step))
            self.low_streak = 0
        elif self.high_streak >= self.sustain_frames:
            super().set_target_fps(min(self.max_fps, self.target_fps + self.step, self.configured_fps))
            self.high_streak = 0

    def get_measured_fps(self) -> float:
        return self.get_current_fps()

    def set_target_fps(self, fps: float) -> None:
        self.configured_fps = min(self.max_fps, max(self.min_fps, float(fps)))
        super().set_target_fps(self.configured_fps)
        self.low_streak = 0
        self.high_streak = 0

    def reset(self) -> None:
        super().reset()
        super().set_target_fps(self.configured_fps)
        self.low_streak = 0
        self.high_streak = 0
