import pytest

from combo_snake.clock import (
    AdaptiveFrameTimer,
    ClockState,
    FrameTimer,
    FrameTimingState,
    PrecisionClock,
    advance_frame,
    clock_pause,
    clock_start,
    elapsed_ms,
)


def test_pure_clock_functions_do_not_mutate_input():
    state = ClockState()
    started = clock_start(state, 100.0)
    assert state == ClockState()
    assert elapsed_ms(started, 150.0) == 50.0
    paused = clock_pause(started, 200.0)
    assert elapsed_ms(paused, 10_000.0) == 100.0


def test_elapsed_time_excludes_paused_interval():
    clock = PrecisionClock()
    assert clock.get_elapsed_time(0) == 0.0

    clock.start(1000)
    clock.pause(1500)
    assert clock.get_elapsed_time(9000) == 500
    clock.resume(9000)
    assert clock.get_elapsed_time(9250) == 750
    assert clock.get_elapsed_seconds(9250) == pytest.approx(0.75)
    assert clock.is_running()


def test_clock_start_is_idempotent_and_stop_zeroes():
    clock = PrecisionClock()
    clock.start(0)
    clock.start(500)
    assert clock.get_elapsed_time(600) == 600
    clock.stop(700)
    assert clock.get_elapsed_time(800) == 0
    assert not clock.is_running()


def test_clock_reset_restarts_from_now():
    clock = PrecisionClock()
    clock.start(0)
    clock.reset(400)
    assert clock.get_elapsed_time(450) == 50
    assert clock.is_running()


def test_advance_frame_first_delta_is_zero_and_history_bounded():
    state = FrameTimingState()
    state, delta = advance_frame(state, 100.0, history_size=3)
    assert delta == 0.0
    for t in (116.0, 132.0, 150.0, 170.0):
        state, delta = advance_frame(state, t, history_size=3)
    assert delta == 20.0
    assert state.deltas == (16.0, 18.0, 20.0)


def test_backwards_clock_reports_zero_delta():
    state, _ = advance_frame(FrameTimingState(), 100.0, 10)
    _, delta = advance_frame(state, 90.0, 10)
    assert delta == 0.0


def test_frame_timer_fps_and_stability():
    timer = FrameTimer(target_fps=60, history_size=10)
    assert timer.get_smoothed_delta() == pytest.approx(1000 / 60)
    assert not timer.is_stable()

    t = 0.0
    timer.tick(t)
    for _ in range(10):
        t += 20.0
        timer.tick(t)

    assert timer.get_smoothed_delta() == pytest.approx(20.0)
    assert timer.get_current_fps() == pytest.approx(50.0)
    assert timer.is_stable()


def test_frame_timer_unstable_with_jitter():
    timer = FrameTimer(history_size=10)
    t = 0.0
    timer.tick(t)
    for i in range(10):
        t += 10.0 if i % 2 else 30.0
        timer.tick(t)
    assert not timer.is_stable(tolerance=2.0)


def test_frame_timer_reset_clears_history():
    timer = FrameTimer()
    timer.tick(0)
    timer.tick(16)
    timer.reset()
    assert timer.history == ()
    assert timer.tick(500) == 0.0


def _run(timer, frame_ms, frames, start=0.0):
    t = start
    for _ in range(frames):
        t += frame_ms
        timer.tick(t)
    return t


def test_adaptive_timer_steps_target_down_after_sustained_low_fps():
    timer = AdaptiveFrameTimer(target_fps=60, min_fps=30, max_fps=120, sustain_frames=5, step=5)
    timer.tick(0)
    # 25 fps measured, well below 60
    _run(timer, 40.0, 5)
    assert timer.target_fps == 55


def test_adaptive_timer_never_drops_below_min():
    timer = AdaptiveFrameTimer(target_fps=40, min_fps=30, max_fps=120, sustain_frames=3, step=5)
    timer.tick(0)
    _run(timer, 100.0, 60)
    assert timer.target_fps == 30


def test_adaptive_timer_reset_restores_configured_target():
    timer = AdaptiveFrameTimer(target_fps=60, min_fps=30, sustain_frames=3)
    timer.tick(0)
    _run(timer, 50.0, 30)
    assert timer.target_fps < 60
    timer.reset()
    assert timer.target_fps == 60


def test_adaptive_timer_recovers_toward_configured_target():
    timer = AdaptiveFrameTimer(target_fps=60, min_fps=30, sustain_frames=3, step=5)
    timer.tick(0)
    t = _run(timer, 50.0, 30)
    lowered = timer.target_fps
    _run(timer, 5.0, 200, start=t)
    assert lowered < timer.target_fps <= 60


def test_adaptive_timer_clamps_configured_target():
    timer = AdaptiveFrameTimer(target_fps=500, min_fps=30, max_fps=120)
    assert timer.target_fps == 120
    timer.set_target_fps(1)
    assert timer.target_fps == 30
    with pytest.raises(ValueError):
        AdaptiveFrameTimer(min_fps=90, max_fps=60)
