from unittest.mock import MagicMock

import pytest

from combo_snake.combo import ComboEvent, ComboEventType
from combo_snake.config import (
    DEFAULT_SPEED_CONFIG,
    InvalidSpeedConfigError,
    SpeedConfig,
    calculate_speed_curve,
    calculate_speed_level,
    get_speed_milestone,
    get_speed_preset,
    validate_speed_config,
)
from combo_snake.speed import (
    SpeedChangeReason,
    SpeedController,
    SpeedState,
    ease_out_cubic,
)

CONFIG = SpeedConfig(base_speed=150, speed_increment=15, max_speed=80, min_speed=300, transition_duration=500)
NAN, INF = float("nan"), float("inf")


@pytest.fixture
def controller(fake_time):
    return SpeedController(CONFIG, time_source=fake_time)


def combo_event(kind):
    return ComboEvent(kind, (), 0, 0, 0.0)


# ----- config -----
@pytest.mark.parametrize("config", [
    CONFIG,
    DEFAULT_SPEED_CONFIG,
    get_speed_preset("beginner").config,
    get_speed_preset("insane").config,
    SpeedConfig(base_speed=100, speed_increment=1, max_speed=99, min_speed=100, transition_duration=0),
])
def test_speed_curve_non_increasing_and_floored(config):
    speeds = [calculate_speed_curve(level, config) for level in range(0, 50)]
    assert speeds[0] == config.base_speed
    assert all(a >= b for a, b in zip(speeds, speeds[1:]))
    assert min(speeds) == config.max_speed


@pytest.mark.parametrize("changes", [
    dict(max_speed=150),
    dict(max_speed=200),
    dict(base_speed=400),
    dict(speed_increment=0),
    dict(transition_duration=-1),
    dict(min_speed=0),
])
def test_invalid_configs_rejected_at_construction(changes):
    from dataclasses import replace
    config = replace(CONFIG, **changes)
    is_valid, errors = validate_speed_config(config)
    assert not is_valid and errors
    with pytest.raises(InvalidSpeedConfigError):
        SpeedController(config)


@pytest.mark.parametrize("changes", [
    dict(base_speed=NAN),
    dict(max_speed=NAN),
    dict(speed_increment=NAN),
    dict(min_speed=INF),
    dict(max_speed=-INF),
    dict(transition_duration=INF),
    dict(base_speed=None),
    dict(base_speed="150"),
    dict(speed_increment=True),
])
def test_non_finite_or_non_numeric_configs_rejected(changes):
    from dataclasses import replace
    config = replace(CONFIG, **changes)
    is_valid, errors = validate_speed_config(config)
    assert not is_valid
    assert any("finite number" in e for e in errors)
    with pytest.raises(InvalidSpeedConfigError):
        SpeedController(config)


def test_base_equal_to_min_is_valid():
    assert validate_speed_config(SpeedConfig(base_speed=300, min_speed=300))[0]


def test_speed_level_inverse():
    assert calculate_speed_level(150, CONFIG) == 0
    assert calculate_speed_level(120, CONFIG) == 2
    assert calculate_speed_level(50, CONFIG) == 4


def test_presets_and_milestones():
    assert get_speed_preset("nope") is get_speed_preset("normal")
    assert get_speed_milestone(0)[1] == "Starting Speed"
    assert get_speed_milestone(6)[0] == 5
    assert get_speed_milestone(99)[0] == 15


# ----- combo handling -----
def test_completed_combos_step_target(controller):
    for n in range(1, 8):
        controller.on_combo_completed()
        assert controller.state.target_speed == max(150 - n * 15, 80)
        assert controller.state.speed_level == n
    assert controller.state.is_transitioning


def test_break_returns_to_base(controller):
    controller.on_combo_completed()
    controller.on_combo_completed()
    controller.on_combo_break()
    assert controller.state.target_speed == 150
    assert controller.state.speed_level == 0


def test_handle_combo_event_dispatch(controller):
    listener = MagicMock()
    controller.on_speed_change(listener)

    controller.handle_combo_event(combo_event(ComboEventType.STARTED))
    controller.handle_combo_event(combo_event(ComboEventType.PROGRESS))
    listener.assert_not_called()
    assert controller.get_speed_state() == SpeedState.initial(CONFIG)

    controller.handle_combo_event(combo_event(ComboEventType.COMPLETED))
    assert listener.call_args.args[0].reason is SpeedChangeReason.COMBO_COMPLETED
    controller.handle_combo_event(combo_event(ComboEventType.BROKEN))
    assert listener.call_args.args[0].reason is SpeedChangeReason.COMBO_BROKEN
    assert listener.call_count == 2


def test_speed_change_event_shape(controller, fake_time):
    events = []
    controller.on_speed_change(events.append)
    controller.on_combo_completed()
    assert events[0].to_dict() == {
        "reason": "combo_completed",
        "speedLevel": 1,
        "currentSpeed": 150,
        "targetSpeed": 135,
        "timestamp": fake_time.now,
    }


# ----- transitions -----
def test_linear_transition_over_duration(controller):
    controller.on_combo_completed()   # 150 -> 135 over 500ms
    controller.update(250)
    assert controller.get_current_speed() == pytest.approx(142.5)
    assert controller.state.is_transitioning
    controller.update(250)
    assert controller.get_current_speed() == 135
    assert not controller.state.is_transitioning


def test_custom_easing(controller):
    controller.set_easing_function(ease_out_cubic)
    controller.on_combo_completed()
    controller.update(250)
    assert controller.get_current_speed() == pytest.approx(150 - 15 * ease_out_cubic(0.5))


def test_non_positive_delta_makes_no_progress(controller):
    controller.on_combo_completed()
    before = controller.get_speed_state()
    controller.update(0)
    controller.update(-100)
    after = controller.get_speed_state()
    assert after.is_transitioning
    assert after.current_speed == before.current_speed
    assert after.transition_elapsed == 0


def test_retarget_mid_transition_starts_from_current_speed(controller):
    controller.on_combo_completed()
    controller.update(250)
    controller.on_combo_break()
    assert controller.state.transition_start_speed == pytest.approx(142.5)
    controller.update(500)
    assert controller.get_current_speed() == 150


def test_zero_duration_snaps(fake_time):
    from dataclasses import replace
    controller = SpeedController(replace(CONFIG, transition_duration=0), time_source=fake_time)
    controller.on_combo_completed()
    assert controller.get_current_speed() == 135
    assert not controller.state.is_transitioning


# ----- progress & statistics -----
def test_end_to_end_saturation():
    controller = SpeedController(CONFIG)
    for _ in range(5):
        controller.on_combo_completed()
    assert controller.state.target_speed == 80
    assert controller.is_at_max_speed()
    assert controller.get_speed_progress() == 1


def test_speed_progress_monotonic(controller):
    values = [controller.get_speed_progress()]
    for _ in range(8):
        controller.on_combo_completed()
        values.append(controller.get_speed_progress())
    assert values[0] == 0
    assert all(0 <= v <= 1 for v in values)
    assert values == sorted(values)
    assert values[4] < 1 and values[5] == 1


def test_statistics_track_resets(controller):
    controller.on_combo_completed()
    controller.on_combo_completed()
    controller.on_combo_break()
    controller.on_combo_completed()
    controller.reset()

    stats = controller.get_statistics()
    assert stats.current_level == 0
    assert stats.max_level_reached == 2
    assert stats.total_increases == 3
    assert stats.total_resets == 2


def test_time_weighted_statistics(controller):
    controller.update(100)
    for _ in range(5):
        controller.on_combo_completed()
    controller.update(100)
    stats = controller.get_statistics()
    assert stats.time_at_max_speed == 100
    assert stats.average_speed_level == pytest.approx(2.5)


def test_reset_restores_construction_state(controller):
    listener = MagicMock()
    controller.on_speed_change(listener)
    controller.on_combo_completed()
    controller.update(100)
    controller.reset()

    assert controller.get_speed_state() == SpeedState.initial(CONFIG)
    assert listener.call_args.args[0].reason is SpeedChangeReason.RESET


def test_pristine_reset_does_not_count(controller):
    controller.reset()
    assert controller.get_statistics().total_resets == 0


# ----- config updates -----
def test_update_config_valid_retargets(controller):
    controller.on_combo_completed()
    controller.update_config(speed_increment=20)
    assert controller.config.speed_increment == 20
    assert controller.state.target_speed == 130


def test_update_config_invalid_keeps_previous(controller):
    with pytest.raises(InvalidSpeedConfigError):
        controller.update_config(max_speed=300)
    assert controller.get_config() == CONFIG


# ----- subscribers -----
def test_subscriber_errors_are_isolated(controller):
    bad = MagicMock(side_effect=RuntimeError("boom"))
    good = MagicMock()
    controller.on_speed_change(bad)
    controller.on_speed_change(good)
    controller.on_combo_completed()
    bad.assert_called_once()
    good.assert_called_once()


def test_unsubscribe_stops_delivery(controller):
    listener = MagicMock()
    dispose = controller.on_speed_change(listener)
    dispose()
    controller.on_combo_completed()
    listener.assert_not_called()


# ----- persistence -----
def test_export_import_round_trip(controller, fake_time):
    controller.on_combo_completed()
    controller.on_combo_completed()
    controller.update(100)
    data = controller.export_data()
    assert set(data) == {"state", "config", "statistics", "timestamp"}

    other = SpeedController(time_source=fake_time)
    assert other.import_data(data)
    assert other.get_config() == CONFIG
    assert other.get_speed_state() == controller.get_speed_state()
    assert other.get_statistics() == controller.get_statistics()


def test_import_with_invalid_config_is_discarded(controller):
    controller.on_combo_completed()
    before_state = controller.get_speed_state()
    data = controller.export_data()
    data["config"]["maxSpeed"] = 500
    data["state"]["speedLevel"] = 9

    assert not controller.import_data(data)
    assert controller.get_config() == CONFIG
    assert controller.get_speed_state() == before_state


def test_import_with_malformed_payload_is_discarded(controller):
    assert not controller.import_data({"config": CONFIG.to_dict()})
    assert controller.get_speed_state() == SpeedState.initial(CONFIG)


@pytest.mark.parametrize("key, value", [
    ("baseSpeed", None),
    ("baseSpeed", "fast"),
    ("maxSpeed", NAN),
    ("minSpeed", INF),
    ("speedIncrement", [15]),
    ("transitionDuration", -INF),
])
def test_import_with_bad_config_values_is_discarded(controller, key, value):
    controller.on_combo_completed()
    before_state = controller.get_speed_state()
    data = controller.export_data()
    data["config"][key] = value

    assert not controller.import_data(data)
    assert controller.get_config() == CONFIG
    assert controller.get_speed_state() == before_state


@pytest.mark.parametrize("section, key, value", [
    ("state", "speedLevel", 9),
    ("state", "targetSpeed", 150),
    ("state", "speedLevel", -1),
    ("state", "speedLevel", INF),
    ("state", "currentSpeed", NAN),
    ("state", "currentSpeed", 0),
    ("state", "transitionElapsed", INF),
    ("statistics", "totalResets", -1),
    ("statistics", "observedTime", NAN),
])
def test_import_with_state_off_its_config_is_discarded(controller, section, key, value):
    controller.on_combo_completed()
    before_state = controller.get_speed_state()
    before_stats = controller.get_statistics()
    data = controller.export_data()
    data[section][key] = value

    assert not controller.import_data(data)
    assert controller.get_speed_state() == before_state
    assert controller.get_statistics() == before_stats


def test_update_config_rejects_nan(controller):
    with pytest.raises(InvalidSpeedConfigError):
        controller.update_config(base_speed=NAN)
    assert controller.get_config() == CONFIG
