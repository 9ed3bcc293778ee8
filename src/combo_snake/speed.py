# src/combo_snake/speed.py
from __future__ import annotations
from dataclasses import dataclass, replace
from enum import Enum
import logging
import math
from typing import Callable, Dict, List

from .combo import ComboEvent, ComboEventType
from .config import (
    DEFAULT_SPEED_CONFIG,
    SpeedConfig,
    calculate_speed_curve,
    ensure_valid_speed_config,
    merge_speed_config,
    validate_speed_config,
)
from .events import Subscribers
from .scheduler import wall_clock_ms

logger = logging.getLogger(__name__)

EasingFunction = Callable[[float], float]


# -----------------------------------------------------------------------------
# Easing
# -----------------------------------------------------------------------------
def linear(t: float) -> float:
    return t


def ease_out_cubic(t: float) -> float:
    return 1 - (1 - t) ** 3


def ease_in_out_cubic(t: float) -> float:
    return 4 * t * t * t if t < 0.5 else 1 - (-2 * t + 2) ** 3 / 2


def ease_out_expo(t: float) -> float:
    return 1.0 if t >= 1 else 1 - 2 ** (-10 * t)


EASING_FUNCTIONS: Dict[str, EasingFunction] = {
    "linear": linear,
    "ease_out_cubic": ease_out_cubic,
    "ease_in_out_cubic": ease_in_out_cubic,
    "ease_out_expo": ease_out_expo,
}


# -----------------------------------------------------------------------------
# State & events
# -----------------------------------------------------------------------------
class SpeedChangeReason(str, Enum):
    COMBO_COMPLETED = "combo_completed"
    COMBO_BROKEN = "combo_broken"
    RESET = "reset"
    MANUAL = "manual"


@dataclass
class SpeedState:
    current_speed: float
    target_speed: float
    speed_level: int = 0
    is_transitioning: bool = False
    transition_start_time: float = 0.0
    transition_start_speed: float = 0.0
    transition_elapsed: float = 0.0

    @classmethod
    def initial(cls, config: SpeedConfig) -> "SpeedState":
        return cls(
            current_speed=config.base_speed,
            target_speed=config.base_speed,
            transition_start_speed=config.base_speed,
        )

    def to_dict(self) -> dict:
        return {
            "currentSpeed": self.current_speed,
            "targetSpeed": self.target_speed,
            "speedLevel": self.speed_level,
            "isTransitioning": self.is_transitioning,
            "transitionStartTime": self.transition_start_time,
            "transitionStartSpeed": self.transition_start_speed,
            "transitionElapsed": self.transition_elapsed,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SpeedState":
        return cls(
            current_speed=float(data["currentSpeed"]),
            target_speed=float(data["targetSpeed"]),
            speed_level=int(data["speedLevel"]),
            is_transitioning=bool(data["isTransitioning"]),
            transition_start_time=float(data.get("transitionStartTime", 0.0)),
            transition_start_speed=float(data.get("transitionStartSpeed", data["currentSpeed"])),
            transition_elapsed=float(data.get("transitionElapsed", 0.0)),
        )


@dataclass(frozen=True)
class SpeedChangeEvent:
    reason: SpeedChangeReason
    speed_level: int
    current_speed: float
    target_speed: float
    timestamp: float

    def to_dict(self) -> dict:
        return {
            "reason": self.reason.value,
            "speedLevel": self.speed_level,
            "currentSpeed": self.current_speed,
            "targetSpeed": self.target_speed,
            "timestamp": self.timestamp,
        }


@dataclass
class SpeedStatistics:
    current_level: int = 0
    max_level_reached: int = 0
    total_increases: int = 0
    total_resets: int = 0
    time_at_max_speed: float = 0.0
    average_speed_level: float = 0.0
    observed_time: float = 0.0    # total ms seen by update(), weights the average

    def to_dict(self) -> dict:
        return {
            "currentLevel": self.current_level,
            "maxLevelReached": self.max_level_reached,
            "totalIncreases": self.total_increases,
            "totalResets": self.total_resets,
            "timeAtMaxSpeed": self.time_at_max_speed,
            "averageSpeedLevel": self.average_speed_level,
            "observedTime": self.observed_time,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SpeedStatistics":
        return cls(
            current_level=int(data["currentLevel"]),
            max_level_reached=int(data["maxLevelReached"]),
            total_increases=int(data["totalIncreases"]),
            total_resets=int(data["totalResets"]),
            time_at_max_speed=float(data.get("timeAtMaxSpeed", 0.0)),
            average_speed_level=float(data.get("averageSpeedLevel", 0.0)),
            observed_time=float(data.get("observedTime", 0.0)),
        )


SpeedChangeCallback = Callable[[SpeedChangeEvent], None]


def _state_errors(state: SpeedState, statistics: SpeedStatistics, config: SpeedConfig) -> List[str]:
    """Reasons a restored state/statistics pair cannot belong to `config`."""
    errors: List[str] = []
    if state.speed_level < 0:
        errors.append(f"negative speed level {state.speed_level}")
    elif state.target_speed != calculate_speed_curve(state.speed_level, config):
        errors.append(f"target speed {state.target_speed} is off the curve for level {state.speed_level}")
    for name in ("current_speed", "transition_start_speed"):
        value = getattr(state, name)
        if not (math.isfinite(value) and value > 0):
            errors.append(f"{name} must be a positive finite number")
    for name in ("transition_start_time", "transition_elapsed"):
        if not math.isfinite(getattr(state, name)):
            errors.append(f"{name} must be finite")

    counters = (statistics.current_level, statistics.max_level_reached,
                statistics.total_increases, statistics.total_resets)
    timings = (statistics.time_at_max_speed, statistics.average_speed_level, statistics.observed_time)
    if any(v < 0 for v in counters) or not all(math.isfinite(v) and v >= 0 for v in timings):
        errors.append("statistics must be non-negative and finite")
    return errors


# -----------------------------------------------------------------------------
# Controller
# -----------------------------------------------------------------------------
class SpeedController:
    """
    Maps combo events to a movement speed (ms per step).

    Each completed combo raises the speed level by one and each break drops
    it back to zero. The live speed is eased toward the curve's target over
    config.transition_duration, driven by update(delta_ms).
    """

    def __init__(
        self,
        config: SpeedConfig = DEFAULT_SPEED_CONFIG,
        easing: EasingFunction = linear,
        time_source: Callable[[], float] = wall_clock_ms,
    ):
        self.config = ensure_valid_speed_config(config)
        self.easing = easing
        self.time_source = time_source
        self.state = SpeedState.initial(self.config)
        self.statistics = SpeedStatistics()
        self.subscribers: Subscribers[SpeedChangeCallback] = Subscribers("speed change")

    # ---- combo wiring ---------------------------------------------------
    def handle_combo_event(self, event: ComboEvent) -> None:
        if event.type is ComboEventType.COMPLETED:
            self.on_combo_completed()
        elif event.type is ComboEventType.BROKEN:
            self.on_combo_break()
        # started / progress leave speed alone

    def on_combo_completed(self) -> None:
        self.state.speed_level += 1
        self._begin_transition(calculate_speed_curve(self.state.speed_level, self.config))

        stats = self.statistics
        stats.total_increases += 1
        stats.current_level = self.state.speed_level
        stats.max_level_reached = max(stats.max_level_reached, self.state.speed_level)

        logger.debug("Speed level %d -> target %.1fms", self.state.speed_level, self.state.target_speed)
        self._notify(SpeedChangeReason.COMBO_COMPLETED)

    def on_combo_break(self) -> None:
        self.state.speed_level = 0
        self._begin_transition(self.config.base_speed)

        self.statistics.total_resets += 1
        self.statistics.current_level = 0
        self._notify(SpeedChangeReason.COMBO_BROKEN)

    # ---- time -----------------------------------------------------------
    def update(self, delta_ms: float = 16.0) -> None:
        delta = delta_ms if delta_ms > 0 else 0.0
        self._update_statistics(delta)

        if not self.state.is_transitioning:
            return

        st = self.state
        st.transition_elapsed += delta
        duration = self.config.transition_duration
        if duration <= 0 or st.transition_elapsed >= duration:
            st.current_speed = st.target_speed
            st.is_transitioning = False
            return

        t = self.easing(st.transition_elapsed / duration)
        st.current_speed = st.transition_start_speed + (st.target_speed - st.transition_start_speed) * t

    def _begin_transition(self, target_speed: float) -> None:
        st = self.state
        st.transition_start_speed = st.current_speed
        st.target_speed = target_speed
        st.transition_start_time = self.time_source()
        st.transition_elapsed = 0.0
        st.is_transitioning = True
        if self.config.transition_duration <= 0:
            st.current_speed = target_speed
            st.is_transitioning = False

    def _update_statistics(self, delta: float) -> None:
        stats = self.statistics
        stats.current_level = self.state.speed_level
        if delta <= 0:
            return
        if self.is_at_max_speed():
            stats.time_at_max_speed += delta
        total = stats.observed_time + delta
        stats.average_speed_level = (stats.average_speed_level * stats.observed_time
                                     + self.state.speed_level * delta) / total
        stats.observed_time = total

    # ---- queries --------------------------------------------------------
    def get_current_speed(self) -> float:
        return self.state.current_speed

    def get_speed_level(self) -> int:
        return self.state.speed_level

    def get_speed_state(self) -> SpeedState:
        return replace(self.state)

    def get_statistics(self) -> SpeedStatistics:
        return replace(self.statistics)

    def get_config(self) -> SpeedConfig:
        return self.config

    def is_at_max_speed(self) -> bool:
        return self.state.target_speed <= self.config.max_speed

    def saturation_level(self) -> int:
        """First level whose curve value is max_speed."""
        cfg = self.config
        return max(1, math.ceil((cfg.base_speed - cfg.max_speed) / cfg.speed_increment))

    def get_speed_progress(self) -> float:
        """How far the current level is toward the saturating level, in [0, 1]."""
        return min(1.0, self.state.speed_level / self.saturation_level())

    # ---- configuration & lifecycle --------------------------------------
    def set_easing_function(self, easing: EasingFunction) -> None:
        self.easing = easing

    def on_speed_change(self, callback: SpeedChangeCallback) -> Callable[[], None]:
        return self.subscribers.add(callback)

    def update_config(self, **changes: float) -> None:
        """Merge changes into the config. Raises InvalidSpeedConfigError and keeps the old config if invalid."""
        self.config = merge_speed_config(self.config, **changes)
        target = calculate_speed_curve(self.state.speed_level, self.config)
        if target != self.state.target_speed:
            self._begin_transition(target)
            self._notify(SpeedChangeReason.MANUAL)

    def reset(self) -> None:
        if self.statistics.total_increases > 0 or self.statistics.total_resets > 0:
            self.statistics.total_resets += 1
        self.statistics.current_level = 0
        self.state = SpeedState.initial(self.config)
        self._notify(SpeedChangeReason.RESET)

    def export_data(self) -> dict:
        return {
            "state": self.state.to_dict(),
            "config": self.config.to_dict(),
            "statistics": self.statistics.to_dict(),
            "timestamp": self.time_source(),
        }

    def import_data(self, data: dict) -> bool:
        """
        Restore an export_data() snapshot. Anything invalid, the embedded
        config first of all, discards the whole import and keeps the current
        config and state. Returns whether the import was applied.
        """
        try:
            config = SpeedConfig.from_dict(data["config"])
            state = SpeedState.from_dict(data["state"])
            statistics = SpeedStatistics.from_dict(data["statistics"])
        except (KeyError, TypeError, ValueError, OverflowError):
            logger.warning("Ignoring malformed speed snapshot")
            return False

        is_valid, errors = validate_speed_config(config)
        if not is_valid:
            logger.warning("Ignoring speed snapshot with invalid config: %s", ", ".join(errors))
            return False
        errors = _state_errors(state, statistics, config)
        if errors:
            logger.warning("Ignoring inconsistent speed snapshot: %s", ", ".join(errors))
            return False

        self.config = config
        self.state = state
        self.statistics = statistics
        return True

    def _notify(self, reason: SpeedChangeReason) -> None:
        self.subscribers.notify(SpeedChangeEvent(
            reason=reason,
            speed_level=self.state.speed_level,
            current_speed=self.state.current_speed,
            target_speed=self.state.target_speed,
            timestamp=self.time_source(),
        ))
