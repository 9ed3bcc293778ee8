# src/combo_snake/config.py
from __future__ import annotations
from dataclasses import dataclass, asdict, replace
import math
from typing import Dict, List, Tuple

# ----- Board & grid -----
WIDTH, HEIGHT = 600, 600
CELL_SIZE = 20
GRID_W, GRID_H = WIDTH // CELL_SIZE, HEIGHT // CELL_SIZE

# ----- Directions (dx, dy) in grid cells -----
UP, DOWN, LEFT, RIGHT = (0, -1), (0, 1), (-1, 0), (1, 0)

# ----- Combo rules -----
COMBO_SEQUENCE = (1, 2, 3, 4, 5)
SEQUENCE_LENGTH = len(COMBO_SEQUENCE)
COMBO_BONUS_POINTS = 5
BASE_FOOD_POINTS = 10
EVENT_HISTORY_LIMIT = 1000

# ----- Frame timing -----
TARGET_FPS = 60
MAX_DELTA_MS = 100.0
PERFORMANCE_INTERVAL_MS = 1000.0


class InvalidSpeedConfigError(ValueError):
    """Raised when a SpeedConfig breaks the speed ordering rules."""

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__(f"Invalid speed config: {', '.join(errors)}")


# ----- Speed tunables (what you'd tweak for difficulty) -----
@dataclass(frozen=True)
class SpeedConfig:
    """All speeds are milliseconds per movement step, so smaller is faster."""
    base_speed: float = 150
    speed_increment: float = 15
    max_speed: float = 60
    min_speed: float = 300
    transition_duration: float = 500

    def to_dict(self) -> Dict[str, float]:
        return {
            "baseSpeed": self.base_speed,
            "speedIncrement": self.speed_increment,
            "maxSpeed": self.max_speed,
            "minSpeed": self.min_speed,
            "transitionDuration": self.transition_duration,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, float]) -> "SpeedConfig":
        return cls(
            base_speed=float(data["baseSpeed"]),
            speed_increment=float(data["speedIncrement"]),
            max_speed=float(data["maxSpeed"]),
            min_speed=float(data["minSpeed"]),
            transition_duration=float(data["transitionDuration"]),
        )


_SPEED_FIELDS = ("base_speed", "speed_increment", "max_speed", "min_speed", "transition_duration")


def _is_finite_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def validate_speed_config(config: SpeedConfig) -> Tuple[bool, List[str]]:
    """Return (is_valid, errors) for a speed configuration."""
    errors = [f"{name} must be a finite number" for name in _SPEED_FIELDS
              if not _is_finite_number(getattr(config, name))]
    if errors:
        return False, errors

    if not config.base_speed > 0:
        errors.append("base_speed must be greater than 0")
    if not config.speed_increment > 0:
        errors.append("speed_increment must be greater than 0")
    if not config.max_speed > 0:
        errors.append("max_speed must be greater than 0")
    if not config.min_speed > 0:
        errors.append("min_speed must be greater than 0")
    if not config.transition_duration >= 0:
        errors.append("transition_duration cannot be negative")
    if not config.max_speed < config.base_speed:
        errors.append("max_speed must be less than base_speed")
    if not config.base_speed <= config.min_speed:
        errors.append("base_speed must not exceed min_speed")

    return len(errors) == 0, errors


def ensure_valid_speed_config(config: SpeedConfig) -> SpeedConfig:
    is_valid, errors = validate_speed_config(config)
    if not is_valid:
        raise InvalidSpeedConfigError(errors)
    return config


def merge_speed_config(config: SpeedConfig, **changes: float) -> SpeedConfig:
    """Apply keyword changes to a config and validate the result."""
    return ensure_valid_speed_config(replace(config, **changes))


DEFAULT_SPEED_CONFIG = SpeedConfig()


def calculate_speed_curve(level: int, config: SpeedConfig) -> float:
    """Target speed for a combo level: base minus one increment per level, floored at max_speed."""
    raw = config.base_speed - level * config.speed_increment
    return max(raw, config.max_speed)


def calculate_speed_level(current_speed: float, config: SpeedConfig) -> int:
    """Inverse of the curve: how many completed combos a speed corresponds to."""
    if current_speed >= config.base_speed:
        return 0
    if current_speed <= config.max_speed:
        return int((config.base_speed - config.max_speed) // config.speed_increment)
    return int((config.base_speed - current_speed) // config.speed_increment)


# ----- Difficulty presets -----
@dataclass(frozen=True)
class SpeedPreset:
    name: str
    description: str
    config: SpeedConfig


SPEED_PRESETS: Dict[str, SpeedPreset] = {
    "beginner": SpeedPreset(
        "Beginner", "Slow progression for new players",
        SpeedConfig(base_speed=200, speed_increment=10, max_speed=100, min_speed=400, transition_duration=750),
    ),
    "normal": SpeedPreset("Normal", "Balanced speed progression", DEFAULT_SPEED_CONFIG),
    "expert": SpeedPreset(
        "Expert", "Fast progression for experienced players",
        SpeedConfig(base_speed=120, speed_increment=20, max_speed=40, min_speed=250, transition_duration=300),
    ),
    "insane": SpeedPreset(
        "Insane", "Extreme speed",
        SpeedConfig(base_speed=100, speed_increment=25, max_speed=25, min_speed=200, transition_duration=200),
    ),
}


def get_speed_preset(name: str) -> SpeedPreset:
    return SPEED_PRESETS.get(name, SPEED_PRESETS["normal"])


# (level, description) pairs, lowest first
SPEED_MILESTONES: Tuple[Tuple[int, str], ...] = (
    (0, "Starting Speed"),
    (2, "Getting Faster"),
    (5, "Speeding Up"),
    (8, "Very Fast"),
    (12, "Lightning Fast"),
    (15, "Maximum Speed!"),
)


def get_speed_milestone(speed_level: int) -> Tuple[int, str]:
    """Highest milestone that does not exceed the given level."""
    for milestone in reversed(SPEED_MILESTONES):
        if speed_level >= milestone[0]:
            return milestone
    return SPEED_MILESTONES[0]


# ----- Session tunables -----
@dataclass
class GameConfig:
    width: int = WIDTH
    height: int = HEIGHT
    cell_size: int = CELL_SIZE
    food_count: int = SEQUENCE_LENGTH
    base_food_points: int = BASE_FOOD_POINTS
    combo_bonus_points: int = COMBO_BONUS_POINTS
    max_score_history: int | None = 1000
    seed: int = 0

    def to_dict(self) -> dict:
        return asdict(self)
