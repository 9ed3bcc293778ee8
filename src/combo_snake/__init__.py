# src/combo_snake/__init__.py
"""Real-time core of the numbered-food snake game."""

from .clock import AdaptiveFrameTimer, FrameTimer, PrecisionClock
from .collision import CollisionDetector, CollisionResult, CollisionType, EmptySnakeError
from .combo import ComboEvent, ComboEventType, ComboTracker, RestartPolicy
from .config import DEFAULT_SPEED_CONFIG, GameConfig, InvalidSpeedConfigError, SpeedConfig, calculate_speed_curve
from .engine import GameEngine
from .models import Position, Segment, Snake
from .scheduler import FrameRateLimiter, FrameScheduler, PerformanceStats, PygameFrameHost
from .score import GameScore, ScoreAggregator, ScoreBreakdown
from .speed import SpeedChangeEvent, SpeedChangeReason, SpeedController, SpeedState

__all__ = [
    "AdaptiveFrameTimer", "FrameTimer", "PrecisionClock",
    "CollisionDetector", "CollisionResult", "CollisionType", "EmptySnakeError",
    "ComboEvent", "ComboEventType", "ComboTracker", "RestartPolicy",
    "DEFAULT_SPEED_CONFIG", "GameConfig", "InvalidSpeedConfigError", "SpeedConfig", "calculate_speed_curve",
    "GameEngine",
    "Position", "Segment", "Snake",
    "FrameRateLimiter", "FrameScheduler", "PerformanceStats", "PygameFrameHost",
    "GameScore", "ScoreAggregator", "ScoreBreakdown",
    "SpeedChangeEvent", "SpeedChangeReason", "SpeedController", "SpeedState",
]
