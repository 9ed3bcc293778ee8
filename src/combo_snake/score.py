# src/combo_snake/score.py
from __future__ import annotations
from collections import deque
from dataclasses import dataclass
import logging
from typing import Callable, Deque, Dict, List, Optional, Tuple

from .config import COMBO_BONUS_POINTS
from .events import Subscribers
from .scheduler import wall_clock_ms

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoreBreakdown:
    base_points: int
    combo_bonus: int
    total_points: int
    timestamp: float

    def to_dict(self) -> dict:
        return {
            "basePoints": self.base_points,
            "comboBonus": self.combo_bonus,
            "totalPoints": self.total_points,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ScoreBreakdown":
        base, bonus = int(data["basePoints"]), int(data["comboBonus"])
        return cls(base, bonus, base + bonus, float(data["timestamp"]))


@dataclass(frozen=True)
class GameScore:
    current_score: int
    total_combos: int
    base_points_earned: int
    combo_bonus_earned: int
    average_combo_length: float

    def to_dict(self) -> dict:
        return {
            "currentScore": self.current_score,
            "totalCombos": self.total_combos,
            "basePointsEarned": self.base_points_earned,
            "comboBonusEarned": self.combo_bonus_earned,
            "averageComboLength": self.average_combo_length,
        }


ScoreCallback = Callable[[GameScore, ScoreBreakdown], None]


class ScoreAggregator:
    """
    Folds base food points and combo bonuses into one running score.

    History eviction is strict FIFO once `max_history` entries are kept;
    max_history=None keeps the whole session.
    """

    def __init__(
        self,
        max_history: Optional[int] = 1000,
        combo_bonus_unit: int = COMBO_BONUS_POINTS,
        time_source: Callable[[], float] = wall_clock_ms,
    ):
        if max_history is not None and max_history < 1:
            raise ValueError("max_history must be positive or None")
        self.max_history = max_history
        self.combo_bonus_unit = combo_bonus_unit
        self.time_source = time_source
        self.subscribers: Subscribers[ScoreCallback] = Subscribers("score update")
        self.reset()

    def reset(self) -> None:
        self.current_score = 0
        self.total_combos = 0
        self.base_points_earned = 0
        self.combo_bonus_earned = 0
        self.combo_length_total = 0
        self.history: Deque[ScoreBreakdown] = deque(maxlen=self.max_history)

    # ---- scoring --------------------------------------------------------
    def add_score(self, base_points: int, combo_bonus: int = 0, combo_length: Optional[int] = None) -> ScoreBreakdown:
        if base_points < 0 or combo_bonus < 0:
            raise ValueError("score points cannot be negative")

        breakdown = ScoreBreakdown(
            base_points=base_points,
            combo_bonus=combo_bonus,
            total_points=base_points + combo_bonus,
            timestamp=self.time_source(),
        )

        self.current_score += breakdown.total_points
        self.base_points_earned += base_points
        self.combo_bonus_earned += combo_bonus
        if combo_bonus > 0:
            self.total_combos += 1
            self.combo_length_total += combo_length if combo_length is not None else self._estimate_length(combo_bonus)

        self.history.append(breakdown)
        self.subscribers.notify(self.get_score_breakdown(), breakdown)
        return breakdown

    def add_food_points(self, base_points: int) -> ScoreBreakdown:
        return self.add_score(base_points, 0)

    def add_combo_bonus(self, bonus_points: int, combo_length: Optional[int] = None) -> ScoreBreakdown:
        return self.add_score(0, bonus_points, combo_length)

    def _estimate_length(self, combo_bonus: int) -> int:
        return max(1, combo_bonus // self.combo_bonus_unit) if self.combo_bonus_unit > 0 else 1

    # ---- queries --------------------------------------------------------
    def get_current_score(self) -> int:
        return self.current_score

    def get_score_breakdown(self) -> GameScore:
        average = self.combo_length_total / self.total_combos if self.total_combos else 0.0
        return GameScore(
            current_score=self.current_score,
            total_combos=self.total_combos,
            base_points_earned=self.base_points_earned,
            combo_bonus_earned=self.combo_bonus_earned,
            average_combo_length=average,
        )

    def get_score_history(self) -> List[ScoreBreakdown]:
        return list(self.history)

    def get_recent_breakdowns(self, count: int = 5) -> List[ScoreBreakdown]:
        if count <= 0:
            return []
        return list(self.history)[-count:]

    def get_points_by_type(self) -> Dict[str, int]:
        return {"base": self.base_points_earned, "combo": self.combo_bonus_earned, "total": self.current_score}

    def get_efficiency_metrics(self) -> Dict[str, float]:
        """Percentages over the retained history plus average points per event."""
        events = len(self.history)
        combo_events = sum(1 for b in self.history if b.combo_bonus > 0)
        return {
            "comboEfficiency": combo_events / events * 100 if events else 0.0,
            "averagePointsPerEvent": self.current_score / events if events else 0.0,
            "comboContribution": self.combo_bonus_earned / self.current_score * 100 if self.current_score else 0.0,
        }

    def validate_state(self) -> Tuple[bool, List[str]]:
        errors: List[str] = []
        if self.current_score != self.base_points_earned + self.combo_bonus_earned:
            errors.append(
                f"Score mismatch: current={self.current_score}, "
                f"calculated={self.base_points_earned + self.combo_bonus_earned}"
            )
        # History totals only cover the whole session while nothing was evicted
        if self.max_history is None or len(self.history) < self.max_history:
            history_base = sum(b.base_points for b in self.history)
            history_combo = sum(b.combo_bonus for b in self.history)
            if history_base != self.base_points_earned:
                errors.append(f"Base points mismatch: tracked={self.base_points_earned}, history={history_base}")
            if history_combo != self.combo_bonus_earned:
                errors.append(f"Combo bonus mismatch: tracked={self.combo_bonus_earned}, history={history_combo}")
        return len(errors) == 0, errors

    # ---- subscriptions & persistence ------------------------------------
    def on_score_update(self, callback: ScoreCallback) -> Callable[[], None]:
        return self.subscribers.add(callback)

    def clear_callbacks(self) -> None:
        self.subscribers.clear()

    def export_data(self) -> dict:
        return {
            "score": self.current_score,
            "totals": self.get_score_breakdown().to_dict(),
            "comboLengthTotal": self.combo_length_total,
            "history": [b.to_dict() for b in self.history],
            "timestamp": self.time_source(),
        }

    def import_data(self, data: dict) -> bool:
        """Restore an export; a malformed or inconsistent snapshot is ignored."""
        try:
            score = int(data["score"])
            totals = data["totals"]
            total_combos = int(totals["totalCombos"])
            base_earned = int(totals["basePointsEarned"])
            bonus_earned = int(totals["comboBonusEarned"])
            history = [ScoreBreakdown.from_dict(b) for b in data.get("history", [])]
            length_total = data.get("comboLengthTotal")
            if length_total is None:
                length_total = round(float(totals.get("averageComboLength", 0.0)) * total_combos)
            length_total = int(length_total)
        except (KeyError, TypeError, ValueError, OverflowError):
            logger.warning("Ignoring malformed score snapshot")
            return False

        errors = []
        if min(score, total_combos, base_earned, bonus_earned, length_total) < 0:
            errors.append("negative totals")
        if score != base_earned + bonus_earned:
            errors.append(f"score {score} != base {base_earned} + bonus {bonus_earned}")
        if any(b.base_points < 0 or b.combo_bonus < 0 for b in history):
            errors.append("negative history entry")
        # Full history must add up to the counters; a capped one may have evicted entries
        if self.max_history is None or len(history) < self.max_history:
            if sum(b.base_points for b in history) != base_earned \
                    or sum(b.combo_bonus for b in history) != bonus_earned:
                errors.append("history totals disagree with counters")
        if errors:
            logger.warning("Ignoring inconsistent score snapshot: %s", ", ".join(errors))
            return False

        self.current_score = score
        self.total_combos = total_combos
        self.base_points_earned = base_earned
        self.combo_bonus_earned = bonus_earned
        self.combo_length_total = length_total
        self.history = deque(history, maxlen=self.max_history)
        return True
