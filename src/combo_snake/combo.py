# src/combo_snake/combo.py
from __future__ import annotations
from collections import deque
from dataclasses import dataclass
from enum import Enum
import logging
from typing import Callable, Deque, List, Tuple

from .config import COMBO_BONUS_POINTS, EVENT_HISTORY_LIMIT, SEQUENCE_LENGTH
from .events import Subscribers
from .scheduler import wall_clock_ms

logger = logging.getLogger(__name__)


class ComboEventType(str, Enum):
    STARTED = "started"
    PROGRESS = "progress"
    COMPLETED = "completed"
    BROKEN = "broken"


class RestartPolicy(str, Enum):
    """What a food that breaks a combo does afterwards."""
    RESTART_ON_ONE = "restart_on_one"   # a breaking 1 opens a new sequence right away
    STRICT = "strict"                   # the breaking food never counts


@dataclass(frozen=True)
class ComboEvent:
    type: ComboEventType
    sequence: Tuple[int, ...]
    progress: int
    total_points: int
    timestamp: float

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "sequence": list(self.sequence),
            "progress": self.progress,
            "totalPoints": self.total_points,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ComboEvent":
        return cls(
            type=ComboEventType(data["type"]),
            sequence=tuple(data["sequence"]),
            progress=int(data["progress"]),
            total_points=int(data["totalPoints"]),
            timestamp=float(data["timestamp"]),
        )


@dataclass
class ComboStatistics:
    total_combos: int
    total_bonus_points: int
    current_progress: int
    longest_sequence: int
    total_food_consumed: int
    combo_efficiency: float


ComboCallback = Callable[[ComboEvent], None]


@dataclass
class ComboTracker:
    """
    Tracks the in-order 1..N food sequence.

    process_food() returns the event describing what the food did to the
    combo; subscribers see every event, including the `started` that follows
    a `broken` under RestartPolicy.RESTART_ON_ONE.
    """
    sequence_length: int = SEQUENCE_LENGTH
    combo_bonus: int = COMBO_BONUS_POINTS
    restart_policy: RestartPolicy = RestartPolicy.RESTART_ON_ONE
    time_source: Callable[[], float] = wall_clock_ms
    history_limit: int = EVENT_HISTORY_LIMIT

    def __post_init__(self):
        if self.sequence_length < 1:
            raise ValueError("sequence_length must be at least 1")
        self.subscribers: Subscribers[ComboCallback] = Subscribers("combo")
        self._init_state()

    def _init_state(self) -> None:
        self.sequence: List[int] = []
        self.expected_next = 1
        self.total_combos = 0
        self.total_food_consumed = 0
        self.history: Deque[ComboEvent] = deque(maxlen=self.history_limit)

    # ---- core -----------------------------------------------------------
    def process_food(self, food_number: int) -> ComboEvent:
        if isinstance(food_number, bool) or not isinstance(food_number, int):
            raise ValueError(f"Invalid food number: {food_number!r}")
        if not 1 <= food_number <= self.sequence_length:
            raise ValueError(f"Invalid food number: {food_number}. Must be 1-{self.sequence_length}.")

        self.total_food_consumed += 1

        if food_number == self.expected_next:
            event = self._advance(food_number)
            self._emit(event)
            return event

        event = self._break()
        self._emit(event)
        if self.restart_policy is RestartPolicy.RESTART_ON_ONE and food_number == 1:
            self._emit(self._advance(food_number))
        return event

    def _advance(self, food_number: int) -> ComboEvent:
        self.sequence.append(food_number)
        self.expected_next += 1

        if self.expected_next > self.sequence_length:
            finished = tuple(self.sequence)
            self.total_combos += 1
            self.sequence = []
            self.expected_next = 1
            logger.debug("Combo completed (%d total)", self.total_combos)
            return self._event(ComboEventType.COMPLETED, finished, self.combo_bonus)

        kind = ComboEventType.STARTED if len(self.sequence) == 1 else ComboEventType.PROGRESS
        return self._event(kind, tuple(self.sequence), 0)

    def _break(self) -> ComboEvent:
        if self.sequence:
            logger.debug("Combo broken at %s", self.sequence)
        self.sequence = []
        self.expected_next = 1
        return self._event(ComboEventType.BROKEN, (), 0)

    def _event(self, kind: ComboEventType, sequence: Tuple[int, ...], points: int) -> ComboEvent:
        return ComboEvent(
            type=kind,
            sequence=sequence,
            progress=len(sequence),
            total_points=points,
            timestamp=self.time_source(),
        )

    def _emit(self, event: ComboEvent) -> None:
        self.history.append(event)
        self.subscribers.notify(event)

    # ---- queries --------------------------------------------------------
    @property
    def progress(self) -> int:
        return len(self.sequence)

    @property
    def is_combo_active(self) -> bool:
        return len(self.sequence) > 0

    def get_current_sequence(self) -> List[int]:
        return list(self.sequence)

    def get_event_history(self) -> List[ComboEvent]:
        return list(self.history)

    def get_statistics(self) -> ComboStatistics:
        contributing = [e for e in self.history if e.type is not ComboEventType.BROKEN]
        longest = max((e.progress for e in self.history), default=0)
        efficiency = (len(contributing) / self.total_food_consumed * 100) if self.total_food_consumed else 0.0
        return ComboStatistics(
            total_combos=self.total_combos,
            total_bonus_points=self.total_combos * self.combo_bonus,
            current_progress=self.progress,
            longest_sequence=longest,
            total_food_consumed=self.total_food_consumed,
            combo_efficiency=efficiency,
        )

    # ---- lifecycle ------------------------------------------------------
    def subscribe(self, callback: ComboCallback) -> Callable[[], None]:
        return self.subscribers.add(callback)

    def reset(self) -> None:
        self._init_state()

    def export_data(self) -> dict:
        return {
            "state": {
                "sequence": list(self.sequence),
                "expectedNext": self.expected_next,
                "totalCombos": self.total_combos,
                "totalFoodConsumed": self.total_food_consumed,
            },
            "eventHistory": [e.to_dict() for e in self.history],
            "timestamp": self.time_source(),
        }

    def import_data(self, data: dict) -> bool:
        """Restore an export; a malformed snapshot is ignored and False returned."""
        try:
            state = data["state"]
            sequence = [int(n) for n in state["sequence"]]
            expected_next = int(state["expectedNext"])
            total_combos = int(state["totalCombos"])
            total_food = int(state.get("totalFoodConsumed", 0))
            history = [ComboEvent.from_dict(e) for e in data.get("eventHistory", [])]
        except (KeyError, TypeError, ValueError, OverflowError):
            logger.warning("Ignoring malformed combo snapshot")
            return False

        if sequence != list(range(1, len(sequence) + 1)) or expected_next != len(sequence) + 1 \
                or len(sequence) >= self.sequence_length:
            logger.warning("Ignoring inconsistent combo snapshot: sequence=%s expected=%s", sequence, expected_next)
            return False

        self.sequence = sequence
        self.expected_next = expected_next
        self.total_combos = total_combos
        self.total_food_consumed = total_food
        self.history = deque(history, maxlen=self.history_limit)
        return True
