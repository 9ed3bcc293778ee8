# src/combo_snake/engine.py
from __future__ import annotations
from dataclasses import dataclass
import logging
import random
from typing import Callable, Dict, List, Optional, Tuple

from .collision import CollisionDetector, CollisionResult
from .combo import ComboEvent, ComboEventType, ComboTracker, RestartPolicy
from .config import DEFAULT_SPEED_CONFIG, GameConfig, SpeedConfig, UP, DOWN, LEFT, RIGHT
from .events import Subscribers
from .models import Position, Segment, Snake
from .score import GameScore, ScoreAggregator
from .speed import SpeedController

logger = logging.getLogger(__name__)

DIRECTIONS = (UP, DOWN, LEFT, RIGHT)

GameOverCallback = Callable[[CollisionResult, GameScore], None]


# ---------- Helpers ----------
def is_opposite(a: Tuple[int, int], b: Tuple[int, int]) -> bool:
    return a[0] == -b[0] and a[1] == -b[1]


@dataclass(frozen=True)
class NumberedFood:
    number: int
    position: Position

    def to_dict(self) -> dict:
        return {"number": self.number, "position": self.position.to_dict()}


# ---------- Engine ----------
class GameEngine:
    """
    One game session: snake movement, numbered foods and the per-step
    pipeline collision -> combo -> speed -> score.

    update(delta_ms) is meant to be the scheduler's on_update. The snake moves
    once every `speed.current_speed` ms, so a speed change triggered by a food
    only affects the following step. Event timestamps come from the injected
    time_source, normally the frame host clock.
    """

    def __init__(
        self,
        config: Optional[GameConfig] = None,
        speed_config: SpeedConfig = DEFAULT_SPEED_CONFIG,
        rng: Optional[random.Random] = None,
        *,
        time_source: Callable[[], float],
        restart_policy: RestartPolicy = RestartPolicy.RESTART_ON_ONE,
    ):
        self.config = config or GameConfig()
        cfg = self.config
        if cfg.width % cfg.cell_size or cfg.height % cfg.cell_size:
            raise ValueError("board size must be a multiple of cell_size")
        self.grid_w = cfg.width // cfg.cell_size
        self.grid_h = cfg.height // cfg.cell_size
        self.rng = rng or random.Random(cfg.seed)

        self.collision = CollisionDetector(cfg.width, cfg.height, cfg.cell_size)
        self.combo = ComboTracker(
            sequence_length=cfg.food_count,
            combo_bonus=cfg.combo_bonus_points,
            restart_policy=restart_policy,
            time_source=time_source,
        )
        self.speed = SpeedController(speed_config, time_source=time_source)
        self.score = ScoreAggregator(
            max_history=cfg.max_score_history,
            combo_bonus_unit=cfg.combo_bonus_points,
            time_source=time_source,
        )
        self.game_over_subscribers: Subscribers[GameOverCallback] = Subscribers("game over")
        self._new_session()

    def _new_session(self) -> None:
        cell = self.config.cell_size
        cx, cy = self.grid_w // 2, self.grid_h // 2
        self.snake = Snake.from_points([
            (cx * cell, cy * cell),
            ((cx - 1) * cell, cy * cell),
            ((cx - 2) * cell, cy * cell),
        ])
        self._next_segment_id = len(self.snake)
        self.direction = RIGHT
        self.pending = RIGHT
        self.foods: Dict[int, NumberedFood] = {}
        self.is_game_over = False
        self.collision_result: Optional[CollisionResult] = None
        self.steps = 0
        self.food_consumed = 0
        self.max_length = len(self.snake)
        self._since_move = 0.0
        self.collision.clear_cache()
        for number in range(1, self.config.food_count + 1):
            self._spawn_food(number)

    # ---------- Input ----------
    def change_direction(self, direction: Tuple[int, int]) -> bool:
        """Queue a turn for the next step; 180° reversals are ignored."""
        if direction not in DIRECTIONS or is_opposite(direction, self.direction):
            return False
        self.pending = direction
        return True

    # ---------- Food ----------
    def _occupied(self) -> set:
        taken = {s.position for s in self.snake.segments}
        taken.update(f.position for f in self.foods.values())
        return taken

    def _spawn_food(self, number: int) -> Optional[NumberedFood]:
        cell = self.config.cell_size
        taken = self._occupied()
        for _ in range(100):
            pos = Position(self.rng.randrange(self.grid_w) * cell, self.rng.randrange(self.grid_h) * cell)
            if pos not in taken:
                break
        else:
            free = [Position(x * cell, y * cell)
                    for y in range(self.grid_h) for x in range(self.grid_w)
                    if Position(x * cell, y * cell) not in taken]
            if not free:
                self.foods.pop(number, None)
                return None
            pos = self.rng.choice(free)
        food = NumberedFood(number, pos)
        self.foods[number] = food
        return food

    def food_at(self, position: Tuple[int, int]) -> Optional[NumberedFood]:
        for food in self.foods.values():
            if self.collision.check_food_collision(position, food.position):
                return food
        return None

    # ---------- Update ----------
    def next_head(self, direction: Tuple[int, int]) -> Position:
        cell = self.config.cell_size
        head = self.snake.head
        return Position(head.x + direction[0] * cell, head.y + direction[1] * cell)

    def would_collide(self, direction: Tuple[int, int]) -> bool:
        """True if one step in `direction` would hit a wall or the body (the tail moves away unless eating)."""
        nxt = self.next_head(direction)
        if not self.collision.is_position_in_bounds(nxt):
            return True
        body = self.snake.segments if self.food_at(nxt) else self.snake.segments[:-1]
        return any(s.x == nxt.x and s.y == nxt.y for s in body)

    def update(self, delta_ms: float) -> bool:
        """Advance the session by delta_ms. Returns False once the game is over."""
        if self.is_game_over:
            return False

        event: Optional[ComboEvent] = None
        self._since_move += max(0.0, delta_ms)
        if self._since_move >= self.speed.get_current_speed():
            self._since_move = 0.0
            alive, event = self.step()
            if not alive:
                return False

        self.speed.update(delta_ms)
        if event is not None:
            completed = event.type is ComboEventType.COMPLETED
            self.score.add_score(
                self.config.base_food_points,
                event.total_points,
                combo_length=len(event.sequence) if completed else None,
            )
        return True

    def step(self) -> Tuple[bool, Optional[ComboEvent]]:
        """
        Move the snake one cell. Returns (alive, combo_event); the combo event
        has already been handed to the speed controller but not yet scored.
        """
        self.direction = self.pending
        new_head = self.next_head(self.direction)
        eaten = self.food_at(new_head)

        segments: List[Segment] = [Segment(new_head.x, new_head.y, self._next_segment_id)]
        segments.extend(self.snake.segments if eaten else self.snake.segments[:-1])
        candidate = Snake(segments)

        result = self.collision.check_all_collisions(candidate)
        if result.has_collision:
            self._game_over(result)
            return False, None

        self._next_segment_id += 1
        self.snake = candidate
        self.steps += 1
        self.max_length = max(self.max_length, len(self.snake))

        if eaten is None:
            return True, None

        self.food_consumed += 1
        event = self.combo.process_food(eaten.number)
        self.speed.handle_combo_event(event)
        self._spawn_food(eaten.number)
        return True, event

    def _game_over(self, result: CollisionResult) -> None:
        self.is_game_over = True
        self.collision_result = result
        logger.info("Game over: %s at step %d", result.details, self.steps)
        self.game_over_subscribers.notify(result, self.score.get_score_breakdown())

    # ---------- Session ----------
    def on_game_over(self, callback: GameOverCallback) -> Callable[[], None]:
        return self.game_over_subscribers.add(callback)

    def reset(self) -> None:
        self.combo.reset()
        self.speed.reset()
        self.score.reset()
        self._new_session()

    def get_snapshot(self) -> dict:
        return {
            "snake": [s.position.to_dict() for s in self.snake.segments],
            "direction": self.direction,
            "foods": [f.to_dict() for f in sorted(self.foods.values(), key=lambda f: f.number)],
            "expectedNext": self.combo.expected_next,
            "comboSequence": self.combo.get_current_sequence(),
            "speed": self.speed.get_speed_state().to_dict(),
            "score": self.score.get_score_breakdown().to_dict(),
            "isGameOver": self.is_game_over,
            "collision": self.collision_result.to_dict() if self.collision_result else None,
            "steps": self.steps,
            "foodConsumed": self.food_consumed,
            "maxLength": self.max_length,
        }
