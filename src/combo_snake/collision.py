# src/combo_snake/collision.py
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Optional, Tuple

from .models import Position, Snake


class CollisionType(str, Enum):
    BOUNDARY = "boundary"
    SELF = "self"
    NONE = "none"


class EmptySnakeError(ValueError):
    """A collision check needs at least a head segment."""


@dataclass(frozen=True)
class CollisionResult:
    has_collision: bool
    type: CollisionType
    position: Optional[Position] = None
    details: Optional[str] = None

    @classmethod
    def none(cls) -> "CollisionResult":
        return cls(has_collision=False, type=CollisionType.NONE)

    def to_dict(self) -> dict:
        out = {"hasCollision": self.has_collision, "type": self.type.value}
        if self.position is not None:
            out["position"] = self.position.to_dict()
        if self.details is not None:
            out["details"] = self.details
        return out


@dataclass(frozen=True)
class Boundaries:
    left: int
    top: int
    right: int
    bottom: int

    @classmethod
    def from_canvas(cls, width: int, height: int, cell_size: int) -> "Boundaries":
        return cls(left=0, top=0, right=width - cell_size, bottom=height - cell_size)

    def contains(self, x: int, y: int) -> bool:
        return self.left <= x <= self.right and self.top <= y <= self.bottom


# -----------------------------------------------------------------------------
# Pure checks
# -----------------------------------------------------------------------------
def check_boundary_collision(head: Position, bounds: Boundaries) -> CollisionResult:
    """First violated edge, checked left, right, top, bottom."""
    x, y = head[0], head[1]
    pos = Position(x, y)
    if x < bounds.left:
        return CollisionResult(True, CollisionType.BOUNDARY, pos, "Left boundary collision")
    if x > bounds.right:
        return CollisionResult(True, CollisionType.BOUNDARY, pos, "Right boundary collision")
    if y < bounds.top:
        return CollisionResult(True, CollisionType.BOUNDARY, pos, "Top boundary collision")
    if y > bounds.bottom:
        return CollisionResult(True, CollisionType.BOUNDARY, pos, "Bottom boundary collision")
    return CollisionResult.none()


def check_self_collision(snake: Snake) -> CollisionResult:
    head = snake.head
    for segment in snake.body:
        if segment.x == head.x and segment.y == head.y:
            return CollisionResult(
                True, CollisionType.SELF, head.position,
                f"Self-collision with segment {segment.id}",
            )
    return CollisionResult.none()


def check_all_collisions(snake: Snake, bounds: Boundaries) -> CollisionResult:
    """
    Boundary first (O(1), and the usual way a game ends), then the body scan.
    Raises EmptySnakeError for a snake without segments.
    """
    if not snake.segments:
        raise EmptySnakeError("cannot check collisions for an empty snake")

    result = check_boundary_collision(snake.head.position, bounds)
    if result.has_collision:
        return result
    return check_self_collision(snake)


CollisionCheck = Callable[[Snake, Boundaries], CollisionResult]


# -----------------------------------------------------------------------------
# Detector: pure check + one-slot cache keyed by head position
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class CollisionCache:
    head: Optional[Position] = None
    result: Optional[CollisionResult] = None

    def lookup(self, head: Position) -> Optional[CollisionResult]:
        if self.head is not None and self.head == head:
            return self.result
        return None


class CollisionDetector:
    def __init__(self, canvas_width: int, canvas_height: int, cell_size: int,
                 check: CollisionCheck = check_all_collisions):
        self.cell_size = cell_size
        self.boundaries = Boundaries.from_canvas(canvas_width, canvas_height, cell_size)
        self._check = check
        self.cache = CollisionCache()

    def check_all_collisions(self, snake: Snake) -> CollisionResult:
        if not snake.segments:
            raise EmptySnakeError("cannot check collisions for an empty snake")

        head = snake.head.position
        cached = self.cache.lookup(head)
        if cached is not None:
            return cached

        result = self._check(snake, self.boundaries)
        self.cache = CollisionCache(head, result)
        return result

    def clear_cache(self) -> None:
        self.cache = CollisionCache()

    def is_cache_valid(self, position: Tuple[int, int]) -> bool:
        return self.cache.head is not None and self.cache.head == Position(position[0], position[1])

    def get_cache_stats(self) -> dict:
        return {
            "hasCachedResult": self.cache.result is not None,
            "lastPosition": self.cache.head,
            "lastResultType": self.cache.result.type.value if self.cache.result else None,
        }

    def update_boundaries(self, canvas_width: int, canvas_height: int) -> None:
        self.boundaries = Boundaries.from_canvas(canvas_width, canvas_height, self.cell_size)
        self.clear_cache()

    def get_boundaries(self) -> Boundaries:
        return self.boundaries

    # --- placement helpers ---
    def check_food_collision(self, head: Tuple[int, int], food: Optional[Tuple[int, int]]) -> bool:
        if food is None:
            return False
        return head[0] == food[0] and head[1] == food[1]

    def is_position_in_bounds(self, position: Tuple[int, int]) -> bool:
        return self.boundaries.contains(position[0], position[1])

    def is_position_valid(self, position: Tuple[int, int], occupied: Iterable[Tuple[int, int]] = ()) -> bool:
        if not self.is_position_in_bounds(position):
            return False
        return all(not (o[0] == position[0] and o[1] == position[1]) for o in occupied)
