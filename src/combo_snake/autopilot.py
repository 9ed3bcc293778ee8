# src/combo_snake/autopilot.py
from __future__ import annotations
from typing import List, Optional, Tuple

import numpy as np  # type: ignore

from .config import UP, DOWN, LEFT, RIGHT
from .engine import GameEngine, is_opposite


def best_moves_toward(hx: int, hy: int, fx: int, fy: int) -> List[Tuple[int, int]]:
    """
    Preference ordering of moves that reduce Manhattan distance to (fx, fy).
    Does NOT check collisions; the remaining directions are appended last so
    the caller still has options when the primary axis is blocked.
    """
    prefs = []
    if fx < hx:
        prefs.append(LEFT)
    elif fx > hx:
        prefs.append(RIGHT)
    if fy < hy:
        prefs.append(UP)
    elif fy > hy:
        prefs.append(DOWN)
    for d in (UP, DOWN, LEFT, RIGHT):
        if d not in prefs:
            prefs.append(d)
    return prefs


class Autopilot:
    """
    Greedy steering for demo sessions: head for the food the combo expects
    next, skip any move that would be fatal, and pick at random when boxed in.
    """

    def __init__(self, seed: Optional[int] = None, wander: float = 0.0):
        self.rng = np.random.default_rng(seed)
        self.wander = wander   # probability of ignoring the target this step

    def choose(self, engine: GameEngine) -> Tuple[int, int]:
        head = engine.snake.head
        target = engine.foods.get(engine.combo.expected_next)
        if target is None and engine.foods:
            target = min(engine.foods.values(), key=lambda f: f.number)

        if target is None or self.rng.random() < self.wander:
            prefs = [(UP, DOWN, LEFT, RIGHT)[i] for i in self.rng.permutation(4)]
        else:
            prefs = best_moves_toward(head.x, head.y, target.position.x, target.position.y)

        legal = [d for d in prefs if not is_opposite(d, engine.direction)]
        safe = [d for d in legal if not engine.would_collide(d)]

        # 1) safe moves that don't eat an out-of-order food, in preference order
        for d in safe:
            food = engine.food_at(engine.next_head(d))
            if food is None or food is target:
                return d

        # 2) any safe move
        if safe:
            return safe[0]

        # 3) boxed in: any legal move
        return legal[int(self.rng.integers(len(legal)))]

    def steer(self, engine: GameEngine) -> Tuple[int, int]:
        direction = self.choose(engine)
        engine.change_direction(direction)
        return direction
