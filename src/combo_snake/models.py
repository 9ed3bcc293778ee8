# src/combo_snake/models.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Iterable, List, NamedTuple, Tuple


class Position(NamedTuple):
    x: int
    y: int

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y}


class Segment(NamedTuple):
    x: int
    y: int
    id: int

    @property
    def position(self) -> Position:
        return Position(self.x, self.y)


@dataclass
class Snake:
    segments: List[Segment] = field(default_factory=list)   # head at index 0

    @property
    def head(self) -> Segment:
        return self.segments[0]

    @property
    def body(self) -> List[Segment]:
        return self.segments[1:]

    def positions(self) -> List[Position]:
        return [s.position for s in self.segments]

    def __len__(self) -> int:
        return len(self.segments)

    @classmethod
    def from_points(cls, points: Iterable[Tuple[int, int]]) -> "Snake":
        """Build a snake from (x, y) pairs, head first, numbering segments in order."""
        return cls([Segment(x, y, i) for i, (x, y) in enumerate(points)])
