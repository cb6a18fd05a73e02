# common.py
"""Objects that are shared across multiple modules."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, Iterator, Optional, Tuple, TypeVar

T = TypeVar("T")
U = TypeVar("U")

Point = Tuple[float, float]
Size = Tuple[int, int]


class Camp(str, Enum):
    """One of the two competing teams."""

    A = "A"
    B = "B"


@dataclass(frozen=True)
class PerCamp(Generic[T]):
    """Fixed two-slot container indexed by :class:`Camp`."""

    a: T
    b: T

    @classmethod
    def build(cls, factory: Callable[[Camp], T]) -> "PerCamp[T]":
        return cls(a=factory(Camp.A), b=factory(Camp.B))

    def __getitem__(self, camp: Camp) -> T:
        return self.a if camp is Camp.A else self.b

    def __iter__(self) -> Iterator[Camp]:
        return iter(Camp)

    def items(self) -> Iterator[Tuple[Camp, T]]:
        yield Camp.A, self.a
        yield Camp.B, self.b

    def replace(self, camp: Camp, value: T) -> "PerCamp[T]":
        if camp is Camp.A:
            return PerCamp(a=value, b=self.b)
        return PerCamp(a=self.a, b=value)

    def map(self, fn: Callable[[Camp, T], U]) -> "PerCamp[U]":
        return PerCamp(a=fn(Camp.A, self.a), b=fn(Camp.B, self.b))


@dataclass(frozen=True)
class Detection:
    """
    One colour blob found in a single frame.
    Position is in *camera pixel* space; ``area`` doubles as confidence.
    ``orientation_deg`` is the major-axis angle (0‒180) when it could be derived.
    """
    position_px: Point
    area: float
    orientation_deg: Optional[float] = None
    bbox_px: Optional[Tuple[int, int, int, int]] = None


@dataclass(frozen=True)
class Pose:
    """A detection expressed in court coordinates."""
    camp: Camp
    position: Point
    heading_deg: Optional[float] = None
    area: float = 0.0


@dataclass(frozen=True)
class FrameReport:
    """A single-frame snapshot of what the detection loop saw and sent."""
    t_capture: float
    img_size: Size
    detections: PerCamp[Tuple[Detection, ...]]
    poses: PerCamp[Tuple[Pose, ...]]
