"""Radial bins that track the lowest point that falls into them."""

from __future__ import annotations

import math
import sys
import threading
from dataclasses import dataclass

_FAR_ABOVE = sys.float_info.max


@dataclass(frozen=True)
class MinZPoint:
    """A point in a segment's plane: range ``d`` from the sensor and height ``z``."""

    d: float = 0.0
    z: float = 0.0


class Bin:
    """Collects points and keeps the one with the smallest height."""

    __slots__ = ("_has_point", "_min_z", "_min_z_range", "_lock")

    def __init__(self) -> None:
        self._has_point = False
        self._min_z = _FAR_ABOVE
        self._min_z_range = 0.0
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        if not self._has_point:
            return "Bin(empty)"
        return f"Bin(d={self._min_z_range!r}, z={self._min_z!r})"

    def add_point(self, d: float, z: float) -> None:
        """Add a point given by its range ``d`` and height ``z``."""
        with self._lock:
            self._has_point = True
            if z < self._min_z:
                self._min_z = z
                self._min_z_range = d

    def add_xyz(self, x: float, y: float, z: float) -> None:
        """Add a 3D point; its range is the distance in the x-y plane."""
        self.add_point(math.hypot(x, y), z)

    def min_z_point(self) -> MinZPoint:
        """Return the lowest point seen, or the origin if the bin is empty."""
        with self._lock:
            if not self._has_point:
                return MinZPoint()
            return MinZPoint(self._min_z_range, self._min_z)

    def has_point(self) -> bool:
        """Whether any point has been added."""
        return self._has_point