"""Angular segments: a row of radial bins and the ground lines fitted through them."""

from __future__ import annotations

import sys
from collections.abc import Iterable, Iterator, Sequence

import numpy as np

from .bin import Bin, MinZPoint

LocalLine = tuple[float, float]
"""Slope and intercept of a line ``z = slope * d + intercept``."""

Line = tuple[MinZPoint, MinZPoint]
"""A line segment given by its start and end point."""

_LINE_MARGIN = 0.1
_FAR_ABOVE = sys.float_info.max


def fit_local_line(points: Iterable[MinZPoint]) -> LocalLine:
    """Least-squares fit of ``z = slope * d + intercept`` through the points."""
    pts = list(points)
    if not pts:
        raise ValueError("cannot fit a line through no points")
    d = np.array([p.d for p in pts], dtype=float)
    z = np.array([p.z for p in pts], dtype=float)
    design = np.column_stack([d, np.ones_like(d)])
    solution, *_ = np.linalg.lstsq(design, z, rcond=None)
    return float(solution[0]), float(solution[1])


def _squared_residuals(points: Iterable[MinZPoint], line: LocalLine) -> Iterator[float]:
    slope, intercept = line
    for p in points:
        residual = slope * p.d + intercept - p.z
        yield residual * residual


def max_error(points: Iterable[MinZPoint], line: LocalLine) -> float:
    """Largest squared vertical residual of the points to the line (0 if none)."""
    return max(_squared_residuals(points, line), default=0.0)


def mean_error(points: Iterable[MinZPoint], line: LocalLine) -> float:
    """Mean squared vertical residual of the points to the line."""
    errors = list(_squared_residuals(points, line))
    if not errors:
        raise ValueError("mean error of no points is undefined")
    return sum(errors) / len(errors)


def local_line_to_line(local_line: LocalLine, points: Sequence[MinZPoint]) -> Line:
    """Clip a fitted line to the range spanned by the first and last point."""
    if not points:
        raise ValueError("cannot clip a line to no points")
    slope, intercept = local_line
    first_d = points[0].d
    last_d = points[-1].d
    return (
        MinZPoint(first_d, slope * first_d + intercept),
        MinZPoint(last_d, slope * last_d + intercept),
    )


class Segment:
    """A row of radial bins in one angular sector, with its fitted ground lines."""

    def __init__(
        self,
        n_bins: int,
        min_slope: float,
        max_slope: float,
        max_error: float,
        long_threshold: float,
        max_long_height: float,
        max_start_height: float,
        sensor_height: float,
    ) -> None:
        self._bins = [Bin() for _ in range(n_bins)]
        self._lines: list[Line] = []
        self.min_slope = min_slope
        self.max_slope = max_slope
        self.max_error_square = max_error
        self.long_threshold = long_threshold
        self.max_long_height = max_long_height
        self.max_start_height = max_start_height
        self.sensor_height = sensor_height

    def __getitem__(self, index: int) -> Bin:
        return self._bins[index]

    def __iter__(self) -> Iterator[Bin]:
        return iter(self._bins)

    def __len__(self) -> int:
        return len(self._bins)

    def _is_bad_line(
        self, points: list[MinZPoint], line: LocalLine, is_long: bool,
        expected_z: float, cur: MinZPoint,
    ) -> bool:
        slope = abs(line[0])
        return (
            max_error(points, line) > self.max_error_square
            or slope > self.max_slope
            or (len(points) > 2 and slope < self.min_slope)
            or (is_long and abs(expected_z - cur.z) > self.max_long_height)
        )

    def fit_lines(self) -> None:
        """Fit ground lines through the lowest points of the bins."""
        self._lines = []
        start = next((i for i, b in enumerate(self._bins) if b.has_point()), None)
        if start is None:
            return

        is_long = False
        ground_height = -self.sensor_height
        points = [self._bins[start].min_z_point()]
        cur_line: LocalLine = (0.0, 0.0)

        i = start + 1
        while i < len(self._bins):
            current_bin = self._bins[i]
            if not current_bin.has_point():
                i += 1
                continue
            cur = current_bin.min_z_point()
            if cur.d - points[-1].d > self.long_threshold:
                is_long = True
            if len(points) >= 2:
                expected_z = _FAR_ABOVE
                if is_long and len(points) > 2:
                    expected_z = cur_line[0] * cur.d + cur_line[1]
                points.append(cur)
                cur_line = fit_local_line(points)
                if self._is_bad_line(points, cur_line, is_long, expected_z, cur):
                    points.pop()
                    # Lines with only two base points are not kept.
                    if len(points) >= 3:
                        new_line = fit_local_line(points)
                        self._lines.append(local_line_to_line(new_line, points))
                        ground_height = new_line[0] * points[-1].d + new_line[1]
                    is_long = False
                    points = points[-1:]
                    # Revisit the same bin with the new line start.
                    continue
            elif (
                cur.d - points[-1].d < self.long_threshold
                and abs(points[-1].z - ground_height) < self.max_start_height
            ):
                points.append(cur)
            else:
                points = [cur]
            i += 1

        if len(points) > 2:
            new_line = fit_local_line(points)
            self._lines.append(local_line_to_line(new_line, points))

    def vertical_distance_to_line(self, d: float, z: float) -> float:
        """Vertical distance to the last line covering range ``d``, or -1 if none does."""
        distance = -1.0
        for start, end in self._lines:
            if start.d - _LINE_MARGIN < d < end.d + _LINE_MARGIN:
                delta_z = end.z - start.z
                delta_d = end.d - start.d
                expected_z = (d - start.d) / delta_d * delta_z + start.z
                distance = abs(z - expected_z)
        return distance

    def lines(self) -> list[Line]:
        """The fitted lines, in order of increasing range."""
        return list(self._lines)