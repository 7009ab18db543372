"""Ground segmentation of 3D point clouds by fitting lines in polar sectors."""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Any

import numpy as np

from .bin import MinZPoint
from .segment import Segment

logger = logging.getLogger(__name__)

Point3D = tuple[float, float, float]
PointLine = tuple[Point3D, Point3D]


@dataclass(frozen=True)
class GroundSegmentationParams:
    """Tuning parameters of the ground segmentation.

    ``n_threads`` sets how many equal chunks the work is split into.  As in the
    chunked layout the algorithm was designed for, segments past the last full
    chunk are not line-fitted and points past the last full chunk of the cloud
    are never labelled ground.
    """

    # Minimum range of segmentation, squared.
    r_min_square: float = 0.3 * 0.3
    # Maximum range of segmentation, squared.
    r_max_square: float = 20.0 * 20.0
    # Number of radial bins.
    n_bins: int = 30
    # Number of angular segments.
    n_segments: int = 180
    # Maximum distance to a ground line to be classified as ground.
    max_dist_to_line: float = 0.15
    # Min slope to be considered ground line.
    min_slope: float = 0.0
    # Max slope to be considered ground line.
    max_slope: float = 1.0
    # Max squared error for line fit.
    max_error_square: float = 0.01
    # Distance at which points are considered far from each other.
    long_threshold: float = 2.0
    # Maximum height deviation for points after a long gap.
    max_long_height: float = 0.1
    # Maximum height of starting line to be labelled ground.
    max_start_height: float = 0.2
    # Height of sensor above ground.
    sensor_height: float = 0.2
    # How far to search for a line in angular direction [rad].
    line_search_angle: float = 0.2
    # Number of work chunks.
    n_threads: int = 4

    def __post_init__(self) -> None:
        for name in ("n_bins", "n_segments", "n_threads"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be at least 1")

    @classmethod
    def from_ranges(
        cls, r_min: float, r_max: float, max_fit_error: float, **kwargs: Any
    ) -> "GroundSegmentationParams":
        """Build parameters from unsquared ranges and fit error."""
        return cls(
            r_min_square=r_min * r_min,
            r_max_square=r_max * r_max,
            max_error_square=max_fit_error * max_fit_error,
            **kwargs,
        )

    @property
    def r_min(self) -> float:
        return math.sqrt(self.r_min_square)

    @property
    def r_max(self) -> float:
        return math.sqrt(self.r_max_square)


def min_z_point_to_3d(point: MinZPoint, angle: float) -> Point3D:
    """Place a segment-plane point back into 3D at the given azimuth."""
    return (math.cos(angle) * point.d, math.sin(angle) * point.d, point.z)


def _as_xyz(cloud: Any) -> np.ndarray:
    arr = np.asarray(cloud, dtype=float)
    if arr.size == 0:
        return np.empty((0, 3), dtype=float)
    if arr.ndim != 2 or arr.shape[1] != 3:
        raise ValueError("cloud must be a sequence of (x, y, z) points")
    return arr


class GroundSegmentation:
    """Labels the points of a cloud as ground (1) or obstacle (0)."""

    def __init__(self, params: GroundSegmentationParams | None = None) -> None:
        self.params = params if params is not None else GroundSegmentationParams()
        self._segments = self._new_segments()

    def _new_segments(self) -> list[Segment]:
        p = self.params
        return [
            Segment(
                p.n_bins,
                p.min_slope,
                p.max_slope,
                p.max_error_square,
                p.long_threshold,
                p.max_long_height,
                p.max_start_height,
                p.sensor_height,
            )
            for _ in range(p.n_segments)
        ]

    @property
    def segment_step(self) -> float:
        return 2 * math.pi / self.params.n_segments

    def _segment_angle(self, index: int) -> float:
        step = self.segment_step
        return -math.pi + step / 2 + step * index

    def segment(self, cloud: Any) -> list[int]:
        """Return one label per point: 1 for ground, 0 otherwise."""
        xyz = _as_xyz(cloud)
        logger.info("Segmenting cloud with %d points...", len(xyz))
        started = time.perf_counter()
        self._segments = self._new_segments()
        segment_index, ranges = self._insert_points(xyz)
        self._fit_lines()
        labels = self._assign_labels(segment_index, ranges, xyz[:, 2])
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        logger.info("Done! Took %gms", elapsed_ms)
        return labels

    def _insert_points(self, xyz: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        p = self.params
        x, y, z = xyz[:, 0], xyz[:, 1], xyz[:, 2]
        range_square = x * x + y * y
        ranges = np.sqrt(range_square)
        segment_index = np.full(len(xyz), -1, dtype=np.int64)

        valid = (range_square < p.r_max_square) & (range_square > p.r_min_square)
        idx = np.flatnonzero(valid)
        if idx.size == 0:
            return segment_index, ranges

        r_min = p.r_min
        bin_step = (p.r_max - r_min) / p.n_bins
        segs = ((np.arctan2(y[idx], x[idx]) + math.pi) / self.segment_step).astype(np.int64)
        segs[segs >= p.n_segments] = 0
        bins = np.minimum(((ranges[idx] - r_min) / bin_step).astype(np.int64), p.n_bins - 1)
        segment_index[idx] = segs

        # Only the lowest point of each bin matters; ties keep the earliest point.
        order = np.lexsort((z[idx], bins, segs))
        keys = segs[order] * p.n_bins + bins[order]
        first = np.ones(len(order), dtype=bool)
        first[1:] = keys[1:] != keys[:-1]
        for j in order[first].tolist():
            point = idx[j]
            self._segments[segs[j]][bins[j]].add_point(float(ranges[point]), float(z[point]))
        return segment_index, ranges

    def _fit_lines(self) -> None:
        p = self.params
        fitted = p.n_segments // p.n_threads * p.n_threads
        for segment in self._segments[:fitted]:
            segment.fit_lines()

    def _distance(self, segment_index: int, d: float, z: float) -> float:
        p = self.params
        step = self.segment_step
        dist = self._segments[segment_index].vertical_distance_to_line(d, z)
        steps = 1
        while dist < 0 and steps * step < p.line_search_angle:
            index_1 = (segment_index + steps) % p.n_segments
            index_2 = (segment_index - steps) % p.n_segments
            dist_1 = self._segments[index_1].vertical_distance_to_line(d, z)
            dist_2 = self._segments[index_2].vertical_distance_to_line(d, z)
            if dist_1 >= 0:
                dist = dist_1
            if dist_2 >= 0 and (dist < 0 or dist_2 < dist):
                dist = dist_2
            steps += 1
        return dist

    def _assign_labels(
        self, segment_index: np.ndarray, ranges: np.ndarray, heights: np.ndarray
    ) -> list[int]:
        p = self.params
        labels = [0] * len(segment_index)
        covered = len(segment_index) // p.n_threads * p.n_threads
        rows = zip(range(covered), segment_index.tolist(), ranges.tolist(), heights.tolist())
        for i, seg, d, z in rows:
            if seg < 0:
                continue
            dist = self._distance(seg, d, z)
            if dist < p.max_dist_to_line and dist != -1:
                labels[i] = 1
        return labels

    def lines(self) -> list[PointLine]:
        """The ground lines of the last segmentation, as 3D start and end points."""
        result: list[PointLine] = []
        for index, segment in enumerate(self._segments):
            angle = self._segment_angle(index)
            for start, end in segment.lines():
                result.append((min_z_point_to_3d(start, angle), min_z_point_to_3d(end, angle)))
        return result

    def min_z_point_cloud(self) -> np.ndarray:
        """The lowest point of every bin in 3D; empty bins give the origin."""
        points = [
            min_z_point_to_3d(b.min_z_point(), self._segment_angle(index))
            for index, segment in enumerate(self._segments)
            for b in segment
        ]
        return np.array(points, dtype=float).reshape(-1, 3)

    def min_z_points(self) -> np.ndarray:
        """The lowest point in 3D of every bin that holds points."""
        points = [
            min_z_point_to_3d(b.min_z_point(), self._segment_angle(index))
            for index, segment in enumerate(self._segments)
            for b in segment
            if b.has_point()
        ]
        return np.array(points, dtype=float).reshape(-1, 3)