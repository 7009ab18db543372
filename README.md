# linefit

Ground segmentation for 3D point clouds, such as those from a lidar
sensor mounted on a vehicle or robot.

The plane around the sensor is divided into angular segments. Each segment
is divided into radial bins, and each bin keeps its lowest point. Lines are
fitted through those lowest points, one segment at a time. A point is
labelled ground when it lies within `max_dist_to_line` of a fitted line in
its own segment or, if its own segment has no line at its range, in a
neighbouring segment within `line_search_angle`.

## Installation

```
pip install .
```

The only runtime dependency is numpy. The tests use pytest
(`pip install .[test]`).

## Library use

```python
from linefit.segmentation import GroundSegmentation, GroundSegmentationParams

params = GroundSegmentationParams.from_ranges(
    r_min=0.3, r_max=20.0, max_fit_error=0.1, sensor_height=0.2
)
segmenter = GroundSegmentation(params)

# cloud: a sequence of (x, y, z) points, or an (N, 3) array
labels = segmenter.segment(cloud)   # a list with one label per point: 1 ground, 0 not
```

`segment` raises `ValueError` if the cloud is not a sequence of
`(x, y, z)` points. Only points whose horizontal range lies strictly
between `r_min` and `r_max` can be labelled ground. It logs the number of
points and the time taken through the `logging` module at INFO level.

After a call to `segment`, the fitted state can be inspected:

- `segmenter.lines()` returns the fitted ground lines as pairs of 3D end
  points `((x, y, z), (x, y, z))`.
- `segmenter.min_z_point_cloud()` returns an `(n_segments * n_bins, 3)`
  array with the lowest point of every bin; empty bins give the origin.
- `segmenter.min_z_points()` returns the lowest points of only those bins
  that received points.

`linefit.segmentation.min_z_point_to_3d(point, angle)` places a
segment-plane point back into 3D at a given azimuth.

### Lower-level parts

- `linefit.bin.MinZPoint` is a frozen dataclass with range `d` and height `z`.
- `linefit.bin.Bin` keeps the lowest point added to it: `add_point(d, z)`,
  `add_xyz(x, y, z)`, `min_z_point()` and `has_point()`.
- `linefit.segment.Segment` is a row of bins that supports indexing,
  iteration and `len()`. `fit_lines()` fits ground lines through the
  lowest points of its bins, `lines()` returns them, and
  `vertical_distance_to_line(d, z)` gives the vertical distance to the last
  line covering range `d` (with a margin of 0.1), or `-1` if none does.
- `linefit.segment` also offers `fit_local_line` (least-squares
  `z = slope * d + intercept`), `max_error` and `mean_error` (largest and
  mean squared residual) and `local_line_to_line` (clip a fitted line to the
  range of its first and last point).

### Parameters

`GroundSegmentationParams` is a frozen dataclass with these defaults:

| name | default | meaning |
|---|---|---|
| `r_min_square` | 0.09 | squared minimum range of points that are considered |
| `r_max_square` | 400 | squared maximum range of points that are considered |
| `n_bins` | 30 | number of radial bins |
| `n_segments` | 180 | number of angular segments |
| `max_dist_to_line` | 0.15 | largest vertical distance to a line for a point to count as ground |
| `min_slope`, `max_slope` | 0, 1 | allowed absolute slope of a ground line |
| `max_error_square` | 0.01 | largest squared residual of a point in a line fit |
| `long_threshold` | 2.0 | distance at which two points count as far apart |
| `max_long_height` | 0.1 | largest height deviation allowed across a long gap |
| `max_start_height` | 0.2 | largest height difference of a line start from the current ground |
| `sensor_height` | 0.2 | height of the sensor above the ground |
| `line_search_angle` | 0.2 | how far to search neighbouring segments for a line, in radians |
| `n_threads` | 4 | number of equal chunks the work is split into |

`n_bins`, `n_segments` and `n_threads` must be at least 1, or
`ValueError` is raised. The `r_min` and `r_max` properties give the
unsquared ranges. `from_ranges(r_min, r_max, max_fit_error, **kwargs)`
squares those three values and passes any other keyword arguments through.

The work is done in a single thread; `n_threads` only sets the chunking.
Segments past the last full chunk of `n_segments` are not line-fitted, and
points past the last full chunk of the cloud are never labelled ground. With
the defaults (180 segments, 4 chunks) every segment is fitted; for the cloud,
the last `len(cloud) % n_threads` points are always labelled 0.

## Command line

```
linefit cloud.ply
linefit cloud.ply --labels labels.txt
```

This reads an ASCII or binary (little- or big-endian) PLY file whose vertex
element has `x`, `y` and `z` properties, segments it, and prints how many
points were labelled ground and how many not. With `--labels FILE` it also
writes one label per line. The options `--n-bins`, `--n-segments`,
`--max-dist-to-line`, `--max-slope`, `--min-slope`, `--long-threshold`,
`--max-long-height`, `--max-start-height`, `--sensor-height`,
`--line-search-angle`, `--n-threads`, `--r-min`, `--r-max` and
`--max-fit-error` set the parameters above; run `linefit --help` to see
them. Without a file it prints `No point cloud file given` and exits with
status 0; an unreadable file or an invalid PLY file gives status 1.

## What this package does not do

It has no viewer: the fitted lines, lowest points, ground and obstacle
points are returned as data, not displayed. It does not subscribe to or
publish live point-cloud streams and does not rotate clouds into a
gravity-aligned frame; give it clouds that are already levelled, from
memory or from a PLY file.