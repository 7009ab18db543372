"""Command line: segment the ground of a point cloud stored as a PLY file."""

from __future__ import annotations

import argparse
import logging
import math
import struct
import sys
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np

from .segmentation import GroundSegmentation, GroundSegmentationParams

_PLY_TYPES = {
    "char": "b", "int8": "b",
    "uchar": "B", "uint8": "B",
    "short": "h", "int16": "h",
    "ushort": "H", "uint16": "H",
    "int": "i", "int32": "i",
    "uint": "I", "uint32": "I",
    "float": "f", "float32": "f",
    "double": "d", "float64": "d",
}
_ENDIAN = {"binary_little_endian": "<", "binary_big_endian": ">"}
_FORMATS = {"ascii", *_ENDIAN}


class PlyError(ValueError):
    """The file is not a readable PLY point cloud."""


@dataclass
class _Property:
    name: str
    kind: str
    list_count: str | None = None


@dataclass
class _Element:
    name: str
    count: int
    properties: list[_Property] = field(default_factory=list)


def _type_code(name: str) -> str:
    try:
        return _PLY_TYPES[name]
    except KeyError:
        raise PlyError(f"unknown property type: {name}") from None


def _parse_header(data: bytes) -> tuple[str, list[_Element], int]:
    offset = 0
    lines: list[str] = []
    while True:
        newline = data.find(b"\n", offset)
        if newline < 0:
            raise PlyError("header has no end_header line")
        line = data[offset:newline].decode("ascii", errors="replace").strip()
        offset = newline + 1
        if line == "end_header":
            break
        lines.append(line)
    if not lines or lines[0] != "ply":
        raise PlyError("not a PLY file")

    fmt: str | None = None
    elements: list[_Element] = []
    for line in lines[1:]:
        words = line.split()
        if not words or words[0] in ("comment", "obj_info"):
            continue
        key = words[0]
        if key == "format":
            if len(words) != 3 or words[1] not in _FORMATS:
                raise PlyError(f"unsupported format line: {line}")
            fmt = words[1]
        elif key == "element":
            if len(words) != 3:
                raise PlyError(f"bad element line: {line}")
            try:
                count = int(words[2])
            except ValueError:
                raise PlyError(f"bad element count: {line}") from None
            elements.append(_Element(words[1], count))
        elif key == "property":
            if not elements:
                raise PlyError("property before any element")
            if len(words) == 5 and words[1] == "list":
                prop = _Property(words[4], _type_code(words[3]), _type_code(words[2]))
            elif len(words) == 3:
                prop = _Property(words[2], _type_code(words[1]))
            else:
                raise PlyError(f"bad property line: {line}")
            elements[-1].properties.append(prop)
        else:
            raise PlyError(f"unknown header line: {line}")
    if fmt is None:
        raise PlyError("header has no format line")
    return fmt, elements, offset


def _xyz(columns: dict[str, list[float]], count: int) -> np.ndarray:
    if count == 0:
        return np.empty((0, 3), dtype=float)
    try:
        return np.column_stack([columns["x"], columns["y"], columns["z"]]).astype(float)
    except KeyError:
        raise PlyError("vertex element lacks an x, y or z property") from None


def _read_ascii(body: bytes, elements: list[_Element]) -> np.ndarray:
    tokens = iter(body.split())

    def take() -> bytes:
        try:
            return next(tokens)
        except StopIteration:
            raise PlyError("unexpected end of data") from None

    try:
        for element in elements:
            columns: dict[str, list[float]] = {p.name: [] for p in element.properties}
            for _ in range(element.count):
                for prop in element.properties:
                    if prop.list_count is not None:
                        for _ in range(int(take())):
                            take()
                    else:
                        columns[prop.name].append(float(take()))
            if element.name == "vertex":
                return _xyz(columns, element.count)
    except ValueError as exc:
        if isinstance(exc, PlyError):
            raise
        raise PlyError(f"bad value in data: {exc}") from None
    raise PlyError("file has no vertex element")


def _read_binary(data: bytes, offset: int, elements: list[_Element], endian: str) -> np.ndarray:
    def unpack(fmt: str) -> tuple:
        nonlocal offset
        try:
            values = struct.unpack_from(endian + fmt, data, offset)
        except struct.error:
            raise PlyError("unexpected end of data") from None
        offset += struct.calcsize(endian + fmt)
        return values

    for element in elements:
        if all(p.list_count is None for p in element.properties):
            dtype = np.dtype([(p.name, endian + p.kind) for p in element.properties])
            size = dtype.itemsize * element.count
            if offset + size > len(data):
                raise PlyError("unexpected end of data")
            table = np.frombuffer(data, dtype=dtype, count=element.count, offset=offset)
            offset += size
            columns = {name: table[name].tolist() for name in dtype.names or ()}
        else:
            columns = {p.name: [] for p in element.properties}
            for _ in range(element.count):
                for prop in element.properties:
                    if prop.list_count is not None:
                        (n,) = unpack(prop.list_count)
                        unpack(f"{n}{prop.kind}")
                    else:
                        columns[prop.name].append(unpack(prop.kind)[0])
        if element.name == "vertex":
            return _xyz(columns, element.count)
    raise PlyError("file has no vertex element")


def load_ply(path: str | Path) -> np.ndarray:
    """Read the x, y, z coordinates of the vertices of a PLY file."""
    data = Path(path).read_bytes()
    fmt, elements, offset = _parse_header(data)
    if fmt == "ascii":
        return _read_ascii(data[offset:], elements)
    return _read_binary(data, offset, elements, _ENDIAN[fmt])


def _build_parser() -> argparse.ArgumentParser:
    d = GroundSegmentationParams()
    parser = argparse.ArgumentParser(
        prog="linefit", description="Label the ground points of a PLY point cloud."
    )
    parser.add_argument("point_cloud_file", nargs="?", help="PLY file to segment")
    parser.add_argument("--labels", help="write one label per line to this file")
    parser.add_argument("--n-bins", type=int, default=d.n_bins)
    parser.add_argument("--n-segments", type=int, default=d.n_segments)
    parser.add_argument("--max-dist-to-line", type=float, default=d.max_dist_to_line)
    parser.add_argument("--max-slope", type=float, default=d.max_slope)
    parser.add_argument("--min-slope", type=float, default=d.min_slope)
    parser.add_argument("--long-threshold", type=float, default=d.long_threshold)
    parser.add_argument("--max-long-height", type=float, default=d.max_long_height)
    parser.add_argument("--max-start-height", type=float, default=d.max_start_height)
    parser.add_argument("--sensor-height", type=float, default=d.sensor_height)
    parser.add_argument("--line-search-angle", type=float, default=d.line_search_angle)
    parser.add_argument("--n-threads", type=int, default=d.n_threads)
    parser.add_argument("--r-min", type=float, default=math.sqrt(d.r_min_square))
    parser.add_argument("--r-max", type=float, default=math.sqrt(d.r_max_square))
    parser.add_argument("--max-fit-error", type=float, default=math.sqrt(d.max_error_square))
    return parser


def main(argv: list[str] | None = None) -> int:
    """Segment a PLY point cloud and report how many points are ground."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(message)s")

    if args.point_cloud_file is None:
        print("No point cloud file given", file=sys.stderr)
        return 0
    print(f'Point cloud file is "{args.point_cloud_file}"')

    try:
        params = GroundSegmentationParams.from_ranges(
            args.r_min,
            args.r_max,
            args.max_fit_error,
            n_bins=args.n_bins,
            n_segments=args.n_segments,
            max_dist_to_line=args.max_dist_to_line,
            max_slope=args.max_slope,
            min_slope=args.min_slope,
            long_threshold=args.long_threshold,
            max_long_height=args.max_long_height,
            max_start_height=args.max_start_height,
            sensor_height=args.sensor_height,
            line_search_angle=args.line_search_angle,
            n_threads=args.n_threads,
        )
    except ValueError as exc:
        parser.error(str(exc))

    try:
        cloud = load_ply(args.point_cloud_file)
    except (OSError, PlyError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    labels = GroundSegmentation(params).segment(cloud)
    n_ground = sum(labels)
    print(f"{n_ground} ground points, {len(labels) - n_ground} obstacle points")
    if args.labels:
        Path(args.labels).write_text("".join(f"{label}\n" for label in labels))
    return 0