import math
import struct

import numpy as np
import pytest

from linefit.cli import PlyError, load_ply, main


def _write_ascii(path, points):
    header = (
        "ply\nformat ascii 1.0\ncomment made up\n"
        f"element vertex {len(points)}\n"
        "property float x\nproperty float y\nproperty float z\n"
        "end_header\n"
    )
    body = "".join(f"{x!r} {y!r} {z!r}\n" for x, y, z in points)
    path.write_text(header + body)


def _ground_with_obstacle():
    n = 36
    step = 2 * math.pi / n
    bin_step = (20.0 - 0.3) / 30
    points = []
    for k in range(n):
        a = -math.pi + step / 2 + step * k
        for b in range(1, 26):
            r = 0.3 + bin_step * (b + 0.5)
            points.append((r * math.cos(a), r * math.sin(a), -0.2))
    a = -math.pi + step / 2
    points.append((5.0 * math.cos(a), 5.0 * math.sin(a), 1.0))
    return points


def test_load_ascii_with_extra_property(tmp_path):
    path = tmp_path / "cloud.ply"
    path.write_text(
        "ply\nformat ascii 1.0\ncomment made up\n"
        "element vertex 2\n"
        "property float x\nproperty float y\nproperty float z\nproperty uchar red\n"
        "end_header\n1 2 3 255\n4 5 6 0\n"
    )
    cloud = load_ply(path)
    np.testing.assert_allclose(cloud, [[1, 2, 3], [4, 5, 6]])


def test_load_binary_little_endian_skips_list_element(tmp_path):
    header = (
        b"ply\nformat binary_little_endian 1.0\n"
        b"element face 1\nproperty list uchar int vertex_indices\n"
        b"element vertex 2\n"
        b"property float x\nproperty float y\nproperty float z\nproperty double intensity\n"
        b"end_header\n"
    )
    body = struct.pack("<B3i", 3, 0, 1, 2)
    body += struct.pack("<fffd", 1.5, -2.0, 0.25, 9.0)
    body += struct.pack("<fffd", 3.0, 4.0, -1.0, 7.0)
    path = tmp_path / "cloud.ply"
    path.write_bytes(header + body)
    np.testing.assert_allclose(load_ply(path), [[1.5, -2.0, 0.25], [3.0, 4.0, -1.0]])


def test_load_binary_big_endian(tmp_path):
    header = (
        b"ply\nformat binary_big_endian 1.0\nelement vertex 1\n"
        b"property double x\nproperty double y\nproperty double z\nend_header\n"
    )
    path = tmp_path / "cloud.ply"
    path.write_bytes(header + struct.pack(">ddd", 0.5, 1.5, 2.5))
    np.testing.assert_allclose(load_ply(path), [[0.5, 1.5, 2.5]])


def test_truncated_binary_raises(tmp_path):
    header = (
        b"ply\nformat binary_little_endian 1.0\nelement vertex 2\n"
        b"property float x\nproperty float y\nproperty float z\nend_header\n"
    )
    path = tmp_path / "cloud.ply"
    path.write_bytes(header + struct.pack("<fff", 1, 2, 3))
    with pytest.raises(PlyError):
        load_ply(path)


def test_not_a_ply_file(tmp_path):
    path = tmp_path / "cloud.ply"
    path.write_text("hello\nend_header\n")
    with pytest.raises(PlyError):
        load_ply(path)


def test_missing_z_raises(tmp_path):
    path = tmp_path / "cloud.ply"
    path.write_text(
        "ply\nformat ascii 1.0\nelement vertex 1\n"
        "property float x\nproperty float y\nend_header\n1 2\n"
    )
    with pytest.raises(PlyError):
        load_ply(path)


def test_ascii_round_trip(tmp_path):
    points = _ground_with_obstacle()
    path = tmp_path / "cloud.ply"
    _write_ascii(path, points)
    np.testing.assert_allclose(load_ply(path), points)


def test_main_without_file(capsys):
    assert main([]) == 0
    assert "No point cloud file given" in capsys.readouterr().err


def test_main_segments_file(tmp_path, capsys):
    points = _ground_with_obstacle()
    path = tmp_path / "cloud.ply"
    _write_ascii(path, points)
    labels_path = tmp_path / "labels.txt"
    code = main([
        str(path), "--n-segments", "36", "--n-threads", "1", "--labels", str(labels_path),
    ])
    assert code == 0
    out = capsys.readouterr().out
    assert f'Point cloud file is "{path}"' in out
    assert f"{len(points) - 1} ground points, 1 obstacle points" in out
    labels = [int(v) for v in labels_path.read_text().split()]
    assert len(labels) == len(points)
    assert labels[-1] == 0
    assert all(v == 1 for v in labels[:-1])


def test_main_rejects_bad_params(tmp_path):
    path = tmp_path / "cloud.ply"
    _write_ascii(path, [(1.0, 0.0, 0.0)])
    with pytest.raises(SystemExit) as info:
        main([str(path), "--n-threads", "0"])
    assert info.value.code == 2


def test_main_missing_file(tmp_path, capsys):
    assert main([str(tmp_path / "absent.ply")]) == 1
    assert "error:" in capsys.readouterr().err