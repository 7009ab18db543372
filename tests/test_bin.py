import threading

import pytest

from linefit.bin import Bin, MinZPoint


def test_empty_bin_has_no_point_and_returns_origin():
    b = Bin()
    assert b.has_point() is False
    assert b.min_z_point() == MinZPoint(0.0, 0.0)


def test_single_point_is_returned():
    b = Bin()
    b.add_point(2.5, -0.3)
    assert b.has_point() is True
    assert b.min_z_point() == MinZPoint(2.5, -0.3)


def test_keeps_lowest_point_with_its_range():
    b = Bin()
    b.add_point(1.0, 0.5)
    b.add_point(1.2, -0.4)
    b.add_point(1.4, 0.1)
    assert b.min_z_point() == MinZPoint(1.2, -0.4)


def test_equal_height_keeps_first_range():
    b = Bin()
    b.add_point(1.0, -0.2)
    b.add_point(3.0, -0.2)
    assert b.min_z_point().d == 1.0


def test_add_xyz_uses_planar_range():
    b = Bin()
    b.add_xyz(3.0, 4.0, -1.0)
    point = b.min_z_point()
    assert point.d == pytest.approx(5.0)
    assert point.z == -1.0


def test_min_z_point_defaults():
    assert MinZPoint() == MinZPoint(d=0.0, z=0.0)


def test_concurrent_insertion_keeps_global_minimum():
    b = Bin()
    values = [float(v) for v in range(-500, 500)]

    def worker(chunk):
        for v in chunk:
            b.add_point(abs(v) + 1.0, v)

    threads = [threading.Thread(target=worker, args=(values[k::4],)) for k in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert b.min_z_point() == MinZPoint(abs(min(values)) + 1.0, min(values))