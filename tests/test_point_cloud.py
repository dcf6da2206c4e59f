"""Tests for the PointCloud container."""

import numpy as np
import pytest

from dqicp.point_cloud import PointCloud


def test_valid_mask_flags_nan_rows():
    cloud = PointCloud([[0, 0, 0], [np.nan, 1, 2], [1, 1, 1]])

    assert cloud.valid_mask.tolist() == [True, False, True]
    assert len(cloud) == 3


def test_empty_cloud():
    cloud = PointCloud([])

    assert cloud.points.shape == (0, 3)
    assert len(cloud) == 0


def test_wrong_shape_raises():
    with pytest.raises(ValueError):
        PointCloud(np.zeros((4, 2)))


def test_transform_in_place_and_copy():
    cloud = PointCloud([[1.0, 0.0, 0.0]])
    transformation = np.eye(4)
    transformation[:3, 3] = [0.0, 2.0, 0.0]

    moved = cloud.apply_transform(transformation)
    assert np.allclose(cloud.points, [[1.0, 0.0, 0.0]])
    assert np.allclose(moved, [[1.0, 2.0, 0.0]])

    cloud.transform_(transformation)
    assert np.allclose(cloud.points, [[1.0, 2.0, 0.0]])


def test_o3d_round_trip_drops_invalid_points(tmp_path):
    cloud = PointCloud([[0.0, 0.0, 0.0], [np.nan, np.nan, np.nan], [1.0, 2.0, 3.0]])
    filepath = tmp_path / "cloud.ply"

    cloud.save(filepath)
    loaded = PointCloud.from_file(filepath)

    assert len(loaded) == 2
    assert np.allclose(loaded.points, [[0.0, 0.0, 0.0], [1.0, 2.0, 3.0]])
