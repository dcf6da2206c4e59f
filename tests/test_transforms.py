"""Tests for the closed-form absolute orientation solver."""

import numpy as np
import pytest

from dqicp import transforms
from dqicp.errors import NoCorrespondencesError, NumericalFailureError
from dqicp.transforms import (apply_transformation, apply_transformation_, localize,
                              rigid_transform_error, solve_eigenpairs)


def make_transform(axis, angle, translation):
    axis = np.asarray(axis, dtype=float)
    axis = axis / np.linalg.norm(axis)
    K = np.array([[0, -axis[2], axis[1]], [axis[2], 0, -axis[0]], [-axis[1], axis[0], 0]])
    transformation = np.eye(4)
    transformation[:3, :3] = np.eye(3) + np.sin(angle) * K + (1 - np.cos(angle)) * K @ K
    transformation[:3, 3] = translation
    return transformation


def test_localize_recovers_exact_motion():
    rng = np.random.default_rng(0)
    source = rng.uniform(-3, 3, size=(50, 3))
    expected = make_transform([1, 2, -1], np.deg2rad(35), [0.5, -1.0, 2.0])
    reference = apply_transformation(source, expected)

    motion = localize(reference, source, np.arange(50))

    assert np.allclose(motion.matrix(), expected, atol=1e-9)
    assert motion.real.norm() == pytest.approx(1.0)
    assert motion.real.scalar >= 0.0


def test_localize_ignores_unmatched_points():
    rng = np.random.default_rng(1)
    source = rng.uniform(-3, 3, size=(30, 3))
    expected = make_transform([0, 0, 1], np.deg2rad(10), [1.0, 0.0, 0.0])
    reference = apply_transformation(source, expected)

    # corrupt a few source points and leave them unmatched
    source[:5] = 1000.0
    source[5] = np.nan
    matched = np.arange(30)
    matched[:6] = -1

    motion = localize(reference, source, matched)

    assert np.allclose(motion.matrix(), expected, atol=1e-9)


def test_localize_matches_many_to_one():
    """Several source points may share one reference point."""
    reference = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]])
    source = np.vstack([reference, reference[1:2]])

    motion = localize(reference, source, np.array([0, 1, 2, 3, 1]))

    assert np.allclose(motion.matrix(), np.eye(4), atol=1e-9)


def test_localize_identity_for_identical_clouds():
    rng = np.random.default_rng(2)
    points = rng.normal(size=(20, 3))

    motion = localize(points, points.copy(), np.arange(20))

    assert np.linalg.norm(motion.translation()) < 1e-12
    assert motion.angle() < 1e-6


def test_localize_without_matches_raises():
    points = np.zeros((4, 3))

    with pytest.raises(NoCorrespondencesError):
        localize(points, points, np.full(4, -1))


def test_localize_non_finite_input_raises():
    reference = np.array([[np.inf, 0.0, 0.0], [1.0, 1.0, 1.0]])
    source = np.array([[0.0, 0.0, 0.0], [1.0, 1.0, 1.0]])

    with pytest.raises(NumericalFailureError):
        localize(reference, source, np.array([0, 1]))


def test_localize_complex_spectrum_raises(monkeypatch):
    def complex_eigenpairs(matrix):
        values = np.array([1 + 2j, 1 - 2j, 0.5, 0.1])
        return values, np.eye(4, dtype=complex)

    monkeypatch.setattr(transforms, "solve_eigenpairs", complex_eigenpairs)
    points = np.eye(3)

    with pytest.raises(NumericalFailureError):
        localize(points, points, np.arange(3))


def test_localize_no_finite_eigenvalue_raises(monkeypatch):
    def nan_eigenpairs(matrix):
        return np.full(4, np.nan, dtype=complex), np.eye(4, dtype=complex)

    monkeypatch.setattr(transforms, "solve_eigenpairs", nan_eigenpairs)
    points = np.eye(3)

    with pytest.raises(NumericalFailureError):
        localize(points, points, np.arange(3))


def test_solve_eigenpairs_returns_columns():
    matrix = np.diag([3.0, 1.0, 4.0, 2.0])

    values, vectors = solve_eigenpairs(matrix)

    for k in range(4):
        assert np.allclose(matrix @ vectors[:, k], values[k] * vectors[:, k])
    assert sorted(values.real) == [1.0, 2.0, 3.0, 4.0]


def test_solve_eigenpairs_rejects_nan():
    with pytest.raises(NumericalFailureError):
        solve_eigenpairs(np.full((4, 4), np.nan))


def test_apply_transformation_in_place_keeps_nan_rows():
    points = np.array([[1.0, 0.0, 0.0], [np.nan, np.nan, np.nan]])
    transformation = make_transform([0, 0, 1], np.pi / 2, [0.0, 0.0, 1.0])

    result = apply_transformation_(points, transformation)

    assert result is points
    assert np.allclose(points[0], [0.0, 1.0, 1.0])
    assert np.all(np.isnan(points[1]))


def test_rigid_transform_error():
    expected = make_transform([0, 1, 0], 0.3, [1.0, 2.0, 3.0])
    estimated = make_transform([0, 1, 0], 0.35, [1.0, 2.0, 3.0])

    translation_error, angle_error = rigid_transform_error(expected, expected)
    assert translation_error == pytest.approx(0.0, abs=1e-12)
    assert angle_error == pytest.approx(0.0, abs=1e-6)

    _, angle_error = rigid_transform_error(estimated, expected)
    assert angle_error == pytest.approx(0.05)
