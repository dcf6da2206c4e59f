"""Tests for quaternion and dual-quaternion value types."""

import numpy as np
import pytest

from dqicp.errors import NumericalFailureError
from dqicp.quaternion import (DualQuaternion, Quaternion, angle_of, left_matrices,
                              multiply_left, multiply_right, points_to_quaternions,
                              right_matrices, to_matrix, translation_of)


def axis_angle_quaternion(axis, angle):
    axis = np.asarray(axis, dtype=float)
    axis = axis / np.linalg.norm(axis)
    return Quaternion(np.sin(angle / 2) * axis, np.cos(angle / 2))


def rotation_z(angle):
    c, s = np.cos(angle), np.sin(angle)
    return np.array([[c, -s, 0], [s, c, 0], [0, 0, 1]])


def test_hamilton_product_of_basis_units():
    """i * j = k and j * i = -k."""
    i = Quaternion((1, 0, 0), 0)
    j = Quaternion((0, 1, 0), 0)

    assert np.allclose(multiply_left(i, j).as_array(), [0, 0, 1, 0])
    assert np.allclose(multiply_right(i, j).as_array(), [0, 0, -1, 0])


def test_left_and_right_matrices_agree():
    """Q(a) b and W(b) a both compute a * b."""
    rng = np.random.default_rng(0)
    a, b = rng.normal(size=(2, 4))

    assert np.allclose(left_matrices(a) @ b, right_matrices(b) @ a)


def test_batched_matrices_match_single():
    rng = np.random.default_rng(1)
    qs = rng.normal(size=(5, 4))

    batched = left_matrices(qs)
    for q, m in zip(qs, batched):
        assert np.allclose(Quaternion.from_array(q).Q(), m)


def test_product_matrix_is_scaled_orthogonal():
    p = Quaternion.from_array(points_to_quaternions([1.0, -2.0, 4.0]))
    norm_sq = p.norm() ** 2

    assert np.allclose(p.Q().T @ p.Q(), norm_sq * np.eye(4))
    assert np.allclose(p.W().T @ p.W(), norm_sq * np.eye(4))


def test_points_embed_as_half_scale_pure_quaternions():
    q = points_to_quaternions([[2.0, 4.0, -6.0]])

    assert np.allclose(q, [1.0, 2.0, -3.0, 0.0])


def test_rotation_matrix_about_z():
    angle = np.deg2rad(30)
    q = axis_angle_quaternion([0, 0, 1], angle)

    assert np.allclose(q.rotation_matrix(), rotation_z(angle))


def test_angle_of_unit_quaternion():
    angle = np.deg2rad(42)
    q = axis_angle_quaternion([1, 2, 3], angle)

    assert q.angle() == pytest.approx(angle)
    assert angle_of(q.negated()) == pytest.approx(angle)
    assert Quaternion.identity().angle() == 0.0


def test_normalized_zero_quaternion_raises():
    with pytest.raises(NumericalFailureError):
        Quaternion((0, 0, 0), 0).normalized()


def test_quaternion_is_immutable():
    q = Quaternion((1, 2, 3), 4)
    array = q.as_array()
    array[0] = 100.0

    assert q.vector[0] == 1.0
    with pytest.raises(ValueError):
        q._q[0] = 5.0


def test_dual_quaternion_identity():
    dq = DualQuaternion.identity()

    assert np.allclose(dq.matrix(), np.eye(4))
    assert np.allclose(dq.translation(), 0.0)
    assert dq.angle() == 0.0


def test_dual_quaternion_matrix_conversion():
    """from_matrix followed by matrix() returns the original transform."""
    transformation = np.eye(4)
    transformation[:3, :3] = axis_angle_quaternion([0.3, -1.0, 0.5], 2.5).rotation_matrix()
    transformation[:3, 3] = [1.5, -2.0, 0.25]

    dq = DualQuaternion.from_matrix(transformation)

    assert np.allclose(to_matrix(dq), transformation)
    assert np.allclose(translation_of(dq), [1.5, -2.0, 0.25])
    assert dq.angle() == pytest.approx(2.5)
    assert dq.real.norm() == pytest.approx(1.0)


def test_dual_quaternion_half_turn():
    """Rotations of pi take the non-trace branches of the conversion."""
    for axis in ([1, 0, 0], [0, 1, 0], [0, 0, 1]):
        transformation = np.eye(4)
        transformation[:3, :3] = axis_angle_quaternion(axis, np.pi).rotation_matrix()
        transformation[:3, 3] = [0.0, 1.0, 2.0]

        assert np.allclose(DualQuaternion.from_matrix(transformation).matrix(), transformation)


def test_dual_quaternion_moves_points():
    """The dual part s = t r / 2 encodes translation t."""
    r = axis_angle_quaternion([0, 0, 1], np.pi / 2)
    t = Quaternion((1.0, 2.0, 3.0), 0.0)
    dual = Quaternion.from_array(0.5 * multiply_left(t, r).as_array())

    transformation = DualQuaternion(r, dual).matrix()
    moved = transformation @ np.array([1.0, 0.0, 0.0, 1.0])

    assert np.allclose(moved[:3], [1.0, 3.0, 3.0])


def test_conjugate_inverts_unit_rotation():
    q = axis_angle_quaternion([2, -1, 0.5], 1.2)

    product = multiply_left(q, q.conjugate())

    assert np.allclose(product.as_array(), Quaternion.identity().as_array())
    assert np.allclose(q.conjugate().rotation_matrix(), q.rotation_matrix().T)
