"""Quaternion and dual-quaternion value types for rigid motions.

Quaternions are stored vector part first, ``[x, y, z, w]``. Products are
exposed through their matrix forms rather than operator overloads:

    Q(a) @ b == a * b        (left multiplication by a)
    W(a) @ b == b * a        (right multiplication by a)
"""

import numpy as np

from .errors import NumericalFailureError


def _skew(v):
    """Cross-product matrices for a (..., 3) array of vectors."""
    x, y, z = v[..., 0], v[..., 1], v[..., 2]
    zero = np.zeros_like(x)
    return np.stack([
        np.stack([zero, -z, y], axis=-1),
        np.stack([z, zero, -x], axis=-1),
        np.stack([-y, x, zero], axis=-1),
    ], axis=-2)


def _product_matrices(q, sign):
    q = np.asarray(q, dtype=float)
    v = q[..., :3]
    w = q[..., 3]
    m = np.zeros(q.shape[:-1] + (4, 4))
    m[..., :3, :3] = w[..., np.newaxis, np.newaxis] * np.eye(3) + sign * _skew(v)
    m[..., :3, 3] = v
    m[..., 3, :3] = -v
    m[..., 3, 3] = w
    return m


def left_matrices(q):
    """
    Q() matrices for an array of quaternions.

    Args:
        q: (..., 4) array of quaternions

    Returns:
        (..., 4, 4) array with Q(a) @ b == a * b
    """
    return _product_matrices(q, 1.0)


def right_matrices(q):
    """W() matrices for a (..., 4) array of quaternions, W(a) @ b == b * a."""
    return _product_matrices(q, -1.0)


def points_to_quaternions(points):
    """Embed (N, 3) points as pure quaternions at half scale."""
    points = np.asarray(points, dtype=float)
    q = np.zeros(points.shape[:-1] + (4,))
    q[..., :3] = 0.5 * points
    return q


class Quaternion:
    """Immutable quaternion; a rotation when it has unit norm."""

    __slots__ = ("_q",)

    def __init__(self, vector=(0.0, 0.0, 0.0), scalar=1.0):
        q = np.empty(4)
        q[:3] = vector
        q[3] = scalar
        q.flags.writeable = False
        self._q = q

    @classmethod
    def from_array(cls, array):
        array = np.asarray(array, dtype=float).reshape(4)
        return cls(array[:3], array[3])

    @classmethod
    def identity(cls):
        return cls()

    @property
    def vector(self):
        return self._q[:3].copy()

    @property
    def scalar(self):
        return float(self._q[3])

    def as_array(self):
        return self._q.copy()

    def Q(self):
        return left_matrices(self._q)

    def W(self):
        return right_matrices(self._q)

    def norm(self):
        return float(np.linalg.norm(self._q))

    def normalized(self):
        norm = self.norm()
        if not np.isfinite(norm) or norm == 0.0:
            raise NumericalFailureError(f"Cannot normalize quaternion with norm {norm}")
        return Quaternion.from_array(self._q / norm)

    def conjugate(self):
        return Quaternion(-self._q[:3], self._q[3])

    def negated(self):
        return Quaternion.from_array(-self._q)

    def angle(self):
        """Rotation angle of a unit quaternion, in [0, pi]."""
        return float(2.0 * np.arccos(np.clip(abs(self._q[3]), 0.0, 1.0)))

    def rotation_matrix(self):
        """3x3 rotation matrix of a unit quaternion (p -> q * p * q^-1)."""
        return (self.W().T @ self.Q())[:3, :3]

    def __repr__(self):
        x, y, z, w = self._q
        return f"Quaternion(x={x:.6g}, y={y:.6g}, z={z:.6g}, w={w:.6g})"


def multiply_left(a, b):
    """Return a * b."""
    return Quaternion.from_array(a.Q() @ b.as_array())


def multiply_right(a, b):
    """Return b * a."""
    return Quaternion.from_array(a.W() @ b.as_array())


def angle_of(q):
    return q.angle()


class DualQuaternion:
    """
    Rigid motion in screw form: real part r (rotation) and dual part
    s = 1/2 * t * r, where t is the translation as a pure quaternion.
    """

    __slots__ = ("real", "dual")

    def __init__(self, real=None, dual=None):
        self.real = Quaternion.identity() if real is None else real
        self.dual = Quaternion((0.0, 0.0, 0.0), 0.0) if dual is None else dual

    @classmethod
    def identity(cls):
        return cls()

    @classmethod
    def from_matrix(cls, transformation):
        """
        Build a dual quaternion from a 4x4 homogeneous rigid transform.

        Args:
            transformation: 4x4 matrix with an orthonormal rotation block

        Returns:
            DualQuaternion with a unit real part (w >= 0)
        """
        transformation = np.asarray(transformation, dtype=float)
        R = transformation[:3, :3]
        t = transformation[:3, 3]

        # Shepperd's method, branching on the largest diagonal term
        trace = np.trace(R)
        if trace > 0:
            s = 2.0 * np.sqrt(trace + 1.0)
            q = [(R[2, 1] - R[1, 2]) / s, (R[0, 2] - R[2, 0]) / s,
                 (R[1, 0] - R[0, 1]) / s, 0.25 * s]
        elif R[0, 0] > R[1, 1] and R[0, 0] > R[2, 2]:
            s = 2.0 * np.sqrt(1.0 + R[0, 0] - R[1, 1] - R[2, 2])
            q = [0.25 * s, (R[0, 1] + R[1, 0]) / s,
                 (R[0, 2] + R[2, 0]) / s, (R[2, 1] - R[1, 2]) / s]
        elif R[1, 1] > R[2, 2]:
            s = 2.0 * np.sqrt(1.0 + R[1, 1] - R[0, 0] - R[2, 2])
            q = [(R[0, 1] + R[1, 0]) / s, 0.25 * s,
                 (R[1, 2] + R[2, 1]) / s, (R[0, 2] - R[2, 0]) / s]
        else:
            s = 2.0 * np.sqrt(1.0 + R[2, 2] - R[0, 0] - R[1, 1])
            q = [(R[0, 2] + R[2, 0]) / s, (R[1, 2] + R[2, 1]) / s,
                 0.25 * s, (R[1, 0] - R[0, 1]) / s]

        real = Quaternion.from_array(q).normalized()
        if real.scalar < 0:
            real = real.negated()
        dual = Quaternion.from_array(0.5 * (Quaternion(t, 0.0).Q() @ real.as_array()))
        return cls(real, dual)

    def translation(self):
        """Translation 3-vector, t = 2 * s * r^-1."""
        return 2.0 * (self.real.W().T @ self.dual.as_array())[:3]

    def angle(self):
        return self.real.angle()

    def matrix(self):
        """4x4 homogeneous transform."""
        transformation = np.eye(4)
        transformation[:3, :3] = self.real.rotation_matrix()
        transformation[:3, 3] = self.translation()
        return transformation

    def __repr__(self):
        return f"DualQuaternion(real={self.real!r}, dual={self.dual!r})"


def to_matrix(dq):
    return dq.matrix()


def translation_of(dq):
    return dq.translation()
