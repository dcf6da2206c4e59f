"""Closed-form rigid motion estimation and transformation utilities."""

import numpy as np

from .errors import NoCorrespondencesError, NumericalFailureError
from .quaternion import DualQuaternion, Quaternion, left_matrices, points_to_quaternions, right_matrices
from .utils import time_function

# Relative size of an imaginary part still treated as round-off
EIGEN_IMAG_TOLERANCE = 1e-6


def solve_eigenpairs(matrix):
    """
    Full eigen-decomposition of a small real square matrix.

    Args:
        matrix: (n, n) real array

    Returns:
        Tuple of (eigenvalues (n,) complex, eigenvectors (n, n) complex,
        one eigenvector per column)
    """
    matrix = np.asarray(matrix, dtype=float)
    if not np.all(np.isfinite(matrix)):
        raise NumericalFailureError("Eigen-decomposition input contains non-finite values")
    try:
        eigenvalues, eigenvectors = np.linalg.eig(matrix)
    except np.linalg.LinAlgError as e:
        raise NumericalFailureError(f"Eigen-decomposition did not converge: {e}") from e
    return eigenvalues.astype(complex), eigenvectors.astype(complex)


def orientation_matrices(reference_points, source_points):
    """
    Accumulate the C1, C2 matrices of the dual-quaternion absolute orientation
    problem over paired rows of the two arrays.
    """
    ref_q = left_matrices(points_to_quaternions(reference_points))
    src_w = right_matrices(points_to_quaternions(source_points))

    C1 = -2.0 * np.einsum('nji,njk->ik', ref_q, src_w)
    C2 = 2.0 * np.sum(src_w - ref_q, axis=0)
    return C1, C2


@time_function
def localize(reference_points, source_points, matched):
    """
    Best-fit incremental rigid motion moving matched source points onto
    their reference points.

    Args:
        reference_points: (M, 3) reference cloud
        source_points: (N, 3) source cloud
        matched: (N,) reference index per source point, -1 if unmatched

    Returns:
        DualQuaternion with unit real part
    """
    matched = np.asarray(matched)
    valid = np.flatnonzero(matched >= 0)
    if valid.size == 0:
        raise NoCorrespondencesError("No correspondences accepted, cannot estimate motion")

    C1, C2 = orientation_matrices(
        np.asarray(reference_points)[matched[valid]],
        np.asarray(source_points)[valid])
    W = float(valid.size)

    A = 0.5 * (0.5 / W * C2.T @ C2 - C1 - C1.T)

    eigenvalues, eigenvectors = solve_eigenpairs(A)
    real_parts = np.where(np.isfinite(eigenvalues), eigenvalues.real, -np.inf)
    best = int(np.argmax(real_parts))
    if not np.isfinite(real_parts[best]):
        raise NumericalFailureError("No finite eigenvalue in the orientation matrix")

    value = eigenvalues[best]
    if abs(value.imag) > EIGEN_IMAG_TOLERANCE * max(1.0, abs(value.real)):
        raise NumericalFailureError(f"Dominant eigenvalue {value} is not real")
    vector = eigenvectors[:, best]
    if np.max(np.abs(vector.imag)) > EIGEN_IMAG_TOLERANCE:
        raise NumericalFailureError("Dominant eigenvector is not real")

    real = Quaternion.from_array(vector.real).normalized()
    if real.scalar < 0:
        real = real.negated()
    dual = Quaternion.from_array(-0.5 / W * C2 @ real.as_array())
    return DualQuaternion(real, dual)


def apply_transformation(points, transformation):

    R = transformation[:3, :3]
    t = transformation[:3, 3]
    return points @ R.T + t


def apply_transformation_(points, transformation):
    """Transform an (N, 3) float array in place. NaN rows stay NaN."""
    points[...] = apply_transformation(points, transformation)
    return points


def rigid_transform_error(estimated, expected):
    """
    Distance between two rigid transforms.

    Returns:
        Tuple of (translation error, rotation angle error in radians)
    """
    delta = np.linalg.inv(expected) @ estimated
    translation_error = float(np.linalg.norm(delta[:3, 3]))
    cos_angle = np.clip((np.trace(delta[:3, :3]) - 1.0) / 2.0, -1.0, 1.0)
    return translation_error, float(np.arccos(cos_angle))
