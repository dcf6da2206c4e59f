"""Iterative Closest Point (ICP) algorithm implementation."""

import os
import pickle
import threading
import time
from enum import Enum

import numpy as np
from joblib import Parallel, delayed, effective_n_jobs

from .errors import InvalidInputError, RegistrationCancelledError, RegistrationError
from .kdtree import KDTree
from .point_cloud import PointCloud
from .rejection import SIGMA_FLOOR, reject_outliers
from .transforms import apply_transformation_, localize
from .utils import report_timings, reset_timings, time_function

MAX_ITER = 40
NOISE_SCALE = 10.0
# Dmax starts at this multiple of the noise scale
INITIAL_THRESHOLD_FACTOR = 20.0
TRANSLATION_TOLERANCE = 0.01
ANGLE_TOLERANCE = 0.01
LEAF_SIZE = 16


class Status(Enum):
    CONVERGED = "converged"
    ITERATION_LIMIT_REACHED = "iteration_limit_reached"
    FAILED = "failed"


class CancellationToken:
    """Thread-safe flag a caller can set to stop a running registration."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self):
        return self._event.is_set()


class RegistrationResult:
    """
    Outcome of a registration call.

    Attributes:
        transformation: 4x4 source-to-reference transform
        residual: Mean squared distance of the correspondences accepted in
                  the last iteration (nan if the call failed)
        status: Status of the call
        iterations: Number of completed iterations
        error: The RegistrationError that failed the call, or None
        history: Per-iteration dictionaries (dt, dth, dmax, matches, ...)
    """

    def __init__(self, transformation, residual, status, iterations, error=None, history=None):
        self.transformation = transformation
        self.residual = residual
        self.status = status
        self.iterations = iterations
        self.error = error
        self.history = history if history is not None else []

    @property
    def succeeded(self):
        return self.status is not Status.FAILED

    def __repr__(self):
        return (f"RegistrationResult(status={self.status.value}, iterations={self.iterations}, "
                f"residual={self.residual:.6g}, error={self.error!r})")


def _as_points(cloud, name):
    if isinstance(cloud, PointCloud):
        cloud = cloud.points
    points = np.asarray(cloud, dtype=float)
    if points.ndim != 2 or points.shape[1] != 3:
        raise InvalidInputError(f"{name} cloud must be an (N, 3) array, got shape {points.shape}")
    if points.shape[0] == 0:
        raise InvalidInputError(f"{name} cloud is empty")
    return points


def _require_floating(array, name):
    if isinstance(array, np.ndarray) and not np.issubdtype(array.dtype, np.floating):
        raise InvalidInputError(
            f"{name} must be a floating-point array to be updated in place, got {array.dtype}")


def _write_back(source, source_points):
    """Copy the transformed points into ``source`` when they were converted from it."""
    if isinstance(source, PointCloud):
        source = source.points
    if isinstance(source, np.ndarray) and source is not source_points:
        source[...] = source_points


@time_function
def find_correspondences(tree, points, n_jobs=1, backend='loky'):
    """
    Nearest reference point for every valid source point.

    The valid indices are split into chunks that are searched in parallel;
    each chunk fills only its own slots. Invalid (NaN) points are never
    queried and keep index -1 with distance 0.

    Returns:
        Tuple of (nearest_i (N,) int64, nearest_d (N,) squared distances)
    """
    n = points.shape[0]
    nearest_i = np.full(n, -1, dtype=np.int64)
    nearest_d = np.zeros(n)

    valid = np.flatnonzero(~np.isnan(points).any(axis=1))
    if valid.size == 0:
        return nearest_i, nearest_d

    n_chunks = min(valid.size, 4 * effective_n_jobs(n_jobs))
    chunks = [chunk for chunk in np.array_split(valid, n_chunks) if chunk.size]
    if len(chunks) == 1 or effective_n_jobs(n_jobs) == 1:
        results = [tree.query(points[chunk]) for chunk in chunks]
    else:
        results = Parallel(n_jobs=n_jobs, backend=backend)(
            delayed(tree.query)(points[chunk]) for chunk in chunks
        )

    for chunk, (indices, distances) in zip(chunks, results):
        nearest_i[chunk] = indices
        nearest_d[chunk] = distances
    return nearest_i, nearest_d


def registration_step(reference, source, prior=None, max_iterations=MAX_ITER,
                      noise_scale=NOISE_SCALE, translation_tolerance=TRANSLATION_TOLERANCE,
                      angle_tolerance=ANGLE_TOLERANCE, sigma_floor=SIGMA_FLOOR,
                      rng=None, seed=None, leaf_size=LEAF_SIZE, n_jobs=1, backend='loky',
                      cancel=None, verbose=False):
    """
    Rigidly align ``source`` onto ``reference``.

    Args:
        reference: (M, 3) reference cloud (array or PointCloud), all finite
        source: (N, 3) source cloud; a floating-point array (or PointCloud)
                is transformed in place, NaN rows are skipped
        prior: Optional 4x4 initial source-to-reference transform; a
               floating-point array is updated in place when the call succeeds
        max_iterations: Iteration cap
        noise_scale: Noise scale D (squared distance units)
        translation_tolerance: Convergence threshold on the translation step
        angle_tolerance: Convergence threshold on the rotation step (radians)
        sigma_floor: Minimum sigma in the threshold update
        rng: numpy.random.Generator for the histogram estimator
        seed: Seed used to create ``rng`` when none is given
        leaf_size: KD-tree leaf size
        n_jobs: joblib workers for the nearest neighbor phase
        backend: joblib backend
        cancel: Optional CancellationToken checked before each iteration
        verbose: Print per-iteration progress

    Returns:
        RegistrationResult
    """
    if max_iterations < 1:
        raise ValueError(f"max_iterations must be positive, got {max_iterations}")
    if rng is None:
        rng = np.random.default_rng(seed)

    trs = np.eye(4)
    history = []
    residual = float('nan')
    iteration = 0
    source_points = None

    try:
        reference_points = _as_points(reference, "reference")
        if not np.all(np.isfinite(reference_points)):
            raise InvalidInputError("reference cloud contains invalid points")
        _require_floating(source, "source cloud")
        source_points = _as_points(source, "source")
        if prior is not None:
            _require_floating(prior, "prior transform")
            trs = np.array(prior, dtype=float)
            if trs.shape != (4, 4):
                raise InvalidInputError(f"prior transform must be 4x4, got shape {trs.shape}")

        # build k-d tree
        tree = KDTree(leaf_size=leaf_size)
        tree.build(reference_points)

        # transform source points according to prior
        apply_transformation_(source_points, trs)

        dmax = INITIAL_THRESHOLD_FACTOR * noise_scale
        status = Status.ITERATION_LIMIT_REACHED

        for iteration in range(max_iterations):
            if cancel is not None and cancel.cancelled:
                raise RegistrationCancelledError(f"Cancelled before iteration {iteration}")

            # find closest points
            nearest_i, nearest_d = find_correspondences(tree, source_points, n_jobs, backend)

            # choose which matches to use
            matched, dmax = reject_outliers(nearest_i, nearest_d, dmax, rng,
                                            noise_scale=noise_scale, sigma_floor=sigma_floor)
            accepted = matched >= 0
            if accepted.any():
                residual = float(np.mean(nearest_d[accepted]))
                max_accepted = float(np.max(nearest_d[accepted]))
            else:
                residual = max_accepted = float('nan')

            # compute motion
            motion = localize(reference_points, source_points, matched)

            # apply to all source points
            motion_matrix = motion.matrix()
            apply_transformation_(source_points, motion_matrix)
            trs = motion_matrix @ trs

            # check stopping criteria
            dt = float(np.linalg.norm(motion.translation()))
            dth = motion.angle()
            history.append({
                'iteration': iteration,
                'dt': dt,
                'dth': dth,
                'dmax': dmax,
                'matches': int(accepted.sum()),
                'residual': residual,
                'max_accepted_distance': max_accepted,
            })

            if verbose:
                print(f"Iter {iteration:3d}: dt={dt:.6f} | dtheta={dth:.6f} | "
                      f"Dmax={dmax:.4f} | matches={int(accepted.sum())}/{len(matched)}")

            if iteration > 0 and dt < translation_tolerance and dth < angle_tolerance:
                status = Status.CONVERGED
                break

        iterations = len(history)
    except RegistrationError as error:
        if verbose:
            print(f"\n✗ Registration failed: {error}")
        return RegistrationResult(trs, float('nan'), Status.FAILED, len(history), error, history)
    finally:
        if source_points is not None:
            _write_back(source, source_points)

    if isinstance(prior, np.ndarray) and prior.shape == (4, 4):
        prior[...] = trs

    if verbose:
        if status is Status.CONVERGED:
            print(f"\n✓ Converged at iteration {iteration}")
        else:
            print(f"\n⚠ Reached iteration limit ({max_iterations}) without converging")

    return RegistrationResult(trs, residual, status, iterations, None, history)


class ICPRegistration:
    """
    Dual-quaternion ICP registration of a source cloud onto a target cloud.
    """

    def __init__(self, source, target):
        """
        Initialize ICP registration.

        Args:
            source: PointCloud object, (N, 3) array or path to source point cloud file
            target: PointCloud object, (M, 3) array or path to target point cloud file
        """
        if isinstance(source, (str, os.PathLike)):
            source = PointCloud.from_file(source)
        elif not isinstance(source, PointCloud):
            source = PointCloud(source)
        if isinstance(target, (str, os.PathLike)):
            target = PointCloud.from_file(target)
        elif not isinstance(target, PointCloud):
            target = PointCloud(target)

        self.source = source
        self.target = target
        self.initial_transform = np.eye(4)

    def register(self, prior=None, profile=False, verbose=False, **kwargs):
        """
        Run ICP registration on a copy of the source points.

        Args:
            prior: Initial 4x4 transform (default: self.initial_transform)
            profile: Print per-stage timings after the run
            verbose: Print progress and a summary
            **kwargs: Forwarded to ``registration_step``

        Returns:
            RegistrationResult
        """
        total_start = time.time()
        prior = self.initial_transform if prior is None else prior
        source = self.source.copy()

        if verbose:
            print(f"\n{'='*70}")
            print("DUAL-QUATERNION ICP")
            print(f"{'='*70}")
            print(f"Source points: {len(self.source):,}")
            print(f"Target points: {len(self.target):,}")

        if profile:
            reset_timings()

        result = registration_step(self.target.points, source,
                                   prior=np.array(prior, dtype=float),
                                   verbose=verbose, **kwargs)

        total_time = time.time() - total_start
        if verbose:
            print(f"\n{'='*70}")
            print("SUMMARY")
            print(f"{'='*70}")
            print(f"Status:          {result.status.value}")
            print(f"Iterations:      {result.iterations}")
            print(f"Residual:        {result.residual:.6f}")
            print(f"Total runtime:   {total_time:.3f}s")
            print(f"{'='*70}\n")
        if profile:
            report_timings()

        return result

    def save_result(self, filepath, result):
        """Save registration results to file."""
        data = {
            'transformation': result.transformation,
            'residual': result.residual,
            'status': result.status.value,
            'iterations': result.iterations,
            'history': result.history,
            'source_points': self.source.points,
            'target_points': self.target.points,
        }

        with open(filepath, 'wb') as f:
            pickle.dump(data, f)
        print(f"Results saved to {filepath}")

    @staticmethod
    def load_result(filepath):
        """Load previously saved registration results."""
        if not os.path.exists(filepath):
            print(f"File {filepath} not found")
            return None

        with open(filepath, 'rb') as f:
            result = pickle.load(f)
        print(f"Results loaded from {filepath}")
        return result
