"""KD-Tree implementation for efficient spatial partitioning and nearest neighbor search."""

import numpy as np

from .errors import InvalidInputError
from .utils import time_function


class Node:
    """Split node (point and index set) or leaf (indices set)."""

    def __init__(self, axis, point=None, index=None, indices=None):
        self.axis = axis
        self.point = point
        self.index = index
        self.indices = indices
        self.left = None
        self.right = None


class KDTree:
    """
    Median-split k-d tree over a fixed reference cloud.

    The tree is read-only once built, so ``nearest`` and ``query`` may be
    called concurrently.
    """

    def __init__(self, leaf_size=16, dimension=3):
        self.root = None
        self.points = None
        self.leaf_size = max(1, int(leaf_size))
        self.dimension = dimension

    @time_function
    def build(self, points):
        points = np.asarray(points, dtype=float)
        if points.ndim != 2 or points.shape[1] != self.dimension:
            raise InvalidInputError(
                f"Expected an (N, {self.dimension}) array, got shape {points.shape}")
        if points.shape[0] == 0:
            raise InvalidInputError("Cannot build a KD-tree over an empty cloud")

        self.points = points
        self.root = self._build(np.arange(points.shape[0], dtype=np.int64), depth=0)
        return self.root

    def _build(self, indices, depth):
        n_points = indices.shape[0]

        # No points
        if n_points == 0:
            return None

        # Leaf: store the indices to avoid creating millions of nodes
        if n_points <= self.leaf_size:
            return Node(depth % self.dimension, indices=indices)

        # Choose splitting axis
        axis = depth % self.dimension

        # Partition this segment of indices in-place around the median
        median_index = n_points // 2
        order = np.argpartition(self.points[indices, axis], median_index)
        indices[:] = indices[order]

        median_point_index = indices[median_index]

        node = Node(axis, self.points[median_point_index], int(median_point_index))

        # Build subtrees using views (no copies) into the shared indices array
        node.left = self._build(indices[:median_index], depth + 1)
        node.right = self._build(indices[median_index + 1:], depth + 1)
        return node

    def nearest(self, point):
        """Return (index, squared_distance) of the closest reference point."""
        if self.root is None:
            raise InvalidInputError("KD-tree has not been built")
        return nearest_neighbor_search(np.asarray(point, dtype=float), self.root, self.points)

    def query(self, points):
        """
        Nearest neighbor for each row of ``points``.

        Returns:
            Tuple of (indices int64 array, squared distances float array)
        """
        points = np.asarray(points, dtype=float)
        indices = np.empty(points.shape[0], dtype=np.int64)
        distances = np.empty(points.shape[0])
        for i, point in enumerate(points):
            indices[i], distances[i] = self.nearest(point)
        return indices, distances


def nearest_neighbor_search(query_point, root, points_array):
    """
    Iterative nearest neighbor search in KD-tree.

    Args:
        query_point: Point to find the nearest neighbor for (must not be NaN)
        root: Root node of the KD-tree
        points_array: Numpy array of the points the tree was built over

    Returns:
        Tuple of (index into points_array, squared distance)
    """
    stack = [root]
    best = (-1, np.inf)

    while stack:
        node = stack.pop()
        if node is None:
            continue

        # Leaf node: check all points in the leaf
        if node.indices is not None:
            diff = points_array[node.indices] - query_point
            dists = np.einsum('ij,ij->i', diff, diff)
            idx = np.argmin(dists)
            if dists[idx] < best[1]:
                best = (int(node.indices[idx]), float(dists[idx]))
            continue

        # Internal node: check node point
        diff = node.point - query_point
        dist = float(diff @ diff)
        if dist < best[1]:
            best = (node.index, dist)

        # Traverse tree, near side popped first
        axis = node.axis
        offset = query_point[axis] - node.point[axis]
        if offset < 0:
            near_node, far_node = node.left, node.right
        else:
            near_node, far_node = node.right, node.left

        if offset * offset < best[1]:
            stack.append(far_node)
        stack.append(near_node)

    return best
