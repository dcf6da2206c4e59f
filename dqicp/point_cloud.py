"""Point cloud data management."""

import numpy as np
import open3d as o3d

from .transforms import apply_transformation, apply_transformation_


class PointCloud:
    """Ordered, index-stable set of 3D points. NaN rows mark invalid points."""

    def __init__(self, points):
        """
        Initialize a point cloud from an array of points.

        Args:
            points: (N, 3) array-like of coordinates
        """
        points = np.array(points, dtype=float)
        if points.size == 0:
            points = points.reshape(0, 3)
        if points.ndim != 2 or points.shape[1] != 3:
            raise ValueError(f"Expected an (N, 3) array of points, got shape {points.shape}")
        self.points = points

    @classmethod
    def from_o3d(cls, o3d_pcd):
        """Initialize from an Open3D PointCloud object."""
        return cls(np.asarray(o3d_pcd.points))

    @classmethod
    def from_file(cls, filepath):
        """Load point cloud from file."""
        pcd = o3d.io.read_point_cloud(str(filepath))
        return cls.from_o3d(pcd)

    @property
    def valid_mask(self):
        """Boolean mask of points with usable (non-NaN) coordinates."""
        return ~np.isnan(self.points).any(axis=1)

    def to_o3d(self, points=None, color=None):
        """
        Convert to Open3D PointCloud object, dropping invalid points.

        Args:
            points: Optional custom points array (default: self.points)
            color: Optional uniform color [r, g, b]

        Returns:
            Open3D PointCloud object
        """
        pts = self.points if points is None else np.asarray(points, dtype=float)
        pts = pts[~np.isnan(pts).any(axis=1)]
        pcd = o3d.geometry.PointCloud()
        pcd.points = o3d.utility.Vector3dVector(pts)
        if color is not None:
            pcd.paint_uniform_color(color)
        return pcd

    def save(self, filepath):
        o3d.io.write_point_cloud(str(filepath), self.to_o3d())

    def copy(self):
        return PointCloud(self.points.copy())

    def apply_transform(self, transformation):
        """Return a transformed copy of the points."""
        return apply_transformation(self.points, transformation)

    def transform_(self, transformation):
        """Transform the points in place."""
        apply_transformation_(self.points, transformation)
        return self

    def __len__(self):
        return len(self.points)
