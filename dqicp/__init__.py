"""
dqicp - Robust rigid point set registration with dual-quaternion ICP

- Median-split KD-Tree for nearest neighbor search
- Adaptive sigma-editing and histogram-valley outlier rejection
- Closed-form absolute orientation via dual quaternions
- Parallel correspondence search
"""

from .errors import (InvalidInputError, NoCorrespondencesError, NumericalFailureError,
                     RegistrationCancelledError, RegistrationError)
from .icp import CancellationToken, ICPRegistration, RegistrationResult, Status, registration_step
from .kdtree import KDTree
from .point_cloud import PointCloud
from .quaternion import DualQuaternion, Quaternion
from .rejection import choose_xi, reject_outliers
from .transforms import localize

__version__ = "1.0.0"
__all__ = ["CancellationToken", "DualQuaternion", "ICPRegistration", "InvalidInputError",
           "KDTree", "NoCorrespondencesError", "NumericalFailureError", "PointCloud",
           "Quaternion", "RegistrationCancelledError", "RegistrationError",
           "RegistrationResult", "Status", "choose_xi", "localize", "registration_step",
           "reject_outliers"]
