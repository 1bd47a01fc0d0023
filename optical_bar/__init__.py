"""
Optical Bar Camera Package

Geometric model of a panoramic optical bar scanning camera mounted on a
moving platform, for photogrammetric reconstruction. Each image column is
exposed at a different instant, so the camera center moves across the
image.

Operations:
    - Pixel to world ray (forward projection)
    - World point to pixel (inverse projection, Levenberg-Marquardt)
    - Rigid transform of the camera into another world frame
    - Reading and writing optical bar camera files

Conventions:
    - World frame: geocentric (e.g. ECEF), meters
    - Camera frame: X across the scan, Y along track, Z along the lens axis
    - Orientation: camera-to-world rotation, stored as an axis-angle vector
"""

from .exceptions import (
    OpticalBarError,
    InvalidModelError,
    CameraFileError,
    CameraFileIOError,
    CameraFileFormatError,
    CorrectionError,
    PixelToRayError,
    PointToPixelError,
)
from .rotations import Orientation, rotation_x_axis, validate_rotation_matrix
from .corrections import (
    apply_atmospheric_refraction_correction,
    apply_velocity_aberration_correction,
)
from .solver import SolverSettings, SolverResult, CameraGenericObjective, levenberg_marquardt
from .camera import OpticalBarModel
from .model_io import read_optical_bar_model, write_optical_bar_model
from .config import Config, CameraSettings, CorrectionSettings

__version__ = "1.0.0"
__all__ = [
    "OpticalBarError",
    "InvalidModelError",
    "CameraFileError",
    "CameraFileIOError",
    "CameraFileFormatError",
    "CorrectionError",
    "PixelToRayError",
    "PointToPixelError",
    "Orientation",
    "rotation_x_axis",
    "validate_rotation_matrix",
    "apply_atmospheric_refraction_correction",
    "apply_velocity_aberration_correction",
    "SolverSettings",
    "SolverResult",
    "CameraGenericObjective",
    "levenberg_marquardt",
    "OpticalBarModel",
    "read_optical_bar_model",
    "write_optical_bar_model",
    "Config",
    "CameraSettings",
    "CorrectionSettings",
]
