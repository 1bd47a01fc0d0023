"""
Optical bar (panoramic scanning) camera model.

An optical bar camera sweeps a lens across the film at a constant angular
rate, so each image column is exposed at a different instant while the
platform keeps moving. The model maps pixels to world rays and back.

Coordinate System:
    - Camera frame: X across the scan, Y along track (platform forward),
      Z along the lens axis (looking along +Z)
    - World frame: geocentric (e.g. ECEF), meters
    - Image frame: column x, row y (origin at top-left corner)

Projection Model:
    1. Sensor plane: s = (pixel - image_center) * pitch
    2. Scan angle:   alpha = s_x / f
    3. Camera ray:   r = (f sin(alpha), s_y + imc, f cos(alpha)), normalized
       where imc is the image motion compensation shift of the film
    4. World ray:    R @ r, optionally corrected for atmospheric refraction
       and velocity aberration

Kinematics:
    The platform moves at constant velocity during a scan and its attitude
    is constant, so the camera center at column x is

        C(x) = C0 + t(x) * v,   t(x) = fraction(x) * scan_angle / scan_rate
"""

import copy
import numpy as np
from typing import Optional, Tuple, Union
import logging

from .corrections import (
    apply_atmospheric_refraction_correction,
    apply_velocity_aberration_correction,
)
from .exceptions import InvalidModelError, PixelToRayError, PointToPixelError
from .rotations import Orientation, rotation_x_axis
from .solver import CameraGenericObjective, SolverSettings, levenberg_marquardt

logger = logging.getLogger(__name__)

MEAN_EARTH_RADIUS = 6371000.0  # meters


def _vector(value, size: int, name: str) -> np.ndarray:
    try:
        vec = np.array(value, dtype=np.float64).reshape(size)
    except (TypeError, ValueError) as e:
        raise InvalidModelError(f"{name} must be a {size}-vector, got {value!r}") from e
    if not np.all(np.isfinite(vec)):
        raise InvalidModelError(f"{name} must be finite, got {vec}")
    return vec


class OpticalBarModel:
    """
    Geometric model of a panoramic optical bar camera on a moving platform.

    The extrinsic state describes the camera at the start of the scan:
    its position, its orientation (stored as an axis-angle vector) and
    the platform speed along the camera's forward (+Y) axis.

    Only ``apply_rigid_transform`` and the ``set_camera_*`` accessors
    change a model after construction; sharing an instance between
    threads that use them needs external locking.
    """

    def __init__(
        self,
        image_size: Tuple[int, int],
        image_center: Tuple[float, float],
        pixel_pitch: float,
        focal_length: float,
        scan_angle: float,
        scan_rate: float,
        forward_tilt: float = 0.0,
        initial_position=(0.0, 0.0, 0.0),
        initial_orientation=(0.0, 0.0, 0.0),
        speed: float = 0.0,
        mean_earth_radius: float = MEAN_EARTH_RADIUS,
        mean_surface_elevation: float = 0.0,
        use_motion_compensation: bool = True,
        scan_left_to_right: bool = True,
        correct_atmospheric_refraction: bool = False,
        correct_velocity_aberration: bool = False,
    ):
        """
        Initialize the camera model.

        Args:
            image_size: Image (width, height) in pixels
            image_center: Principal point (x, y) in pixels
            pixel_pitch: Pixel size on the film in meters
            focal_length: Focal length in meters
            scan_angle: Total scan angle in radians
            scan_rate: Scan angular rate in radians per second
            forward_tilt: Camera tilt relative to the velocity in radians
            initial_position: Camera center at scan start (world frame)
            initial_orientation: Camera-to-world rotation as an axis-angle vector
            speed: Platform speed in meters per second
            mean_earth_radius: Mean planetary radius in meters
            mean_surface_elevation: Mean ground elevation above that radius
            use_motion_compensation: Model the film shift compensating motion
            scan_left_to_right: Scan direction across the image columns
            correct_atmospheric_refraction: Apply refraction to cast rays
            correct_velocity_aberration: Apply velocity aberration to cast rays
        """
        try:
            width, height = (int(v) for v in image_size)
        except (TypeError, ValueError) as e:
            raise InvalidModelError(f"image_size must be two integers, got {image_size!r}") from e
        self.image_size = np.array([width, height], dtype=np.int64)
        self.image_center = _vector(image_center, 2, "image_center")
        self.pixel_pitch = float(pixel_pitch)
        self.focal_length = float(focal_length)

        self.scan_angle = float(scan_angle)
        self.scan_rate = float(scan_rate)
        self.forward_tilt = float(forward_tilt)
        self.scan_left_to_right = bool(scan_left_to_right)

        self._initial_position = _vector(initial_position, 3, "initial_position")
        self._initial_orientation = _vector(initial_orientation, 3, "initial_orientation")
        self._orientation = Orientation.from_axis_angle(self._initial_orientation)
        self.speed = float(speed)

        self.mean_earth_radius = float(mean_earth_radius)
        self.mean_surface_elevation = float(mean_surface_elevation)

        self.use_motion_compensation = bool(use_motion_compensation)
        self.correct_atmospheric_refraction = bool(correct_atmospheric_refraction)
        self.correct_velocity_aberration = bool(correct_velocity_aberration)

        self._validate()

        logger.debug(f"Optical bar model initialized: size={self.image_size}, f={self.focal_length}")
        logger.debug(f"Scan: angle={self.scan_angle} rad, rate={self.scan_rate} rad/s, "
                     f"left_to_right={self.scan_left_to_right}")

    def _validate(self) -> None:
        width, height = self.image_size
        if width < 2 or height < 1:
            raise InvalidModelError(
                f"Image must be at least 2x1 pixels, got {width}x{height}"
            )
        if not self.pixel_pitch > 0:
            raise InvalidModelError(f"Pixel pitch must be positive, got {self.pixel_pitch}")
        if not self.focal_length > 0:
            raise InvalidModelError(f"Focal length must be positive, got {self.focal_length}")
        if not self.scan_rate > 0:
            raise InvalidModelError(f"Scan rate must be positive, got {self.scan_rate}")

        scalars = {
            "scan_angle": self.scan_angle,
            "forward_tilt": self.forward_tilt,
            "speed": self.speed,
            "mean_earth_radius": self.mean_earth_radius,
            "mean_surface_elevation": self.mean_surface_elevation,
        }
        for name, value in scalars.items():
            if not np.isfinite(value):
                raise InvalidModelError(f"{name} must be finite, got {value}")

    # ------------------------------------------------------------------
    # Extrinsic state
    # ------------------------------------------------------------------

    @property
    def initial_position(self) -> np.ndarray:
        return self._initial_position.copy()

    @property
    def initial_orientation(self) -> np.ndarray:
        """Scan-start orientation as an axis-angle vector."""
        return self._initial_orientation.copy()

    def set_camera_center(self, position) -> None:
        self._initial_position = _vector(position, 3, "position")

    def set_camera_pose(self, pose: Union[Orientation, np.ndarray]) -> None:
        """Set the scan-start orientation from an Orientation or axis-angle vector."""
        if isinstance(pose, Orientation):
            self._orientation = pose
            self._initial_orientation = pose.as_axis_angle()
        else:
            self._initial_orientation = _vector(pose, 3, "orientation")
            self._orientation = Orientation.from_axis_angle(self._initial_orientation)

    # ------------------------------------------------------------------
    # Kinematics
    # ------------------------------------------------------------------

    @property
    def scan_duration(self) -> float:
        """Time in seconds for one complete scan."""
        return self.scan_angle / self.scan_rate

    def sensor_plane_projection(self, pixel) -> np.ndarray:
        """Offset of a pixel from the principal point on the film, in meters."""
        pixel = np.asarray(pixel, dtype=np.float64).reshape(2)
        return (pixel - self.image_center) * self.pixel_pitch

    def scan_time_offset(self, pixel) -> float:
        """
        Time elapsed since scan start when a pixel was exposed.

        The bar sweeps the columns at a constant angular rate and a whole
        column is exposed at once, so only the column matters.

        Args:
            pixel: Pixel (x, y)

        Returns:
            Time offset in seconds, 0 at the first scanned column
        """
        x = float(np.asarray(pixel, dtype=np.float64).reshape(2)[0])
        max_col = self.image_size[0] - 1
        if self.scan_left_to_right:
            scan_fraction = x / max_col
        else:
            scan_fraction = (max_col - x) / max_col
        return scan_fraction * self.scan_duration

    def instantaneous_velocity(self, pixel=None) -> np.ndarray:
        """
        Platform velocity in world coordinates.

        The speed is along the camera's +Y axis once the forward tilt of
        the camera relative to the velocity has been removed.
        """
        sensor_velocity = rotation_x_axis(-self.forward_tilt) @ np.array([0.0, self.speed, 0.0])
        return self.orientation(pixel).rotate(sensor_velocity)

    def instantaneous_position(self, pixel) -> np.ndarray:
        """Camera center when the pixel was exposed (constant velocity)."""
        dt = self.scan_time_offset(pixel)
        return self._initial_position + dt * self.instantaneous_velocity(pixel)

    def orientation(self, pixel=None) -> Orientation:
        """Camera-to-world orientation; constant for the whole scan."""
        return self._orientation

    def camera_center(self, pixel=None) -> np.ndarray:
        """Camera center for a pixel, or the scan-start position without one."""
        if pixel is None:
            return self.initial_position
        return self.instantaneous_position(pixel)

    def camera_pose(self, pixel=None) -> Orientation:
        return self.orientation(pixel)

    # ------------------------------------------------------------------
    # Forward projection
    # ------------------------------------------------------------------

    def motion_compensation(self, pixel) -> float:
        """
        Along-track film shift at a pixel.

        The film was translated under the lens during the scan to cancel
        the image motion caused by the platform moving over the ground.

        Args:
            pixel: Pixel (x, y)

        Returns:
            Shift on the film in meters (0 if compensation is disabled)
        """
        if not self.use_motion_compensation:
            return 0.0

        alpha = self.sensor_plane_projection(pixel)[0] / self.focal_length
        height = np.linalg.norm(self.camera_center(pixel)) - (
            self.mean_surface_elevation + self.mean_earth_radius
        )
        if height <= 0:
            raise PixelToRayError(
                f"Camera is not above the mean surface (height {height:.3f} m)"
            )

        shift = (self.focal_length * self.speed / (height * self.scan_rate)) * np.sin(alpha)
        if not self.scan_left_to_right:
            shift = -shift
        return shift

    def pixel_to_ray_uncorrected(self, pixel) -> np.ndarray:
        """Unit world ray through a pixel, before physical corrections."""
        sensor_pos = self.sensor_plane_projection(pixel)
        alpha = sensor_pos[0] / self.focal_length

        r = np.array([
            self.focal_length * np.sin(alpha),
            sensor_pos[1] + self.motion_compensation(pixel),
            self.focal_length * np.cos(alpha),
        ])
        r /= np.linalg.norm(r)

        return self.orientation(pixel).rotate(r)

    def pixel_to_ray(self, pixel) -> np.ndarray:
        """
        Cast the unit viewing ray through a pixel.

        Args:
            pixel: Pixel (x, y), nominally within [0, width) x [0, height)

        Returns:
            Unit ray in world coordinates

        Raises:
            PixelToRayError: If any stage of the projection fails
        """
        try:
            ray = self.pixel_to_ray_uncorrected(pixel)

            if self.correct_atmospheric_refraction or self.correct_velocity_aberration:
                center = self.camera_center(pixel)

            if self.correct_atmospheric_refraction:
                ray = apply_atmospheric_refraction_correction(
                    center, self.mean_earth_radius, self.mean_surface_elevation, ray
                )

            if self.correct_velocity_aberration:
                ray = apply_velocity_aberration_correction(
                    center, self.instantaneous_velocity(pixel), self.mean_earth_radius, ray
                )
        except (ValueError, ArithmeticError) as e:
            raise PixelToRayError(f"Cannot cast a ray through pixel {pixel}: {e}") from e

        return ray

    # ------------------------------------------------------------------
    # Inverse projection
    # ------------------------------------------------------------------

    def point_to_pixel(self, point, settings: Optional[SolverSettings] = None) -> np.ndarray:
        """
        Find the pixel whose ray passes through a world point.

        The forward model has no closed-form inverse, so the pixel is
        solved for with Levenberg-Marquardt starting at the image center.

        Args:
            point: 3D point in world coordinates
            settings: Solver stopping criteria (defaults to SolverSettings())

        Returns:
            Pixel (x, y); it may fall outside the image bounds

        Raises:
            PointToPixelError: If the solver fails or the point is not
                visible to the camera
        """
        settings = settings or SolverSettings()
        point = np.asarray(point, dtype=np.float64).reshape(3)

        objective = CameraGenericObjective(self, point)
        start = self.image_size / 2.0

        try:
            result = levenberg_marquardt(
                objective,
                start,
                np.zeros(3),
                abs_tol=settings.abs_tol,
                rel_tol=settings.rel_tol,
                max_iterations=settings.max_iterations,
            )
        except (PixelToRayError, ValueError) as e:
            raise PointToPixelError(
                f"Unable to project point {point} into the optical bar model: {e}"
            ) from e

        if not result.success:
            raise PointToPixelError(
                f"Unable to project point {point} into the optical bar model "
                f"(solver status {result.status}: {result.message})"
            )

        if result.residual_norm > settings.max_residual:
            raise PointToPixelError(
                f"Point {point} is not visible to the optical bar model "
                f"(residual {result.residual_norm:.3e})"
            )

        alpha = self.sensor_plane_projection(result.solution)[0] / self.focal_length
        if abs(alpha) >= np.pi / 2:
            raise PointToPixelError(f"Point {point} is behind the optical bar")

        logger.debug(f"Point {point} -> pixel {result.solution} in {result.evaluations} evaluations")
        return result.solution

    # ------------------------------------------------------------------
    # Rigid transform
    # ------------------------------------------------------------------

    def apply_rigid_transform(
        self,
        rotation: Union[Orientation, np.ndarray],
        translation,
        scale: float = 1.0,
    ) -> None:
        """
        Move the camera into another world frame.

        position' = scale * R @ position + translation
        orientation' = R * orientation

        Args:
            rotation: 3x3 rotation matrix or Orientation
            translation: Translation vector
            scale: Scale factor applied to the position
        """
        if isinstance(rotation, Orientation):
            rot = rotation
            R = rotation.as_matrix()
        else:
            R = np.asarray(rotation, dtype=np.float64)
            try:
                rot = Orientation.from_matrix(R, tol=1e-6)
            except ValueError as e:
                raise InvalidModelError(f"Invalid transform rotation: {e}") from e
        translation = _vector(translation, 3, "translation")

        position = scale * R @ self.camera_center() + translation
        pose = rot * self.camera_pose()

        self.set_camera_center(position)
        self.set_camera_pose(pose)

    apply_transform = apply_rigid_transform

    # ------------------------------------------------------------------
    # Persistence and value semantics
    # ------------------------------------------------------------------

    @classmethod
    def read(
        cls,
        filename: str,
        correct_atmospheric_refraction: bool = False,
        correct_velocity_aberration: bool = False,
    ) -> "OpticalBarModel":
        """Load a model from an optical bar camera file."""
        from .model_io import read_optical_bar_model

        return read_optical_bar_model(
            filename,
            correct_atmospheric_refraction=correct_atmospheric_refraction,
            correct_velocity_aberration=correct_velocity_aberration,
        )

    def write(self, filename: str) -> None:
        """Save the model to an optical bar camera file."""
        from .model_io import write_optical_bar_model

        write_optical_bar_model(self, filename)

    def copy(self) -> "OpticalBarModel":
        return copy.deepcopy(self)

    def __eq__(self, other) -> bool:
        if not isinstance(other, OpticalBarModel):
            return NotImplemented
        return (
            np.array_equal(self.image_size, other.image_size)
            and np.array_equal(self.image_center, other.image_center)
            and self.pixel_pitch == other.pixel_pitch
            and self.focal_length == other.focal_length
            and self.scan_angle == other.scan_angle
            and self.scan_rate == other.scan_rate
            and self.forward_tilt == other.forward_tilt
            and self.scan_left_to_right == other.scan_left_to_right
            and np.array_equal(self._initial_position, other._initial_position)
            and np.array_equal(self._initial_orientation, other._initial_orientation)
            and self.speed == other.speed
            and self.mean_earth_radius == other.mean_earth_radius
            and self.mean_surface_elevation == other.mean_surface_elevation
            and self.use_motion_compensation == other.use_motion_compensation
            and self.correct_atmospheric_refraction == other.correct_atmospheric_refraction
            and self.correct_velocity_aberration == other.correct_velocity_aberration
        )

    __hash__ = None

    def __str__(self) -> str:
        lines = [
            "",
            "------------------------ Optical Bar Model -----------------------",
            "",
            f" Image size :            {self.image_size.tolist()}",
            f" Center loc (pixels):    {self.image_center.tolist()}",
            f" Pixel size (m) :        {self.pixel_pitch}",
            f" Focal length (m) :      {self.focal_length}",
            f" Scan angle (rad):       {self.scan_angle}",
            f" Scan rate (rad/s):      {self.scan_rate}",
            f" Forward tilt (rad):     {self.forward_tilt}",
            f" Initial position:       {self._initial_position.tolist()}",
            f" Initial pose:           {self._initial_orientation.tolist()}",
            f" Speed:                  {self.speed}",
            f" Mean earth radius:      {self.mean_earth_radius}",
            f" Mean surface elevation: {self.mean_surface_elevation}",
            f" Use motion comp:        {self.use_motion_compensation}",
            f" Left to right scan:     {self.scan_left_to_right}",
            f" Refraction correction:  {self.correct_atmospheric_refraction}",
            f" Aberration correction:  {self.correct_velocity_aberration}",
            "",
            "------------------------------------------------------------------",
            "",
        ]
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"OpticalBarModel(image_size={self.image_size.tolist()}, "
            f"focal_length={self.focal_length}, pixel_pitch={self.pixel_pitch}, "
            f"scan_left_to_right={self.scan_left_to_right})"
        )
