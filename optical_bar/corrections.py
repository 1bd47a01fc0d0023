"""
Physical corrections applied to camera viewing rays.

Both corrections take a unit ray in the world (geocentric) frame, as cast
from the camera center, and return the corrected unit ray.

Atmospheric refraction:
    Light from the ground bends while crossing the atmosphere, so the
    apparent ray leaves the lens further from nadir than the straight
    line to the ground point. The off-nadir angle is reduced by

        d_alpha = K * tan(alpha)

    with the photogrammetric refraction constant (heights in km)

        K = (2410 H / (H^2 - 6H + 250) - 2410 h / (h^2 - 6h + 250) * h / H) * 1e-6

    where H is the camera height and h the ground height above the
    mean planetary radius.

Velocity aberration:
    The moving camera sees light arriving from a direction tilted towards
    its velocity relative to the target. The ground point moves with the
    rotating Earth, so the relative velocity is the platform velocity minus
    the surface velocity at the point where the ray meets the mean sphere.
    To first order the true direction is ``normalize(ray - v_rel / c)``.
"""

import numpy as np
import logging

from .exceptions import CorrectionError
from .rotations import Orientation

logger = logging.getLogger(__name__)

SPEED_OF_LIGHT = 299792458.0  # m/s
EARTH_ROTATION_RATE = 7.292115e-5  # rad/s (WGS84)


def _unit(vector: np.ndarray, name: str) -> np.ndarray:
    vector = np.asarray(vector, dtype=np.float64).reshape(3)
    norm = np.linalg.norm(vector)
    if not np.isfinite(norm) or norm == 0:
        raise CorrectionError(f"Cannot normalize {name}: {vector}")
    return vector / norm


def refraction_constant(camera_height: float, ground_height: float) -> float:
    """
    Photogrammetric atmospheric refraction constant.

    Args:
        camera_height: Camera height above the mean planetary radius (meters)
        ground_height: Ground height above the mean planetary radius (meters)

    Returns:
        K in radians, so that the angular correction is K * tan(off_nadir)
    """
    H = camera_height / 1000.0
    h = ground_height / 1000.0
    if H <= 0:
        raise CorrectionError(f"Camera height must be positive, got {camera_height} m")

    K = 2410.0 * H / (H ** 2 - 6.0 * H + 250.0)
    K -= 2410.0 * h / (h ** 2 - 6.0 * h + 250.0) * (h / H)
    return K * 1e-6


def apply_atmospheric_refraction_correction(
    camera_center: np.ndarray,
    mean_earth_radius: float,
    mean_surface_elevation: float,
    ray: np.ndarray,
) -> np.ndarray:
    """
    Correct a viewing ray for atmospheric refraction.

    The ray is rotated towards nadir, in the plane containing nadir and
    the ray, by the refraction angle.

    Args:
        camera_center: Camera position in geocentric coordinates (meters)
        mean_earth_radius: Mean planetary radius (meters)
        mean_surface_elevation: Mean ground elevation above that radius (meters)
        ray: Unit viewing ray in geocentric coordinates

    Returns:
        Corrected unit ray

    Raises:
        CorrectionError: If the camera is not above the surface or the ray
            does not point towards the ground
    """
    center = np.asarray(camera_center, dtype=np.float64).reshape(3)
    ray = _unit(ray, "ray")

    radius = np.linalg.norm(center)
    if radius <= mean_earth_radius + mean_surface_elevation:
        raise CorrectionError(
            f"Camera at radius {radius:.3f} m is not above the mean surface "
            f"({mean_earth_radius + mean_surface_elevation:.3f} m)"
        )
    nadir = -center / radius

    axis = np.cross(ray, nadir)
    sin_off = np.linalg.norm(axis)
    cos_off = np.dot(ray, nadir)
    if cos_off <= 0:
        raise CorrectionError("Ray does not point towards the ground")

    # Looking straight down, no bending
    if sin_off < 1e-15:
        return ray

    off_nadir = np.arctan2(sin_off, cos_off)
    K = refraction_constant(radius - mean_earth_radius, mean_surface_elevation)
    delta = K * np.tan(off_nadir)

    # Positive rotation about ray x nadir moves the ray towards nadir
    correction = Orientation.from_axis_angle(axis / sin_off * delta)
    return _unit(correction.rotate(ray), "refracted ray")


def apply_velocity_aberration_correction(
    camera_center: np.ndarray,
    velocity: np.ndarray,
    mean_earth_radius: float,
    ray: np.ndarray,
) -> np.ndarray:
    """
    Correct a viewing ray for velocity aberration.

    Args:
        camera_center: Camera position in geocentric coordinates (meters)
        velocity: Camera velocity in geocentric coordinates (m/s)
        mean_earth_radius: Mean planetary radius (meters)
        ray: Unit viewing ray in geocentric coordinates

    Returns:
        Corrected unit ray

    Raises:
        CorrectionError: If the velocity is not finite or not below the
            speed of light
    """
    center = np.asarray(camera_center, dtype=np.float64).reshape(3)
    velocity = np.asarray(velocity, dtype=np.float64).reshape(3)
    ray = _unit(ray, "ray")

    if not np.all(np.isfinite(velocity)):
        raise CorrectionError(f"Velocity is not finite: {velocity}")
    if np.linalg.norm(velocity) >= SPEED_OF_LIGHT:
        raise CorrectionError("Velocity must be below the speed of light")

    # First intersection of the ray with the mean sphere, or the point of
    # closest approach when the ray misses it
    b = np.dot(ray, center)
    disc = b * b - (np.dot(center, center) - mean_earth_radius ** 2)
    if disc >= 0:
        ground = center + (-b - np.sqrt(disc)) * ray
    else:
        ground = center - b * ray

    surface_velocity = np.cross([0.0, 0.0, EARTH_ROTATION_RATE], ground)
    relative_velocity = velocity - surface_velocity

    return _unit(ray - relative_velocity / SPEED_OF_LIGHT, "aberrated ray")
