"""
Shared fixtures: a satellite optical bar camera over the equator.

The camera sits 180 km above the prime meridian / equator, looks straight
down and moves north. In world (ECEF) coordinates the camera axes are
    X (across scan) -> -Y,  Y (along track) -> +Z,  Z (lens axis) -> -X
"""

import numpy as np
import pytest

from optical_bar.camera import OpticalBarModel
from optical_bar.rotations import Orientation

EARTH_RADIUS = 6371000.0
ALTITUDE = 180000.0

NADIR_NORTH = np.array([
    [0, 0, -1],
    [-1, 0, 0],
    [0, 1, 0],
], dtype=np.float64)


def camera_parameters(**overrides):
    params = dict(
        image_size=(1000, 200),
        image_center=(500.0, 100.0),
        pixel_pitch=7.0e-5,
        focal_length=0.61,
        scan_angle=0.1148,
        scan_rate=1.0,
        forward_tilt=0.0,
        initial_position=(EARTH_RADIUS + ALTITUDE, 0.0, 0.0),
        initial_orientation=Orientation.from_matrix(NADIR_NORTH).as_axis_angle(),
        speed=7800.0,
        mean_earth_radius=EARTH_RADIUS,
        mean_surface_elevation=0.0,
        use_motion_compensation=False,
        scan_left_to_right=True,
    )
    params.update(overrides)
    return params


@pytest.fixture
def make_camera():
    """Factory for cameras with selected parameters overridden."""
    def _make(**overrides):
        return OpticalBarModel(**camera_parameters(**overrides))
    return _make


@pytest.fixture
def camera(make_camera):
    """Nadir-looking camera, no motion compensation or corrections."""
    return make_camera()
