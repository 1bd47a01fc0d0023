"""
Tests for atmospheric refraction and velocity aberration corrections.
"""

import pytest
import numpy as np
from numpy.testing import assert_allclose

from optical_bar.corrections import (
    EARTH_ROTATION_RATE,
    SPEED_OF_LIGHT,
    apply_atmospheric_refraction_correction,
    apply_velocity_aberration_correction,
    refraction_constant,
)
from optical_bar.exceptions import CorrectionError

EARTH_RADIUS = 6371000.0
CAMERA = np.array([EARTH_RADIUS + 180000.0, 0.0, 0.0])
NADIR = np.array([-1.0, 0.0, 0.0])


def off_nadir_ray(angle):
    return np.array([-np.cos(angle), np.sin(angle), 0.0])


class TestRefractionConstant:
    """Tests for the refraction constant."""

    def test_aircraft_height(self):
        """At 3 km over sea level, K = 2410 * 3 / 241 microradians."""
        assert refraction_constant(3000.0, 0.0) == pytest.approx(30e-6)

    def test_ground_height_reduces_refraction(self):
        assert refraction_constant(3000.0, 1000.0) < refraction_constant(3000.0, 0.0)

    def test_non_positive_height(self):
        with pytest.raises(CorrectionError):
            refraction_constant(0.0, 0.0)


class TestAtmosphericRefraction:
    """Tests for the refraction correction of rays."""

    def test_nadir_ray_unchanged(self):
        result = apply_atmospheric_refraction_correction(CAMERA, EARTH_RADIUS, 0.0, NADIR)
        assert_allclose(result, NADIR)

    def test_off_nadir_angle_reduced(self):
        angle = 0.5
        result = apply_atmospheric_refraction_correction(
            CAMERA, EARTH_RADIUS, 0.0, off_nadir_ray(angle)
        )
        K = refraction_constant(180000.0, 0.0)
        new_angle = np.arctan2(np.linalg.norm(np.cross(result, NADIR)), np.dot(result, NADIR))

        assert new_angle == pytest.approx(angle - K * np.tan(angle), abs=1e-12)
        assert np.linalg.norm(result) == pytest.approx(1.0)

    def test_stays_in_vertical_plane(self):
        result = apply_atmospheric_refraction_correction(
            CAMERA, EARTH_RADIUS, 0.0, off_nadir_ray(0.3)
        )
        assert result[2] == pytest.approx(0.0, abs=1e-15)
        assert result[1] > 0

    def test_upward_ray(self):
        with pytest.raises(CorrectionError):
            apply_atmospheric_refraction_correction(CAMERA, EARTH_RADIUS, 0.0, -NADIR)

    def test_camera_below_surface(self):
        with pytest.raises(CorrectionError):
            apply_atmospheric_refraction_correction(
                CAMERA, EARTH_RADIUS, 200000.0, NADIR
            )

    def test_zero_ray(self):
        with pytest.raises(CorrectionError):
            apply_atmospheric_refraction_correction(CAMERA, EARTH_RADIUS, 0.0, np.zeros(3))


class TestVelocityAberration:
    """Tests for the velocity aberration correction of rays."""

    def test_moving_with_ground(self):
        """No relative motion, no aberration."""
        surface_velocity = np.array([0.0, EARTH_ROTATION_RATE * EARTH_RADIUS, 0.0])
        result = apply_velocity_aberration_correction(CAMERA, surface_velocity, EARTH_RADIUS, NADIR)
        assert_allclose(result, NADIR, atol=1e-15)

    def test_tilted_against_velocity(self):
        velocity = np.array([0.0, 0.0, 7800.0])
        result = apply_velocity_aberration_correction(CAMERA, velocity, EARTH_RADIUS, NADIR)

        assert np.linalg.norm(result) == pytest.approx(1.0)
        assert result[2] == pytest.approx(-7800.0 / SPEED_OF_LIGHT, rel=1e-6)
        assert result[1] == pytest.approx(EARTH_ROTATION_RATE * EARTH_RADIUS / SPEED_OF_LIGHT, rel=1e-6)

    def test_ray_missing_the_earth(self):
        """Rays that miss the sphere still get corrected."""
        ray = np.array([0.0, 1.0, 0.0])
        result = apply_velocity_aberration_correction(CAMERA, [0.0, 0.0, 7800.0], EARTH_RADIUS, ray)
        assert np.linalg.norm(result) == pytest.approx(1.0)
        assert result[2] < 0

    def test_faster_than_light(self):
        with pytest.raises(CorrectionError):
            apply_velocity_aberration_correction(
                CAMERA, [0.0, 0.0, 2 * SPEED_OF_LIGHT], EARTH_RADIUS, NADIR
            )

    def test_non_finite_velocity(self):
        with pytest.raises(CorrectionError):
            apply_velocity_aberration_correction(CAMERA, [np.nan, 0.0, 0.0], EARTH_RADIUS, NADIR)
