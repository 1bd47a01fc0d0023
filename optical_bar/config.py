"""
Configuration module for optical bar camera models.

Handles loading and saving camera, correction and solver settings from
YAML files.
"""

import yaml
from pathlib import Path
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging

from .camera import MEAN_EARTH_RADIUS, OpticalBarModel
from .model_io import read_optical_bar_model
from .solver import SolverSettings

logger = logging.getLogger(__name__)


def _flag(data: Dict[str, Any], key: str, default: bool, config_path: str) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ValueError(
            f"'{key}' in {config_path} must be true or false, got {value!r}"
        )
    return value


@dataclass
class CameraSettings:
    """Optical bar camera parameters."""
    image_size: List[int]  # Image width, height in pixels
    image_center: List[float]  # Principal point in pixels
    pixel_pitch: float  # Meters per pixel
    focal_length: float  # Meters
    scan_angle: float  # Radians
    scan_rate: float  # Radians per second
    forward_tilt: float = 0.0  # Radians
    initial_position: List[float] = field(default_factory=lambda: [0.0, 0.0, 0.0])
    initial_orientation: List[float] = field(default_factory=lambda: [0.0, 0.0, 0.0])  # Axis-angle
    speed: float = 0.0  # Meters per second
    mean_earth_radius: float = MEAN_EARTH_RADIUS
    mean_surface_elevation: float = 0.0
    use_motion_compensation: bool = True
    scan_left_to_right: bool = True


@dataclass
class CorrectionSettings:
    """Physical corrections applied to cast rays."""
    atmospheric_refraction: bool = False
    velocity_aberration: bool = False


@dataclass
class Config:
    """
    Main configuration class for an optical bar camera.

    The camera comes either from inline parameters (``camera``) or from an
    optical bar camera file (``camera_file``).

    Attributes:
        camera: Inline camera parameters
        camera_file: Path to an optical bar camera file
        corrections: Ray corrections to enable
        solver: Stopping criteria for point-to-pixel projection
    """
    camera: Optional[CameraSettings] = None
    camera_file: Optional[str] = None
    corrections: CorrectionSettings = field(default_factory=CorrectionSettings)
    solver: SolverSettings = field(default_factory=SolverSettings)

    @classmethod
    def from_yaml(cls, config_path: str) -> "Config":
        """
        Load configuration from a YAML file.

        Args:
            config_path: Path to the YAML configuration file

        Returns:
            Config object with loaded parameters

        Example YAML structure:
            camera:
              image_size: [1000, 200]
              image_center: [500.0, 100.0]
              pixel_pitch: 7.0e-5
              focal_length: 0.61
              scan_angle: 0.1148
              scan_rate: 1.0
              forward_tilt: 0.0
              initial_position: [6551000.0, 0.0, 0.0]
              initial_orientation: [-1.2092, -1.2092, -1.2092]
              speed: 7800.0
              mean_earth_radius: 6371000.0
              mean_surface_elevation: 0.0
              use_motion_compensation: true
              scan_left_to_right: true
            # or instead of camera:
            # camera_file: "scene.tsai"
            corrections:
              atmospheric_refraction: false
              velocity_aberration: false
            solver:
              abs_tol: 1.0e-16
              rel_tol: 1.0e-16
              max_iterations: 100000
              max_residual: 1.0e-6
        """
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}

        logger.info(f"Loading configuration from {config_path}")

        camera = None
        cam_data = data.get('camera')
        if cam_data is not None:
            try:
                camera = CameraSettings(
                    image_size=[int(v) for v in cam_data['image_size']],
                    image_center=[float(v) for v in cam_data['image_center']],
                    pixel_pitch=float(cam_data['pixel_pitch']),
                    focal_length=float(cam_data['focal_length']),
                    scan_angle=float(cam_data['scan_angle']),
                    scan_rate=float(cam_data['scan_rate']),
                    forward_tilt=float(cam_data.get('forward_tilt', 0.0)),
                    initial_position=[float(v) for v in cam_data.get('initial_position', [0.0, 0.0, 0.0])],
                    initial_orientation=[float(v) for v in cam_data.get('initial_orientation', [0.0, 0.0, 0.0])],
                    speed=float(cam_data.get('speed', 0.0)),
                    mean_earth_radius=float(cam_data.get('mean_earth_radius', MEAN_EARTH_RADIUS)),
                    mean_surface_elevation=float(cam_data.get('mean_surface_elevation', 0.0)),
                    use_motion_compensation=_flag(cam_data, 'use_motion_compensation', True, config_path),
                    scan_left_to_right=_flag(cam_data, 'scan_left_to_right', True, config_path),
                )
            except KeyError as e:
                raise ValueError(f"Missing camera parameter in {config_path}: {e}") from e

        # Resolve camera file relative to config file location
        camera_file = data.get('camera_file')
        if camera_file:
            camera_file = str(path.parent / camera_file)

        if camera is None and camera_file is None:
            raise ValueError(f"{config_path} defines neither 'camera' nor 'camera_file'")

        # Parse corrections (optional)
        corr_data = data.get('corrections', {})
        corrections = CorrectionSettings(
            atmospheric_refraction=_flag(corr_data, 'atmospheric_refraction', False, config_path),
            velocity_aberration=_flag(corr_data, 'velocity_aberration', False, config_path),
        )

        # Parse solver settings (optional)
        solver_data = data.get('solver', {})
        defaults = SolverSettings()
        solver = SolverSettings(
            abs_tol=float(solver_data.get('abs_tol', defaults.abs_tol)),
            rel_tol=float(solver_data.get('rel_tol', defaults.rel_tol)),
            max_iterations=int(solver_data.get('max_iterations', defaults.max_iterations)),
            max_residual=float(solver_data.get('max_residual', defaults.max_residual)),
        )

        return cls(
            camera=camera,
            camera_file=camera_file,
            corrections=corrections,
            solver=solver,
        )

    @classmethod
    def from_model(cls, model: OpticalBarModel, solver: Optional[SolverSettings] = None) -> "Config":
        """Capture the parameters of an existing model."""
        camera = CameraSettings(
            image_size=[int(v) for v in model.image_size],
            image_center=[float(v) for v in model.image_center],
            pixel_pitch=model.pixel_pitch,
            focal_length=model.focal_length,
            scan_angle=model.scan_angle,
            scan_rate=model.scan_rate,
            forward_tilt=model.forward_tilt,
            initial_position=[float(v) for v in model.initial_position],
            initial_orientation=[float(v) for v in model.initial_orientation],
            speed=model.speed,
            mean_earth_radius=model.mean_earth_radius,
            mean_surface_elevation=model.mean_surface_elevation,
            use_motion_compensation=model.use_motion_compensation,
            scan_left_to_right=model.scan_left_to_right,
        )
        corrections = CorrectionSettings(
            atmospheric_refraction=model.correct_atmospheric_refraction,
            velocity_aberration=model.correct_velocity_aberration,
        )
        return cls(camera=camera, corrections=corrections, solver=solver or SolverSettings())

    def build_camera(self) -> OpticalBarModel:
        """
        Create the camera model described by this configuration.

        Inline ``camera`` parameters take precedence over ``camera_file``.
        """
        if self.camera is not None:
            cam = self.camera
            return OpticalBarModel(
                image_size=cam.image_size,
                image_center=cam.image_center,
                pixel_pitch=cam.pixel_pitch,
                focal_length=cam.focal_length,
                scan_angle=cam.scan_angle,
                scan_rate=cam.scan_rate,
                forward_tilt=cam.forward_tilt,
                initial_position=cam.initial_position,
                initial_orientation=cam.initial_orientation,
                speed=cam.speed,
                mean_earth_radius=cam.mean_earth_radius,
                mean_surface_elevation=cam.mean_surface_elevation,
                use_motion_compensation=cam.use_motion_compensation,
                scan_left_to_right=cam.scan_left_to_right,
                correct_atmospheric_refraction=self.corrections.atmospheric_refraction,
                correct_velocity_aberration=self.corrections.velocity_aberration,
            )

        if self.camera_file is None:
            raise ValueError("Configuration has no camera parameters or camera file")

        return read_optical_bar_model(
            self.camera_file,
            correct_atmospheric_refraction=self.corrections.atmospheric_refraction,
            correct_velocity_aberration=self.corrections.velocity_aberration,
        )

    def to_yaml(self, config_path: str) -> None:
        """Save configuration to a YAML file."""
        data: Dict[str, Any] = {}
        if self.camera is not None:
            cam = self.camera
            data['camera'] = {
                'image_size': [int(v) for v in cam.image_size],
                'image_center': [float(v) for v in cam.image_center],
                'pixel_pitch': float(cam.pixel_pitch),
                'focal_length': float(cam.focal_length),
                'scan_angle': float(cam.scan_angle),
                'scan_rate': float(cam.scan_rate),
                'forward_tilt': float(cam.forward_tilt),
                'initial_position': [float(v) for v in cam.initial_position],
                'initial_orientation': [float(v) for v in cam.initial_orientation],
                'speed': float(cam.speed),
                'mean_earth_radius': float(cam.mean_earth_radius),
                'mean_surface_elevation': float(cam.mean_surface_elevation),
                'use_motion_compensation': bool(cam.use_motion_compensation),
                'scan_left_to_right': bool(cam.scan_left_to_right),
            }
        if self.camera_file is not None:
            data['camera_file'] = self.camera_file
        data['corrections'] = {
            'atmospheric_refraction': self.corrections.atmospheric_refraction,
            'velocity_aberration': self.corrections.velocity_aberration,
        }
        data['solver'] = {
            'abs_tol': float(self.solver.abs_tol),
            'rel_tol': float(self.solver.rel_tol),
            'max_iterations': int(self.solver.max_iterations),
            'max_residual': float(self.solver.max_residual),
        }

        with open(config_path, 'w') as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

        logger.info(f"Configuration saved to {config_path}")
