"""
Optical bar camera file reader and writer.

Camera File Format (ASCII, one field per line, fixed order):
    VERSION_4
    OPTICAL_BAR
    image_size = <int> <int>
    image_center = <float> <float>
    pitch = <float>
    f = <float>
    scan_angle = <float>
    scan_rate = <float>
    forward_tilt = <float>
    iC = <float> <float> <float>
    iR = <float> x 9          (row-major rotation matrix, camera to world)
    speed = <float>
    mean_earth_radius = <float>
    mean_surface_elevation = <float>
    use_motion_compensation = <int>
    scan_dir = <left|right>

    Files older than version 4 are rejected. ``scan_dir = left`` means the
    bar scans from right to left; any other value, or a missing or blank
    ``scan_dir`` line, means ``right``. ``iR`` only has to be a rotation
    to within ROTATION_READ_TOLERANCE.

Each layout is an ordered list of ``FieldSpec`` entries; the same list
drives parsing and writing, so the two cannot drift apart. New format
versions register their own list in ``FIELDS_BY_VERSION``.
"""

import re
import numpy as np
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence
from dataclasses import dataclass
import logging

from .camera import OpticalBarModel
from .exceptions import CameraFileFormatError, CameraFileIOError, InvalidModelError
from .rotations import Orientation

logger = logging.getLogger(__name__)

CAMERA_TYPE = "OPTICAL_BAR"
MIN_SUPPORTED_VERSION = 4
CURRENT_VERSION = 4

# Digits needed for a double to survive a text round trip
ACCURATE_DIGITS = 17

# Older writers print iR with as few as 6 decimals
ROTATION_READ_TOLERANCE = 1e-3

_VERSION_PATTERN = re.compile(r"^VERSION_(\d+)$")
_FIELD_PATTERN = re.compile(r"^(\w+)\s*=\s*(.*)$")

_REQUIRED = object()


def _scan_direction(token: str) -> str:
    # Anything but "left" scans left to right
    if token == "left":
        return "left"
    if token != "right":
        logger.warning(f"Unknown scan direction {token!r}, using 'right'")
    return "right"


@dataclass(frozen=True)
class FieldSpec:
    """One labeled line of a camera file."""
    label: str
    count: int
    convert: Callable[[str], Any]
    description: str
    default: Any = _REQUIRED

    @property
    def required(self) -> bool:
        return self.default is _REQUIRED

    def parse(self, line: str, filename: str):
        """
        Parse a ``label = v1 v2 ...`` line.

        Returns:
            A single value when count is 1, otherwise a list of values
        """
        match = _FIELD_PATTERN.match(line.strip())
        if not match or match.group(1) != self.label:
            raise CameraFileFormatError(
                f"{filename}: could not read the {self.description}, "
                f"expected '{self.label} = ...' but got {line!r}"
            )

        tokens = match.group(2).split()
        if len(tokens) != self.count:
            raise CameraFileFormatError(
                f"{filename}: could not read the {self.description}, "
                f"expected {self.count} value(s) but got {len(tokens)}"
            )

        try:
            values = [self.convert(token) for token in tokens]
        except ValueError as e:
            raise CameraFileFormatError(
                f"{filename}: could not read the {self.description}: {e}"
            ) from e

        return values[0] if self.count == 1 else values

    def format(self, value) -> str:
        values = value if self.count > 1 else [value]
        if self.convert is float:
            tokens = [f"{float(v):.{ACCURATE_DIGITS}g}" for v in values]
        else:
            tokens = [str(v) for v in values]
        return f"{self.label} = {' '.join(tokens)}"


FIELDS_V4 = (
    FieldSpec("image_size", 2, int, "image size"),
    FieldSpec("image_center", 2, float, "image center"),
    FieldSpec("pitch", 1, float, "pixel pitch"),
    FieldSpec("f", 1, float, "focal length"),
    FieldSpec("scan_angle", 1, float, "scan angle"),
    FieldSpec("scan_rate", 1, float, "scan rate"),
    FieldSpec("forward_tilt", 1, float, "forward tilt angle"),
    FieldSpec("iC", 3, float, "initial position"),
    FieldSpec("iR", 9, float, "rotation matrix"),
    FieldSpec("speed", 1, float, "speed"),
    FieldSpec("mean_earth_radius", 1, float, "mean earth radius"),
    FieldSpec("mean_surface_elevation", 1, float, "mean surface elevation"),
    FieldSpec("use_motion_compensation", 1, int, "motion compensation flag"),
    FieldSpec("scan_dir", 1, _scan_direction, "scan direction", default="right"),
)

FIELDS_BY_VERSION: Dict[int, Sequence[FieldSpec]] = {
    4: FIELDS_V4,
}


def fields_for_version(version: int) -> Sequence[FieldSpec]:
    """
    Field layout for a file version.

    Versions newer than the last registered layout use that layout.

    Raises:
        CameraFileFormatError: If the version predates MIN_SUPPORTED_VERSION
    """
    if version < MIN_SUPPORTED_VERSION:
        raise CameraFileFormatError(
            f"Camera file version {version} is not supported "
            f"(versions prior to {MIN_SUPPORTED_VERSION} are not supported)"
        )
    known = max(v for v in FIELDS_BY_VERSION if v <= version)
    return FIELDS_BY_VERSION[known]


class OrderedFieldParser:
    """
    Applies a sequence of field specs to consecutive lines.

    Parsing stops at the first malformed line. Running out of lines is an
    I/O error unless the field has a default; a field with a default also
    takes it from a blank line.
    """

    def __init__(self, fields: Sequence[FieldSpec], filename: str = "<camera file>"):
        self.fields = fields
        self.filename = filename

    def parse(self, lines: Iterator[str]) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        for spec in self.fields:
            line = next(lines, None)
            if line is not None and (spec.required or line.strip()):
                values[spec.label] = spec.parse(line, self.filename)
                continue

            if spec.required:
                raise CameraFileIOError(
                    f"{self.filename}: unexpected end of file, "
                    f"could not read the {spec.description}"
                )
            logger.warning(
                f"{self.filename}: no '{spec.label}' line, using {spec.default!r}"
            )
            values[spec.label] = spec.default
        return values


def _read_header(lines: Iterator[str], filename: str) -> int:
    """Check the version and camera type lines; return the version."""
    line = next(lines, None)
    if line is None:
        raise CameraFileIOError(f"{filename}: empty camera file")

    match = _VERSION_PATTERN.match(line.strip())
    if not match:
        raise CameraFileFormatError(f"{filename}: version missing, got {line!r}")
    version = int(match.group(1))
    if version < MIN_SUPPORTED_VERSION:
        raise CameraFileFormatError(
            f"{filename}: versions prior to {MIN_SUPPORTED_VERSION} are not "
            f"supported, got VERSION_{version}"
        )

    line = next(lines, None)
    if line is None:
        raise CameraFileIOError(f"{filename}: unexpected end of file, no camera type")
    if line.strip() != CAMERA_TYPE:
        raise CameraFileFormatError(
            f"{filename}: expected {CAMERA_TYPE} type, but got type {line.strip()!r}"
        )

    return version


def _model_from_values(
    values: Dict[str, Any],
    filename: str,
    correct_atmospheric_refraction: bool,
    correct_velocity_aberration: bool,
) -> OpticalBarModel:
    rotation = np.array(values["iR"], dtype=np.float64).reshape(3, 3)
    try:
        orientation = Orientation.from_matrix(rotation, tol=ROTATION_READ_TOLERANCE)
    except ValueError as e:
        raise CameraFileFormatError(f"{filename}: iR is not a rotation matrix: {e}") from e

    try:
        return OpticalBarModel(
            image_size=values["image_size"],
            image_center=values["image_center"],
            pixel_pitch=values["pitch"],
            focal_length=values["f"],
            scan_angle=values["scan_angle"],
            scan_rate=values["scan_rate"],
            forward_tilt=values["forward_tilt"],
            initial_position=values["iC"],
            initial_orientation=orientation.as_axis_angle(),
            speed=values["speed"],
            mean_earth_radius=values["mean_earth_radius"],
            mean_surface_elevation=values["mean_surface_elevation"],
            use_motion_compensation=values["use_motion_compensation"] != 0,
            scan_left_to_right=values["scan_dir"] != "left",
            correct_atmospheric_refraction=correct_atmospheric_refraction,
            correct_velocity_aberration=correct_velocity_aberration,
        )
    except InvalidModelError as e:
        raise CameraFileFormatError(f"{filename}: invalid camera parameters: {e}") from e


def _values_from_model(model: OpticalBarModel) -> Dict[str, Any]:
    rotation = model.camera_pose().as_matrix()
    return {
        "image_size": [int(v) for v in model.image_size],
        "image_center": list(model.image_center),
        "pitch": model.pixel_pitch,
        "f": model.focal_length,
        "scan_angle": model.scan_angle,
        "scan_rate": model.scan_rate,
        "forward_tilt": model.forward_tilt,
        "iC": list(model.camera_center()),
        "iR": list(rotation.ravel()),
        "speed": model.speed,
        "mean_earth_radius": model.mean_earth_radius,
        "mean_surface_elevation": model.mean_surface_elevation,
        "use_motion_compensation": int(model.use_motion_compensation),
        "scan_dir": "right" if model.scan_left_to_right else "left",
    }


def read_optical_bar_model(
    filename: str,
    correct_atmospheric_refraction: bool = False,
    correct_velocity_aberration: bool = False,
) -> OpticalBarModel:
    """
    Read an optical bar camera file.

    Args:
        filename: Path to the camera file
        correct_atmospheric_refraction: Flag for the returned model
        correct_velocity_aberration: Flag for the returned model

    Returns:
        OpticalBarModel with the file's parameters

    Raises:
        CameraFileIOError: If the file cannot be opened or ends early
        CameraFileFormatError: If a line is malformed or the parameters
            do not describe a valid camera
    """
    filename = str(filename)
    try:
        cam_file = open(filename, 'r', encoding='ascii')
    except OSError as e:
        raise CameraFileIOError(f"Could not open camera file: {filename}") from e

    with cam_file:
        lines = (line.rstrip('\r\n') for line in cam_file)
        try:
            version = _read_header(lines, filename)
            values = OrderedFieldParser(fields_for_version(version), filename).parse(lines)
        except UnicodeDecodeError as e:
            raise CameraFileFormatError(f"{filename}: camera file is not ASCII: {e}") from e

    model = _model_from_values(
        values, filename, correct_atmospheric_refraction, correct_velocity_aberration
    )
    logger.info(f"Read optical bar camera (VERSION_{version}) from {filename}")
    return model


def format_optical_bar_model(model: OpticalBarModel) -> List[str]:
    """Lines of the camera file for a model, without newlines."""
    values = _values_from_model(model)
    lines = [f"VERSION_{CURRENT_VERSION}", CAMERA_TYPE]
    lines.extend(spec.format(values[spec.label]) for spec in FIELDS_BY_VERSION[CURRENT_VERSION])
    return lines


def write_optical_bar_model(model: OpticalBarModel, filename: str) -> None:
    """
    Write a model to an optical bar camera file.

    The rotation is written as the matrix of the model's orientation, so
    the file always holds an orthonormal matrix.

    Raises:
        CameraFileIOError: If the file cannot be written
    """
    filename = str(filename)
    lines = format_optical_bar_model(model)
    try:
        with open(filename, 'w', encoding='ascii') as cam_file:
            cam_file.write("\n".join(lines) + "\n")
    except OSError as e:
        raise CameraFileIOError(f"Could not write camera file: {filename}") from e

    logger.info(f"Wrote optical bar camera to {filename}")
