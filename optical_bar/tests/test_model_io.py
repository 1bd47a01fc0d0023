"""
Tests for reading and writing optical bar camera files.
"""

import pytest
import numpy as np
from numpy.testing import assert_allclose

from optical_bar.camera import OpticalBarModel
from optical_bar.exceptions import (
    CameraFileError,
    CameraFileFormatError,
    CameraFileIOError,
)
from optical_bar.model_io import (
    FIELDS_V4,
    FieldSpec,
    OrderedFieldParser,
    fields_for_version,
    format_optical_bar_model,
    read_optical_bar_model,
    write_optical_bar_model,
)


def write_lines(path, lines):
    path.write_text("\n".join(lines) + "\n")
    return str(path)


def replace_line(lines, label, new_line):
    return [new_line if line.startswith(label + " ") else line for line in lines]


class TestRoundTrip:
    """Tests for write followed by read."""

    @pytest.fixture
    def moving_camera(self, make_camera):
        return make_camera(
            image_center=(499.5, 99.75),
            forward_tilt=0.0123456789,
            use_motion_compensation=True,
            scan_left_to_right=False,
            mean_surface_elevation=1234.5678,
        )

    def test_fields_preserved(self, moving_camera, tmp_path):
        path = str(tmp_path / "camera.tsai")
        write_optical_bar_model(moving_camera, path)
        loaded = read_optical_bar_model(path)

        assert_allclose(loaded.image_size, moving_camera.image_size)
        assert_allclose(loaded.image_center, moving_camera.image_center, rtol=0, atol=0)
        assert loaded.pixel_pitch == moving_camera.pixel_pitch
        assert loaded.focal_length == moving_camera.focal_length
        assert loaded.scan_angle == moving_camera.scan_angle
        assert loaded.scan_rate == moving_camera.scan_rate
        assert loaded.forward_tilt == moving_camera.forward_tilt
        assert_allclose(loaded.initial_position, moving_camera.initial_position, rtol=0, atol=0)
        assert_allclose(loaded.initial_orientation, moving_camera.initial_orientation, atol=1e-12)
        assert loaded.speed == moving_camera.speed
        assert loaded.mean_earth_radius == moving_camera.mean_earth_radius
        assert loaded.mean_surface_elevation == moving_camera.mean_surface_elevation
        assert loaded.use_motion_compensation is True
        assert loaded.scan_left_to_right is False

    def test_recovered_rotation_is_orthonormal(self, moving_camera, tmp_path):
        path = str(tmp_path / "camera.tsai")
        moving_camera.write(path)
        R = OpticalBarModel.read(path).orientation().as_matrix()

        assert_allclose(R.T @ R, np.eye(3), atol=1e-12)
        assert np.linalg.det(R) == pytest.approx(1.0, abs=1e-12)
        assert_allclose(R, moving_camera.orientation().as_matrix(), atol=1e-12)

    def test_second_round_trip_is_stable(self, camera, tmp_path):
        first = str(tmp_path / "first.tsai")
        second = str(tmp_path / "second.tsai")

        write_optical_bar_model(camera, first)
        write_optical_bar_model(read_optical_bar_model(first), second)

        with open(first) as a, open(second) as b:
            first_lines = a.read().splitlines()
            second_lines = b.read().splitlines()
        assert first_lines[:10] == second_lines[:10]
        assert first_lines[11:] == second_lines[11:]

    def test_correction_flags_from_arguments(self, camera, tmp_path):
        path = str(tmp_path / "camera.tsai")
        camera.write(path)
        loaded = OpticalBarModel.read(
            path, correct_atmospheric_refraction=True, correct_velocity_aberration=True
        )

        assert loaded.correct_atmospheric_refraction
        assert loaded.correct_velocity_aberration


class TestWrite:
    """Tests for the written layout."""

    def test_layout(self, camera):
        lines = format_optical_bar_model(camera)

        assert lines[0] == "VERSION_4"
        assert lines[1] == "OPTICAL_BAR"
        labels = [line.split(" = ")[0] for line in lines[2:]]
        assert labels == [spec.label for spec in FIELDS_V4]
        assert lines[2] == "image_size = 1000 200"
        assert lines[-2] == "use_motion_compensation = 0"
        assert lines[-1] == "scan_dir = right"

    def test_full_precision(self, make_camera):
        camera = make_camera(pixel_pitch=0.1 + 0.2)
        pitch_line = [line for line in format_optical_bar_model(camera) if line.startswith("pitch")][0]

        assert float(pitch_line.split("=")[1]) == 0.1 + 0.2

    def test_rotation_written_as_matrix(self, camera):
        iR_line = [line for line in format_optical_bar_model(camera) if line.startswith("iR")][0]
        values = np.array([float(v) for v in iR_line.split("=")[1].split()])

        assert_allclose(values.reshape(3, 3), camera.orientation().as_matrix(), atol=1e-15)

    def test_unwritable_path(self, camera, tmp_path):
        with pytest.raises(CameraFileIOError):
            write_optical_bar_model(camera, str(tmp_path / "missing_dir" / "camera.tsai"))


class TestReadRejection:
    """Tests for malformed files."""

    @pytest.fixture
    def lines(self, camera):
        return format_optical_bar_model(camera)

    def test_missing_file(self):
        with pytest.raises(CameraFileIOError):
            read_optical_bar_model("/nonexistent/path/camera.tsai")

    def test_missing_file_is_ioerror(self):
        with pytest.raises(IOError):
            read_optical_bar_model("/nonexistent/path/camera.tsai")

    def test_old_version(self, lines, tmp_path):
        lines[0] = "VERSION_3"
        with pytest.raises(CameraFileFormatError):
            read_optical_bar_model(write_lines(tmp_path / "cam.tsai", lines))

    def test_version_missing(self, lines, tmp_path):
        with pytest.raises(CameraFileFormatError):
            read_optical_bar_model(write_lines(tmp_path / "cam.tsai", lines[1:]))

    def test_newer_version_accepted(self, lines, tmp_path):
        lines[0] = "VERSION_5"
        model = read_optical_bar_model(write_lines(tmp_path / "cam.tsai", lines))
        assert model.focal_length == pytest.approx(0.61)

    def test_wrong_type(self, lines, tmp_path):
        lines[1] = "PINHOLE"
        with pytest.raises(CameraFileFormatError):
            read_optical_bar_model(write_lines(tmp_path / "cam.tsai", lines))

    def test_missing_speed_line(self, lines, tmp_path):
        lines = [line for line in lines if not line.startswith("speed")]
        with pytest.raises(CameraFileError):
            read_optical_bar_model(write_lines(tmp_path / "cam.tsai", lines))

    def test_truncated(self, lines, tmp_path):
        with pytest.raises(CameraFileIOError):
            read_optical_bar_model(write_lines(tmp_path / "cam.tsai", lines[:9]))

    def test_empty_file(self, tmp_path):
        path = tmp_path / "cam.tsai"
        path.write_text("")
        with pytest.raises(CameraFileIOError):
            read_optical_bar_model(str(path))

    def test_fields_out_of_order(self, lines, tmp_path):
        lines[4], lines[5] = lines[5], lines[4]
        with pytest.raises(CameraFileFormatError):
            read_optical_bar_model(write_lines(tmp_path / "cam.tsai", lines))

    @pytest.mark.parametrize("label, bad_line", [
        ("pitch", "pitch = abc"),
        ("iC", "iC = 1.0 2.0"),
        ("image_size", "image_size = 1000.5 200"),
        ("image_center", "image_center 500 100"),
        ("use_motion_compensation", "use_motion_compensation = yes"),
    ])
    def test_malformed_line(self, lines, tmp_path, label, bad_line):
        lines = replace_line(lines, label, bad_line)
        with pytest.raises(CameraFileFormatError):
            read_optical_bar_model(write_lines(tmp_path / "cam.tsai", lines))

    @pytest.mark.parametrize("bad_rotation", [
        "iR = 2 0 0 0 2 0 0 0 2",
        "iR = -1 0 0 0 1 0 0 0 1",
        "iR = 0 0 0 0 0 0 0 0 0",
        "iR = 1 0 0 0 1 0 0 0 1.01",
    ])
    def test_not_a_rotation(self, lines, tmp_path, bad_rotation):
        lines = replace_line(lines, "iR", bad_rotation)
        with pytest.raises(CameraFileFormatError):
            read_optical_bar_model(write_lines(tmp_path / "cam.tsai", lines))

    def test_invalid_parameters(self, lines, tmp_path):
        lines = replace_line(lines, "f", "f = -0.61")
        with pytest.raises(CameraFileFormatError):
            read_optical_bar_model(write_lines(tmp_path / "cam.tsai", lines))

    def test_format_error_is_value_error(self, lines, tmp_path):
        lines[1] = "PINHOLE"
        with pytest.raises(ValueError):
            read_optical_bar_model(write_lines(tmp_path / "cam.tsai", lines))


class TestLegacyValues:
    """Tests for values older writers produce."""

    @pytest.fixture
    def lines(self, camera):
        return format_optical_bar_model(camera)

    def test_missing_scan_dir_means_right(self, lines, tmp_path):
        model = read_optical_bar_model(write_lines(tmp_path / "cam.tsai", lines[:-1]))
        assert model.scan_left_to_right is True

    def test_blank_scan_dir_line_means_right(self, lines, tmp_path):
        lines[-1] = ""
        model = read_optical_bar_model(write_lines(tmp_path / "cam.tsai", lines))
        assert model.scan_left_to_right is True

    def test_blank_scan_dir_line_after_right_to_left_camera(self, make_camera, tmp_path):
        lines = format_optical_bar_model(make_camera(scan_left_to_right=False))
        lines[-1] = "   "
        model = read_optical_bar_model(write_lines(tmp_path / "cam.tsai", lines))
        assert model.scan_left_to_right is True

    def test_unknown_scan_dir_means_right(self, lines, tmp_path):
        lines[-1] = "scan_dir = up"
        model = read_optical_bar_model(write_lines(tmp_path / "cam.tsai", lines))
        assert model.scan_left_to_right is True

    @pytest.mark.parametrize("decimals", [6, 8])
    def test_low_precision_rotation(self, make_camera, tmp_path, decimals):
        """iR printed with few decimals is read as the nearest rotation."""
        camera = make_camera(initial_orientation=[0.3, -1.2, 0.7])
        lines = format_optical_bar_model(camera)
        matrix = camera.orientation().as_matrix().ravel()
        lines = replace_line(
            lines, "iR", "iR = " + " ".join(f"{v:.{decimals}f}" for v in matrix)
        )

        model = read_optical_bar_model(write_lines(tmp_path / "cam.tsai", lines))
        R = model.orientation().as_matrix()

        assert_allclose(R, camera.orientation().as_matrix(), atol=10 ** -decimals)
        assert_allclose(R.T @ R, np.eye(3), atol=1e-12)

    def test_scan_dir_left(self, lines, tmp_path):
        lines[-1] = "scan_dir = left"
        model = read_optical_bar_model(write_lines(tmp_path / "cam.tsai", lines))
        assert model.scan_left_to_right is False

    def test_motion_compensation_integer(self, lines, tmp_path):
        lines = replace_line(lines, "use_motion_compensation", "use_motion_compensation = 1")
        model = read_optical_bar_model(write_lines(tmp_path / "cam.tsai", lines))
        assert model.use_motion_compensation is True

    def test_windows_line_endings(self, lines, tmp_path):
        path = tmp_path / "cam.tsai"
        path.write_bytes(("\r\n".join(lines) + "\r\n").encode("ascii"))
        model = read_optical_bar_model(str(path))
        assert model.image_size.tolist() == [1000, 200]


class TestOrderedFieldParser:
    """Tests for the field-list parser."""

    @pytest.fixture
    def fields(self):
        return (
            FieldSpec("a", 1, float, "first value"),
            FieldSpec("b", 2, int, "pair"),
            FieldSpec("c", 1, str, "optional value", default="none"),
        )

    def test_parse(self, fields):
        values = OrderedFieldParser(fields).parse(iter(["a = 1.5", "b = 3 4", "c = x"]))
        assert values == {"a": 1.5, "b": [3, 4], "c": "x"}

    def test_default_for_missing_tail(self, fields):
        values = OrderedFieldParser(fields).parse(iter(["a = 1.5", "b = 3 4"]))
        assert values["c"] == "none"

    def test_default_for_blank_line(self, fields):
        values = OrderedFieldParser(fields).parse(iter(["a = 1.5", "b = 3 4", ""]))
        assert values["c"] == "none"

    def test_blank_line_for_required_field(self, fields):
        with pytest.raises(CameraFileFormatError):
            OrderedFieldParser(fields).parse(iter(["a = 1.5", "", "c = x"]))

    def test_missing_required(self, fields):
        with pytest.raises(CameraFileIOError):
            OrderedFieldParser(fields).parse(iter(["a = 1.5"]))

    def test_wrong_label(self, fields):
        with pytest.raises(CameraFileFormatError):
            OrderedFieldParser(fields).parse(iter(["b = 1.5", "a = 3 4"]))

    def test_format(self):
        assert FieldSpec("b", 2, int, "pair").format([3, 4]) == "b = 3 4"
        assert FieldSpec("a", 1, float, "value").format(0.5) == "a = 0.5"

    def test_fields_for_version(self):
        assert fields_for_version(4) is FIELDS_V4
        assert fields_for_version(9) is FIELDS_V4
        with pytest.raises(CameraFileFormatError):
            fields_for_version(3)
