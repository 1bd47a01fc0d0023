"""
Rotation helpers for the optical bar camera.

The camera keeps its attitude as an axis-angle vector, exchanges it with
camera files as a 3x3 matrix and composes / applies it through
quaternions. ``Orientation`` wraps ``scipy.spatial.transform.Rotation``
so the rest of the package only ever handles one rotation type.

Conventions:
    - Rotations are active: ``orientation.rotate(v)`` maps a vector from
      the camera frame into the world frame.
    - ``a * b`` applies ``b`` first, then ``a``.
"""

import numpy as np
from typing import Optional
from scipy.spatial.transform import Rotation

c = np.cos
s = np.sin


def rotation_x_axis(angle: float) -> np.ndarray:
    """
    Rotation matrix around the x-axis, angle in radians
    """
    return np.array([[1,        0,         0],
                     [0, c(angle), -s(angle)],
                     [0, s(angle),  c(angle)]])


def validate_rotation_matrix(matrix, tol: float = 1e-6) -> bool:
    """
    True if ``matrix`` is a finite 3x3 proper rotation within ``tol``.

    Both the Frobenius norm of ``M @ M.T - I`` and ``|det(M) - 1|`` must
    be at most ``tol``; reflections (det = -1) are never accepted.
    """
    M = np.asarray(matrix, dtype=np.float64)
    if M.shape != (3, 3) or not np.all(np.isfinite(M)):
        return False

    orthogonality_error = np.linalg.norm(M @ M.T - np.eye(3))
    return bool(orthogonality_error <= tol and abs(np.linalg.det(M) - 1.0) <= tol)


class Orientation:
    """
    Attitude of the camera frame relative to the world frame.

    Construct with one of the ``from_*`` class methods; the instance is
    immutable and exposes conversions to every representation the
    camera model needs.
    """

    __slots__ = ("_rotation",)

    def __init__(self, rotation: Rotation):
        self._rotation = rotation

    @classmethod
    def identity(cls) -> "Orientation":
        return cls(Rotation.identity())

    @classmethod
    def from_axis_angle(cls, axis_angle) -> "Orientation":
        """Build from a rotation vector (axis scaled by angle in radians)."""
        vec = np.asarray(axis_angle, dtype=np.float64).reshape(3)
        return cls(Rotation.from_rotvec(vec))

    @classmethod
    def from_matrix(cls, matrix, tol: Optional[float] = None) -> "Orientation":
        """
        Build from a 3x3 rotation matrix (row-major).

        A slightly non-orthonormal matrix maps to the nearest rotation.
        With ``tol`` set, matrices further than ``tol`` from a proper
        rotation (see ``validate_rotation_matrix``) raise ValueError.
        """
        mat = np.asarray(matrix, dtype=np.float64).reshape(3, 3)
        if tol is not None and not validate_rotation_matrix(mat, tol):
            raise ValueError(f"Not a rotation matrix (tolerance {tol}):\n{mat}")
        return cls(Rotation.from_matrix(mat))

    @classmethod
    def from_quaternion(cls, quaternion) -> "Orientation":
        """Build from a scalar-first quaternion ``(w, x, y, z)``."""
        w, x, y, z = np.asarray(quaternion, dtype=np.float64).reshape(4)
        return cls(Rotation.from_quat([x, y, z, w]))

    def as_axis_angle(self) -> np.ndarray:
        return self._rotation.as_rotvec()

    def as_matrix(self) -> np.ndarray:
        return self._rotation.as_matrix()

    def as_quaternion(self) -> np.ndarray:
        """Scalar-first quaternion ``(w, x, y, z)``."""
        x, y, z, w = self._rotation.as_quat()
        return np.array([w, x, y, z])

    @property
    def angle(self) -> float:
        """Rotation angle in radians, in [0, pi]."""
        return float(self._rotation.magnitude())

    def rotate(self, vector) -> np.ndarray:
        """Rotate a 3-vector (or an Nx3 array of vectors)."""
        return self._rotation.apply(np.asarray(vector, dtype=np.float64))

    def inverse(self) -> "Orientation":
        return Orientation(self._rotation.inv())

    def __mul__(self, other: "Orientation") -> "Orientation":
        if not isinstance(other, Orientation):
            return NotImplemented
        return Orientation(self._rotation * other._rotation)

    def __repr__(self) -> str:
        return f"Orientation(axis_angle={self.as_axis_angle().tolist()})"
