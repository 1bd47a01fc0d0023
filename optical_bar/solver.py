"""
Generic nonlinear least-squares solving for camera models.

``levenberg_marquardt`` minimises ``|objective(x) - target|`` with SciPy's
MINPACK Levenberg-Marquardt implementation and reports a status code:
positive values mean convergence, zero means the evaluation budget ran
out and negative values mean the problem was rejected.

``CameraGenericObjective`` turns any camera exposing ``pixel_to_ray`` and
``camera_center`` into a residual function of the pixel, so inverse
projection does not depend on the internals of one camera geometry.
"""

import numpy as np
from scipy.optimize import least_squares
from typing import Callable, Optional
from dataclasses import dataclass
import logging

logger = logging.getLogger(__name__)

# MINPACK refuses tolerances below machine epsilon
MACHINE_EPSILON = np.finfo(np.float64).eps


@dataclass
class SolverSettings:
    """Stopping criteria for inverse projection."""
    abs_tol: float = 1e-16  # Gradient tolerance
    rel_tol: float = 1e-16  # Relative cost / step tolerance
    max_iterations: int = 100000  # Objective evaluation budget
    max_residual: float = 1e-6  # Largest accepted residual norm at convergence


@dataclass
class SolverResult:
    """Outcome of a least-squares solve."""
    solution: np.ndarray
    status: int
    evaluations: int
    residual_norm: float
    message: str

    @property
    def success(self) -> bool:
        return self.status > 0


def levenberg_marquardt(
    objective: Callable[[np.ndarray], np.ndarray],
    start: np.ndarray,
    target: Optional[np.ndarray] = None,
    abs_tol: float = 1e-16,
    rel_tol: float = 1e-16,
    max_iterations: int = 100000,
) -> SolverResult:
    """
    Find ``x`` such that ``objective(x)`` best matches ``target``.

    Args:
        objective: Function mapping a parameter vector to a residual vector
        start: Initial guess
        target: Desired objective value (zeros if omitted)
        abs_tol: Gradient norm tolerance
        rel_tol: Relative tolerance on cost reduction and step size
        max_iterations: Maximum number of objective evaluations

    Returns:
        SolverResult with the solution and MINPACK-style status

    Raises:
        ValueError: If the objective is not finite at the start point
    """
    start = np.asarray(start, dtype=np.float64)

    if target is None:
        target = np.zeros_like(np.asarray(objective(start), dtype=np.float64))
    target = np.asarray(target, dtype=np.float64)

    def residuals(x: np.ndarray) -> np.ndarray:
        return np.asarray(objective(x), dtype=np.float64) - target

    result = least_squares(
        residuals,
        start,
        method='lm',
        ftol=max(rel_tol, MACHINE_EPSILON),
        xtol=max(rel_tol, MACHINE_EPSILON),
        gtol=max(abs_tol, MACHINE_EPSILON),
        max_nfev=max_iterations,
    )

    residual_norm = float(np.linalg.norm(result.fun))
    logger.debug(
        f"Levenberg-Marquardt finished: status={result.status}, "
        f"nfev={result.nfev}, |r|={residual_norm:.3e}"
    )

    return SolverResult(
        solution=result.x,
        status=int(result.status),
        evaluations=int(result.nfev),
        residual_norm=residual_norm,
        message=result.message,
    )


class CameraGenericObjective:
    """
    Residual between a world point and the ray cast from a candidate pixel.

    For a pixel ``p`` the residual is

        pixel_to_ray(p) - normalize(point - camera_center(p))

    which vanishes when the ray through ``p`` passes through the point.
    Using ``camera_center(p)`` keeps the objective valid for cameras whose
    center moves during the exposure.
    """

    def __init__(self, camera, point: np.ndarray):
        self.camera = camera
        self.point = np.asarray(point, dtype=np.float64).reshape(3)

    def __call__(self, pixel: np.ndarray) -> np.ndarray:
        ray = self.camera.pixel_to_ray(pixel)
        direction = self.point - self.camera.camera_center(pixel)
        distance = np.linalg.norm(direction)
        if distance == 0:
            return ray
        return ray - direction / distance
