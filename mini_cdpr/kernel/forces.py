# mini_cdpr/kernel/forces.py
"""Closed-form force distribution with bound-violation repair."""

import logging
from dataclasses import dataclass, field
from typing import List, Tuple, Union

import numpy as np

from .errors import InfeasibleError, InvalidGeometryError


logger = logging.getLogger(__name__)

COND_LIMIT = 1e12


@dataclass(frozen=True)
class DistributionInfo:
    """
    Diagnostics of one force distribution query.

    Attributes:
        clamped: Cable indices fixed at a bound, in the order they were clamped
        residual: ||A·f + w|| of the returned distribution
    """
    clamped: List[int] = field(default_factory=list)
    residual: float = 0.0


def expand_limits(
    force_min: Union[float, np.ndarray],
    force_max: Union[float, np.ndarray],
    n_cables: int,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Broadcast scalar or per-cable force limits to (M,) arrays.

    Raises:
        InvalidGeometryError: If lengths mismatch or f_min > f_max anywhere
    """
    fmin = np.asarray(force_min, dtype=float).reshape(-1)
    fmax = np.asarray(force_max, dtype=float).reshape(-1)
    if fmin.size == 1:
        fmin = np.full(n_cables, fmin[0])
    if fmax.size == 1:
        fmax = np.full(n_cables, fmax[0])
    if fmin.size != n_cables or fmax.size != n_cables:
        raise InvalidGeometryError(
            f"Force limits must be scalars or have {n_cables} entries "
            f"(got {fmin.size} and {fmax.size})"
        )
    if np.any(np.isnan(fmin)) or np.any(np.isnan(fmax)):
        raise InvalidGeometryError("Force limits must not be NaN")
    if np.any(fmin > fmax):
        bad = np.flatnonzero(fmin > fmax).tolist()
        raise InvalidGeometryError(f"force_min exceeds force_max for cables {bad}")
    return fmin, fmax


def _solve_active(A: np.ndarray, w: np.ndarray, f_mean: np.ndarray, cond_limit: float) -> np.ndarray:
    """
    Minimum-norm correction of f_mean so that A·f = -w.

    Square systems are solved directly; redundant ones use the right
    pseudo-inverse A^T (A A^T)^-1.
    """
    n_rows, n_active = A.shape

    if n_active == n_rows:
        cond = np.linalg.cond(A)
        if not np.isfinite(cond) or cond > cond_limit:
            raise InfeasibleError(f"Structure matrix is singular (cond={cond:.2e})")
        return np.linalg.solve(A, -w)

    AAt = A @ A.T
    cond = np.linalg.cond(AAt)
    if not np.isfinite(cond) or cond > cond_limit:
        raise InfeasibleError(
            f"Structure matrix is rank deficient (cond(A A^T)={cond:.2e}); "
            f"the remaining {n_active} cables cannot span {n_rows} DOF"
        )
    correction = A.T @ np.linalg.solve(AAt, w + A @ f_mean)
    return f_mean - correction


def distribute_forces(
    wrench: np.ndarray,
    structure_matrix: np.ndarray,
    force_min: Union[float, np.ndarray],
    force_max: Union[float, np.ndarray],
    tol: float = 1e-9,
    cond_limit: float = COND_LIMIT,
    return_info: bool = False,
):
    """
    Find cable tensions f with A·f = -w and f_min <= f <= f_max.

    Algorithm (closed form with repair):
        1. f = f_mean - A^+ (w + A f_mean) on the active cables
           (direct solve when the active set is square)
        2. Pick the worst bound violation; stop if there is none
        3. Clamp that cable to the violated bound, drop it from the active
           set, move its force into the wrench, and go to 1

    Every pass removes one cable, so the loop runs at most M times.
    The worst violation is the one with the largest magnitude; exact ties go
    to the lowest cable index.

    Args:
        wrench: External wrench w (DOF,)
        structure_matrix: A (DOF x M)
        force_min: Scalar or (M,) lower tension limits
        force_max: Scalar or (M,) upper tension limits
        tol: Violations up to this size are accepted
        cond_limit: Conditioning limit before a sub-problem counts as singular
        return_info: Also return a DistributionInfo

    Returns:
        f: (M,) force distribution, or (f, info) if return_info

    Raises:
        InfeasibleError: If repair would leave fewer active cables than DOF,
            or the active cables cannot span the wrench space
        InvalidGeometryError: On shape mismatches or invalid limits
    """
    A = np.atleast_2d(np.asarray(structure_matrix, dtype=float))
    n_rows, n_cables = A.shape
    w = np.asarray(wrench, dtype=float).reshape(-1)
    if w.size != n_rows:
        raise InvalidGeometryError(
            f"Wrench has {w.size} entries but structure matrix has {n_rows} rows"
        )
    if n_cables < n_rows:
        raise InfeasibleError(
            f"{n_cables} cables cannot control {n_rows} degrees of freedom"
        )

    fmin, fmax = expand_limits(force_min, force_max, n_cables)

    forces = np.zeros(n_cables, dtype=float)
    active = np.ones(n_cables, dtype=bool)
    w_reduced = w.copy()
    clamped: List[int] = []

    while True:
        idx = np.flatnonzero(active)
        A_active = A[:, idx]
        f_mean = 0.5 * (fmin[idx] + fmax[idx])

        try:
            f_active = _solve_active(A_active, w_reduced, f_mean, cond_limit)
        except InfeasibleError as e:
            raise InfeasibleError(str(e), clamped=clamped) from None

        below = fmin[idx] - f_active
        above = f_active - fmax[idx]
        violation = np.maximum(np.maximum(below, above), 0.0)
        worst = int(np.argmax(violation))

        if violation[worst] <= tol:
            forces[idx] = f_active
            break

        if idx.size - 1 < n_rows:
            raise InfeasibleError(
                f"No feasible force distribution: cable {idx[worst]} violates its "
                f"limits by {violation[worst]:.3g} N with only {idx.size} cables "
                f"left for {n_rows} DOF",
                clamped=clamped,
            )

        cable = int(idx[worst])
        bound = fmax[cable] if above[worst] > below[worst] else fmin[cable]
        forces[cable] = bound
        w_reduced = w_reduced + A[:, cable] * bound
        active[cable] = False
        clamped.append(cable)
        logger.debug(
            "Clamped cable %d to %.6g N (violation %.3g N), %d cables remain",
            cable, bound, violation[worst], idx.size - 1,
        )

    if not return_info:
        return forces

    residual = float(np.linalg.norm(A @ forces + w))
    return forces, DistributionInfo(clamped=clamped, residual=residual)
