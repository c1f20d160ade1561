# mini_cdpr/pulley.py
"""
PULLEY-WRAP GEOMETRY: Cable Length Through a Swivelling Pulley
==============================================================

PURPOSE:
--------
Real cables do not leave the frame at a point. They run over a pulley that
swivels about its incoming axis, wrap part of the groove, and leave at the
tangent point towards the platform anchor. This module computes, per cable,
the swivel angle, the wrap angle, the exit point, and the total length.

ENGINEERING DERIVATION:
-----------------------
Let a be the pulley reference point (where the cable enters the groove),
R_P the pulley orientation, r the radius and B the platform anchor in world
coordinates.

1. Express the anchor in the pulley frame:   v = R_Pᵀ (B − a)
2. Swivel angle about the pulley z-axis:    γ = atan2(v_y, v_x)
3. In the swivelled frame the cable lies in the x–z plane. The pulley
   circle has centre M = (r, 0) and the anchor is at (ρ, v_z), ρ = |v_xy|.
   With m = anchor − M:

       L_f = sqrt(|m|² − r²)                         (free length)
       s   = atan2(m_z, m_x) + atan2(L_f, r)          (tangent point angle)
       β   = (π − s) mod 2π                           (wrap angle)

   The cable enters at the reference point travelling along +z and wraps
   over the top of the groove, so the point at arc angle θ is

       P(θ) = M + r·(−cos θ, sin θ) = (r(1 − cos θ), r sin θ)

   and the exit point is C = P(β).
4. Total length = L_f + r·β

Tangency check: (C − M)·(B − C) = 0.

With r = 0 this collapses to the straight-line model: β = 0, C = a,
length = |B − a|.
"""

import logging
from dataclasses import dataclass

import numpy as np

from .kernel.errors import InvalidGeometryError
from .kernel.rotation import Pose, rotation_from_euler, rotz
from .model import CableRobot


logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class PulleyWrap:
    """
    Wrap geometry of a single cable.

    Attributes:
        length: Free length + arc length (m)
        free_length: Straight segment from exit point to anchor (m)
        unit_vector: (3,) from the platform anchor towards the exit point
        swivel_angle: γ in degrees
        wrap_angle: β in degrees, in [0, 360)
        exit_point: (3,) tangent point in world coordinates
    """
    length: float
    free_length: float
    unit_vector: np.ndarray
    swivel_angle: float
    wrap_angle: float
    exit_point: np.ndarray


@dataclass(frozen=True, eq=False)
class PulleyKinematics:
    """
    Inverse kinematics of a whole robot with pulleys.

    Attributes:
        lengths: (M,) total cable lengths
        unit_vectors: (3, M) anchor -> exit point directions
        pulley_angles: (2, M) rows [swivel γ; wrap β] in degrees
        exit_points: (3, M) world exit points
        free_lengths: (M,) straight segment lengths
    """
    lengths: np.ndarray
    unit_vectors: np.ndarray
    pulley_angles: np.ndarray
    exit_points: np.ndarray
    free_lengths: np.ndarray

    @property
    def n_cables(self) -> int:
        return self.lengths.size


def arc_points(
    pulley_position: np.ndarray,
    pulley_rotation: np.ndarray,
    radius: float,
    swivel: float,
    thetas: np.ndarray,
) -> np.ndarray:
    """
    World coordinates of groove points at arc angles `thetas` (radians).

    Returns (3, len(thetas)); theta = 0 is the reference point.
    """
    thetas = np.atleast_1d(np.asarray(thetas, dtype=float))
    local = np.vstack([
        radius * (1.0 - np.cos(thetas)),
        np.zeros_like(thetas),
        radius * np.sin(thetas),
    ])
    frame = np.asarray(pulley_rotation, dtype=float) @ rotz(swivel)
    return np.asarray(pulley_position, dtype=float)[:, None] + frame @ local


def _wrap(a: np.ndarray, R_P: np.ndarray, anchor: np.ndarray, r: float):
    """
    Core wrap solve in radians.

    Returns (free_length, swivel, wrap, exit_point).
    """
    if not np.isfinite(r) or r < 0.0:
        raise InvalidGeometryError(f"Pulley radius must be >= 0, got {r}")

    v = R_P.T @ (anchor - a)
    if not np.all(np.isfinite(v)):
        raise InvalidGeometryError("Pulley or anchor position is not finite")
    gamma = float(np.arctan2(v[1], v[0]))

    if r == 0.0:
        free_length = float(np.linalg.norm(v))
        if free_length == 0.0:
            raise InvalidGeometryError("Platform anchor coincides with the pulley exit point")
        return free_length, gamma, 0.0, a.copy()

    rho = float(np.hypot(v[0], v[1]))
    mx, mz = rho - r, float(v[2])
    d2 = mx * mx + mz * mz - r * r
    if d2 < 0.0:
        raise InvalidGeometryError(
            f"Platform anchor lies inside the pulley circle (distance to centre "
            f"{np.sqrt(mx * mx + mz * mz):.6g} < radius {r:.6g})"
        )
    free_length = float(np.sqrt(d2))
    if free_length == 0.0:
        raise InvalidGeometryError("Platform anchor coincides with the pulley exit point")

    s = np.arctan2(mz, mx) + np.arctan2(free_length, r)
    beta = float(np.mod(np.pi - s, 2.0 * np.pi))
    exit_point = arc_points(a, R_P, r, gamma, [beta])[:, 0]
    return free_length, gamma, beta, exit_point


def solve_pulley(
    pulley_position,
    pulley_orientation,
    anchor_world,
    radius: float,
) -> PulleyWrap:
    """
    Wrap geometry of one cable running from a pulley to a platform anchor.

    Parameters:
    -----------
    pulley_position : array_like
        (3,) pulley reference point (world)
    pulley_orientation : array_like
        (3,) pulley Euler angles [a, b, c] in degrees
    anchor_world : array_like
        (3,) platform anchor in world coordinates
    radius : float
        Pulley radius, >= 0

    Returns:
    --------
    PulleyWrap

    Raises:
    -------
    InvalidGeometryError
        Negative radius, anchor inside the pulley circle, or anchor on the
        exit point
    """
    a = np.asarray(pulley_position, dtype=float).reshape(3)
    anchor = np.asarray(anchor_world, dtype=float).reshape(3)
    R_P = rotation_from_euler(pulley_orientation, degrees=True)

    free_length, gamma, beta, exit_point = _wrap(a, R_P, anchor, float(radius))
    return PulleyWrap(
        length=free_length + float(radius) * beta,
        free_length=free_length,
        unit_vector=(exit_point - anchor) / free_length,
        swivel_angle=float(np.degrees(gamma)),
        wrap_angle=float(np.degrees(beta)),
        exit_point=exit_point,
    )


def pulley_kinematics(pose: Pose, robot: CableRobot) -> PulleyKinematics:
    """
    Pulley-wrap inverse kinematics for every cable at one platform pose.

    Cables are independent and reported in index order.

    Example:
    --------
    >>> kin = pulley_kinematics(Pose.from_vector([1, 1, 1.5, 0, 0, 0]), robot)
    >>> A = structure_matrix(robot.attachments, kin.unit_vectors, pose.rotation)
    """
    m = robot.n_cables
    anchors = pose.transform(robot.attachments)

    lengths = np.zeros(m)
    free_lengths = np.zeros(m)
    unit_vectors = np.zeros((3, m))
    angles = np.zeros((2, m))
    exit_points = np.zeros((3, m))

    for i in range(m):
        wrap = solve_pulley(
            robot.pulley_positions[:, i],
            robot.pulley_orientations[:, i],
            anchors[:, i],
            robot.pulley_radii[i],
        )
        lengths[i] = wrap.length
        free_lengths[i] = wrap.free_length
        unit_vectors[:, i] = wrap.unit_vector
        angles[:, i] = (wrap.swivel_angle, wrap.wrap_angle)
        exit_points[:, i] = wrap.exit_point

    logger.debug("Pulley kinematics: lengths %s", np.array2string(lengths, precision=6))
    return PulleyKinematics(
        lengths=lengths,
        unit_vectors=unit_vectors,
        pulley_angles=angles,
        exit_points=exit_points,
        free_lengths=free_lengths,
    )
