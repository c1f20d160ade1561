# mini_cdpr/shape.py
"""
Cable shape sampling for inspection and export.

Every cable is sampled as a polyline that starts at its pulley reference
point, follows the groove arc up to the exit point and then runs to the
platform anchor, either straight or along the solved catenary. Shapes are
returned as (3, n_points, M) arrays in world coordinates.
"""

from typing import Tuple

import numpy as np

from .catenary import CatenaryResult, catenary_profile
from .config import STANDARD_GRAVITY
from .kernel.errors import InvalidGeometryError
from .kernel.rotation import Pose, rotz
from .model import CableMaterial, CableRobot
from .pulley import PulleyKinematics, arc_points


def _split_points(n_points: int, arc_length: float, span_length: float) -> Tuple[int, int]:
    """Points on the arc (incl. the reference point) and on the span (incl. the anchor)."""
    total = arc_length + span_length
    if arc_length <= 0.0 or total <= 0.0:
        return 1, n_points - 1
    n_arc = int(round(n_points * arc_length / total))
    n_arc = min(max(n_arc, 1), n_points - 1)
    return n_arc, n_points - n_arc


def _check_n_points(n_points: int) -> int:
    n_points = int(n_points)
    if n_points < 2:
        raise InvalidGeometryError(f"n_points must be >= 2, got {n_points}")
    return n_points


def _arc(robot: CableRobot, i: int, swivel: float, wrap: float, n_arc: int) -> np.ndarray:
    return arc_points(
        robot.pulley_positions[:, i],
        robot.pulley(i).rotation,
        float(robot.pulley_radii[i]),
        swivel,
        np.linspace(0.0, wrap, n_arc),
    )


def straight_cable_shape(
    kinematics: PulleyKinematics,
    pose: Pose,
    robot: CableRobot,
    n_points: int = 50,
) -> np.ndarray:
    """
    Polyline of every cable for the pulley-wrap (massless) model.

    Returns:
        (3, n_points, M) array; [:, 0, i] is pulley i's reference point and
        [:, -1, i] the platform anchor of cable i
    """
    n_points = _check_n_points(n_points)
    m = robot.n_cables
    anchors = pose.transform(robot.attachments)
    swivels = np.radians(kinematics.pulley_angles[0])
    wraps = np.radians(kinematics.pulley_angles[1])

    shapes = np.zeros((3, n_points, m))
    for i in range(m):
        arc_length = float(robot.pulley_radii[i]) * wraps[i]
        n_arc, n_span = _split_points(n_points, arc_length, kinematics.free_lengths[i])

        exit_point = kinematics.exit_points[:, i]
        t = np.linspace(0.0, 1.0, n_span + 1)[1:]
        shapes[:, :n_arc, i] = _arc(robot, i, swivels[i], wraps[i], n_arc)
        shapes[:, n_arc:, i] = exit_point[:, None] + np.outer(anchors[:, i] - exit_point, t)
    return shapes


def catenary_cable_shape(
    result: CatenaryResult,
    robot: CableRobot,
    material: CableMaterial,
    gravity: float = STANDARD_GRAVITY,
    n_points: int = 50,
) -> np.ndarray:
    """
    Polyline of every cable for a solved catenary.

    The span is sampled by unstrained arc length; the last point of each
    cable matches its platform anchor to within the solver tolerance.
    """
    n_points = _check_n_points(n_points)
    m = result.n_cables
    w = material.weight_per_length(gravity)
    inv_ea = 1.0 / material.axial_stiffness if material.is_elastic else 0.0
    swivels = np.radians(result.pulley_angles[0])
    wraps = np.radians(result.pulley_angles[1])

    shapes = np.zeros((3, n_points, m))
    for i in range(m):
        H, V = result.local_forces[:, i]
        L = float(result.unstrained_spans[i])
        arc_length = float(robot.pulley_radii[i]) * wraps[i]
        n_arc, n_span = _split_points(n_points, arc_length, L)

        exit_point = result.exit_points[:, i]
        d = result.anchors[:, i] - exit_point
        plane = rotz(np.arctan2(d[1], d[0]))

        s = np.linspace(0.0, L, n_span + 1)[1:]
        x, z = catenary_profile(H, V, L, w, inv_ea, s=s)
        local = np.vstack([x, np.zeros_like(x), z])

        shapes[:, :n_arc, i] = _arc(robot, i, swivels[i], wraps[i], n_arc)
        shapes[:, n_arc:, i] = exit_point[:, None] + plane @ local
    return shapes


def sample_cable_shapes(
    result,
    pose: Pose,
    robot: CableRobot,
    material: CableMaterial = None,
    gravity: float = STANDARD_GRAVITY,
    n_points: int = 50,
) -> np.ndarray:
    """Sample cable shapes for either a PulleyKinematics or a CatenaryResult."""
    if isinstance(result, CatenaryResult):
        if material is None:
            raise InvalidGeometryError("Sampling a catenary shape needs the cable material")
        return catenary_cable_shape(result, robot, material, gravity, n_points)
    return straight_cable_shape(result, pose, robot, n_points)
