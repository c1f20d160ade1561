# mini_cdpr/catenary.py
"""
CATENARY INVERSE KINEMATICS: Sagging (and Stretching) Cables
============================================================

PURPOSE:
--------
Heavy cables sag. For a given platform pose and external wrench, find per
cable the end force (Fx, Fz) and unstrained length L0 such that

- every cable is an elastic catenary from its pulley exit point to its
  platform anchor,
- the cable end forces balance the wrench on the platform,
- every tension lies within [f_min, f_max].

ENGINEERING DERIVATION:
-----------------------
Each cable hangs in the vertical plane through its exit point C and its
anchor B. In that plane x is horizontal towards B and z is up. (H, V) is
the force the platform exerts on the cable end, w = ρ·g the weight per
length and EA the axial stiffness (EA = ∞ for inextensible cables):

    V1 = V − w·L0                 (vertical force at the pulley end)
    T0 = √(H² + V²),  T1 = √(H² + V1²)

    x(L0) = H·L0/EA + (H/w)·(asinh(V/H) − asinh(V1/H))
    z(L0) = V·L0/EA − w·L0²/(2EA) + (T0 − T1)/w

and x(L0), z(L0) must equal the horizontal and vertical span C → B.

The platform feels −Rz(γc)·(H, 0, V) from each cable (γc = azimuth of the
cable plane), so equilibrium is LINEAR in the state:

    Σ −Rz S x_i            = −f_ext
    Σ −(R b_i)× Rz S x_i   = −τ_ext

assembled blockwise (6×3 per cable) into a 6×3M matrix.

SOLUTION STRATEGY:
------------------
1. Seed: pulley-wrap geometry + closed-form force distribution, projected
   into each cable plane.
2. Constrained NLP (scipy.optimize.minimize) with analytic Jacobians.
   Objective ½‖x‖² for inextensible cables, ½‖x − x0‖² for elastic ones.
   If SLSQP stalls, the same problem is retried once with trust-constr.
3. Pulley coupling: the catenary leaves the pulley along (H, V1)/T1, which
   fixes a new wrap angle and exit point. Re-solve until the exit point
   settles (same fixed-point pattern as an iterative P-Delta analysis).
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from .config import DEFAULT_SOLVER_OPTIONS, STANDARD_GRAVITY, SolverOptions
from .kernel.assemble import assemble_columns
from .kernel.errors import ConvergenceError, InvalidGeometryError
from .kernel.forces import distribute_forces
from .kernel.layout import CATENARY_LAYOUT, FORCE_X, FORCE_Z, LENGTH
from .kernel.nlp import CancelToken, NLPBackend, NLPProblem, ScipyBackend
from .kernel.rotation import Pose, rotz, skew
from .kernel.structure import structure_matrix
from .model import CableMaterial, CableRobot
from .pulley import arc_points, pulley_kinematics


logger = logging.getLogger(__name__)

MIN_HORIZONTAL_SPAN = 1e-9
MIN_HORIZONTAL_FORCE = 1e-12
# lower bound on Fx: a fraction of f_min, never below this floor
HORIZONTAL_FORCE_BOUND_RATIO = 1e-6
HORIZONTAL_FORCE_BOUND_FLOOR = 1e-9

# (Fx, Fz, L0) -> (Fx, 0, Fz) in the cable plane
_PLANE_SELECTOR = np.array([
    [1.0, 0.0, 0.0],
    [0.0, 0.0, 0.0],
    [0.0, 1.0, 0.0],
])


@dataclass(frozen=True)
class SolverDiagnostics:
    """
    How the catenary solve went.

    Attributes:
        success: Optimizer reported success on the final pass
        status: 'converged', 'failed', 'iteration limit', 'cancelled',
            'time budget exhausted'
        message: Optimizer message
        iterations: NLP iterations summed over all pulley passes
        objective: Objective value ‖x‖ or ‖x − x0‖ at the solution
        max_equality_residual: Largest catenary geometry residual (m)
        max_inequality_violation: Largest tension-limit violation (N)
        equilibrium_residual: ‖A_eq·x + w‖
        pulley_passes: Number of catenary/pulley coupling passes
        method: Optimizer method that produced the final pass
    """
    success: bool
    status: str
    message: str
    iterations: int
    objective: float
    max_equality_residual: float
    max_inequality_violation: float
    equilibrium_residual: float
    pulley_passes: int
    method: str


@dataclass(frozen=True, eq=False)
class CatenaryResult:
    """
    Catenary inverse kinematics at one pose.

    Attributes:
        lengths: (M,) unstrained lengths including the pulley arc
        strained_lengths: (M,) lengths under load including the pulley arc
        unit_vectors: (3, M) direction of each cable force on the platform
        pulley_angles: (2, M) rows [swivel; wrap] in degrees
        local_forces: (2, M) rows [Fx; Fz] in each cable plane
        exit_points: (3, M) pulley exit points (world)
        anchors: (3, M) platform anchors (world)
        tensions: (M,) tension at the platform end
        unstrained_spans: (M,) unstrained catenary lengths L0 without arc
        diagnostics: SolverDiagnostics
    """
    lengths: np.ndarray
    strained_lengths: np.ndarray
    unit_vectors: np.ndarray
    pulley_angles: np.ndarray
    local_forces: np.ndarray
    exit_points: np.ndarray
    anchors: np.ndarray
    tensions: np.ndarray
    unstrained_spans: np.ndarray
    diagnostics: SolverDiagnostics

    @property
    def n_cables(self) -> int:
        return self.lengths.size


def _inverse_stiffness(material: CableMaterial) -> float:
    return 1.0 / material.axial_stiffness if material.is_elastic else 0.0


def _check_horizontal_force(H: np.ndarray, x: np.ndarray) -> None:
    if np.any(np.abs(H) < MIN_HORIZONTAL_FORCE):
        bad = np.flatnonzero(np.abs(H) < MIN_HORIZONTAL_FORCE).tolist()
        raise ConvergenceError(
            f"Horizontal cable force vanished for cables {bad}; the catenary "
            f"is singular there",
            x=x,
        )


def catenary_span(
    H: np.ndarray,
    V: np.ndarray,
    L: np.ndarray,
    w: float,
    inv_ea: float = 0.0,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Horizontal/vertical span of catenaries and their Jacobians.

    Parameters:
    -----------
    H, V : np.ndarray
        (M,) force the platform exerts on each cable end, in the cable plane
    L : np.ndarray
        (M,) unstrained lengths
    w : float
        Weight per unit length (N/m), > 0
    inv_ea : float
        1/(E·A0), 0 for inextensible cables

    Returns:
    --------
    x, z : np.ndarray
        (M,) span from the pulley end to the platform end
    jac : np.ndarray
        (M, 2, 3) d(x, z)/d(H, V, L) per cable
    """
    H = np.asarray(H, dtype=float)
    V = np.asarray(V, dtype=float)
    L = np.asarray(L, dtype=float)

    V1 = V - w * L
    T0 = np.hypot(H, V)
    T1 = np.hypot(H, V1)
    ash = np.arcsinh(V / H) - np.arcsinh(V1 / H)

    x = H * L * inv_ea + H / w * ash
    # (T0 - T1)/w rewritten without the cancellation
    z = V * L * inv_ea - 0.5 * w * L * L * inv_ea + L * (V + V1) / (T0 + T1)

    # (1/T0 - 1/T1)/w, same rewrite
    q = -L * (V + V1) / (T0 * T1 * (T0 + T1))

    jac = np.empty((H.size, 2, 3))
    jac[:, 0, 0] = L * inv_ea + (ash - V / T0 + V1 / T1) / w
    jac[:, 0, 1] = H * q
    jac[:, 0, 2] = H * inv_ea + H / T1
    jac[:, 1, 0] = H * q
    jac[:, 1, 1] = L * inv_ea + (V / T0 - V1 / T1) / w
    jac[:, 1, 2] = V1 * inv_ea + V1 / T1
    return x, z, jac


def catenary_profile(
    H: float,
    V: float,
    L: float,
    w: float,
    inv_ea: float = 0.0,
    s: Optional[np.ndarray] = None,
    n_points: int = 50,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Points along one catenary, measured from the pulley end.

    s runs over [0, L] (unstrained arc length); x(0) = z(0) = 0 and
    (x(L), z(L)) is the span returned by catenary_span.
    """
    if s is None:
        s = np.linspace(0.0, L, n_points)
    s = np.asarray(s, dtype=float)

    V1 = V - w * L
    T1 = np.hypot(H, V1)
    Vs = V1 + w * s
    Ts = np.hypot(H, Vs)

    x = H * s * inv_ea + H / w * (np.arcsinh(Vs / H) - np.arcsinh(V1 / H))
    z = (V1 * s + 0.5 * w * s * s) * inv_ea + s * (2.0 * V1 + w * s) / (Ts + T1)
    return x, z


def strained_length(H, V, L, w: float, inv_ea: float = 0.0) -> np.ndarray:
    """Stretched length of catenaries with unstrained length L."""
    H = np.asarray(H, dtype=float)
    V = np.asarray(V, dtype=float)
    L = np.asarray(L, dtype=float)
    if inv_ea == 0.0:
        return L.copy()
    V1 = V - w * L
    T0 = np.hypot(H, V)
    T1 = np.hypot(H, V1)
    stretch = (V * T0 + H * H * np.arcsinh(V / H)
               - V1 * T1 - H * H * np.arcsinh(V1 / H))
    return L + stretch * inv_ea / (2.0 * w)


def _plane_frames(exit_points: np.ndarray, anchors: np.ndarray):
    """Azimuth γc and in-plane spans (horizontal, vertical) of every cable."""
    d = anchors - exit_points
    horizontal = np.hypot(d[0], d[1])
    if np.any(horizontal < MIN_HORIZONTAL_SPAN):
        bad = np.flatnonzero(horizontal < MIN_HORIZONTAL_SPAN).tolist()
        raise ConvergenceError(
            f"Cables {bad} hang vertically; the catenary model is singular there"
        )
    gamma = np.arctan2(d[1], d[0])
    return gamma, horizontal, d[2]


def equilibrium_matrix(plane_angles: np.ndarray, anchor_offsets: np.ndarray) -> np.ndarray:
    """
    6×3M map from the catenary state to the wrench the cables put on the platform.

    anchor_offsets are the world-oriented anchor vectors R·b_i (3×M).
    """
    m = plane_angles.size
    contributions = []
    for i in range(m):
        force = -rotz(plane_angles[i]) @ _PLANE_SELECTOR
        block = np.vstack([force, skew(anchor_offsets[:, i]) @ force])
        contributions.append((CATENARY_LAYOUT.cable_indices(i), block))
    return assemble_columns(6, CATENARY_LAYOUT.size(m), contributions)


def _initial_guess(kin, pose: Pose, robot: CableRobot, wrench: np.ndarray, exit_points, anchors, plane_angles):
    """Straight-cable forces projected into each cable plane, lengths = chords."""
    A = structure_matrix(robot.attachments, kin.unit_vectors, pose.rotation)
    forces = distribute_forces(wrench, A, robot.force_min, robot.force_max)

    m = robot.n_cables
    H = np.zeros(m)
    V = np.zeros(m)
    for i in range(m):
        local = rotz(plane_angles[i]).T @ (-kin.unit_vectors[:, i] * forces[i])
        H[i], V[i] = local[0], local[2]
    L = np.linalg.norm(anchors - exit_points, axis=0)
    return CATENARY_LAYOUT.pack(H, V, L)


def _departure_wrap(robot: CableRobot, i: int, swivel: float, plane_angle: float,
                    H: float, V1: float) -> float:
    """Wrap angle at which the pulley releases a cable leaving along (H, V1)."""
    direction = rotz(plane_angle) @ np.array([H, 0.0, V1])
    local = rotz(swivel).T @ robot.pulley(i).rotation.T @ direction
    return float(np.mod(np.arctan2(local[0], local[2]), 2.0 * np.pi))


def _build_problem(x_start, x_ref, A_eq, wrench, horizontal, vertical, w, inv_ea,
                   fmin, fmax, elastic: bool) -> NLPProblem:
    layout = CATENARY_LAYOUT
    m = horizontal.size
    n = layout.size(m)
    upper_mask = np.isfinite(fmax)

    def split(x):
        return (layout.component(x, FORCE_X), layout.component(x, FORCE_Z),
                layout.component(x, LENGTH))

    # half squared norm: unit Hessian, same minimizer as the norm itself
    centre = x_ref if elastic else np.zeros(n)

    def objective(x):
        d = x - centre
        return 0.5 * float(d @ d)

    def objective_grad(x):
        return x - centre

    def eq_fun(x):
        H, V, L = split(x)
        _check_horizontal_force(H, x)
        gx, gz, _ = catenary_span(H, V, L, w, inv_ea)
        return np.column_stack([gx - horizontal, gz - vertical]).reshape(-1)

    def eq_jac(x):
        H, V, L = split(x)
        _check_horizontal_force(H, x)
        _, _, jac = catenary_span(H, V, L, w, inv_ea)
        rows = []
        for i in range(m):
            block = np.zeros((2 * m, 3))
            block[2 * i:2 * i + 2, :] = jac[i]
            rows.append((layout.cable_indices(i), block))
        return assemble_columns(2 * m, n, rows)

    def ineq_fun(x):
        T0 = np.hypot(layout.component(x, FORCE_X), layout.component(x, FORCE_Z))
        return np.concatenate([T0 - fmin, fmax[upper_mask] - T0[upper_mask]])

    def ineq_jac(x):
        H = layout.component(x, FORCE_X)
        V = layout.component(x, FORCE_Z)
        T0 = np.hypot(H, V)
        dT = np.zeros((m, n))
        dT[np.arange(m), layout.component_indices(m, FORCE_X)] = H / T0
        dT[np.arange(m), layout.component_indices(m, FORCE_Z)] = V / T0
        return np.vstack([dT, -dT[upper_mask]])

    # Fx > 0 keeps the cable pulling; x(Fx) is even for inextensible cables
    lower = np.full(n, -np.inf)
    lower[layout.component_indices(m, FORCE_X)] = np.maximum(
        HORIZONTAL_FORCE_BOUND_RATIO * fmin, HORIZONTAL_FORCE_BOUND_FLOOR,
    )
    lower[layout.component_indices(m, LENGTH)] = 0.0
    upper = np.full(n, np.inf)

    return NLPProblem(
        objective=objective,
        objective_grad=objective_grad,
        x0=np.clip(x_start, lower, upper),
        A_eq=A_eq,
        b_eq=-wrench,
        eq_fun=eq_fun,
        eq_jac=eq_jac,
        ineq_fun=ineq_fun,
        ineq_jac=ineq_jac,
        lower=lower,
        upper=upper,
    )


def _solve_nlp(backend: NLPBackend, problem: NLPProblem, options: SolverOptions,
               cancel, deadline):
    """
    Run the NLP with options.method; retry once with options.fallback_method
    when the first run ends unsuccessfully without being interrupted.

    Returns (result, method, iterations summed over both runs).
    """
    result = backend.solve(problem, options, cancel=cancel, deadline=deadline)
    fallback = options.fallback_method
    if (result.success or fallback is None or fallback == options.method
            or result.status in ('cancelled', 'time budget exhausted')):
        return result, options.method, result.iterations

    logger.warning(
        "%s ended with status '%s' (%s); retrying with %s",
        options.method, result.status, result.message, fallback,
    )
    retry = backend.solve(
        problem, options.model_copy(update={'method': fallback}),
        cancel=cancel, deadline=deadline,
    )
    return retry, fallback, result.iterations + retry.iterations


def _residuals(problem: NLPProblem, x: np.ndarray, wrench: np.ndarray):
    eq = float(np.max(np.abs(problem.eq_fun(x))))
    ineq = float(max(0.0, -np.min(problem.ineq_fun(x))))
    equilibrium = float(np.linalg.norm(problem.A_eq @ x + wrench))
    return eq, ineq, equilibrium


def solve_catenary(
    pose: Pose,
    robot: CableRobot,
    wrench,
    material: CableMaterial,
    gravity: float = STANDARD_GRAVITY,
    options: Optional[SolverOptions] = None,
    cancel: Optional[CancelToken] = None,
    backend: Optional[NLPBackend] = None,
) -> CatenaryResult:
    """
    Catenary inverse kinematics with force feasibility and pulley coupling.

    Parameters:
    -----------
    pose : Pose
        Platform pose
    robot : CableRobot
        Geometry and tension limits
    wrench : array_like
        (6,) external wrench [f; τ] acting on the platform
    material : CableMaterial
        Density, and E/A0 for elastic cables
    gravity : float
        Gravitational acceleration (m/s²), acts along −z
    options : SolverOptions, optional
        Defaults to DEFAULT_SOLVER_OPTIONS
    cancel : CancelToken, optional
        Checked on every optimizer iteration
    backend : NLPBackend, optional
        Defaults to ScipyBackend()

    Returns:
    --------
    CatenaryResult

    Raises:
    -------
    InvalidGeometryError
        Bad wrench shape or gravity, or invalid pulley geometry
    InfeasibleError
        The straight-cable seed has no feasible force distribution
    ConvergenceError
        Optimizer failure, budget exhaustion, cancellation, residual above
        options.constraint_tolerance, a vertical cable, or pulley coupling
        that does not settle
    """
    options = DEFAULT_SOLVER_OPTIONS if options is None else options
    backend = ScipyBackend() if backend is None else backend
    wrench = np.asarray(wrench, dtype=float).reshape(-1)
    if wrench.size != 6:
        raise InvalidGeometryError(f"Catenary solver needs a 6D wrench, got {wrench.size} values")
    gravity = float(gravity)
    if not np.isfinite(gravity) or gravity <= 0.0:
        raise InvalidGeometryError(f"gravity must be finite and > 0, got {gravity}")

    deadline = None if options.max_time is None else time.monotonic() + options.max_time
    m = robot.n_cables
    w = material.weight_per_length(gravity)
    inv_ea = _inverse_stiffness(material)

    anchors = pose.transform(robot.attachments)
    offsets = pose.rotation @ robot.attachments

    seed_kin = pulley_kinematics(pose, robot)
    swivels = np.radians(seed_kin.pulley_angles[0])
    wraps = np.radians(seed_kin.pulley_angles[1])
    exit_points = seed_kin.exit_points.copy()

    plane_angles, horizontal, vertical = _plane_frames(exit_points, anchors)
    x_ref = _initial_guess(seed_kin, pose, robot, wrench, exit_points, anchors, plane_angles)
    x_start = x_ref

    has_pulleys = bool(np.any(robot.pulley_radii > 0.0))
    iterations = 0
    passes = 0

    while True:
        passes += 1
        A_eq = equilibrium_matrix(plane_angles, offsets)
        problem = _build_problem(
            x_start, x_ref, A_eq, wrench, horizontal, vertical, w, inv_ea,
            robot.force_min, robot.force_max, material.is_elastic,
        )
        result, method, used = _solve_nlp(backend, problem, options, cancel, deadline)
        iterations += used
        x = result.x

        eq_res, ineq_res, eq_residual = _residuals(problem, x, wrench)
        diagnostics = SolverDiagnostics(
            success=result.success,
            status=result.status,
            message=result.message,
            iterations=iterations,
            objective=float(np.linalg.norm(x - x_ref) if material.is_elastic else np.linalg.norm(x)),
            max_equality_residual=eq_res,
            max_inequality_violation=ineq_res,
            equilibrium_residual=eq_residual,
            pulley_passes=passes,
            method=method,
        )
        logger.debug(
            "Catenary pass %d: method=%s, status=%s, iterations=%d, eq=%.3g, ineq=%.3g, equilibrium=%.3g",
            passes, method, result.status, result.iterations, eq_res, ineq_res, eq_residual,
        )

        if result.status in ('cancelled', 'time budget exhausted', 'iteration limit'):
            raise ConvergenceError(
                f"Catenary solve stopped: {result.status}", x=x, diagnostics=diagnostics,
            )
        worst = max(eq_res, ineq_res, eq_residual)
        if worst > options.constraint_tolerance:
            raise ConvergenceError(
                f"Catenary solve did not converge ({result.message}); "
                f"constraint residual {worst:.3g} exceeds {options.constraint_tolerance:.3g}",
                x=x, diagnostics=diagnostics,
            )
        if not result.success:
            logger.warning(
                "Catenary solve accepted with optimizer status '%s' (%s); "
                "constraint residual %.3g is within tolerance",
                result.status, result.message, worst,
            )

        if not has_pulleys:
            break

        H = CATENARY_LAYOUT.component(x, FORCE_X)
        V = CATENARY_LAYOUT.component(x, FORCE_Z)
        L = CATENARY_LAYOUT.component(x, LENGTH)
        V1 = V - w * L
        new_exit = exit_points.copy()
        for i in range(m):
            r = float(robot.pulley_radii[i])
            if r == 0.0:
                continue
            wraps[i] = _departure_wrap(robot, i, swivels[i], plane_angles[i], H[i], V1[i])
            new_exit[:, i] = arc_points(
                robot.pulley_positions[:, i], robot.pulley(i).rotation, r,
                swivels[i], [wraps[i]],
            )[:, 0]

        moved = float(np.max(np.linalg.norm(new_exit - exit_points, axis=0)))
        exit_points = new_exit
        if moved < options.pulley_tolerance:
            break
        if passes >= options.max_pulley_iterations:
            raise ConvergenceError(
                f"Pulley coupling did not settle after {passes} passes "
                f"(exit point moved {moved:.3g} m)",
                x=x, diagnostics=diagnostics,
            )
        if cancel is not None and cancel.cancelled:
            raise ConvergenceError("Catenary solve stopped: cancelled", x=x, diagnostics=diagnostics)

        plane_angles, horizontal, vertical = _plane_frames(exit_points, anchors)
        x_start = x

    H = CATENARY_LAYOUT.component(x, FORCE_X)
    V = CATENARY_LAYOUT.component(x, FORCE_Z)
    L = CATENARY_LAYOUT.component(x, LENGTH)
    arcs = robot.pulley_radii * wraps

    unit_vectors = np.zeros((3, m))
    for i in range(m):
        unit_vectors[:, i] = -rotz(plane_angles[i]) @ np.array([H[i], 0.0, V[i]])
    tensions = np.hypot(H, V)
    unit_vectors /= tensions

    return CatenaryResult(
        lengths=L + arcs,
        strained_lengths=strained_length(H, V, L, w, inv_ea) + arcs,
        unit_vectors=unit_vectors,
        pulley_angles=np.vstack([np.degrees(swivels), np.degrees(wraps)]),
        local_forces=np.vstack([H, V]),
        exit_points=exit_points,
        anchors=anchors,
        tensions=tensions,
        unstrained_spans=L.copy(),
        diagnostics=diagnostics,
    )
