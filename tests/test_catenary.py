# tests/test_catenary.py
"""
CATENARY INVERSE KINEMATICS TESTS
=================================

Validation strategy:
1. PROFILE: closed-form span and its Jacobian agree with finite differences
2. EQUILIBRIUM: the cable forces of a converged solve cancel the wrench
3. LIMIT: a nearly massless cable reproduces the straight-line model
4. PHYSICS: heavy cables are longer than the chord, elastic ones stretch
5. COUPLING: with real pulleys the exit point follows the catenary
6. FALLBACK: a stalled SLSQP run is retried with trust-constr
"""

import numpy as np
import pytest

from mini_cdpr.catenary import (
    catenary_span, catenary_profile, strained_length, solve_catenary, equilibrium_matrix,
)
from mini_cdpr.config import SolverOptions
from mini_cdpr.kernel.errors import ConvergenceError, InvalidGeometryError
from mini_cdpr.kernel.layout import CATENARY_LAYOUT, FORCE_X
from mini_cdpr.kernel.nlp import CancelToken, NLPResult, ScipyBackend
from mini_cdpr.kernel.rotation import Pose, rotz, rotation_from_euler
from mini_cdpr.model import CableMaterial, CableRobot
from mini_cdpr.pulley import pulley_kinematics


WRENCH = np.array([0.0, 0.0, -50.0, 0.0, 0.0, 0.0])


def make_box_robot(radius=0.0, force_min=20.0, force_max=1000.0):
    """8-cable robot, pulleys on the corners of a 4×4×3 m frame."""
    a, b = [], []
    for z_frame, z_plat in ((0.0, -0.2), (3.0, 0.2)):
        for sx, sy in ((-1, -1), (1, -1), (1, 1), (-1, 1)):
            a.append([2.0 * sx, 2.0 * sy, z_frame])
            b.append([0.2 * sx, 0.1 * sy, z_plat])
    return CableRobot(
        np.array(a).T, np.array(b).T, pulley_radii=radius,
        force_min=force_min, force_max=force_max,
    )


def platform_wrench(result, pose, robot):
    """Net force and torque of the cables on the platform."""
    forces = result.unit_vectors * result.tensions
    offsets = pose.rotation @ robot.attachments
    return np.concatenate([forces.sum(axis=1), np.cross(offsets, forces, axis=0).sum(axis=1)])


class TestCatenaryProfile:

    def test_jacobian_matches_finite_differences(self):
        H = np.array([40.0, 120.0])
        V = np.array([25.0, -10.0])
        L = np.array([2.5, 1.7])
        w, inv_ea = 2.0, 1e-4
        _, _, jac = catenary_span(H, V, L, w, inv_ea)

        eps = 1e-6
        for k, (dH, dV, dL) in enumerate(np.eye(3)):
            xp, zp, _ = catenary_span(H + eps * dH, V + eps * dV, L + eps * dL, w, inv_ea)
            xm, zm, _ = catenary_span(H - eps * dH, V - eps * dV, L - eps * dL, w, inv_ea)
            np.testing.assert_allclose(jac[:, 0, k], (xp - xm) / (2 * eps), rtol=1e-5, atol=1e-9)
            np.testing.assert_allclose(jac[:, 1, k], (zp - zm) / (2 * eps), rtol=1e-5, atol=1e-9)

    def test_profile_ends_at_span(self):
        H, V, L, w = 60.0, 30.0, 2.0, 5.0
        x, z, _ = catenary_span(np.array([H]), np.array([V]), np.array([L]), w)
        px, pz = catenary_profile(H, V, L, w, n_points=20)

        assert px[0] == 0.0 and pz[0] == 0.0
        assert np.isclose(px[-1], x[0], rtol=1e-12)
        assert np.isclose(pz[-1], z[0], rtol=1e-12)

    def test_profile_arc_length(self):
        """Inextensible: the polyline length approaches the unstrained length."""
        H, V, L, w = 20.0, 15.0, 3.0, 10.0
        px, pz = catenary_profile(H, V, L, w, n_points=4001)
        length = np.sum(np.hypot(np.diff(px), np.diff(pz)))
        assert np.isclose(length, L, rtol=1e-6)

    def test_strained_length(self):
        H, V, L, w = 100.0, 50.0, 2.0, 1.0
        assert strained_length(H, V, L, w, 0.0) == L
        stretched = strained_length(H, V, L, w, 1e-5)
        # mean tension ~ 110 N -> strain ~ 1.1e-3
        assert L * (1 + 100.0 * 1e-5) < stretched < L * (1 + 112.0 * 1e-5)

    def test_equilibrium_matrix_shape_and_torque(self):
        gamma = np.array([0.0, np.pi / 2])
        offsets = np.array([[0.1, 0.0], [0.0, 0.2], [0.0, 0.0]])
        A = equilibrium_matrix(gamma, offsets)
        assert A.shape == (6, 6)

        x = np.array([10.0, 5.0, 1.0, 20.0, -4.0, 1.0])
        f0 = -np.array([10.0, 0.0, 5.0])
        f1 = -rotz(np.pi / 2) @ np.array([20.0, 0.0, -4.0])
        expected = np.concatenate([f0 + f1, np.cross(offsets[:, 0], f0) + np.cross(offsets[:, 1], f1)])
        np.testing.assert_allclose(A @ x, expected, atol=1e-12)
        # lengths do not enter equilibrium
        np.testing.assert_array_equal(A[:, 2], 0.0)


class TestCatenaryEquilibrium:

    @pytest.mark.parametrize("pose_vector", [
        [0.0, 0.0, 1.5, 0.0, 0.0, 0.0],
        [0.3, -0.2, 1.3, 0.05, -0.04, 0.1],
    ])
    def test_forces_cancel_wrench(self, pose_vector):
        robot = make_box_robot()
        material = CableMaterial(density=0.1)
        pose = Pose.from_vector(pose_vector)

        result = solve_catenary(pose, robot, WRENCH, material)

        net = platform_wrench(result, pose, robot)
        np.testing.assert_allclose(net + WRENCH, 0.0, atol=1e-5)
        assert result.diagnostics.max_equality_residual <= 1e-6
        assert np.all(result.tensions >= 20.0 - 1e-5)
        assert np.all(result.tensions <= 1000.0 + 1e-5)
        assert result.diagnostics.pulley_passes == 1

    def test_shapes_and_units(self):
        robot = make_box_robot()
        pose = Pose.from_vector([0.0, 0.0, 1.5, 0.0, 0.0, 0.0])
        result = solve_catenary(pose, robot, WRENCH, CableMaterial(density=0.1))

        assert result.lengths.shape == (8,)
        assert result.unit_vectors.shape == (3, 8)
        assert result.pulley_angles.shape == (2, 8)
        assert result.local_forces.shape == (2, 8)
        np.testing.assert_allclose(np.linalg.norm(result.unit_vectors, axis=0), 1.0)
        np.testing.assert_allclose(result.strained_lengths, result.lengths)


class TestStraightLineLimit:

    def test_light_cable_matches_pulley_model(self):
        robot = make_box_robot()
        pose = Pose.from_vector([0.1, 0.2, 1.6, 0.0, 0.02, -0.05])
        result = solve_catenary(pose, robot, WRENCH, CableMaterial(density=1e-4))
        kin = pulley_kinematics(pose, robot)

        np.testing.assert_allclose(result.lengths, kin.lengths, atol=1e-6)
        np.testing.assert_allclose(result.unit_vectors, kin.unit_vectors, atol=1e-3)


class TestCablePhysics:

    def test_heavy_cable_longer_than_chord(self):
        robot = make_box_robot()
        pose = Pose.from_vector([0.0, 0.0, 1.5, 0.0, 0.0, 0.0])
        result = solve_catenary(pose, robot, WRENCH, CableMaterial(density=0.5))
        chords = np.linalg.norm(result.anchors - result.exit_points, axis=0)
        assert np.all(result.lengths > chords)

    def test_elastic_cable_stretches(self):
        robot = make_box_robot()
        pose = Pose.from_vector([0.0, 0.0, 1.5, 0.0, 0.0, 0.0])
        material = CableMaterial(density=0.1, youngs_modulus=100e9, cross_section=1e-6)

        result = solve_catenary(pose, robot, WRENCH, material)

        assert np.all(result.strained_lengths > result.lengths)
        net = platform_wrench(result, pose, robot)
        np.testing.assert_allclose(net + WRENCH, 0.0, atol=1e-5)


class TestPulleyCoupling:

    def test_exit_point_stays_on_groove(self):
        r = 0.05
        robot = make_box_robot(radius=r)
        pose = Pose.from_vector([0.0, 0.0, 1.5, 0.0, 0.0, 0.0])

        result = solve_catenary(pose, robot, WRENCH, CableMaterial(density=0.3))

        assert result.diagnostics.pulley_passes >= 2
        for i in range(robot.n_cables):
            swivel = np.radians(result.pulley_angles[0, i])
            centre = robot.pulley_positions[:, i] + \
                rotation_from_euler(robot.pulley_orientations[:, i], degrees=True) @ rotz(swivel) @ [r, 0, 0]
            assert np.isclose(np.linalg.norm(result.exit_points[:, i] - centre), r, rtol=1e-9)
        net = platform_wrench(result, pose, robot)
        np.testing.assert_allclose(net + WRENCH, 0.0, atol=1e-5)


class StallingSLSQP:
    """Backend whose SLSQP runs stall at the seed; other methods go to scipy."""

    def __init__(self):
        self.methods = []
        self.problems = []
        self._scipy = ScipyBackend()

    def solve(self, problem, options, cancel=None, deadline=None):
        self.methods.append(options.method)
        self.problems.append(problem)
        if options.method == 'SLSQP':
            return NLPResult(
                x=problem.x0, success=False, status='failed', message="stalled",
                iterations=3, objective=problem.objective(problem.x0),
            )
        return self._scipy.solve(problem, options, cancel=cancel, deadline=deadline)


class TestSolverFallback:

    def test_low_tension_limit_converges(self):
        """Tensions near a 1 N lower limit used to stall SLSQP at this pose."""
        robot = make_box_robot(force_min=1.0, force_max=500.0)
        pose = Pose.identity([0.0, 0.0, 1.5])

        result = solve_catenary(pose, robot, WRENCH, CableMaterial(density=0.1))

        net = platform_wrench(result, pose, robot)
        np.testing.assert_allclose(net + WRENCH, 0.0, atol=1e-5)
        assert result.diagnostics.max_equality_residual <= 1e-6
        assert np.all(result.tensions >= 1.0 - 1e-5)
        # symmetric pose and load: lower cables share one tension, upper ones another
        np.testing.assert_allclose(result.tensions[:4], result.tensions[0], rtol=1e-3)
        np.testing.assert_allclose(result.tensions[4:], result.tensions[4], rtol=1e-3)

    def test_retry_after_failed_primary(self):
        backend = StallingSLSQP()
        robot = make_box_robot(force_min=1.0, force_max=500.0)
        pose = Pose.identity([0.0, 0.0, 1.5])

        result = solve_catenary(pose, robot, WRENCH, CableMaterial(density=0.1), backend=backend)

        assert backend.methods == ['SLSQP', 'trust-constr']
        assert result.diagnostics.method == 'trust-constr'
        assert result.diagnostics.iterations > 3
        net = platform_wrench(result, pose, robot)
        np.testing.assert_allclose(net + WRENCH, 0.0, atol=1e-5)

    def test_no_retry_without_fallback(self):
        backend = StallingSLSQP()
        options = SolverOptions(fallback_method=None)
        with pytest.raises(ConvergenceError) as exc:
            solve_catenary(Pose.identity([0, 0, 1.5]), make_box_robot(), WRENCH,
                           CableMaterial(density=0.1), options=options, backend=backend)
        assert backend.methods == ['SLSQP']
        assert exc.value.diagnostics.method == 'SLSQP'

    def test_horizontal_force_is_bounded_away_from_zero(self):
        """Fx > 0 rules out the mirrored root where a cable pushes."""
        backend = StallingSLSQP()
        robot = make_box_robot(force_min=20.0)
        options = SolverOptions(fallback_method=None)
        with pytest.raises(ConvergenceError):
            solve_catenary(Pose.identity([0, 0, 1.5]), robot, WRENCH,
                           CableMaterial(density=0.1), options=options, backend=backend)

        problem = backend.problems[0]
        fx = CATENARY_LAYOUT.component_indices(robot.n_cables, FORCE_X)
        np.testing.assert_allclose(problem.lower[fx], 20.0 * 1e-6)
        assert np.all(problem.x0 >= problem.lower)


class TestFailures:

    def test_wrong_wrench_size(self):
        with pytest.raises(InvalidGeometryError):
            solve_catenary(Pose.identity([0, 0, 1.5]), make_box_robot(), np.zeros(3),
                           CableMaterial(density=0.1))

    def test_non_positive_gravity(self):
        with pytest.raises(InvalidGeometryError):
            solve_catenary(Pose.identity([0, 0, 1.5]), make_box_robot(), WRENCH,
                           CableMaterial(density=0.1), gravity=0.0)

    def test_vertical_cable_is_singular(self):
        robot = CableRobot([[0.0, 1.0], [0.0, 0.0], [3.0, 3.0]], np.zeros((3, 2)))
        with pytest.raises(ConvergenceError, match="vertical"):
            solve_catenary(Pose.identity([0, 0, 1]), robot, WRENCH, CableMaterial(density=0.1))

    def test_iteration_budget(self):
        options = SolverOptions(max_iterations=1)
        with pytest.raises(ConvergenceError) as exc:
            solve_catenary(Pose.identity([0, 0, 1.5]), make_box_robot(), WRENCH,
                           CableMaterial(density=0.5), options=options)
        assert exc.value.x is not None
        assert exc.value.diagnostics.status == 'iteration limit'

    def test_cancelled(self):
        token = CancelToken()
        token.cancel()
        with pytest.raises(ConvergenceError) as exc:
            solve_catenary(Pose.identity([0, 0, 1.5]), make_box_robot(), WRENCH,
                           CableMaterial(density=0.5), cancel=token)
        assert exc.value.diagnostics.status == 'cancelled'


class TestMaterial:

    def test_density_must_be_positive(self):
        with pytest.raises(InvalidGeometryError):
            CableMaterial(density=0.0)

    def test_elastic_needs_both_parameters(self):
        with pytest.raises(InvalidGeometryError):
            CableMaterial(density=0.1, youngs_modulus=1e9)

    def test_elastic_flag(self):
        assert not CableMaterial(density=0.1).is_elastic
        assert CableMaterial(density=0.1, youngs_modulus=1e9, cross_section=1e-6).is_elastic
