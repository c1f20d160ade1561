# tests/test_model.py
"""
ROBOT MODEL TESTS
=================

1. A robot built from Pulley objects hands the same pulleys back
2. Per-cable views are independent copies and range-checked
3. Robot arrays cannot be changed after construction
"""

import numpy as np
import pytest

from mini_cdpr.kernel.errors import InvalidGeometryError
from mini_cdpr.model import Cable, CableRobot, Pulley


def make_pulleys():
    return [
        Pulley([0.0, 0.0, 2.0], [0.0, 0.0, 0.0], 0.05),
        Pulley([2.0, 0.0, 2.0], [0.0, 0.0, 90.0], 0.04),
        Pulley([1.0, 2.0, 2.0], [10.0, -5.0, 180.0], 0.0),
    ]


ATTACHMENTS = np.array([[-0.1, 0.1, 0.0],
                        [-0.1, -0.1, 0.1],
                        [0.0, 0.0, 0.0]])


class TestFromPulleys:

    def test_round_trip(self):
        pulleys = make_pulleys()
        robot = CableRobot.from_pulleys(pulleys, ATTACHMENTS, force_min=5.0, force_max=300.0)

        assert robot.n_cables == 3
        np.testing.assert_array_equal(robot.force_min, [5.0, 5.0, 5.0])
        for i, expected in enumerate(pulleys):
            got = robot.pulley(i)
            np.testing.assert_array_equal(got.position, expected.position)
            np.testing.assert_array_equal(got.orientation, expected.orientation)
            assert got.radius == expected.radius
            np.testing.assert_allclose(got.rotation, expected.rotation, atol=1e-15)

    def test_needs_a_pulley(self):
        with pytest.raises(InvalidGeometryError):
            CableRobot.from_pulleys([], np.zeros((3, 0)))

    def test_attachment_count_must_match(self):
        with pytest.raises(InvalidGeometryError):
            CableRobot.from_pulleys(make_pulleys(), ATTACHMENTS[:, :2])


class TestCableView:

    def test_cable_carries_pulley_and_attachment(self):
        robot = CableRobot.from_pulleys(make_pulleys(), ATTACHMENTS)
        cable = robot.cable(1)

        assert isinstance(cable, Cable)
        assert cable.index == 1
        assert cable.pulley.radius == 0.04
        np.testing.assert_array_equal(cable.attachment, ATTACHMENTS[:, 1])

    def test_attachment_is_a_copy(self):
        robot = CableRobot.from_pulleys(make_pulleys(), ATTACHMENTS)
        cable = robot.cable(0)
        cable.attachment[0] = 99.0
        assert robot.attachments[0, 0] == -0.1

    @pytest.mark.parametrize("index", [-1, 3])
    def test_index_out_of_range(self, index):
        robot = CableRobot.from_pulleys(make_pulleys(), ATTACHMENTS)
        with pytest.raises(IndexError):
            robot.cable(index)


class TestImmutability:

    def test_arrays_are_read_only(self):
        robot = CableRobot.from_pulleys(make_pulleys(), ATTACHMENTS)
        with pytest.raises(ValueError):
            robot.pulley_positions[0, 0] = 1.0
        with pytest.raises(ValueError):
            robot.force_max[0] = 1.0

    def test_input_is_copied(self):
        b = ATTACHMENTS.copy()
        robot = CableRobot.from_pulleys(make_pulleys(), b)
        b[0, 0] = 5.0
        assert robot.attachments[0, 0] == -0.1
