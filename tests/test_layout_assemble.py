# tests/test_layout_assemble.py
"""
STATE LAYOUT AND ASSEMBLY TESTS
===============================

The index map must agree with hand-computed positions, and block assembly
must scatter-add columns where the index map says.
"""

import numpy as np
import pytest

from mini_cdpr.kernel.assemble import assemble_columns
from mini_cdpr.kernel.layout import CATENARY_LAYOUT, FORCE_X, FORCE_Z, LENGTH, StateLayout


class TestStateLayout:

    def test_indices(self):
        layout = StateLayout(vars_per_cable=3)
        assert layout.idx(2, FORCE_Z) == 7
        assert layout.size(4) == 12
        assert layout.cable_indices(1) == [3, 4, 5]
        np.testing.assert_array_equal(layout.component_indices(3, LENGTH), [2, 5, 8])

    def test_pack_and_component(self):
        fx = np.array([1.0, 2.0])
        fz = np.array([3.0, 4.0])
        l0 = np.array([5.0, 6.0])
        x = CATENARY_LAYOUT.pack(fx, fz, l0)

        np.testing.assert_array_equal(x, [1.0, 3.0, 5.0, 2.0, 4.0, 6.0])
        np.testing.assert_array_equal(CATENARY_LAYOUT.component(x, FORCE_X), fx)
        np.testing.assert_array_equal(CATENARY_LAYOUT.component(x, LENGTH), l0)

    def test_pack_wrong_count(self):
        with pytest.raises(ValueError):
            CATENARY_LAYOUT.pack(np.zeros(2), np.zeros(2))


class TestAssembleColumns:

    def test_scatter_add(self):
        blocks = [
            ([0, 1], np.array([[1.0, 2.0], [3.0, 4.0]])),
            ([1, 3], np.array([[10.0, 20.0], [30.0, 40.0]])),
        ]
        A = assemble_columns(2, 4, blocks)
        expected = np.array([[1.0, 12.0, 0.0, 20.0],
                             [3.0, 34.0, 0.0, 40.0]])
        np.testing.assert_array_equal(A, expected)

    def test_shape_mismatch(self):
        with pytest.raises(ValueError, match="does not match"):
            assemble_columns(6, 6, [([0, 1, 2], np.zeros((6, 2)))])
