# mini_cdpr/kernel/layout.py
"""
STATE LAYOUT: Per-Cable Variable Indexing
=========================================

PURPOSE:
--------
The catenary solver optimizes over one flat vector that packs a fixed number
of unknowns per cable:

    [Fx_0, Fz_0, L0_0,  Fx_1, Fz_1, L0_1,  ...,  Fx_{M-1}, Fz_{M-1}, L0_{M-1}]

This module maps (cable, local variable) -> global index into that vector,
so constraint assembly never does index arithmetic by hand.

USAGE:
------
    layout = StateLayout(vars_per_cable=3)

    layout.idx(cable=2, local=1)   # -> 7  (Fz of cable 2)
    layout.size(4)                 # -> 12
    layout.cable_indices(1)        # -> [3, 4, 5]
    layout.component(x, FORCE_Z)   # -> every cable's Fz as an (M,) array
"""

from dataclasses import dataclass
from typing import List

import numpy as np


# Local variable positions inside one cable block
FORCE_X = 0
FORCE_Z = 1
LENGTH = 2


@dataclass(frozen=True)
class StateLayout:
    """
    Index map between cable-local unknowns and the packed state vector.

    Attributes:
    -----------
    vars_per_cable : int
        Unknowns per cable (3 for the catenary solver: Fx, Fz, L0)

    Examples:
    ---------
    >>> layout = StateLayout(vars_per_cable=3)
    >>> layout.idx(0, 2)
    2
    >>> layout.idx(1, 0)
    3
    >>> layout.size(4)
    12
    """
    vars_per_cable: int

    def idx(self, cable: int, local: int) -> int:
        """Global index of local variable `local` of cable `cable`."""
        return self.vars_per_cable * cable + local

    def size(self, n_cables: int) -> int:
        """Length of the packed state vector for n_cables cables."""
        return self.vars_per_cable * n_cables

    def cable_indices(self, cable: int) -> List[int]:
        """
        All global indices belonging to one cable.

        >>> StateLayout(3).cable_indices(2)
        [6, 7, 8]
        """
        base = self.vars_per_cable * cable
        return list(range(base, base + self.vars_per_cable))

    def component_indices(self, n_cables: int, local: int) -> np.ndarray:
        """Indices of one local variable across all cables."""
        return np.arange(local, self.size(n_cables), self.vars_per_cable)

    def component(self, x: np.ndarray, local: int) -> np.ndarray:
        """Extract one local variable of every cable from a packed vector."""
        x = np.asarray(x, dtype=float)
        return x[local::self.vars_per_cable]

    def pack(self, *components: np.ndarray) -> np.ndarray:
        """
        Interleave per-cable component arrays into one state vector.

        pack(fx, fz, l0) is the inverse of
        (component(x, 0), component(x, 1), component(x, 2)).
        """
        if len(components) != self.vars_per_cable:
            raise ValueError(
                f"Expected {self.vars_per_cable} components, got {len(components)}"
            )
        stacked = np.column_stack([np.asarray(c, dtype=float).reshape(-1) for c in components])
        return stacked.reshape(-1)


CATENARY_LAYOUT = StateLayout(vars_per_cable=3)   # Fx, Fz, L0
