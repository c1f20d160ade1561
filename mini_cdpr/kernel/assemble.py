# mini_cdpr/kernel/assemble.py
"""
ASSEMBLY: Scatter-Add of Per-Cable Blocks
=========================================

PURPOSE:
--------
Equilibrium of the platform is linear in the cable forces, but each cable
contributes through its own local frame. Every cable therefore hands in a
small block (e.g. 6×3: how its local unknowns map to force and torque on the
platform) together with the state indices those columns belong to.

Assembly just scatters those blocks into one global matrix:

    A = zeros(n_rows × n_cols)
    for (col_map, block) in contributions:
        A[:, col_map] += block

The same routine assembles the 6×3M equality matrix of the catenary solver
and any other blockwise constraint, regardless of how many rows a block has.
"""

import numpy as np
from typing import List, Sequence, Tuple


def assemble_columns(
    n_rows: int,
    n_cols: int,
    contributions: Sequence[Tuple[List[int], np.ndarray]],
) -> np.ndarray:
    """
    Assemble a global matrix from column-block contributions.

    Parameters:
    -----------
    n_rows : int
        Rows of the global matrix (6 for spatial equilibrium)
    n_cols : int
        Columns of the global matrix (size of the state vector)
    contributions : Sequence[Tuple[List[int], np.ndarray]]
        (col_map, block) pairs; block has shape (n_rows, len(col_map))

    Returns:
    --------
    np.ndarray
        Global matrix of shape (n_rows, n_cols)

    Raises:
    -------
    ValueError
        If a block does not match its column map or the row count
    """
    A = np.zeros((n_rows, n_cols), dtype=float)

    for col_map, block in contributions:
        block = np.asarray(block, dtype=float)
        if block.shape != (n_rows, len(col_map)):
            raise ValueError(
                f"Block shape {block.shape} does not match "
                f"({n_rows}, {len(col_map)}) for columns {list(col_map)}"
            )
        for b, ib in enumerate(col_map):
            A[:, ib] += block[:, b]

    return A

