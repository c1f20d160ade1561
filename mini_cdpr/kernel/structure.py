# mini_cdpr/kernel/structure.py
"""
STRUCTURE MATRIX: From Cable Directions to Platform Wrench
==========================================================

ENGINEERING DERIVATION:
-----------------------
Cable i pulls on the platform with force f_i along its unit vector u_i
(pointing from the platform anchor towards the pulley). Its anchor sits at
b_i in the platform frame, i.e. at R·b_i relative to the platform origin in
world orientation. The wrench it produces is

    w_i = f_i · [       u_i      ]
                [ (R·b_i) × u_i  ]

Stacking the bracketed columns gives the structure matrix A (6×M), and
static equilibrium under an external wrench w reads

    A · f + w = 0

Reduced robots keep only the rows that belong to their degrees of freedom:

    kind    rows  column
    3R3T    6     [u; (R·b) × u]
    3T      3     [u_x, u_y, u_z]
    1R2T    3     [u_x, u_y, (R·b)_x u_y - (R·b)_y u_x]
    2T      2     [u_x, u_y]
"""

import numpy as np
from scipy.linalg import null_space
from typing import Optional

from .errors import InvalidGeometryError


STRUCTURE_KINDS = ('3R3T', '3T', '1R2T', '2T')
DOF_BY_KIND = {'3R3T': 6, '3T': 3, '1R2T': 3, '2T': 2}

UNIT_TOL = 1e-12


def normalize_columns(vectors: np.ndarray, tol: float = UNIT_TOL) -> np.ndarray:
    """
    Scale every column of `vectors` to unit length.

    Columns already within `tol` of unit length are left untouched.

    Raises:
        InvalidGeometryError: If a column has zero length
    """
    vectors = np.array(vectors, dtype=float)
    norms = np.linalg.norm(vectors, axis=0)
    if np.any(norms <= 0.0) or not np.all(np.isfinite(norms)):
        bad = np.flatnonzero(~(norms > 0.0) | ~np.isfinite(norms)).tolist()
        raise InvalidGeometryError(f"Cable vectors {bad} have zero or non-finite length")

    needs_scaling = np.abs(norms - 1.0) > tol
    vectors[:, needs_scaling] /= norms[needs_scaling]
    return vectors


def structure_matrix(
    attachments: np.ndarray,
    unit_vectors: np.ndarray,
    rotation: Optional[np.ndarray] = None,
    kind: str = '3R3T',
) -> np.ndarray:
    """
    Build the structure matrix for the given cable geometry.

    Parameters:
    -----------
    attachments : np.ndarray
        (3, M) platform-frame cable attachment points b_i
        (or (2, M) for the planar kinds)
    unit_vectors : np.ndarray
        (3, M) cable direction vectors from the platform anchor towards the
        pulley. Need not be normalized.
    rotation : np.ndarray, optional
        Platform rotation R (identity if omitted)
    kind : str
        '3R3T' (default), '3T', '1R2T' or '2T'

    Returns:
    --------
    np.ndarray
        Structure matrix of shape (DOF, M), one column per cable in input
        order

    Raises:
    -------
    InvalidGeometryError
        If the attachment and vector counts disagree
    ValueError
        If `kind` is unknown
    """
    if kind not in DOF_BY_KIND:
        raise ValueError(f"Unknown structure matrix kind '{kind}'. Use one of {STRUCTURE_KINDS}")

    b = np.atleast_2d(np.asarray(attachments, dtype=float))
    u = np.atleast_2d(np.asarray(unit_vectors, dtype=float))

    if b.shape[1] != u.shape[1]:
        raise InvalidGeometryError(
            f"Got {b.shape[1]} attachment points but {u.shape[1]} cable vectors"
        )

    planar = kind in ('1R2T', '2T')
    dim = 2 if planar else 3
    if b.shape[0] < dim or u.shape[0] < dim:
        raise InvalidGeometryError(
            f"Kind '{kind}' needs at least {dim} rows, got attachments {b.shape} "
            f"and vectors {u.shape}"
        )
    b = b[:dim]
    u = normalize_columns(u[:dim])

    if rotation is None:
        R = np.eye(dim)
    else:
        R = np.asarray(rotation, dtype=float)[:dim, :dim]

    n_cables = u.shape[1]
    A = np.zeros((DOF_BY_KIND[kind], n_cables), dtype=float)

    if kind == '3R3T':
        Rb = R @ b
        A[0:3, :] = u
        A[3:6, :] = np.cross(Rb, u, axis=0)
    elif kind == '3T':
        A[:, :] = u
    elif kind == '1R2T':
        Rb = R @ b
        A[0:2, :] = u
        # z-component of the planar cross product
        A[2, :] = Rb[0] * u[1] - Rb[1] * u[0]
    else:
        A[:, :] = u

    return A


def structure_nullspace(A: np.ndarray) -> np.ndarray:
    """
    Orthonormal basis of the null space of a structure matrix.

    For a redundantly actuated robot (M > DOF) the columns span the internal
    tension modes: force changes that leave the platform wrench untouched.

    Returns:
        (M, M - rank) array, empty in its second dimension if A has full
        column rank
    """
    return null_space(np.asarray(A, dtype=float))
