# mini_cdpr/kernel/rotation.py
"""
ROTATIONS AND POSES: One Canonical Orientation Type
===================================================

PURPOSE:
--------
A platform pose can arrive in three encodings:

    Euler angles   [x, y, z, a, b, c]              (6 values)
    Quaternion     [x, y, z, qw, qx, qy, qz]       (7 values)
    Matrix row     [x, y, z, R11, R12, ..., R33]   (12 values)

All three are resolved ONCE, here, into a Pose holding a position vector and
a 3×3 rotation matrix. Nothing downstream ever sees the encoding again.

CONVENTIONS:
------------
- Euler angles [a, b, c] are Tait-Bryan angles applied as

      R = Rz(c) · Ry(b) · Rx(a)

  i.e. first `a` about x, then `b` about y, finally `c` about z.
- Quaternions are scalar-first [w, x, y, z] and are re-normalized before
  conversion.
- Matrix rows are row-major: [R11, R12, R13, R21, ..., R33].
- Angles are radians unless a function says otherwise.

Every rotation matrix built in this package goes through clean_rotation(),
which snaps entries below 2·eps to exactly zero (rotz(90°) has an exact 0
in its corner, not 6e-17).
"""

from dataclasses import dataclass, field
from typing import Sequence, Union

import numpy as np
from scipy.spatial.transform import Rotation

from .errors import InvalidGeometryError


ORTHONORMAL_TOL = 1e-6
_EPS = np.finfo(float).eps

ArrayLike = Union[Sequence[float], np.ndarray]


def clean_rotation(R: np.ndarray) -> np.ndarray:
    """Return a copy of R with entries |R_ij| < 2·eps set to exactly zero."""
    R = np.array(R, dtype=float)
    R[np.abs(R) < 2 * _EPS] = 0.0
    return R


def rotx(angle: float) -> np.ndarray:
    """Elementary rotation about the x-axis (radians)."""
    c, s = np.cos(angle), np.sin(angle)
    return clean_rotation([[1.0, 0.0, 0.0], [0.0, c, -s], [0.0, s, c]])


def roty(angle: float) -> np.ndarray:
    """Elementary rotation about the y-axis (radians)."""
    c, s = np.cos(angle), np.sin(angle)
    return clean_rotation([[c, 0.0, s], [0.0, 1.0, 0.0], [-s, 0.0, c]])


def rotz(angle: float) -> np.ndarray:
    """Elementary rotation about the z-axis (radians)."""
    c, s = np.cos(angle), np.sin(angle)
    return clean_rotation([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])


def skew(v: ArrayLike) -> np.ndarray:
    """
    Skew-symmetric cross-product matrix.

    skew(a) @ b == np.cross(a, b) for any 3-vectors a, b.
    """
    x, y, z = np.asarray(v, dtype=float).reshape(3)
    return np.array([
        [0.0, -z, y],
        [z, 0.0, -x],
        [-y, x, 0.0],
    ])


def check_rotation(R: np.ndarray, tol: float = ORTHONORMAL_TOL) -> np.ndarray:
    """
    Validate that R is a proper rotation (orthonormal, det = +1).

    Returns:
        R as a float array of shape (3, 3)

    Raises:
        InvalidGeometryError: If R has the wrong shape or is not a rotation
    """
    R = np.asarray(R, dtype=float)
    if R.shape != (3, 3):
        raise InvalidGeometryError(f"Rotation must be 3x3, got shape {R.shape}")
    if not np.all(np.isfinite(R)):
        raise InvalidGeometryError("Rotation contains non-finite entries")

    ortho_err = np.max(np.abs(R.T @ R - np.eye(3)))
    if ortho_err > tol:
        raise InvalidGeometryError(
            f"Rotation is not orthonormal (max |R^T R - I| = {ortho_err:.2e})"
        )
    det = np.linalg.det(R)
    if abs(det - 1.0) > tol:
        raise InvalidGeometryError(f"Rotation has det = {det:.6f}, expected +1")
    return R


def rotation_from_euler(angles: ArrayLike, degrees: bool = False) -> np.ndarray:
    """
    Rotation matrix from XYZ Tait-Bryan angles [a, b, c].

    R = Rz(c) · Ry(b) · Rx(a)

    Args:
        angles: Three angles about x, y, z
        degrees: Interpret angles as degrees instead of radians

    Returns:
        3×3 rotation matrix
    """
    angles = np.asarray(angles, dtype=float).reshape(-1)
    if angles.size != 3:
        raise InvalidGeometryError(f"Expected 3 Euler angles, got {angles.size}")
    if not np.all(np.isfinite(angles)):
        raise InvalidGeometryError("Euler angles must be finite")
    a, b, c = angles
    # intrinsic ZYX with (c, b, a) == Rz(c) Ry(b) Rx(a)
    R = Rotation.from_euler('ZYX', [c, b, a], degrees=degrees).as_matrix()
    return clean_rotation(R)


def rotation_from_quaternion(q: ArrayLike) -> np.ndarray:
    """
    Rotation matrix from a scalar-first quaternion [w, x, y, z].

    The quaternion does not need to be normalized; it is re-normalized here.

    Raises:
        InvalidGeometryError: If q does not have 4 finite entries or is zero
    """
    q = np.asarray(q, dtype=float).reshape(-1)
    if q.size != 4:
        raise InvalidGeometryError(f"Quaternion must have 4 entries, got {q.size}")
    norm = np.linalg.norm(q)
    if not np.isfinite(norm) or norm < 1e-12:
        raise InvalidGeometryError("Quaternion must be finite and non-zero")
    w, x, y, z = q / norm
    # scipy wants scalar-last
    R = Rotation.from_quat([x, y, z, w]).as_matrix()
    return clean_rotation(R)


def rotation_from_row(row: ArrayLike) -> np.ndarray:
    """Rotation matrix from its row-major flattening [R11, R12, ..., R33]."""
    row = np.asarray(row, dtype=float).reshape(-1)
    if row.size != 9:
        raise InvalidGeometryError(f"Matrix row must have 9 entries, got {row.size}")
    return clean_rotation(check_rotation(row.reshape(3, 3)))


def rotation_to_row(R: np.ndarray) -> np.ndarray:
    """Row-major flattening of a rotation matrix (inverse of rotation_from_row)."""
    return np.asarray(R, dtype=float).reshape(9).copy()


@dataclass(frozen=True, eq=False)
class Pose:
    """
    Platform pose: position in the world frame plus orientation.

    Parameters:
    -----------
    position : np.ndarray
        (3,) platform reference point in world coordinates
    rotation : np.ndarray
        (3, 3) rotation from platform frame to world frame

    Examples:
    ---------
    >>> Pose.from_vector([1, 1, 1.5, 0, 0, 0])            # Euler
    >>> Pose.from_vector([1, 1, 1.5, 1, 0, 0, 0])         # quaternion
    >>> Pose.from_vector([1, 1, 1.5, 1, 0, 0, 0, 1, 0, 0, 0, 1])  # matrix row

    Notes:
    ------
    frozen=True plus read-only array copies keep poses immutable.
    """
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    rotation: np.ndarray = field(default_factory=lambda: np.eye(3))

    def __post_init__(self):
        p = np.array(self.position, dtype=float).reshape(-1)
        if p.size != 3 or not np.all(np.isfinite(p)):
            raise InvalidGeometryError(f"Position must be 3 finite values, got {p}")
        R = clean_rotation(check_rotation(self.rotation))
        p.setflags(write=False)
        R.setflags(write=False)
        object.__setattr__(self, 'position', p)
        object.__setattr__(self, 'rotation', R)

    @classmethod
    def identity(cls, position: ArrayLike = (0.0, 0.0, 0.0)) -> "Pose":
        return cls(position=position, rotation=np.eye(3))

    @classmethod
    def from_euler(cls, position: ArrayLike, angles: ArrayLike, degrees: bool = False) -> "Pose":
        return cls(position=position, rotation=rotation_from_euler(angles, degrees=degrees))

    @classmethod
    def from_quaternion(cls, position: ArrayLike, quaternion: ArrayLike) -> "Pose":
        return cls(position=position, rotation=rotation_from_quaternion(quaternion))

    @classmethod
    def from_matrix(cls, position: ArrayLike, matrix: ArrayLike) -> "Pose":
        matrix = np.asarray(matrix, dtype=float)
        if matrix.shape == (3, 3):
            matrix = matrix.reshape(9)
        return cls(position=position, rotation=rotation_from_row(matrix))

    @classmethod
    def from_vector(cls, vector: ArrayLike) -> "Pose":
        """
        Build a pose from a flat vector, dispatching on its length.

        6 values  -> position + Euler angles (radians)
        7 values  -> position + quaternion [w, x, y, z]
        12 values -> position + row-major rotation matrix
        """
        v = np.asarray(vector, dtype=float).reshape(-1)
        if v.size == 6:
            return cls.from_euler(v[:3], v[3:6])
        if v.size == 7:
            return cls.from_quaternion(v[:3], v[3:7])
        if v.size == 12:
            return cls.from_matrix(v[:3], v[3:12])
        raise InvalidGeometryError(
            f"Pose vector must have 6, 7 or 12 entries, got {v.size}"
        )

    def to_vector(self) -> np.ndarray:
        """12-element row form [x, y, z, R11, ..., R33]."""
        return np.concatenate([self.position, rotation_to_row(self.rotation)])

    def transform(self, points: np.ndarray) -> np.ndarray:
        """
        Map platform-frame points (3×M) into the world frame.

        Returns p + R·b for every column b.
        """
        points = np.asarray(points, dtype=float)
        if points.ndim == 1:
            return self.position + self.rotation @ points
        return self.position[:, None] + self.rotation @ points
