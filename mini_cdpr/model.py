# mini_cdpr/model.py
"""
ROBOT MODEL DEFINITIONS: Pulley, CableMaterial, Cable, CableRobot
=================================================================

PURPOSE:
--------
Value types describing a cable robot that does not move:

- Pulley: swivelling pulley on the frame (position, orientation, radius)
- CableMaterial: linear density, and optionally E and A0 for elastic cables
- Cable: one cable = its pulley + its platform attachment point
- CableRobot: M cables plus the allowed tension range

The platform POSE is not part of the robot; it is passed per query.

CONVENTIONS:
------------
- Cable indices are zero-based: 0 .. M-1, in column order of every array
- Pulley orientations are Euler angles [a, b, c] in DEGREES, with
  R = Rz(c)·Ry(b)·Rx(a). They are converted to radians once, here.
- The pulley reference point is where the cable enters the pulley groove;
  the pulley frame's +z axis is the incoming cable direction.
"""

from dataclasses import dataclass
from typing import Optional, Union

import numpy as np

from .kernel.errors import InvalidGeometryError
from .kernel.forces import expand_limits
from .kernel.rotation import rotation_from_euler


def _as_columns(values, name: str, rows: int = 3) -> np.ndarray:
    arr = np.array(values, dtype=float)
    if arr.ndim == 1 and arr.size == rows:
        arr = arr.reshape(rows, 1)
    if arr.ndim != 2 or arr.shape[0] != rows:
        raise InvalidGeometryError(f"{name} must have shape ({rows}, M), got {arr.shape}")
    if not np.all(np.isfinite(arr)):
        raise InvalidGeometryError(f"{name} contains non-finite values")
    return arr


def _positive(value: Optional[float], name: str) -> Optional[float]:
    if value is None:
        return None
    value = float(value)
    if not np.isfinite(value) or value <= 0.0:
        raise InvalidGeometryError(f"{name} must be finite and > 0, got {value}")
    return value


@dataclass(frozen=True, eq=False)
class Pulley:
    """
    A swivelling pulley mounted on the robot frame.

    Parameters:
    -----------
    position : np.ndarray
        (3,) reference point a_i in world coordinates (meters)
    orientation : np.ndarray
        (3,) Euler angles [a, b, c] in degrees
    radius : float
        Pulley radius (meters), 0 for an ideal eyelet

    Examples:
    ---------
    >>> Pulley([0, 0, 2], [0, 0, 0], 0.05)
    """
    position: np.ndarray
    orientation: np.ndarray
    radius: float = 0.0

    def __post_init__(self):
        p = np.array(self.position, dtype=float).reshape(-1)
        o = np.array(self.orientation, dtype=float).reshape(-1)
        if p.size != 3 or o.size != 3:
            raise InvalidGeometryError("Pulley position and orientation need 3 values each")
        if not (np.all(np.isfinite(p)) and np.all(np.isfinite(o))):
            raise InvalidGeometryError("Pulley position and orientation must be finite")
        r = float(self.radius)
        if not np.isfinite(r) or r < 0.0:
            raise InvalidGeometryError(f"Pulley radius must be >= 0, got {r}")
        object.__setattr__(self, 'position', p)
        object.__setattr__(self, 'orientation', o)
        object.__setattr__(self, 'radius', r)

    @property
    def rotation(self) -> np.ndarray:
        """Pulley frame -> world rotation."""
        return rotation_from_euler(self.orientation, degrees=True)


@dataclass(frozen=True)
class CableMaterial:
    """
    Cable material for the catenary model.

    density is the linear density rho (kg/m). The cable is elastic iff both
    youngs_modulus (Pa) and cross_section (m²) are given.
    """
    density: float
    youngs_modulus: Optional[float] = None
    cross_section: Optional[float] = None

    def __post_init__(self):
        object.__setattr__(self, 'density', _positive(self.density, 'density'))
        object.__setattr__(self, 'youngs_modulus', _positive(self.youngs_modulus, 'youngs_modulus'))
        object.__setattr__(self, 'cross_section', _positive(self.cross_section, 'cross_section'))
        if (self.youngs_modulus is None) != (self.cross_section is None):
            raise InvalidGeometryError(
                "Elastic cables need both youngs_modulus and cross_section"
            )

    @property
    def is_elastic(self) -> bool:
        return self.youngs_modulus is not None

    @property
    def axial_stiffness(self) -> float:
        """E·A0 (N), infinite for inextensible cables."""
        if not self.is_elastic:
            return np.inf
        return self.youngs_modulus * self.cross_section

    def weight_per_length(self, gravity: float) -> float:
        """w = rho·g (N/m)."""
        return self.density * gravity


@dataclass(frozen=True, eq=False)
class Cable:
    """One cable of a robot: its pulley and its anchor b_i in the platform frame."""
    index: int
    pulley: Pulley
    attachment: np.ndarray


@dataclass(frozen=True, eq=False)
class CableRobot:
    """
    Geometry and tension limits of an M-cable robot.

    Parameters:
    -----------
    pulley_positions : np.ndarray
        (3, M) pulley reference points a_i (world)
    attachments : np.ndarray
        (3, M) cable anchors b_i on the platform (platform frame)
    pulley_radii : float or np.ndarray
        Scalar or (M,) radii, default 0 (straight-line cables)
    pulley_orientations : np.ndarray, optional
        (3, M) Euler angles in degrees, default all zeros
    force_min, force_max : float or np.ndarray
        Scalar or (M,) tension limits (N)

    Examples:
    ---------
    >>> a = [[0, 2, 2, 0], [0, 0, 2, 2], [0, 0, 0, 0]]
    >>> b = [[-.1, .1, .1, -.1], [-.1, -.1, .1, .1], [0, 0, 0, 0]]
    >>> robot = CableRobot(a, b, force_min=10, force_max=1000)
    >>> robot.n_cables
    4
    """
    pulley_positions: np.ndarray
    attachments: np.ndarray
    pulley_radii: Union[float, np.ndarray] = 0.0
    pulley_orientations: Optional[np.ndarray] = None
    force_min: Union[float, np.ndarray] = 0.0
    force_max: Union[float, np.ndarray] = np.inf

    def __post_init__(self):
        a = _as_columns(self.pulley_positions, 'pulley_positions')
        b = _as_columns(self.attachments, 'attachments')
        m = a.shape[1]
        if b.shape[1] != m:
            raise InvalidGeometryError(
                f"Got {m} pulleys but {b.shape[1]} attachment points"
            )

        radii = np.array(self.pulley_radii, dtype=float).reshape(-1)
        if radii.size == 1:
            radii = np.full(m, radii[0])
        if radii.size != m:
            raise InvalidGeometryError(f"pulley_radii must have 1 or {m} entries")
        if not np.all(np.isfinite(radii)) or np.any(radii < 0.0):
            raise InvalidGeometryError(f"Pulley radii must be finite and >= 0, got {radii}")

        if self.pulley_orientations is None:
            orient = np.zeros((3, m))
        else:
            orient = _as_columns(self.pulley_orientations, 'pulley_orientations')
            if orient.shape[1] != m:
                raise InvalidGeometryError(
                    f"pulley_orientations must have {m} columns, got {orient.shape[1]}"
                )

        fmin, fmax = (np.array(f) for f in expand_limits(self.force_min, self.force_max, m))

        for name, arr in (('pulley_positions', a), ('attachments', b),
                          ('pulley_radii', radii), ('pulley_orientations', orient),
                          ('force_min', fmin), ('force_max', fmax)):
            arr.setflags(write=False)
            object.__setattr__(self, name, arr)

    @classmethod
    def from_pulleys(cls, pulleys, attachments, force_min=0.0, force_max=np.inf) -> "CableRobot":
        """Build a robot from a sequence of Pulley objects."""
        pulleys = list(pulleys)
        if not pulleys:
            raise InvalidGeometryError("A cable robot needs at least one cable")
        return cls(
            pulley_positions=np.column_stack([p.position for p in pulleys]),
            attachments=attachments,
            pulley_radii=np.array([p.radius for p in pulleys]),
            pulley_orientations=np.column_stack([p.orientation for p in pulleys]),
            force_min=force_min,
            force_max=force_max,
        )

    @property
    def n_cables(self) -> int:
        return self.pulley_positions.shape[1]

    def pulley(self, i: int) -> Pulley:
        return Pulley(
            self.pulley_positions[:, i],
            self.pulley_orientations[:, i],
            float(self.pulley_radii[i]),
        )

    def cable(self, i: int) -> Cable:
        if not 0 <= i < self.n_cables:
            raise IndexError(f"Cable index {i} out of range [0, {self.n_cables})")
        return Cable(index=i, pulley=self.pulley(i), attachment=self.attachments[:, i].copy())
