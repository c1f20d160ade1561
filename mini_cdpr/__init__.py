# mini_cdpr - Cable-Driven Parallel Robot Kinematics and Statics
"""
MINI-CDPR: Kinematics and Force Feasibility for Cable Robots
============================================================

This package provides:
- Pose handling (Euler, quaternion, rotation-matrix encodings)
- Structure matrices for spatial and planar cable robots
- Closed-form force distribution within tension limits
- Pulley-wrap inverse kinematics (swivel + wrap angles)
- Catenary inverse kinematics for heavy and elastic cables
- Cable shape sampling and batch evaluation of pose lists

ARCHITECTURE:
-------------
    kernel/         Robot-agnostic core (rotations, structure matrix,
                    force distribution, state layout, NLP interface)
    model.py        Robot definitions (Pulley, CableMaterial, CableRobot)
    config.py       Solver options (pydantic)
    pulley.py       Pulley-wrap geometry solver
    catenary.py     Catenary inverse kinematics
    shape.py        Cable shape sampler
    batch.py        Pose lists -> pandas DataFrames
"""

from .kernel import (
    InvalidGeometryError, InfeasibleError, ConvergenceError,
    Pose, structure_matrix, structure_nullspace,
    distribute_forces, DistributionInfo, CancelToken,
)
from .model import Pulley, CableMaterial, Cable, CableRobot
from .config import SolverOptions, DEFAULT_SOLVER_OPTIONS, STANDARD_GRAVITY
from .pulley import solve_pulley, pulley_kinematics, PulleyWrap, PulleyKinematics
from .catenary import solve_catenary, CatenaryResult, SolverDiagnostics
from .shape import straight_cable_shape, catenary_cable_shape, sample_cable_shapes
from .batch import load_pose_list, run_pose_list

__version__ = "0.1.0"

__all__ = [
    'InvalidGeometryError', 'InfeasibleError', 'ConvergenceError',
    'Pose', 'structure_matrix', 'structure_nullspace',
    'distribute_forces', 'DistributionInfo', 'CancelToken',
    'Pulley', 'CableMaterial', 'Cable', 'CableRobot',
    'SolverOptions', 'DEFAULT_SOLVER_OPTIONS', 'STANDARD_GRAVITY',
    'solve_pulley', 'pulley_kinematics', 'PulleyWrap', 'PulleyKinematics',
    'solve_catenary', 'CatenaryResult', 'SolverDiagnostics',
    'straight_cable_shape', 'catenary_cable_shape', 'sample_cable_shapes',
    'load_pose_list', 'run_pose_list',
]
