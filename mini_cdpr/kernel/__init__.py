# mini_cdpr/kernel - Robot-agnostic cable statics core
"""
KERNEL: THE ROBOT-AGNOSTIC FOUNDATION
=====================================

This package contains the pieces that work for ANY cable robot, whatever its
pulley hardware or cable model:

- Rotations and poses (Euler, quaternion, matrix encodings)
- The structure matrix that maps cable tensions to a platform wrench
- Closed-form force distribution within tension limits
- State-vector indexing and blockwise constraint assembly
- A pluggable constrained NLP interface

The CABLE MODELS (pulley wrap, catenary) live one level up; they only feed
geometry into the kernel and read tensions back.
"""

from .errors import InvalidGeometryError, InfeasibleError, ConvergenceError
from .rotation import (
    Pose, rotx, roty, rotz, skew, clean_rotation, check_rotation,
    rotation_from_euler, rotation_from_quaternion,
)
from .layout import StateLayout, CATENARY_LAYOUT, FORCE_X, FORCE_Z, LENGTH
from .assemble import assemble_columns
from .structure import structure_matrix, structure_nullspace, DOF_BY_KIND
from .forces import distribute_forces, DistributionInfo, COND_LIMIT
from .nlp import CancelToken, NLPProblem, NLPResult, ScipyBackend

__all__ = [
    'InvalidGeometryError', 'InfeasibleError', 'ConvergenceError',
    'Pose', 'rotx', 'roty', 'rotz', 'skew', 'clean_rotation', 'check_rotation',
    'rotation_from_euler', 'rotation_from_quaternion',
    'StateLayout', 'CATENARY_LAYOUT', 'FORCE_X', 'FORCE_Z', 'LENGTH',
    'assemble_columns',
    'structure_matrix', 'structure_nullspace', 'DOF_BY_KIND',
    'distribute_forces', 'DistributionInfo', 'COND_LIMIT',
    'CancelToken', 'NLPProblem', 'NLPResult', 'ScipyBackend',
]
