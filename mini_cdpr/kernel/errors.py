# mini_cdpr/kernel/errors.py
"""Exception types raised by the kinematics and statics kernel."""

from typing import Any, List, Optional

import numpy as np


class InvalidGeometryError(ValueError):
    """Raised when inputs have wrong shapes or physically invalid values."""
    pass


class InfeasibleError(RuntimeError):
    """
    Raised when no force distribution within the cable limits exists.

    Attributes:
        clamped: Cable indices that were clamped before giving up
    """

    def __init__(self, message: str, clamped: Optional[List[int]] = None):
        super().__init__(message)
        self.clamped = list(clamped or [])


class ConvergenceError(RuntimeError):
    """
    Raised when an iterative solve does not meet its tolerances.

    Attributes:
        x: Last iterate of the solver (may be None if nothing was evaluated)
        diagnostics: Solver diagnostics for the last iterate
    """

    def __init__(
        self,
        message: str,
        x: Optional[np.ndarray] = None,
        diagnostics: Any = None,
    ):
        super().__init__(message)
        self.x = None if x is None else np.array(x, dtype=float)
        self.diagnostics = diagnostics
