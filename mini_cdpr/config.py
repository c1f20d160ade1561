# mini_cdpr/config.py
"""
Solver configuration and physical defaults.

Options are validated pydantic models: unknown keys are rejected and an
options object cannot be mutated after creation. Pass them explicitly to
every solve call; there is no process-wide mutable default.
"""

from typing import Any, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


STANDARD_GRAVITY = 9.81  # m/s²


class SolverOptions(BaseModel):
    """Options for the constrained nonlinear solve of the catenary kinematics."""

    model_config = ConfigDict(extra='forbid', frozen=True)

    constraint_tolerance: float = Field(
        1e-6, gt=0.0,
        description="Max allowed equality residual / inequality violation",
    )
    step_tolerance: float = Field(
        1e-10, gt=0.0,
        description="Termination tolerance on the step size (trust-constr)",
    )
    objective_tolerance: float = Field(
        1e-10, gt=0.0,
        description="Termination tolerance on the objective change",
    )
    max_iterations: int = Field(500, ge=1, description="Iteration budget per NLP solve")
    max_time: Optional[float] = Field(
        None, gt=0.0,
        description="Wall-clock budget per catenary solve (s), None = unlimited",
    )
    method: Literal['SLSQP', 'trust-constr'] = Field(
        'SLSQP', description="scipy.optimize.minimize method",
    )
    fallback_method: Optional[Literal['SLSQP', 'trust-constr']] = Field(
        'trust-constr',
        description="Method retried once when `method` ends unsuccessfully, None = no retry",
    )
    pulley_tolerance: float = Field(
        1e-7, gt=0.0,
        description="Exit-point movement (m) below which pulley coupling stops",
    )
    max_pulley_iterations: int = Field(
        25, ge=1, description="Max catenary/pulley coupling passes",
    )

    @classmethod
    def from_mapping(cls, values: Optional[Mapping[str, Any]] = None) -> "SolverOptions":
        """Build options from a plain dict; unknown keys raise a ValidationError."""
        return cls(**dict(values or {}))


DEFAULT_SOLVER_OPTIONS = SolverOptions()
