# mini_cdpr/kernel/nlp.py
"""
Constrained nonlinear programming behind a small, solver-agnostic interface.

A problem is described by its objective, linear equalities, nonlinear
equalities (== 0), nonlinear inequalities (>= 0), bounds and a start point.
Backends turn that into a concrete library call; ScipyBackend uses
scipy.optimize.minimize with SLSQP or trust-constr.

Iteration and wall-clock budgets and cooperative cancellation are enforced
through the optimizer callback, so every backend stops at an iterate
boundary and reports the last iterate instead of raising mid-step.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import numpy as np
from scipy.optimize import Bounds, LinearConstraint, NonlinearConstraint, minimize


VectorFn = Callable[[np.ndarray], np.ndarray]


class CancelToken:
    """Thread-safe flag a caller can set to stop a running solve."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class NLPProblem:
    """
    min f(x)  s.t.  A_eq x = b_eq,  g(x) = 0,  h(x) >= 0,  lower <= x <= upper
    """
    objective: Callable[[np.ndarray], float]
    objective_grad: Optional[VectorFn]
    x0: np.ndarray
    A_eq: np.ndarray
    b_eq: np.ndarray
    eq_fun: VectorFn
    eq_jac: VectorFn
    ineq_fun: VectorFn
    ineq_jac: VectorFn
    lower: np.ndarray
    upper: np.ndarray


@dataclass(frozen=True)
class NLPResult:
    """Outcome of a backend solve; `x` is the last iterate even on failure."""
    x: np.ndarray
    success: bool
    status: str
    message: str
    iterations: int
    objective: float


class NLPBackend(Protocol):
    def solve(self, problem: NLPProblem, options, cancel: Optional[CancelToken] = None,
              deadline: Optional[float] = None) -> NLPResult:
        ...


class _Interrupted(Exception):
    def __init__(self, status: str, x: np.ndarray):
        super().__init__(status)
        self.status = status
        self.x = x


class ScipyBackend:
    """
    scipy.optimize.minimize backend.

    Uses `options.method` ('SLSQP' or 'trust-constr'), `options.max_iterations`,
    `options.objective_tolerance` and `options.step_tolerance`.
    """

    def solve(
        self,
        problem: NLPProblem,
        options,
        cancel: Optional[CancelToken] = None,
        deadline: Optional[float] = None,
    ) -> NLPResult:
        method = options.method
        bounds = Bounds(problem.lower, problem.upper)
        last = {'x': np.array(problem.x0, dtype=float), 'nit': 0}

        def callback(xk, *args):
            last['x'] = np.array(xk, dtype=float)
            last['nit'] += 1
            if cancel is not None and cancel.cancelled:
                raise _Interrupted('cancelled', last['x'])
            if deadline is not None and time.monotonic() > deadline:
                raise _Interrupted('time budget exhausted', last['x'])

        if method == 'SLSQP':
            constraints = [
                {'type': 'eq',
                 'fun': lambda x: problem.A_eq @ x - problem.b_eq,
                 'jac': lambda x: problem.A_eq},
                {'type': 'eq', 'fun': problem.eq_fun, 'jac': problem.eq_jac},
                {'type': 'ineq', 'fun': problem.ineq_fun, 'jac': problem.ineq_jac},
            ]
            solver_options = {
                'maxiter': options.max_iterations,
                'ftol': options.objective_tolerance,
                'disp': False,
            }
        else:
            n_eq = problem.eq_fun(problem.x0).size
            n_ineq = problem.ineq_fun(problem.x0).size
            constraints = [
                LinearConstraint(problem.A_eq, problem.b_eq, problem.b_eq),
                NonlinearConstraint(problem.eq_fun, np.zeros(n_eq), np.zeros(n_eq),
                                    jac=problem.eq_jac),
                NonlinearConstraint(problem.ineq_fun, np.zeros(n_ineq),
                                    np.full(n_ineq, np.inf), jac=problem.ineq_jac),
            ]
            solver_options = {
                'maxiter': options.max_iterations,
                'xtol': options.step_tolerance,
                'gtol': options.objective_tolerance,
                'verbose': 0,
            }

        try:
            res = minimize(
                problem.objective,
                np.array(problem.x0, dtype=float),
                jac=problem.objective_grad,
                method=method,
                bounds=bounds,
                constraints=constraints,
                options=solver_options,
                callback=callback,
            )
        except _Interrupted as stop:
            return NLPResult(
                x=stop.x,
                success=False,
                status=stop.status,
                message=f"Solve stopped: {stop.status}",
                iterations=last['nit'],
                objective=float(problem.objective(stop.x)),
            )

        x = np.array(res.x, dtype=float)
        iterations = int(getattr(res, 'nit', last['nit']))
        if res.success:
            status = 'converged'
        elif iterations >= options.max_iterations:
            status = 'iteration limit'
        else:
            status = 'failed'
        return NLPResult(
            x=x,
            success=bool(res.success),
            status=status,
            message=str(res.message),
            iterations=iterations,
            objective=float(problem.objective(x)),
        )
