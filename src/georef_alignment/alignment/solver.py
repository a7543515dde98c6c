"""
Levenberg-Marquardt solver

A small dense nonlinear least-squares minimizer for problems with a
handful of parameters and many residuals. Each iteration solves the
damped normal equations through a QR factorization of the augmented
system

    [ J              ]         [ -r ]
    [ sqrt(lambda D) ] delta = [  0 ]

where D is the (clamped) diagonal of J^T J, and applies the step through
the manifold ``plus`` of every parameter block. The damping is adapted
from the ratio of actual to predicted cost decrease.

The solver never rolls back: whatever parameters it holds when it stops
are returned together with a summary describing why it stopped.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Protocol, Sequence, Tuple, TYPE_CHECKING

import numpy as np
from scipy.linalg import solve_triangular

from ..utils.logging import setup_logger
from .parameterization import Manifold

if TYPE_CHECKING:
    from ..utils.config import SolverConfig

logger = setup_logger(__name__)


class TerminationType(str, Enum):
    CONVERGENCE = "CONVERGENCE"
    NO_CONVERGENCE = "NO_CONVERGENCE"
    FAILURE = "FAILURE"


class LeastSquaresProblem(Protocol):
    """Anything that can produce residuals and their Jacobian for a parameter vector."""

    def residuals(self, params: np.ndarray) -> np.ndarray: ...

    def evaluate(self, params: np.ndarray) -> Tuple[np.ndarray, np.ndarray]: ...


@dataclass(frozen=True)
class ParameterBlock:
    """A contiguous slice of the parameter vector and the manifold it lives on."""

    name: str
    start: int
    manifold: Manifold

    @property
    def ambient(self) -> slice:
        return slice(self.start, self.start + self.manifold.ambient_size)


@dataclass
class SolverOptions:
    max_iterations: int = 50
    function_tolerance: float = 1e-6
    gradient_tolerance: float = 1e-10
    parameter_tolerance: float = 1e-8
    initial_damping: float = 1e-4
    max_damping: float = 1e32
    min_diagonal: float = 1e-6
    max_diagonal: float = 1e32
    min_relative_decrease: float = 1e-3

    @classmethod
    def from_config(cls, cfg: "SolverConfig") -> "SolverOptions":
        return cls(
            max_iterations=cfg.max_iterations,
            function_tolerance=cfg.function_tolerance,
            gradient_tolerance=cfg.gradient_tolerance,
            parameter_tolerance=cfg.parameter_tolerance,
            initial_damping=cfg.initial_damping,
        )


@dataclass
class IterationRecord:
    iteration: int
    cost: float
    cost_change: float
    gradient_max_norm: float
    step_norm: float
    damping: float
    step_accepted: bool


@dataclass
class SolverSummary:
    """Outcome of a solve, including the per-iteration trace."""

    termination: TerminationType
    message: str
    initial_cost: float
    final_cost: float
    num_residuals: int
    num_parameters: int
    num_parameter_blocks: int
    num_successful_steps: int = 0
    num_unsuccessful_steps: int = 0
    total_time_s: float = 0.0
    iterations: List[IterationRecord] = field(default_factory=list)

    @property
    def is_converged(self) -> bool:
        return self.termination is TerminationType.CONVERGENCE

    @property
    def num_iterations(self) -> int:
        return len(self.iterations)

    def brief_report(self) -> str:
        return (
            f"Levenberg-Marquardt: {self.num_iterations} iterations, "
            f"cost {self.initial_cost:.6e} -> {self.final_cost:.6e}, "
            f"termination {self.termination.value}"
        )

    def full_report(self) -> str:
        lines = [
            "Solver Summary",
            "",
            f"{'Parameter blocks':<30}{self.num_parameter_blocks:>20d}",
            f"{'Parameters':<30}{self.num_parameters:>20d}",
            f"{'Residuals':<30}{self.num_residuals:>20d}",
            "",
            f"{'Minimizer':<30}{'TRUST_REGION':>20}",
            f"{'Trust region strategy':<30}{'LEVENBERG_MARQUARDT':>20}",
            f"{'Linear solver':<30}{'DENSE_QR':>20}",
            "",
            "Cost:",
            f"{'Initial':<30}{self.initial_cost:>20.6e}",
            f"{'Final':<30}{self.final_cost:>20.6e}",
            f"{'Change':<30}{self.initial_cost - self.final_cost:>20.6e}",
            "",
            f"{'Minimizer iterations':<30}{self.num_iterations:>20d}",
            f"{'Successful steps':<30}{self.num_successful_steps:>20d}",
            f"{'Unsuccessful steps':<30}{self.num_unsuccessful_steps:>20d}",
            "",
            f"{'Total time (s)':<30}{self.total_time_s:>20.6f}",
            "",
            f"Termination: {self.termination.value} ({self.message})",
        ]
        if self.iterations:
            lines += [
                "",
                "iter      cost          cost_change   |gradient|    |step|        damping       accepted",
            ]
            for rec in self.iterations:
                lines.append(
                    f"{rec.iteration:4d}  {rec.cost:12.6e}  {rec.cost_change:12.6e}  "
                    f"{rec.gradient_max_norm:12.6e}  {rec.step_norm:12.6e}  "
                    f"{rec.damping:12.6e}  {rec.step_accepted}"
                )
        return "\n".join(lines)


class LevenbergMarquardtSolver:
    """
    Dense Levenberg-Marquardt minimizer over manifold parameter blocks.

    Usage:
        solver = LevenbergMarquardtSolver(SolverOptions(max_iterations=50))
        blocks = [
            ParameterBlock("translation", 0, EuclideanParameterization(2)),
            ParameterBlock("rotation", 2, AngleParameterization()),
        ]
        params, summary = solver.solve(problem, x0, blocks)
    """

    def __init__(self, options: Optional[SolverOptions] = None):
        self.options = options or SolverOptions()

    def solve(
        self,
        problem: LeastSquaresProblem,
        x0: np.ndarray,
        blocks: Sequence[ParameterBlock],
    ) -> Tuple[np.ndarray, SolverSummary]:
        """
        Minimize 0.5 * ||r(x)||^2 starting at x0.

        Args:
            problem: Residual/Jacobian provider.
            x0: Initial parameter vector (not modified).
            blocks: Parameter blocks covering x0 in order.

        Returns:
            Tuple of (final parameters, solver summary).
        """
        opts = self.options
        start = time.perf_counter()
        x = np.array(x0, dtype=np.float64)
        tangent_size = sum(b.manifold.tangent_size for b in blocks)

        r, J = problem.evaluate(x)
        cost = 0.5 * float(r @ r)
        summary = SolverSummary(
            termination=TerminationType.NO_CONVERGENCE,
            message="",
            initial_cost=cost,
            final_cost=cost,
            num_residuals=int(r.size),
            num_parameters=int(x.size),
            num_parameter_blocks=len(blocks),
        )

        if r.size == 0:
            return x, self._finish(summary, TerminationType.FAILURE,
                                   "Problem has no residuals", cost, start)
        if not np.isfinite(cost) or not np.all(np.isfinite(J)):
            return x, self._finish(summary, TerminationType.FAILURE,
                                   "Residual or Jacobian evaluation is not finite at the initial point",
                                   cost, start)

        damping = opts.initial_damping
        decrease_factor = 2.0

        for iteration in range(1, opts.max_iterations + 1):
            J_tangent = J @ self._plus_jacobian(x, blocks, tangent_size)
            gradient = J_tangent.T @ r
            gradient_max_norm = float(np.max(np.abs(gradient)))

            if gradient_max_norm <= opts.gradient_tolerance:
                summary.iterations.append(
                    IterationRecord(iteration, cost, 0.0, gradient_max_norm, 0.0, damping, False)
                )
                return x, self._finish(
                    summary, TerminationType.CONVERGENCE,
                    f"Gradient tolerance reached. Gradient max norm: {gradient_max_norm:.6e} "
                    f"<= {opts.gradient_tolerance:.6e}",
                    cost, start,
                )

            delta = self._damped_step(J_tangent, r, damping)
            step_norm = float(np.linalg.norm(delta))
            x_norm = float(np.linalg.norm(x))

            if step_norm <= opts.parameter_tolerance * (x_norm + opts.parameter_tolerance):
                summary.iterations.append(
                    IterationRecord(iteration, cost, 0.0, gradient_max_norm, step_norm, damping, False)
                )
                return x, self._finish(
                    summary, TerminationType.CONVERGENCE,
                    f"Parameter tolerance reached. Relative step norm: "
                    f"{step_norm / (x_norm + opts.parameter_tolerance):.6e} <= {opts.parameter_tolerance:.6e}",
                    cost, start,
                )

            model_residual = r + J_tangent @ delta
            model_cost_change = 0.5 * (float(r @ r) - float(model_residual @ model_residual))

            x_candidate = self._plus(x, delta, blocks)
            r_candidate = problem.residuals(x_candidate)
            candidate_cost = 0.5 * float(r_candidate @ r_candidate)

            if np.isfinite(candidate_cost) and model_cost_change > 0.0:
                relative_decrease = (cost - candidate_cost) / model_cost_change
            else:
                relative_decrease = -np.inf

            accepted = relative_decrease > opts.min_relative_decrease
            cost_change = cost - candidate_cost if np.isfinite(candidate_cost) else -np.inf

            logger.debug(
                "Iteration %d: cost=%.6e, Δcost=%.6e, |g|=%.3e, |δ|=%.3e, λ=%.3e, accepted=%s",
                iteration, cost, cost_change, gradient_max_norm, step_norm, damping, accepted,
            )
            summary.iterations.append(
                IterationRecord(iteration, cost, cost_change, gradient_max_norm,
                                step_norm, damping, accepted)
            )

            if accepted:
                previous_cost = cost
                x = x_candidate
                r, J = problem.evaluate(x)
                cost = candidate_cost
                summary.num_successful_steps += 1
                damping *= max(1.0 / 3.0, 1.0 - (2.0 * relative_decrease - 1.0) ** 3)
                decrease_factor = 2.0

                if abs(cost_change) <= opts.function_tolerance * previous_cost:
                    return x, self._finish(
                        summary, TerminationType.CONVERGENCE,
                        f"Function tolerance reached. |cost_change|/cost: "
                        f"{abs(cost_change) / previous_cost:.6e} <= {opts.function_tolerance:.6e}",
                        cost, start,
                    )
            else:
                summary.num_unsuccessful_steps += 1
                damping *= decrease_factor
                decrease_factor *= 2.0
                if damping > opts.max_damping:
                    return x, self._finish(
                        summary, TerminationType.CONVERGENCE,
                        f"Damping {damping:.6e} exceeded {opts.max_damping:.6e}; "
                        "no further decrease is possible",
                        cost, start,
                    )

        return x, self._finish(
            summary, TerminationType.NO_CONVERGENCE,
            f"Maximum number of iterations reached. Number of iterations: {opts.max_iterations}.",
            cost, start,
        )

    def _damped_step(self, J: np.ndarray, r: np.ndarray, damping: float) -> np.ndarray:
        opts = self.options
        diagonal = np.clip(np.sum(J * J, axis=0), opts.min_diagonal, opts.max_diagonal)
        augmented = np.vstack([J, np.diag(np.sqrt(damping * diagonal))])
        rhs = np.concatenate([-r, np.zeros(J.shape[1])])
        # Reduced QR keeps R square; the damping rows guarantee full column rank.
        Q, R = np.linalg.qr(augmented)
        return solve_triangular(R, Q.T @ rhs)

    @staticmethod
    def _plus(x: np.ndarray, delta: np.ndarray, blocks: Sequence[ParameterBlock]) -> np.ndarray:
        x_new = x.copy()
        offset = 0
        for block in blocks:
            size = block.manifold.tangent_size
            x_new[block.ambient] = block.manifold.plus(x[block.ambient], delta[offset:offset + size])
            offset += size
        return x_new

    @staticmethod
    def _plus_jacobian(x: np.ndarray, blocks: Sequence[ParameterBlock], tangent_size: int) -> np.ndarray:
        P = np.zeros((x.size, tangent_size))
        offset = 0
        for block in blocks:
            size = block.manifold.tangent_size
            P[block.ambient, offset:offset + size] = block.manifold.plus_jacobian(x[block.ambient])
            offset += size
        return P

    @staticmethod
    def _finish(
        summary: SolverSummary,
        termination: TerminationType,
        message: str,
        cost: float,
        start: float,
    ) -> SolverSummary:
        summary.termination = termination
        summary.message = message
        summary.final_cost = cost
        summary.total_time_s = time.perf_counter() - start
        return summary
