"""
Coefficient Solvers
===================
Fit model coefficients so that simulated statistics match target statistics.

Estimation code depends only on the ``CoefficientSolver`` protocol. The
bundled ``StochasticApproximationSolver`` is a simple conforming solver:

- edges-only static models are solved in closed form (logit of density)
- other static models use damped Newton steps on MCMC sample moments
- models with dissolution terms simulate the separable process and match
  its cross-sectional formation statistics (equilibrium matching)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol, Sequence, Tuple

import numpy as np
from scipy.special import logit

from netepi.config import SolverConfig
from netepi.errors import TermMismatchError
from netepi.network.graph import Constraints, DynamicGraph
from netepi.network.sampler import SeparableSampler, StaticSampler, equilibrate, scratch_copy
from netepi.network.terms import Term, compute_statistics

logger = logging.getLogger(__name__)

MAX_STEP = 1.0


@dataclass(frozen=True)
class TermSpec:
    formation: Tuple[Term, ...]
    dissolution: Tuple[Term, ...] = ()

    @property
    def n_offsets(self) -> int:
        return sum(t.offset for t in self.formation) + len(self.dissolution)

    @property
    def free_indices(self) -> Tuple[int, ...]:
        return tuple(i for i, t in enumerate(self.formation) if not t.offset)


@dataclass(frozen=True)
class SolverControl:
    settings: SolverConfig = field(default_factory=SolverConfig)
    init: Optional[Tuple[float, ...]] = None
    seed: int = 0
    proposals: Optional[int] = None


@dataclass(frozen=True)
class SolverResult:
    coefficients: Tuple[float, ...]
    converged: bool
    iterations: int
    message: str = ""
    simulated_stats: Optional[Tuple[float, ...]] = None


class CoefficientSolver(Protocol):
    def solve(
        self,
        graph: DynamicGraph,
        terms: TermSpec,
        target_stats: Sequence[float],
        constraints: Constraints,
        offset_coefficients: Sequence[float] | None,
        control: SolverControl | None = None,
    ) -> SolverResult:
        ...


def _split_offsets(terms: TermSpec, offsets: Sequence[float]) -> Tuple[np.ndarray, np.ndarray]:
    """Spread offset values over formation offsets first, then dissolution terms."""
    if len(offsets) != terms.n_offsets:
        raise TermMismatchError(
            f"Expected {terms.n_offsets} offset coefficients, got {len(offsets)}"
        )
    values = iter(float(v) for v in offsets)
    theta = np.zeros(len(terms.formation), dtype=np.float64)
    for idx, term in enumerate(terms.formation):
        if term.offset:
            theta[idx] = next(values)
    diss = np.array([next(values) for _ in terms.dissolution], dtype=np.float64)
    return theta, diss


def _density_guess(n_nodes: int, terms: Sequence[Term], targets: np.ndarray, free: Sequence[int]) -> np.ndarray:
    n_dyads = max(n_nodes * (n_nodes - 1) / 2, 1.0)
    guess = np.zeros(len(free), dtype=np.float64)
    for pos, idx in enumerate(free):
        if terms[idx].name == "edges":
            guess[pos] = logit(np.clip(targets[pos] / n_dyads, 1e-6, 1 - 1e-6))
    return guess


class StochasticApproximationSolver:
    """Default solver; see module docstring."""

    def solve(
        self,
        graph: DynamicGraph,
        terms: TermSpec,
        target_stats: Sequence[float],
        constraints: Constraints,
        offset_coefficients: Sequence[float] | None,
        control: SolverControl | None = None,
    ) -> SolverResult:
        control = control or SolverControl()
        cfg = control.settings
        free = list(terms.free_indices)
        targets = np.asarray(target_stats, dtype=np.float64)
        if len(targets) != len(free):
            raise TermMismatchError(
                f"Expected {len(free)} target statistics, got {len(targets)}"
            )
        theta, diss = _split_offsets(terms, offset_coefficients or [])

        if not terms.dissolution and self._closed_form(terms, constraints):
            n_dyads = graph.n_nodes * (graph.n_nodes - 1) / 2
            density = targets[0] / n_dyads if n_dyads else 0.0
            theta[free[0]] = float(logit(np.clip(density, 0.0, 1.0))) - theta.sum()
            return SolverResult(
                coefficients=tuple(float(c) for c in theta),
                converged=True,
                iterations=0,
                message="closed form",
                simulated_stats=tuple(float(t) for t in targets),
            )

        if control.init is not None:
            theta[free] = np.asarray(control.init, dtype=np.float64)[free]
        else:
            theta[free] = _density_guess(graph.n_nodes, terms.formation, targets, free)

        rng = np.random.default_rng(control.seed)
        if terms.dissolution:
            sample = self._dynamic_sampler(graph, terms, diss, constraints, rng, cfg, control.proposals)
        else:
            sample = self._static_sampler(graph, terms, constraints, rng, cfg)

        means = np.full(len(free), np.nan)
        for iteration in range(1, cfg.max_iterations + 1):
            samples = sample(theta)[:, free]
            means = samples.mean(axis=0)
            sds = samples.std(axis=0)
            diff = means - targets
            deviation = np.abs(diff) / np.maximum(sds, 1.0)
            logger.debug("iteration %d: theta=%s deviation=%s", iteration, theta[free], deviation)
            if np.all(deviation < cfg.tolerance):
                return SolverResult(
                    coefficients=tuple(float(c) for c in theta),
                    converged=True,
                    iterations=iteration,
                    simulated_stats=tuple(float(m) for m in means),
                )
            cov = np.atleast_2d(np.cov(samples, rowvar=False))
            cov = cov + 1e-6 * np.eye(len(free))
            step = np.linalg.lstsq(cov, diff, rcond=None)[0]
            theta[free] = theta[free] - cfg.gain * np.clip(step, -MAX_STEP, MAX_STEP)

        return SolverResult(
            coefficients=tuple(float(c) for c in theta),
            converged=False,
            iterations=cfg.max_iterations,
            message=f"no convergence within {cfg.max_iterations} iterations",
            simulated_stats=tuple(float(m) for m in means),
        )

    @staticmethod
    def _closed_form(terms: TermSpec, constraints: Constraints) -> bool:
        return (
            constraints.max_degree is None
            and len(terms.free_indices) == 1
            and all(t.name == "edges" for t in terms.formation)
        )

    @staticmethod
    def _static_sampler(graph, terms, constraints, rng, cfg):
        sampler = StaticSampler(terms.formation, burnin=cfg.mcmc_burnin, interval=cfg.mcmc_interval)
        state = scratch_copy(graph)
        burned = [False]

        def sample(theta: np.ndarray) -> np.ndarray:
            if not burned[0]:
                equilibrate(state, sampler.terms, theta, constraints, rng, cfg.mcmc_burnin)
                burned[0] = True
            return sampler.run(state, theta, constraints, rng, cfg.sample_size)

        return sample

    @staticmethod
    def _dynamic_sampler(graph, terms, diss, constraints, rng, cfg, proposals):
        sampler = SeparableSampler(terms.formation, terms.dissolution, proposals=proposals)
        state = DynamicGraph.from_edges(graph.n_nodes, graph.edge_list())
        clock = [0]
        keep = max(cfg.dynamic_steps // 2, 1)

        def sample(theta: np.ndarray) -> np.ndarray:
            rows = []
            for step in range(cfg.dynamic_steps):
                clock[0] += 1
                sampler.advance(state, theta, diss, constraints, clock[0], rng)
                if step >= cfg.dynamic_steps - keep:
                    rows.append(compute_statistics(state, terms.formation))
            return np.vstack(rows)

        return sample
