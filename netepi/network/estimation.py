"""
Dynamic Network Model Estimation
================================
Fits separable temporal network models for epidemic simulation.

Two strategies:

- ``approximate`` (default): the edges dissolution approximation. Fit the
  formation model as a static, cross-sectional model to the target
  statistics, then subtract the dissolution coefficients from the matching
  formation coefficients. Cheap, and accurate when few ties change per step
  (long durations, low density, or both). It yields no standard errors or
  likelihood; check the fit with ``diagnose_network_model``.
- ``direct``: fit formation and dissolution jointly with the dissolution
  coefficients held fixed, starting from the approximation.

References:
- Krivitsky, P. N., & Handcock, M. S. (2014). A separable model for dynamic networks
- Carnegie, N. B., et al. (2015). An approximation method for improving dynamic
  network model fitting
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from netepi.errors import (
    EstimationFailedError,
    InvalidDurationError,
    TermMismatchError,
    UnsupportedDissolutionModelError,
)
from netepi.network.graph import Constraints, DynamicGraph, Dyad
from netepi.network.solver import (
    CoefficientSolver,
    SolverControl,
    SolverResult,
    StochasticApproximationSolver,
    TermSpec,
)
from netepi.network.terms import Term, parse_terms

logger = logging.getLogger(__name__)

SUPPORTED_DISSOLUTION = ("offset(edges)",)


class EstimationMethod(str, Enum):
    DIRECT = "direct"
    APPROXIMATE = "approximate"


@dataclass(frozen=True)
class DissolutionCoefs:
    dissolution: Tuple[str, ...]
    duration: Tuple[float, ...]
    coef_crude: Tuple[float, ...]
    coef_adj: Tuple[float, ...]


@dataclass(frozen=True)
class NetworkModelFit:
    """Fitted separable temporal model. Never mutated after estimation."""

    n_nodes: int
    formation_terms: Tuple[Term, ...]
    formation_coefficients: Tuple[float, ...]
    static_coefficients: Tuple[float, ...]
    dissolution_terms: Tuple[Term, ...]
    dissolution_coefs: DissolutionCoefs
    constraints: Constraints
    target_stats: Tuple[float, ...]
    estimation_method: EstimationMethod
    initial_edges: Tuple[Dyad, ...] = ()
    solver_result: Optional[SolverResult] = field(default=None, compare=False)

    @property
    def edapprox(self) -> bool:
        return self.estimation_method is EstimationMethod.APPROXIMATE

    def initial_graph(self) -> DynamicGraph:
        return DynamicGraph.from_edges(self.n_nodes, self.initial_edges)

    def coefficient_table(self) -> Dict[str, float]:
        return {str(t): c for t, c in zip(self.formation_terms, self.formation_coefficients)}


def _check_dissolution(dissolution: Sequence[str]) -> Tuple[Term, ...]:
    normalized = tuple(str(t).replace(" ", "") for t in dissolution)
    if normalized != SUPPORTED_DISSOLUTION:
        raise UnsupportedDissolutionModelError(
            f"Only ~offset(edges) dissolution models are supported, got {list(dissolution)}"
        )
    return tuple(parse_terms(normalized))


def dissolution_coefs(dissolution: Sequence[str], duration: float | Sequence[float]) -> DissolutionCoefs:
    """Dissolution coefficients implied by mean partnership durations.

    Under a geometric duration model the per-step log-odds of a tie persisting
    is ``log(duration - 1)``; a duration of exactly 1 means every tie dissolves
    after one step (coefficient ``-inf``). Closed populations need no
    adjustment, so ``coef_adj`` equals ``coef_crude``.
    """
    terms = _check_dissolution(dissolution)
    durations = (float(duration),) if np.isscalar(duration) else tuple(float(d) for d in duration)
    if len(durations) != len(terms):
        raise InvalidDurationError(
            f"Expected {len(terms)} duration values for {len(terms)} dissolution terms, got {len(durations)}"
        )
    crude = []
    for d in durations:
        if not math.isfinite(d) or d < 1:
            raise InvalidDurationError(f"Durations must be finite and >= 1, got {d}")
        crude.append(-math.inf if d == 1 else math.log(d - 1))
    return DissolutionCoefs(
        dissolution=tuple(str(t) for t in terms),
        duration=durations,
        coef_crude=tuple(crude),
        coef_adj=tuple(crude),
    )


def _dissolution_positions(formation: Sequence[Term], dissolution: Sequence[Term]) -> Tuple[int, ...]:
    positions = []
    for term in dissolution:
        matches = [i for i, f in enumerate(formation) if f.same_statistic(term)]
        if not matches:
            raise TermMismatchError(
                f"Dissolution term {term} has no counterpart among formation terms "
                f"{[str(f) for f in formation]}"
            )
        positions.append(matches[0])
    return tuple(positions)


def estimate_network_model(
    initial_graph: DynamicGraph | int,
    formation: Sequence[str],
    dissolution: Sequence[str],
    target_stats: Sequence[float],
    coef_diss: DissolutionCoefs,
    constraints: Dict[str, int] | Constraints | None = None,
    coef_form: Sequence[float] | None = None,
    method: str | EstimationMethod = EstimationMethod.APPROXIMATE,
    solver: CoefficientSolver | None = None,
    control: SolverControl | None = None,
    verbose: bool = True,
) -> NetworkModelFit:
    """Estimate a separable temporal network model.

    ``initial_graph`` may be a node count for an empty starting network.
    ``coef_form`` holds the fixed values of any ``offset(...)`` formation terms.
    """
    graph = DynamicGraph(n_nodes=initial_graph) if isinstance(initial_graph, int) else initial_graph
    diss_terms = _check_dissolution(dissolution)
    form_terms = tuple(parse_terms(formation))
    method = EstimationMethod(method)
    constraints = Constraints.from_mapping(constraints)
    solver = solver or StochasticApproximationSolver()
    control = control or SolverControl()
    targets = tuple(float(t) for t in target_stats)
    form_offsets = tuple(float(c) for c in (coef_form or ()))

    n_free = sum(not t.offset for t in form_terms)
    if len(targets) != n_free:
        raise TermMismatchError(f"Expected {n_free} target statistics, got {len(targets)}")
    if len(form_offsets) != sum(t.offset for t in form_terms):
        raise TermMismatchError("coef_form must supply one value per offset formation term")
    if len(coef_diss.coef_crude) != len(diss_terms):
        raise TermMismatchError("coef_diss does not match the dissolution model")
    positions = _dissolution_positions(form_terms, diss_terms)
    graph.check_constraints(constraints)

    if verbose:
        logger.info("Fitting ERGM")
    static_fit = solver.solve(graph, TermSpec(form_terms), targets, constraints, form_offsets, control)
    if not static_fit.converged:
        raise EstimationFailedError(f"Static model fit failed: {static_fit.message}", static_fit)

    static_coefs = np.array(static_fit.coefficients, dtype=np.float64)
    approx = static_coefs.copy()
    for pos, crude in zip(positions, coef_diss.coef_crude):
        if math.isfinite(crude):
            approx[pos] -= crude

    result = static_fit
    formation_coefs = approx
    if method is EstimationMethod.DIRECT:
        if verbose:
            logger.info("Fitting STERGM")
        direct_control = replace(control, init=tuple(float(c) for c in approx))
        result = solver.solve(
            graph,
            TermSpec(form_terms, diss_terms),
            targets,
            constraints,
            form_offsets + tuple(coef_diss.coef_crude),
            direct_control,
        )
        if not result.converged:
            raise EstimationFailedError(f"Temporal model fit failed: {result.message}", result)
        formation_coefs = np.array(result.coefficients, dtype=np.float64)
        static_coefs = formation_coefs.copy()
        for pos, crude in zip(positions, coef_diss.coef_crude):
            if math.isfinite(crude):
                static_coefs[pos] += crude

    return NetworkModelFit(
        n_nodes=graph.n_nodes,
        formation_terms=form_terms,
        formation_coefficients=tuple(float(c) for c in formation_coefs),
        static_coefficients=tuple(float(c) for c in static_coefs),
        dissolution_terms=diss_terms,
        dissolution_coefs=coef_diss,
        constraints=constraints,
        target_stats=targets,
        estimation_method=method,
        initial_edges=tuple(graph.edge_list()),
        solver_result=result,
    )
