"""
Dynamic Network Models
======================
Separable temporal network models: graph state, statistic terms, sampling,
coefficient solving and estimation.

Pipeline:
1. ``dissolution_coefs``: mean durations -> dissolution coefficients
2. ``estimate_network_model``: target statistics -> fitted model
3. ``SeparableSampler``: fitted model -> next graph state, one step at a time
"""

from netepi.network.graph import Constraints, DynamicGraph, EdgeSpell
from netepi.network.terms import Term, change_statistics, compute_statistics, parse_term, parse_terms

from netepi.network.sampler import SeparableSampler, StaticSampler, StepChanges

from netepi.network.solver import (
    CoefficientSolver,
    SolverControl,
    SolverResult,
    StochasticApproximationSolver,
    TermSpec,
)

from netepi.network.estimation import (
    DissolutionCoefs,
    EstimationMethod,
    NetworkModelFit,
    dissolution_coefs,
    estimate_network_model,
)

__all__ = [
    "Constraints",
    "DynamicGraph",
    "EdgeSpell",
    "Term",
    "change_statistics",
    "compute_statistics",
    "parse_term",
    "parse_terms",
    "SeparableSampler",
    "StaticSampler",
    "StepChanges",
    "CoefficientSolver",
    "SolverControl",
    "SolverResult",
    "StochasticApproximationSolver",
    "TermSpec",
    "DissolutionCoefs",
    "EstimationMethod",
    "NetworkModelFit",
    "dissolution_coefs",
    "estimate_network_model",
]
