"""
Network Model Diagnostics
=========================
Simulates from a fitted network model to check formation and dissolution fit.

- Static mode (``nsteps=None``): independent cross-sectional draws from the
  formation model with the static coefficients.
- Dynamic mode: the network update alone (no epidemic) for ``nsteps`` steps,
  recording the monitored statistics plus mean edge age and the fraction of
  edges dissolved since the previous step. Edge ages are left-censored until
  the starting edges have turned over.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from netepi.network.estimation import NetworkModelFit
from netepi.network.graph import DynamicGraph
from netepi.network.sampler import SeparableSampler, StaticSampler
from netepi.network.solver import SolverControl
from netepi.network.terms import Term, compute_statistics, parse_terms
from netepi.rng import RNGManager, spawn_seeds

logger = logging.getLogger(__name__)


@dataclass
class NetworkDiagnostics:
    mode: str
    stats: pd.DataFrame
    summary: pd.DataFrame
    duration_target: Optional[float] = None

    def mean_dissolution_rate(self) -> float:
        if "dissolution_frac" not in self.stats:
            return float("nan")
        return float(self.stats["dissolution_frac"].mean())


def _monitored_terms(fit: NetworkModelFit, nwstats: Sequence[str] | None) -> List[Term]:
    if nwstats is None:
        return [Term(name=t.name, arg=t.arg) for t in fit.formation_terms]
    return [Term(name=t.name, arg=t.arg) for t in parse_terms(nwstats)]


def _summarize(stats: pd.DataFrame, terms: Sequence[Term], fit: NetworkModelFit) -> pd.DataFrame:
    targets = {}
    free_terms = [t for t in fit.formation_terms if not t.offset]
    for term, target in zip(free_terms, fit.target_stats):
        targets[term.label] = target
    rows = []
    for term in terms:
        values = stats[term.label]
        target = targets.get(term.label, np.nan)
        mean = float(values.mean())
        rows.append(
            {
                "statistic": term.label,
                "target": target,
                "sim_mean": mean,
                "sim_sd": float(values.std(ddof=1)) if len(values) > 1 else 0.0,
                "pct_diff": 100 * (mean - target) / target if target else np.nan,
            }
        )
    return pd.DataFrame(rows, columns=["statistic", "target", "sim_mean", "sim_sd", "pct_diff"])


def _static_rows(fit, terms, nsims, seed, control) -> List[dict]:
    settings = control.settings
    sampler = StaticSampler(fit.formation_terms, burnin=settings.mcmc_burnin, interval=settings.mcmc_interval)
    rows = []
    for sim, sim_seed in enumerate(spawn_seeds(seed, nsims), start=1):
        rng = RNGManager(sim_seed)
        graph = sampler.draw(fit.n_nodes, fit.static_coefficients, fit.constraints, rng.network)
        values = compute_statistics(graph, terms)
        rows.append({"sim": sim, **{t.label: float(v) for t, v in zip(terms, values)}})
    return rows


def _dynamic_rows(fit, terms, nsims, nsteps, seed, control) -> List[dict]:
    rows = []
    for sim, sim_seed in enumerate(spawn_seeds(seed, nsims), start=1):
        rng = RNGManager(sim_seed)
        graph: DynamicGraph = fit.initial_graph()
        sampler = SeparableSampler(fit.formation_terms, fit.dissolution_terms, proposals=control.proposals)
        for time in range(1, nsteps + 1):
            n_before = graph.n_edges
            changes = sampler.advance(
                graph,
                fit.formation_coefficients,
                fit.dissolution_coefs.coef_crude,
                fit.constraints,
                time,
                rng.network,
            )
            values = compute_statistics(graph, terms)
            ages = graph.edge_ages(time)
            rows.append(
                {
                    "sim": sim,
                    "time": time,
                    **{t.label: float(v) for t, v in zip(terms, values)},
                    "edge_age": float(ages.mean()) if ages.size else np.nan,
                    "dissolution_frac": len(changes.dissolved) / n_before if n_before else np.nan,
                }
            )
    return rows


def diagnose_network_model(
    fit: NetworkModelFit,
    nsims: int = 1,
    nsteps: Optional[int] = None,
    nwstats: Sequence[str] | None = None,
    seed: int = 0,
    control: SolverControl | None = None,
) -> NetworkDiagnostics:
    """Simulate from ``fit`` and compare monitored statistics to the targets."""
    control = control or SolverControl()
    terms = _monitored_terms(fit, nwstats)
    if nsteps is None:
        logger.info("Running %d static network draws", nsims)
        rows = _static_rows(fit, terms, nsims, seed, control)
        columns = ["sim"] + [t.label for t in terms]
        mode = "static"
    else:
        logger.info("Running %d dynamic network simulations over %d steps", nsims, nsteps)
        rows = _dynamic_rows(fit, terms, nsims, nsteps, seed, control)
        columns = ["sim", "time"] + [t.label for t in terms] + ["edge_age", "dissolution_frac"]
        mode = "dynamic"
    stats = pd.DataFrame(rows, columns=columns)
    return NetworkDiagnostics(
        mode=mode,
        stats=stats,
        summary=_summarize(stats, terms, fit),
        duration_target=fit.dissolution_coefs.duration[0] if mode == "dynamic" else None,
    )
