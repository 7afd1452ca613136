"""
Network Epidemic Co-Simulation
==============================
Advances a fitted dynamic network and a compartmental epidemic together.

Per time step, in order:
1. Network update (separable formation/dissolution draw)
2. Transmission across active discordant edges
3. Recovery, by disease-type rule
4. Bookkeeping of compartment counts and flows

Replicates share nothing mutable and run as independent tasks. An error
inside one replicate becomes a ``ReplicateFailure`` and never aborts the
others.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import pandas as pd
import torch

from netepi.cascades.tracker import TransmissionLog, transmission_summary
from netepi.config import SimConfig
from netepi.epidemic.params import INFECTED, EpidemicParams
from netepi.epidemic.transitions import TRANSITION_RULES, initialize_epidemic
from netepi.epidemic.transmission import edge_tensor, transmit
from netepi.errors import NetepiError
from netepi.metrics.epi_log import StatisticsLog
from netepi.network.estimation import NetworkModelFit
from netepi.network.sampler import SeparableSampler
from netepi.rng import RNGManager, spawn_seeds

logger = logging.getLogger(__name__)


@dataclass
class ReplicateResult:
    replicate: int
    seed: int
    epi: pd.DataFrame
    edges: pd.DataFrame
    transmissions: pd.DataFrame
    completed_steps: int
    cancelled: bool = False
    summary: Dict[str, float] = field(default_factory=dict)


@dataclass
class ReplicateFailure:
    replicate: int
    seed: int
    error: Exception

    @property
    def message(self) -> str:
        return f"{type(self.error).__name__}: {self.error}"


@dataclass
class SimulationOutputs:
    results: List[ReplicateResult]
    failures: List[ReplicateFailure] = field(default_factory=list)

    def epi_frame(self) -> pd.DataFrame:
        """All replicates' compartment/flow tables stacked with a ``sim`` column."""
        frames = []
        for result in self.results:
            frame = result.epi.copy()
            frame.insert(0, "sim", result.replicate)
            frames.append(frame)
        return pd.concat(frames, ignore_index=True) if frames else pd.DataFrame()


def run_replicate(
    fit: NetworkModelFit,
    params: EpidemicParams,
    control: SimConfig,
    replicate: int = 1,
    seed: Optional[int] = None,
    cancel: Optional[threading.Event] = None,
) -> ReplicateResult:
    """Run one replicate for ``control.nsteps`` steps (or until cancelled)."""
    seed = control.seed if seed is None else seed
    rng = RNGManager(seed)
    generator = rng.torch()
    graph = fit.initial_graph()
    sampler = SeparableSampler(
        fit.formation_terms, fit.dissolution_terms, proposals=control.formation_proposals
    )
    dissolution = fit.dissolution_coefs.coef_crude
    rule = TRANSITION_RULES[params.disease_type]

    state = initialize_epidemic(fit.n_nodes, params, generator)
    transmissions = TransmissionLog()
    transmissions.seed((torch.nonzero(state.status == INFECTED).flatten() + 1).tolist())
    epi = StatisticsLog()
    epi.record(0, state)

    completed = 0
    cancelled = False
    logger.debug("replicate %d: seed=%d nsteps=%d", replicate, seed, control.nsteps)
    for time in range(1, control.nsteps + 1):
        if cancel is not None and cancel.is_set():
            cancelled = True
            break
        sampler.advance(graph, fit.formation_coefficients, dissolution, fit.constraints, time, rng.network)

        if control.skip_extinct and epi.rows[-1]["i_num"] == 0:
            # nothing left to transmit or recover; both passes would be no-ops
            epi.repeat_last(time)
            completed = time
            continue

        edges = edge_tensor(graph.edge_list())
        infected, events = transmit(
            edges, state.status, state.infection_time, params, time, generator
        )
        transmissions.record(events)
        outcome = rule(state, params, generator)
        epi.record(time, state, {"si_flow": int(infected.numel()), outcome.flow: outcome.count})
        completed = time

    logger.debug("replicate %d: finished %d steps", replicate, completed)
    return ReplicateResult(
        replicate=replicate,
        seed=seed,
        epi=epi.to_frame(),
        edges=graph.edge_history(),
        transmissions=transmissions.to_frame(),
        completed_steps=completed,
        cancelled=cancelled,
        summary=transmission_summary(transmissions),
    )


def _run_task(
    fit: NetworkModelFit,
    params: EpidemicParams,
    control: SimConfig,
    replicate: int,
    seed: int,
    cancel: Optional[threading.Event],
) -> ReplicateResult | ReplicateFailure:
    try:
        return run_replicate(fit, params, control, replicate, seed, cancel)
    except NetepiError as exc:
        logger.warning("replicate %d failed: %s", replicate, exc)
        return ReplicateFailure(replicate=replicate, seed=seed, error=exc)
    except Exception as exc:
        # keep sibling replicates alive; the traceback goes to the log
        logger.exception("replicate %d raised an unexpected error", replicate)
        return ReplicateFailure(replicate=replicate, seed=seed, error=exc)


def run_simulation(
    fit: NetworkModelFit,
    params: EpidemicParams,
    control: SimConfig,
    cancel: Optional[threading.Event] = None,
) -> SimulationOutputs:
    """Run ``control.nsims`` independent replicates and collect them in order."""
    params.check_population(fit.n_nodes)
    fit.initial_graph().check_constraints(fit.constraints)
    seeds = spawn_seeds(control.seed, control.nsims)
    replicates = list(range(1, control.nsims + 1))

    if control.workers <= 1:
        outcomes = [_run_task(fit, params, control, r, s, cancel) for r, s in zip(replicates, seeds)]
    else:
        with ThreadPoolExecutor(max_workers=control.workers) as ex:
            futs = [ex.submit(_run_task, fit, params, control, r, s, cancel) for r, s in zip(replicates, seeds)]
            outcomes = [fut.result() for fut in futs]

    results = [o for o in outcomes if isinstance(o, ReplicateResult)]
    failures = [o for o in outcomes if isinstance(o, ReplicateFailure)]
    return SimulationOutputs(results=results, failures=failures)
