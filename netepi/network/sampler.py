"""
Separable Temporal Sampler
==========================
Draws the next graph state of a separable temporal model.

Each step:
1. Formation: a tie/no-tie Metropolis chain over dyads that were empty at
   t-1, targeting the formation model conditional on keeping every t-1
   edge and burned in until its statistics settle. Edges-only formation
   without constraints is drawn exactly instead.
2. Dissolution: every t-1 edge persists independently with probability
   logistic(dissolution coefficient).

The two draws touch disjoint dyad sets, so the result is one coherent graph
and the formation network (a superset of the new graph) bounds every degree.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set

import numpy as np
from scipy.special import expit

from netepi.network.graph import Constraints, DynamicGraph, Dyad, dyad
from netepi.network.terms import Term, change_statistics, compute_statistics

# adaptive burn-in
TRACE_POINTS = 32
MAX_DOUBLINGS = 6
BURNIN_Z = 2.0


@dataclass
class StepChanges:
    formed: List[Dyad] = field(default_factory=list)
    dissolved: List[Dyad] = field(default_factory=list)


def scratch_copy(graph: DynamicGraph) -> DynamicGraph:
    scratch = DynamicGraph(n_nodes=graph.n_nodes)
    scratch.adjacency = [set(a) for a in graph.adjacency]
    scratch.onsets = dict(graph.onsets)
    return scratch


def _toggle(scratch: DynamicGraph, i: int, j: int) -> None:
    # scratch graphs carry no spell history
    key = dyad(i, j)
    if key in scratch.onsets:
        del scratch.onsets[key]
        scratch.adjacency[i].discard(j)
        scratch.adjacency[j].discard(i)
    else:
        scratch.onsets[key] = 0
        scratch.adjacency[i].add(j)
        scratch.adjacency[j].add(i)


class _TieSet:
    """Toggleable edges with O(1) uniform picks and removals."""

    def __init__(self, edges: Iterable[Dyad]) -> None:
        self.items: List[Dyad] = list(edges)
        self.index: Dict[Dyad, int] = {e: k for k, e in enumerate(self.items)}

    def __len__(self) -> int:
        return len(self.items)

    def add(self, edge: Dyad) -> None:
        self.index[edge] = len(self.items)
        self.items.append(edge)

    def remove(self, edge: Dyad) -> None:
        k = self.index.pop(edge)
        last = self.items.pop()
        if k < len(self.items):
            self.items[k] = last
            self.index[last] = k


def _random_dyad(n: int, frozen: Set[Dyad], rng: np.random.Generator) -> Dyad:
    while True:
        i, j = rng.integers(0, n, size=2).tolist()
        if i != j and dyad(i, j) not in frozen:
            return dyad(i, j)


def toggle_chain(
    scratch: DynamicGraph,
    terms: Sequence[Term],
    coefs: np.ndarray,
    constraints: Constraints,
    rng: np.random.Generator,
    n_proposals: int,
    frozen: Optional[Set[Dyad]] = None,
) -> np.ndarray:
    """Run a tie/no-tie Metropolis chain in place; return the total statistic change.

    Half the proposals drop a uniformly chosen toggleable edge, the other half
    toggle a uniformly chosen toggleable dyad, so sparse graphs mix in a number
    of proposals proportional to their edge count rather than their dyad count.
    Dyads in ``frozen`` never change.
    """
    n = scratch.n_nodes
    frozen = frozen or set()
    total = np.zeros(len(terms), dtype=np.float64)
    n_dyads = n * (n - 1) // 2 - len(frozen)
    if n < 2 or n_proposals <= 0 or n_dyads <= 0:
        return total
    ties = _TieSet(e for e in scratch.onsets if e not in frozen)
    coins = rng.random(n_proposals)
    log_u = np.log(rng.random(n_proposals))
    for coin, lu in zip(coins.tolist(), log_u.tolist()):
        n_ties = len(ties)
        if n_ties and coin < 0.5:
            i, j = ties.items[int(rng.integers(n_ties))]
        else:
            i, j = _random_dyad(n, frozen, rng)
        adding = not scratch.has_edge(i, j)
        if adding:
            if not (
                constraints.allows_degree(scratch.degree(i) + 1)
                and constraints.allows_degree(scratch.degree(j) + 1)
            ):
                continue
            q_forward = (0.5 if n_ties else 1.0) / n_dyads
            q_reverse = 0.5 / (n_ties + 1) + 0.5 / n_dyads
        else:
            q_forward = 0.5 / n_ties + 0.5 / n_dyads
            q_reverse = (0.5 if n_ties > 1 else 1.0) / n_dyads
        delta = change_statistics(scratch, i, j, terms)
        active = delta != 0
        log_ratio = float(np.sum(coefs[active] * delta[active])) + math.log(q_reverse / q_forward)
        if lu < log_ratio:
            _toggle(scratch, i, j)
            if adding:
                ties.add((i, j))
            else:
                ties.remove((i, j))
            total += delta
    return total


def _settled(trace: np.ndarray) -> bool:
    # compare the two quarters of the trace's second half
    first, second = np.array_split(trace[len(trace) // 2 :], 2)
    if len(first) < 2 or len(second) < 2:
        return True
    se = np.sqrt(
        np.maximum(first.var(axis=0, ddof=1), 1.0) / len(first)
        + np.maximum(second.var(axis=0, ddof=1), 1.0) / len(second)
    )
    return bool(np.all(np.abs(first.mean(axis=0) - second.mean(axis=0)) < BURNIN_Z * se))


def equilibrate(
    scratch: DynamicGraph,
    terms: Sequence[Term],
    coefs: np.ndarray,
    constraints: Constraints,
    rng: np.random.Generator,
    min_proposals: int,
    max_proposals: Optional[int] = None,
    frozen: Optional[Set[Dyad]] = None,
) -> np.ndarray:
    """Burn a toggle chain in until its statistics stop trending.

    Runs ``min_proposals`` proposals, then doubles the run length while the
    statistics still drift across the second half of the trajectory, up to
    ``max_proposals`` (default ``min_proposals * 2**MAX_DOUBLINGS``).
    Returns the total statistic change.
    """
    if max_proposals is None:
        max_proposals = min_proposals * 2 ** MAX_DOUBLINGS
    chunk = max(min_proposals // TRACE_POINTS, 1)
    total = np.zeros(len(terms), dtype=np.float64)
    trace = []
    done, target = 0, min_proposals
    while True:
        while done < target:
            step = min(chunk, target - done)
            total += toggle_chain(scratch, terms, coefs, constraints, rng, step, frozen=frozen)
            done += step
            trace.append(total.copy())
        if done >= max_proposals or _settled(np.array(trace)):
            return total
        target = min(2 * done, max_proposals)


def _sample_free_dyads(
    graph: DynamicGraph,
    prior: Set[Dyad],
    prob: float,
    rng: np.random.Generator,
) -> List[Dyad]:
    """Exact independent Bernoulli formation over every dyad empty at t-1."""
    n = graph.n_nodes
    n_free = n * (n - 1) // 2 - len(prior)
    if n_free <= 0 or prob <= 0.0:
        return []
    k = int(rng.binomial(n_free, prob))
    if k == 0:
        return []
    if 2 * k > n_free:
        rows, cols = np.triu_indices(n, k=1)
        free = [(i, j) for i, j in zip(rows.tolist(), cols.tolist()) if (i, j) not in prior]
        picks = rng.choice(len(free), size=k, replace=False)
        return sorted(free[p] for p in picks.tolist())
    chosen: Set[Dyad] = set()
    while len(chosen) < k:
        batch = rng.integers(0, n, size=(2 * (k - len(chosen)) + 8, 2))
        for i, j in batch.tolist():
            if i == j:
                continue
            key = dyad(i, j)
            if key in prior or key in chosen:
                continue
            chosen.add(key)
            if len(chosen) == k:
                break
    return sorted(chosen)


class SeparableSampler:
    """Advances a graph one step under a separable formation/dissolution model."""

    def __init__(
        self,
        formation_terms: Sequence[Term],
        dissolution_terms: Sequence[Term],
        proposals: Optional[int] = None,
    ) -> None:
        self.formation_terms = list(formation_terms)
        self.dissolution_terms = list(dissolution_terms)
        self.proposals = proposals
        self.exact_formation = all(t.dyad_independent for t in self.formation_terms)

    def n_proposals(self, graph: DynamicGraph) -> int:
        """Minimum burn-in per step; ``equilibrate`` extends it as needed."""
        if self.proposals is not None:
            return self.proposals
        return max(1000, 10 * graph.n_nodes)

    def advance(
        self,
        graph: DynamicGraph,
        formation_coefs: Sequence[float],
        dissolution_coefs: Sequence[float],
        constraints: Constraints,
        time: int,
        rng: np.random.Generator,
    ) -> StepChanges:
        graph.check_constraints(constraints)
        formation_coefs = np.asarray(formation_coefs, dtype=np.float64)
        prior_edges = graph.edge_list()
        prior = set(prior_edges)

        if self.exact_formation and constraints.max_degree is None:
            prob = float(expit(formation_coefs.sum())) if len(formation_coefs) else 0.0
            formed = _sample_free_dyads(graph, prior, prob, rng)
        else:
            scratch = scratch_copy(graph)
            equilibrate(
                scratch,
                self.formation_terms,
                formation_coefs,
                constraints,
                rng,
                self.n_proposals(graph),
                frozen=prior,
            )
            formed = sorted(set(scratch.onsets) - prior)

        # only offset(edges) dissolution is supported, so one coefficient applies to every edge
        persist = float(expit(dissolution_coefs[0])) if len(dissolution_coefs) else 1.0
        draws = rng.random(len(prior_edges))
        dissolved = [e for e, u in zip(prior_edges, draws.tolist()) if u >= persist]

        for i, j in dissolved:
            graph.remove_edge(i, j, time)
        for i, j in formed:
            graph.add_edge(i, j, time)
        return StepChanges(formed=formed, dissolved=dissolved)


class StaticSampler:
    """Cross-sectional draws from the static (formation-only) model."""

    def __init__(self, terms: Sequence[Term], burnin: int = 2000, interval: int = 50) -> None:
        self.terms = list(terms)
        self.burnin = burnin
        self.interval = interval

    def draw(
        self,
        n_nodes: int,
        coefs: Sequence[float],
        constraints: Constraints,
        rng: np.random.Generator,
        start: Optional[DynamicGraph] = None,
    ) -> DynamicGraph:
        scratch = scratch_copy(start) if start is not None else DynamicGraph(n_nodes=n_nodes)
        coefs = np.asarray(coefs, dtype=np.float64)
        if all(t.dyad_independent for t in self.terms) and constraints.max_degree is None:
            prob = float(expit(coefs.sum())) if len(coefs) else 0.0
            scratch = DynamicGraph(n_nodes=n_nodes)
            for i, j in _sample_free_dyads(scratch, set(), prob, rng):
                _toggle(scratch, i, j)
            return scratch
        equilibrate(scratch, self.terms, coefs, constraints, rng, self.burnin)
        return scratch

    def run(
        self,
        state: DynamicGraph,
        coefs: Sequence[float],
        constraints: Constraints,
        rng: np.random.Generator,
        n_samples: int,
    ) -> np.ndarray:
        """Continue a toggle chain on ``state``; return ``n_samples`` thinned statistic rows."""
        coefs = np.asarray(coefs, dtype=np.float64)
        stats = compute_statistics(state, self.terms)
        out = np.zeros((n_samples, len(self.terms)), dtype=np.float64)
        for s in range(n_samples):
            stats = stats + toggle_chain(state, self.terms, coefs, constraints, rng, self.interval)
            out[s] = stats
        return out
