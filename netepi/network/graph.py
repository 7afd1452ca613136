"""
Dynamic Graph State
===================
Undirected graph over a closed population with per-edge onset times and a
full spell history.

Nodes are 0-indexed internally; every exported table reports them 1-indexed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

import networkx as nx
import numpy as np
import pandas as pd

from netepi.errors import ConstraintViolationError

Dyad = Tuple[int, int]


def dyad(i: int, j: int) -> Dyad:
    return (i, j) if i < j else (j, i)


@dataclass(frozen=True)
class Constraints:
    """Structural constraints on every sampled graph."""

    max_degree: Optional[int] = None

    @classmethod
    def from_mapping(cls, constraints: Mapping[str, int] | None) -> "Constraints":
        if constraints is None:
            return cls()
        if isinstance(constraints, Constraints):
            return constraints
        unknown = set(constraints) - {"max_degree"}
        if unknown:
            raise ConstraintViolationError(f"Unsupported constraints: {sorted(unknown)}")
        max_degree = constraints.get("max_degree")
        if max_degree is not None and max_degree < 0:
            raise ConstraintViolationError("max_degree must be non-negative")
        return cls(max_degree=max_degree)

    def allows_degree(self, degree: int) -> bool:
        return self.max_degree is None or degree <= self.max_degree


@dataclass
class EdgeSpell:
    head: int
    tail: int
    onset: int
    terminus: Optional[int] = None


@dataclass
class DynamicGraph:
    """Tracks the current edge set and every edge spell seen so far."""

    n_nodes: int
    adjacency: List[Set[int]] = field(init=False)
    onsets: Dict[Dyad, int] = field(default_factory=dict)
    spells: List[EdgeSpell] = field(default_factory=list)
    _active: Dict[Dyad, int] = field(default_factory=dict, repr=False)

    def __post_init__(self) -> None:
        self.adjacency = [set() for _ in range(self.n_nodes)]

    @classmethod
    def from_edges(cls, n_nodes: int, edges: Iterable[Dyad] = (), time: int = 0) -> "DynamicGraph":
        graph = cls(n_nodes=n_nodes)
        for i, j in edges:
            graph.add_edge(int(i), int(j), time)
        return graph

    @property
    def n_edges(self) -> int:
        return len(self.onsets)

    def degree(self, node: int) -> int:
        return len(self.adjacency[node])

    def degrees(self) -> np.ndarray:
        return np.fromiter((len(a) for a in self.adjacency), dtype=np.int64, count=self.n_nodes)

    def has_edge(self, i: int, j: int) -> bool:
        return j in self.adjacency[i]

    def edge_list(self) -> List[Dyad]:
        return sorted(self.onsets)

    def add_edge(self, i: int, j: int, time: int) -> None:
        if i == j:
            raise ConstraintViolationError(f"Self-loop on node {i + 1}")
        if not (0 <= i < self.n_nodes and 0 <= j < self.n_nodes):
            raise ConstraintViolationError(f"Edge ({i + 1}, {j + 1}) outside the population")
        key = dyad(i, j)
        if key in self.onsets:
            raise ConstraintViolationError(f"Duplicate edge ({key[0] + 1}, {key[1] + 1})")
        self.adjacency[i].add(j)
        self.adjacency[j].add(i)
        self.onsets[key] = time
        self._active[key] = len(self.spells)
        self.spells.append(EdgeSpell(head=key[0], tail=key[1], onset=time))

    def remove_edge(self, i: int, j: int, time: int) -> None:
        key = dyad(i, j)
        del self.onsets[key]
        self.adjacency[i].discard(j)
        self.adjacency[j].discard(i)
        self.spells[self._active.pop(key)].terminus = time

    def check_constraints(self, constraints: Constraints) -> None:
        if constraints.max_degree is None:
            return
        degrees = self.degrees()
        if degrees.size and degrees.max() > constraints.max_degree:
            node = int(degrees.argmax())
            raise ConstraintViolationError(
                f"Node {node + 1} has degree {int(degrees[node])} above max_degree={constraints.max_degree}"
            )

    def edge_ages(self, time: int) -> np.ndarray:
        return np.array([time - onset for onset in self.onsets.values()], dtype=np.float64)

    def to_networkx(self) -> nx.Graph:
        graph = nx.Graph()
        graph.add_nodes_from(range(self.n_nodes))
        graph.add_edges_from(self.onsets)
        return graph

    def edge_history(self) -> pd.DataFrame:
        """Spell table: one row per edge spell, 1-indexed nodes."""
        return pd.DataFrame(
            {
                "head": [s.head + 1 for s in self.spells],
                "tail": [s.tail + 1 for s in self.spells],
                "onset": [s.onset for s in self.spells],
                "terminus": pd.array([s.terminus for s in self.spells], dtype="Int64"),
            },
            columns=["head", "tail", "onset", "terminus"],
        )
