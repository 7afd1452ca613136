"""
Network Statistic Terms
=======================
Graph statistics used by formation and dissolution models.

Terms are written as short strings:

- ``edges``: number of edges
- ``concurrent``: number of nodes with degree >= 2
- ``degree(k)``: number of nodes with degree exactly k
- ``isolates``: number of nodes with degree 0
- ``triangle``: number of triangles

Any term may be wrapped as ``offset(term)`` to mark its coefficient as fixed.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

import networkx as nx
import numpy as np

from netepi.errors import UnknownTermError
from netepi.network.graph import DynamicGraph

KNOWN_TERMS = ("edges", "concurrent", "degree", "isolates", "triangle")

_TERM_RE = re.compile(r"^\s*(?:offset\(\s*(?P<inner>.+?)\s*\)|(?P<plain>.+?))\s*$")
_BODY_RE = re.compile(r"^(?P<name>[a-z_]+)(?:\(\s*(?P<arg>\d+)\s*\))?$")


@dataclass(frozen=True)
class Term:
    name: str
    arg: Optional[int] = None
    offset: bool = False

    @property
    def label(self) -> str:
        return self.name if self.arg is None else f"{self.name}{self.arg}"

    @property
    def dyad_independent(self) -> bool:
        return self.name == "edges"

    def same_statistic(self, other: "Term") -> bool:
        return self.name == other.name and self.arg == other.arg

    def __str__(self) -> str:
        body = self.name if self.arg is None else f"{self.name}({self.arg})"
        return f"offset({body})" if self.offset else body


def parse_term(text: str) -> Term:
    match = _TERM_RE.match(text)
    if match is None:
        raise UnknownTermError(f"Cannot parse term {text!r}")
    offset = match.group("inner") is not None
    body = (match.group("inner") or match.group("plain")).strip()
    body_match = _BODY_RE.match(body)
    if body_match is None or body_match.group("name") not in KNOWN_TERMS:
        raise UnknownTermError(f"Unknown network term {text!r}")
    name = body_match.group("name")
    arg = body_match.group("arg")
    if name == "degree" and arg is None:
        raise UnknownTermError("degree term needs an argument, e.g. degree(1)")
    if name != "degree" and arg is not None:
        raise UnknownTermError(f"Term {name!r} takes no argument")
    return Term(name=name, arg=int(arg) if arg is not None else None, offset=offset)


def parse_terms(terms: Sequence[str | Term]) -> List[Term]:
    return [t if isinstance(t, Term) else parse_term(t) for t in terms]


def compute_statistics(graph: DynamicGraph, terms: Sequence[Term]) -> np.ndarray:
    """Evaluate each term on the current graph."""
    degrees = graph.degrees()
    values = np.zeros(len(terms), dtype=np.float64)
    for idx, term in enumerate(terms):
        if term.name == "edges":
            values[idx] = graph.n_edges
        elif term.name == "concurrent":
            values[idx] = np.count_nonzero(degrees >= 2)
        elif term.name == "degree":
            values[idx] = np.count_nonzero(degrees == term.arg)
        elif term.name == "isolates":
            values[idx] = np.count_nonzero(degrees == 0)
        elif term.name == "triangle":
            values[idx] = sum(nx.triangles(graph.to_networkx()).values()) // 3
    return values


def _add_change(term: Term, d_i: int, d_j: int, shared: int) -> float:
    if term.name == "edges":
        return 1.0
    if term.name == "concurrent":
        return float((d_i == 1) + (d_j == 1))
    if term.name == "degree":
        k = term.arg
        return float((d_i == k - 1) + (d_j == k - 1) - (d_i == k) - (d_j == k))
    if term.name == "isolates":
        return -float((d_i == 0) + (d_j == 0))
    if term.name == "triangle":
        return float(shared)
    raise UnknownTermError(term.name)


def change_statistics(graph: DynamicGraph, i: int, j: int, terms: Sequence[Term]) -> np.ndarray:
    """Change in each statistic when toggling dyad (i, j).

    Positive direction is always "edge present minus edge absent"; the sign
    is flipped when the toggle removes an existing edge.
    """
    present = graph.has_edge(i, j)
    d_i = graph.degree(i) - int(present)
    d_j = graph.degree(j) - int(present)
    shared = 0
    if any(t.name == "triangle" for t in terms):
        shared = len(graph.adjacency[i] & graph.adjacency[j])
    delta = np.array([_add_change(t, d_i, d_j, shared) for t in terms], dtype=np.float64)
    return -delta if present else delta
