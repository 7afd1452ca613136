"""
Transmission Event Tracking
===========================
Records transmission events as they occur.

Tracks:
- Who infected whom, and at what time step
- How long the infector had been infected
- Infection generation (seeds are generation 0)

The log is append-only, so at any step boundary it is a valid prefix of the
full run.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Dict, List, Sequence

import pandas as pd

EVENT_COLUMNS = [
    "time",
    "sus_node",
    "inf_node",
    "inf_duration",
    "inf_prob",
    "act_rate",
    "trans_prob",
]


@dataclass(frozen=True)
class TransmissionEvent:
    """One successful transmission (nodes are 1-indexed)."""

    time: int
    sus_node: int
    inf_node: int
    inf_duration: int
    inf_prob: float
    act_rate: float
    trans_prob: float


@dataclass
class TransmissionLog:
    events: List[TransmissionEvent] = field(default_factory=list)
    generation: Dict[int, int] = field(default_factory=dict)
    event_generations: List[int] = field(default_factory=list)

    def seed(self, nodes: Sequence[int]) -> None:
        for node in nodes:
            self.generation[int(node)] = 0

    def record(self, events: Sequence[TransmissionEvent]) -> None:
        for event in events:
            self.events.append(event)
            gen = self.generation.get(event.inf_node, 0) + 1
            self.generation[event.sus_node] = gen
            self.event_generations.append(gen)

    def __len__(self) -> int:
        return len(self.events)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame([asdict(e) for e in self.events], columns=EVENT_COLUMNS)


def transmission_summary(log: TransmissionLog) -> Dict[str, float]:
    """Summary statistics for one replicate's transmission chain."""
    events = log.events

    if len(events) == 0:
        return {
            "total_transmissions": 0,
            "max_generation": 0,
            "mean_generation": 0.0,
            "mean_inf_duration": 0.0,
            "outbreak_duration": 0,
        }

    generations = log.event_generations
    times = [e.time for e in events]

    return {
        "total_transmissions": len(events),
        "max_generation": max(generations),
        "mean_generation": sum(generations) / len(generations),
        "mean_inf_duration": sum(e.inf_duration for e in events) / len(events),
        "outbreak_duration": max(times) - min(times),
    }
