from __future__ import annotations

from typing import List, Sequence, Tuple

import torch

from netepi.cascades.tracker import TransmissionEvent
from netepi.epidemic.params import INFECTED, SUSCEPTIBLE, EpidemicParams
from netepi.network.graph import Dyad


def edge_tensor(edges: Sequence[Dyad]) -> torch.Tensor:
    if len(edges) == 0:
        return torch.zeros((0, 2), dtype=torch.int64)
    return torch.tensor(edges, dtype=torch.int64)


def discordant_edgelist(edges: torch.Tensor, status: torch.Tensor) -> Tuple[torch.Tensor, torch.Tensor]:
    """Susceptible and infected endpoints of every S-I edge, sorted by (sus, inf)."""
    if edges.shape[0] == 0:
        empty = torch.zeros(0, dtype=torch.int64)
        return empty, empty
    head, tail = edges[:, 0], edges[:, 1]
    s_head = status[head]
    s_tail = status[tail]
    head_sus = (s_head == SUSCEPTIBLE) & (s_tail == INFECTED)
    tail_sus = (s_head == INFECTED) & (s_tail == SUSCEPTIBLE)
    sus = torch.cat([head[head_sus], tail[tail_sus]])
    inf = torch.cat([tail[head_sus], head[tail_sus]])
    order = torch.argsort(sus * status.shape[0] + inf)
    return sus[order], inf[order]


def transmit(
    edges: torch.Tensor,
    status: torch.Tensor,
    infection_time: torch.Tensor,
    params: EpidemicParams,
    time: int,
    generator: torch.Generator,
) -> Tuple[torch.Tensor, List[TransmissionEvent]]:
    """One transmission pass over the active edges.

    Each discordant edge transmits independently with the per-partnership
    probability. A node with several successful edges is infected once and
    credited to the successful edge with the lowest infector id.
    """
    sus, inf = discordant_edgelist(edges, status)
    if sus.numel() == 0:
        return sus, []
    trans_prob = params.trans_prob
    success = torch.rand(sus.numel(), generator=generator, dtype=torch.float64) < trans_prob
    sus, inf = sus[success], inf[success]
    if sus.numel() == 0:
        return sus, []
    first = torch.ones_like(sus, dtype=torch.bool)
    first[1:] = sus[1:] != sus[:-1]
    sus, inf = sus[first], inf[first]

    status[sus] = INFECTED
    durations = time - infection_time[inf]
    infection_time[sus] = time
    events = [
        TransmissionEvent(
            time=time,
            sus_node=s + 1,
            inf_node=i + 1,
            inf_duration=d,
            inf_prob=params.inf_prob,
            act_rate=params.act_rate,
            trans_prob=trans_prob,
        )
        for s, i, d in zip(sus.tolist(), inf.tolist(), durations.tolist())
    ]
    return sus, events
