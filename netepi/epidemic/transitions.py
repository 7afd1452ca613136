"""
Disease Transition Rules
========================
One recovery rule per disease type, looked up once per step.

- SI: infection is permanent
- SIS: infected nodes recover back to susceptible
- SIR: infected nodes recover into the terminal recovered compartment

Add a disease type by adding a ``DiseaseType`` member and registering its
rule in ``TRANSITION_RULES``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict

import torch

from netepi.epidemic.params import INFECTED, RECOVERED, SUSCEPTIBLE, DiseaseType, EpidemicParams


@dataclass
class EpidemicState:
    status: torch.Tensor
    infection_time: torch.Tensor

    @property
    def n_infected(self) -> int:
        return int((self.status == INFECTED).sum().item())

    def counts(self) -> Dict[str, int]:
        return {
            "s_num": int((self.status == SUSCEPTIBLE).sum().item()),
            "i_num": int((self.status == INFECTED).sum().item()),
            "r_num": int((self.status == RECOVERED).sum().item()),
            "num": int(self.status.numel()),
        }


@dataclass(frozen=True)
class RecoveryOutcome:
    flow: str
    count: int


def initialize_epidemic(n_nodes: int, params: EpidemicParams, generator: torch.Generator) -> EpidemicState:
    """Infect ``initial_infected`` nodes chosen uniformly without replacement."""
    params.check_population(n_nodes)
    status = torch.full((n_nodes,), SUSCEPTIBLE, dtype=torch.int8)
    infection_time = torch.full((n_nodes,), -1, dtype=torch.int64)
    if params.initial_infected > 0:
        seeds = torch.randperm(n_nodes, generator=generator)[: params.initial_infected]
        status[seeds] = INFECTED
        infection_time[seeds] = 0
    return EpidemicState(status=status, infection_time=infection_time)


def _recover_into(label: int, flow: str) -> Callable[[EpidemicState, EpidemicParams, torch.Generator], RecoveryOutcome]:
    def rule(state: EpidemicState, params: EpidemicParams, generator: torch.Generator) -> RecoveryOutcome:
        infected = torch.nonzero(state.status == INFECTED).flatten()
        if infected.numel() == 0 or params.rec_rate <= 0:
            return RecoveryOutcome(flow=flow, count=0)
        draws = torch.rand(infected.numel(), generator=generator, dtype=torch.float64)
        recovered = infected[draws < params.rec_rate]
        state.status[recovered] = label
        state.infection_time[recovered] = -1
        return RecoveryOutcome(flow=flow, count=int(recovered.numel()))

    return rule


def _no_recovery(state: EpidemicState, params: EpidemicParams, generator: torch.Generator) -> RecoveryOutcome:
    return RecoveryOutcome(flow="is_flow", count=0)


TRANSITION_RULES: Dict[DiseaseType, Callable[[EpidemicState, EpidemicParams, torch.Generator], RecoveryOutcome]] = {
    DiseaseType.SI: _no_recovery,
    DiseaseType.SIS: _recover_into(SUSCEPTIBLE, "is_flow"),
    DiseaseType.SIR: _recover_into(RECOVERED, "ir_flow"),
}
