from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum

from netepi.config import EpidemicConfig
from netepi.errors import InvalidEpidemicParameterError

SUSCEPTIBLE = 0
INFECTED = 1
RECOVERED = 2


class DiseaseType(str, Enum):
    SI = "SI"
    SIS = "SIS"
    SIR = "SIR"

    @property
    def has_recovery(self) -> bool:
        return self is not DiseaseType.SI


@dataclass(frozen=True)
class EpidemicParams:
    disease_type: DiseaseType
    inf_prob: float
    act_rate: float
    rec_rate: float = 0.0
    initial_infected: int = 1

    def __post_init__(self) -> None:
        try:
            disease_type = DiseaseType(self.disease_type)
        except ValueError as exc:
            raise InvalidEpidemicParameterError(
                f"Unknown disease type {self.disease_type!r}; expected one of {[d.value for d in DiseaseType]}"
            ) from exc
        object.__setattr__(self, "disease_type", disease_type)
        for name in ("inf_prob", "rec_rate"):
            value = getattr(self, name)
            if not (math.isfinite(value) and 0.0 <= value <= 1.0):
                raise InvalidEpidemicParameterError(f"{name} must be a probability in [0, 1], got {value}")
        if not (math.isfinite(self.act_rate) and self.act_rate >= 0):
            raise InvalidEpidemicParameterError(f"act_rate must be non-negative, got {self.act_rate}")
        if self.initial_infected < 0:
            raise InvalidEpidemicParameterError(
                f"initial_infected must be non-negative, got {self.initial_infected}"
            )
        if not self.disease_type.has_recovery and self.rec_rate > 0:
            raise InvalidEpidemicParameterError("SI models have no recovery; rec_rate must be 0")

    @property
    def trans_prob(self) -> float:
        return transmission_probability(self.inf_prob, self.act_rate)

    def check_population(self, n_nodes: int) -> None:
        if self.initial_infected > n_nodes:
            raise InvalidEpidemicParameterError(
                f"initial_infected={self.initial_infected} exceeds population size {n_nodes}"
            )

    @classmethod
    def from_config(cls, cfg: EpidemicConfig) -> "EpidemicParams":
        return cls(
            disease_type=DiseaseType(cfg.disease_type),
            inf_prob=cfg.inf_prob,
            act_rate=cfg.act_rate,
            rec_rate=cfg.rec_rate,
            initial_infected=cfg.initial_infected,
        )


def transmission_probability(inf_prob: float, act_rate: float) -> float:
    """Probability of at least one transmission across ``act_rate`` acts."""
    return 1.0 - (1.0 - inf_prob) ** act_rate
