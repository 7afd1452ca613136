from .params import INFECTED, RECOVERED, SUSCEPTIBLE, DiseaseType, EpidemicParams, transmission_probability
from .transitions import TRANSITION_RULES, EpidemicState, RecoveryOutcome, initialize_epidemic
from .transmission import discordant_edgelist, edge_tensor, transmit

__all__ = [
    "INFECTED",
    "RECOVERED",
    "SUSCEPTIBLE",
    "DiseaseType",
    "EpidemicParams",
    "transmission_probability",
    "TRANSITION_RULES",
    "EpidemicState",
    "RecoveryOutcome",
    "initialize_epidemic",
    "discordant_edgelist",
    "edge_tensor",
    "transmit",
]
