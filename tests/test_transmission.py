import pytest
import torch

from netepi.epidemic.params import INFECTED, SUSCEPTIBLE, DiseaseType, EpidemicParams, transmission_probability
from netepi.epidemic.transmission import discordant_edgelist, edge_tensor, transmit
from netepi.errors import InvalidEpidemicParameterError


def test_transmission_probability_formula():
    assert transmission_probability(0.5, 1) == pytest.approx(0.5)
    assert transmission_probability(0.5, 2) == pytest.approx(0.75)
    assert transmission_probability(0.0, 5) == 0.0
    assert transmission_probability(1.0, 1) == 1.0
    assert transmission_probability(0.3, 0) == 0.0


def test_transmission_probability_monotone_and_bounded():
    probs = [i / 10 for i in range(11)]
    acts = [0, 0.5, 1, 2, 3, 10]
    for a in acts:
        values = [transmission_probability(p, a) for p in probs]
        assert values == sorted(values)
        assert all(0.0 <= v <= 1.0 for v in values)
    for p in probs:
        values = [transmission_probability(p, a) for a in acts]
        assert values == sorted(values)


@pytest.mark.parametrize(
    "kwargs",
    [
        dict(inf_prob=1.2, act_rate=1),
        dict(inf_prob=-0.1, act_rate=1),
        dict(inf_prob=0.5, act_rate=-1),
        dict(inf_prob=0.5, act_rate=1, rec_rate=1.5, disease_type=DiseaseType.SIS),
        dict(inf_prob=0.5, act_rate=1, rec_rate=0.1, disease_type=DiseaseType.SI),
        dict(inf_prob=0.5, act_rate=1, initial_infected=-1),
    ],
)
def test_invalid_epidemic_parameters(kwargs):
    kwargs.setdefault("disease_type", DiseaseType.SI)
    with pytest.raises(InvalidEpidemicParameterError):
        EpidemicParams(**kwargs)


def test_discordant_edgelist_orientation():
    status = torch.tensor([SUSCEPTIBLE, INFECTED, INFECTED, SUSCEPTIBLE], dtype=torch.int8)
    edges = edge_tensor([(0, 1), (1, 2), (2, 3), (0, 3)])
    sus, inf = discordant_edgelist(edges, status)
    assert sus.tolist() == [0, 3]
    assert inf.tolist() == [1, 2]


def test_multi_source_infection_credits_lowest_infector():
    params = EpidemicParams(DiseaseType.SI, inf_prob=1.0, act_rate=1)
    status = torch.tensor([SUSCEPTIBLE, INFECTED, INFECTED, SUSCEPTIBLE], dtype=torch.int8)
    infection_time = torch.tensor([-1, 0, 2, -1])
    edges = edge_tensor([(0, 2), (0, 1)])
    generator = torch.Generator().manual_seed(0)
    infected, events = transmit(edges, status, infection_time, params, 3, generator)
    assert infected.tolist() == [0]
    assert len(events) == 1
    event = events[0]
    assert (event.time, event.sus_node, event.inf_node) == (3, 1, 2)
    assert event.inf_duration == 3
    assert event.trans_prob == 1.0
    assert status.tolist() == [INFECTED, INFECTED, INFECTED, SUSCEPTIBLE]
    assert infection_time[0].item() == 3


def test_zero_probability_never_transmits():
    params = EpidemicParams(DiseaseType.SIS, inf_prob=0.0, act_rate=3)
    status = torch.tensor([SUSCEPTIBLE, INFECTED], dtype=torch.int8)
    infection_time = torch.tensor([-1, 0])
    generator = torch.Generator().manual_seed(0)
    infected, events = transmit(edge_tensor([(0, 1)]), status, infection_time, params, 1, generator)
    assert infected.numel() == 0 and events == []
    assert status.tolist() == [SUSCEPTIBLE, INFECTED]


def test_unknown_disease_type_rejected():
    with pytest.raises(InvalidEpidemicParameterError, match="SEIR"):
        EpidemicParams(disease_type="SEIR", inf_prob=0.5, act_rate=1)
