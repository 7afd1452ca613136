import math
import threading

import pandas as pd
import pytest

from netepi.config import SimConfig
from netepi.epidemic.params import DiseaseType, EpidemicParams
from netepi.errors import ConstraintViolationError, InvalidEpidemicParameterError
from netepi.network.estimation import dissolution_coefs, estimate_network_model
from netepi.network.solver import SolverResult
from netepi.simulation import ReplicateFailure, run_replicate, run_simulation
import netepi.simulation as simulation


class FixedSolver:
    def __init__(self, coefs):
        self.coefs = tuple(coefs)

    def solve(self, graph, terms, target_stats, constraints, offset_coefficients, control=None):
        return SolverResult(coefficients=self.coefs, converged=True, iterations=0, message="fixed")


def _fit(n_nodes=60, target=30.0, duration=10.0):
    return estimate_network_model(
        n_nodes,
        ["edges"],
        ["offset(edges)"],
        [target],
        dissolution_coefs(["offset(edges)"], duration),
        verbose=False,
    )


def _params(disease_type, **kwargs):
    kwargs.setdefault("inf_prob", 0.5)
    kwargs.setdefault("act_rate", 1)
    kwargs.setdefault("initial_infected", 5)
    return EpidemicParams(disease_type=disease_type, **kwargs)


def test_si_prevalence_never_decreases():
    params = _params(DiseaseType.SI, inf_prob=1.0, act_rate=1)
    result = run_replicate(_fit(), params, SimConfig(nsteps=40, seed=3))
    i_num = result.epi["i_num"].tolist()
    assert all(b >= a for a, b in zip(i_num, i_num[1:]))
    assert (result.epi["is_flow"] == 0).all()
    assert (result.epi["r_num"] == 0).all()


@pytest.mark.parametrize(
    "disease_type,rec_rate",
    [(DiseaseType.SIS, 0.1), (DiseaseType.SIR, 0.1), (DiseaseType.SI, 0.0)],
)
def test_flows_account_for_prevalence_changes(disease_type, rec_rate):
    params = _params(disease_type, rec_rate=rec_rate)
    result = run_replicate(_fit(), params, SimConfig(nsteps=50, seed=11))
    epi = result.epi
    assert (epi["num"] == 60).all()
    assert (epi["s_num"] + epi["i_num"] + epi["r_num"] == epi["num"]).all()
    delta = epi["i_num"].diff().iloc[1:]
    flows = (epi["si_flow"] - epi["is_flow"] - epi["ir_flow"]).iloc[1:]
    assert delta.astype(int).tolist() == flows.astype(int).tolist()
    assert epi["time"].tolist() == list(range(51))


def test_transmissions_table_matches_incidence():
    params = _params(DiseaseType.SIR, rec_rate=0.05)
    result = run_replicate(_fit(), params, SimConfig(nsteps=30, seed=5))
    assert len(result.transmissions) == int(result.epi["si_flow"].sum())
    if len(result.transmissions):
        tm = result.transmissions
        assert tm["sus_node"].min() >= 1 and tm["inf_node"].max() <= 60
        assert tm["trans_prob"].eq(0.5).all()


def test_empty_network_never_transmits():
    fit = estimate_network_model(
        40,
        ["edges"],
        ["offset(edges)"],
        [0],
        dissolution_coefs(["offset(edges)"], 10),
        solver=FixedSolver([-math.inf]),
        verbose=False,
    )
    params = _params(DiseaseType.SI, inf_prob=1.0, act_rate=5)
    result = run_replicate(fit, params, SimConfig(nsteps=25, seed=1))
    assert result.transmissions.empty
    assert (result.epi["i_num"] == 5).all()
    assert result.edges.empty


def test_same_seed_reproduces_run():
    params = _params(DiseaseType.SIS, rec_rate=0.1)
    control = SimConfig(nsims=2, nsteps=30, seed=99)
    first = run_simulation(_fit(), params, control)
    second = run_simulation(_fit(), params, control)
    pd.testing.assert_frame_equal(first.epi_frame(), second.epi_frame())
    for a, b in zip(first.results, second.results):
        pd.testing.assert_frame_equal(a.edges, b.edges)
        pd.testing.assert_frame_equal(a.transmissions, b.transmissions)


def test_replicates_get_distinct_seeds():
    params = _params(DiseaseType.SIS, rec_rate=0.1)
    outputs = run_simulation(_fit(), params, SimConfig(nsims=3, nsteps=5, seed=7))
    assert [r.replicate for r in outputs.results] == [1, 2, 3]
    assert len({r.seed for r in outputs.results}) == 3


def test_skipping_extinct_epidemics_does_not_change_output():
    fit = _fit()
    params = _params(DiseaseType.SIR, inf_prob=0.2, rec_rate=0.5, initial_infected=2)
    full = run_replicate(fit, params, SimConfig(nsteps=60, seed=21))
    skipped = run_replicate(fit, params, SimConfig(nsteps=60, seed=21, skip_extinct=True))
    assert full.epi["i_num"].iloc[-1] == 0
    pd.testing.assert_frame_equal(full.epi, skipped.epi)
    pd.testing.assert_frame_equal(full.edges, skipped.edges)


def test_threaded_replicates_match_serial():
    fit = _fit()
    params = _params(DiseaseType.SIS, rec_rate=0.1)
    serial = run_simulation(fit, params, SimConfig(nsims=4, nsteps=20, seed=8))
    threaded = run_simulation(fit, params, SimConfig(nsims=4, nsteps=20, seed=8, workers=2))
    pd.testing.assert_frame_equal(serial.epi_frame(), threaded.epi_frame())


def test_cancelled_before_start():
    cancel = threading.Event()
    cancel.set()
    result = run_replicate(_fit(), _params(DiseaseType.SI), SimConfig(nsteps=10), cancel=cancel)
    assert result.cancelled
    assert result.completed_steps == 0
    assert result.epi["time"].tolist() == [0]


def test_failed_replicate_does_not_abort_others(monkeypatch):
    created = []

    class FailingFirst(simulation.SeparableSampler):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            created.append(self)
            self.fail = len(created) == 1

        def advance(self, *args, **kwargs):
            if self.fail:
                raise ConstraintViolationError("degree bound exceeded")
            return super().advance(*args, **kwargs)

    monkeypatch.setattr(simulation, "SeparableSampler", FailingFirst)
    outputs = run_simulation(_fit(), _params(DiseaseType.SI), SimConfig(nsims=3, nsteps=5, seed=4))
    assert [r.replicate for r in outputs.results] == [2, 3]
    assert len(outputs.failures) == 1
    failure = outputs.failures[0]
    assert isinstance(failure, ReplicateFailure)
    assert failure.replicate == 1
    assert "ConstraintViolationError" in failure.message


def test_too_many_initial_infections_rejected_up_front():
    params = _params(DiseaseType.SI, initial_infected=61)
    with pytest.raises(InvalidEpidemicParameterError):
        run_simulation(_fit(), params, SimConfig(nsims=2, nsteps=5))


def test_unexpected_error_in_one_thread_keeps_the_rest(monkeypatch):
    created = []

    class BrokenFirst(simulation.SeparableSampler):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            created.append(self)
            self.broken = len(created) == 1

        def advance(self, *args, **kwargs):
            if self.broken:
                raise RuntimeError("sampler state corrupted")
            return super().advance(*args, **kwargs)

    monkeypatch.setattr(simulation, "SeparableSampler", BrokenFirst)
    outputs = run_simulation(
        _fit(), _params(DiseaseType.SI), SimConfig(nsims=3, nsteps=5, seed=4, workers=2)
    )
    assert len(outputs.results) == 2
    assert len(outputs.failures) == 1
    assert isinstance(outputs.failures[0].error, RuntimeError)
    assert outputs.failures[0].message == "RuntimeError: sampler state corrupted"
