import math

import pytest

from netepi.errors import InvalidDurationError, UnsupportedDissolutionModelError
from netepi.network.estimation import dissolution_coefs


@pytest.mark.parametrize("duration", [1.5, 2, 10, 25, 100.0])
def test_coef_crude_is_log_duration_minus_one(duration):
    coefs = dissolution_coefs(["offset(edges)"], duration)
    assert coefs.coef_crude == (math.log(duration - 1),)
    assert coefs.coef_adj == coefs.coef_crude
    assert coefs.duration == (float(duration),)


def test_duration_one_dissolves_every_step():
    coefs = dissolution_coefs(["offset(edges)"], 1)
    assert coefs.coef_crude == (-math.inf,)


def test_duration_ten_matches_log_nine():
    coefs = dissolution_coefs(["offset(edges)"], [10])
    assert coefs.coef_crude[0] == pytest.approx(2.1972, abs=1e-4)


@pytest.mark.parametrize("duration", [0.5, 0, -3, float("nan")])
def test_invalid_duration_raises(duration):
    with pytest.raises(InvalidDurationError):
        dissolution_coefs(["offset(edges)"], duration)


def test_duration_count_must_match_terms():
    with pytest.raises(InvalidDurationError):
        dissolution_coefs(["offset(edges)"], [10, 20])


@pytest.mark.parametrize("model", [["edges"], ["offset(edges)", "offset(concurrent)"], ["offset(concurrent)"]])
def test_unsupported_dissolution_model(model):
    with pytest.raises(UnsupportedDissolutionModelError):
        dissolution_coefs(model, 10)
