"""
Tests for the NumPy reference log density and its gradient.

Run: uv run pytest tests/test_likelihood.py -v
"""

import numpy as np
import pytest
from scipy import stats

from ideal_point.binding import bind_custom_priors, bind_fixed_reference, bind_unidentified
from ideal_point.data import VoteData
from ideal_point.likelihood import (
    log_density_function,
    log_posterior,
    log_posterior_and_grad,
    log_prior,
    n_parameters,
    pack_parameters,
    pointwise_log_likelihood,
    unpack_parameters,
)
from ideal_point.models import Observation, ValidationError

ANCHORS = {"sen_a_a_1": 1.0, "sen_f_f_1": -1.0}


def _random_vector(binding, seed: int = 0) -> np.ndarray:
    return np.random.default_rng(seed).normal(0, 0.8, n_parameters(binding))


def _bindings(data: VoteData) -> list:
    return [
        bind_unidentified(data),
        bind_fixed_reference(data, ANCHORS),
        bind_custom_priors(data),
    ]


# ── Pointwise likelihood ─────────────────────────────────────────────────────


class TestPointwiseLogLikelihood:
    def test_yea_at_zero_predictor(self) -> None:
        """vote=1 with mu=0 contributes exactly log(0.5)."""
        data = VoteData.from_observations([Observation(0, 0, 1)], ["a"], ["r"])
        ll = pointwise_log_likelihood(np.zeros(1), np.ones(1), np.zeros(1), data)
        assert ll[0] == pytest.approx(np.log(0.5))

    def test_nay_at_zero_predictor(self) -> None:
        data = VoteData.from_observations([Observation(0, 0, 0)], ["a"], ["r"])
        ll = pointwise_log_likelihood(np.zeros(1), np.ones(1), np.zeros(1), data)
        assert ll[0] == pytest.approx(np.log(0.5))

    def test_matches_bernoulli(self, vote_data: VoteData) -> None:
        rng = np.random.default_rng(1)
        alpha, lam = rng.normal(size=5), rng.normal(size=5)
        theta = rng.normal(size=6)
        mu = alpha[vote_data.rollcall_idx] + lam[vote_data.rollcall_idx] * theta[vote_data.leg_idx]
        expected = stats.bernoulli.logpmf(vote_data.y, 1 / (1 + np.exp(-mu)))
        np.testing.assert_allclose(
            pointwise_log_likelihood(alpha, lam, theta, vote_data), expected, rtol=1e-10
        )

    def test_stable_for_extreme_predictor(self) -> None:
        data = VoteData.from_observations(
            [Observation(0, 0, 1), Observation(1, 0, 0)], ["a", "b"], ["r"]
        )
        ll = pointwise_log_likelihood(np.zeros(1), np.ones(1), np.array([-800.0, 800.0]), data)
        assert np.all(np.isfinite(ll))
        np.testing.assert_allclose(ll, [-800.0, -800.0])


# ── Parameter layout ─────────────────────────────────────────────────────────


class TestLayout:
    def test_pack_unpack(self, vote_data: VoteData) -> None:
        binding = bind_fixed_reference(vote_data, ANCHORS)
        alpha, lam, theta_free = np.arange(5.0), np.arange(5.0) + 10, np.arange(4.0) + 20
        vector = pack_parameters(alpha, lam, theta_free)
        assert vector.shape == (n_parameters(binding),) == (14,)
        a, b, c = unpack_parameters(vector, binding)
        np.testing.assert_array_equal(a, alpha)
        np.testing.assert_array_equal(b, lam)
        np.testing.assert_array_equal(c, theta_free)

    def test_unidentified_count(self, vote_data: VoteData) -> None:
        assert n_parameters(bind_unidentified(vote_data)) == 2 * 5 + 6

    def test_wrong_length_raises(self, vote_data: VoteData) -> None:
        binding = bind_unidentified(vote_data)
        with pytest.raises(ValidationError) as exc:
            log_posterior(np.zeros(3), binding)
        assert exc.value.field == "parameters"


# ── Log posterior ────────────────────────────────────────────────────────────


class TestLogPosterior:
    def test_is_prior_plus_likelihood(self, vote_data: VoteData) -> None:
        binding = bind_fixed_reference(vote_data, ANCHORS)
        vector = _random_vector(binding)
        alpha, lam, theta_free = unpack_parameters(vector, binding)
        theta = binding.theta_from_free(theta_free)
        expected = log_prior(alpha, lam, theta_free, binding) + pointwise_log_likelihood(
            alpha, lam, theta, vote_data
        ).sum()
        assert log_posterior(vector, binding) == pytest.approx(expected)

    def test_nonfinite_returns_neg_inf(self, vote_data: VoteData) -> None:
        binding = bind_unidentified(vote_data)
        vector = _random_vector(binding)
        vector[3] = np.nan
        assert log_posterior(vector, binding) == -np.inf
        value, grad = log_posterior_and_grad(vector, binding)
        assert value == -np.inf
        assert grad.shape == vector.shape

    def test_deterministic(self, vote_data: VoteData) -> None:
        binding = bind_custom_priors(vote_data)
        vector = _random_vector(binding)
        assert log_posterior(vector, binding) == log_posterior(vector.copy(), binding)

    def test_value_agrees_with_and_grad(self, vote_data: VoteData) -> None:
        for binding in _bindings(vote_data):
            vector = _random_vector(binding, seed=3)
            value, _ = log_posterior_and_grad(vector, binding)
            assert value == pytest.approx(log_posterior(vector, binding))

    def test_anchors_do_not_move(self, vote_data: VoteData) -> None:
        """Changing a free ideal point changes the density; anchors are not parameters."""
        binding = bind_fixed_reference(vote_data, ANCHORS)
        vector = _random_vector(binding)
        shifted = vector.copy()
        shifted[-1] += 0.5
        assert log_posterior(shifted, binding) != log_posterior(vector, binding)


class TestGradient:
    """Analytic gradient against central finite differences, every variant."""

    @pytest.mark.parametrize("index", [0, 1, 2])
    def test_matches_finite_difference(self, vote_data: VoteData, index: int) -> None:
        binding = _bindings(vote_data)[index]
        vector = _random_vector(binding, seed=index)
        _, grad = log_posterior_and_grad(vector, binding)

        h = 1e-6
        numeric = np.empty_like(vector)
        for i in range(vector.size):
            step = np.zeros_like(vector)
            step[i] = h
            numeric[i] = (
                log_posterior(vector + step, binding) - log_posterior(vector - step, binding)
            ) / (2 * h)
        np.testing.assert_allclose(grad, numeric, rtol=1e-5, atol=1e-5)

    def test_closure(self, vote_data: VoteData) -> None:
        binding = bind_unidentified(vote_data)
        logp_and_grad = log_density_function(binding)
        vector = _random_vector(binding)
        value, grad = logp_and_grad(vector)
        expected_value, expected_grad = log_posterior_and_grad(vector, binding)
        assert value == expected_value
        np.testing.assert_array_equal(grad, expected_grad)
