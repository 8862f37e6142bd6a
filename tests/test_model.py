"""
Tests for the PyMC model graphs.

Models are built and their log density compiled, but never sampled. The
compiled PyMC log density must equal the NumPy reference density at the same
point, for every variant.

Run: uv run pytest tests/test_model.py -v
"""

import numpy as np
import pymc as pm
import pytest

from ideal_point.binding import bind_custom_priors, bind_fixed_reference, bind_unidentified
from ideal_point.data import VoteData
from ideal_point.likelihood import log_posterior, n_parameters, pack_parameters
from ideal_point.model import (
    build_custom_prior_model,
    build_fixed_reference_model,
    build_model,
    build_unidentified_model,
)
from ideal_point.models import ValidationError

ANCHORS = {"sen_a_a_1": 1.0, "sen_f_f_1": -1.0}

# ── Structure ────────────────────────────────────────────────────────────────


class TestStructure:
    def test_unidentified_free_rvs(self, vote_data: VoteData) -> None:
        model = build_unidentified_model(bind_unidentified(vote_data))
        assert {rv.name for rv in model.free_RVs} == {"alpha", "lambda", "theta"}
        assert [rv.name for rv in model.observed_RVs] == ["y"]

    def test_fixed_reference_free_rvs(self, vote_data: VoteData) -> None:
        model = build_fixed_reference_model(bind_fixed_reference(vote_data, ANCHORS))
        assert {rv.name for rv in model.free_RVs} == {"alpha", "lambda", "theta_free"}
        assert "theta" in {d.name for d in model.deterministics}

    def test_coords(self, vote_data: VoteData) -> None:
        model = build_model(bind_fixed_reference(vote_data, ANCHORS))
        assert tuple(model.coords["legislator"]) == vote_data.legislators
        assert tuple(model.coords["rollcall"]) == vote_data.rollcalls
        assert len(model.coords["obs_id"]) == vote_data.n_obs
        assert tuple(model.coords["free_legislator"]) == (
            "sen_b_b_1", "sen_c_c_1", "sen_d_d_1", "sen_e_e_1",
        )

    def test_anchors_fixed_in_theta(self, vote_data: VoteData) -> None:
        binding = bind_fixed_reference(vote_data, ANCHORS)
        model = build_model(binding)
        theta = pm.draw(model["theta"], random_seed=1)
        assert theta[0] == 1.0
        assert theta[5] == -1.0

    def test_custom_prior_vectors(self, vote_data: VoteData) -> None:
        model = build_custom_prior_model(bind_custom_priors(vote_data))
        assert {rv.name for rv in model.free_RVs} == {"alpha", "lambda", "theta"}

    def test_builder_variant_mismatch(self, vote_data: VoteData) -> None:
        with pytest.raises(ValidationError) as exc:
            build_fixed_reference_model(bind_unidentified(vote_data))
        assert exc.value.field == "variant"

    def test_free_theta_builders_check_variant(self, vote_data: VoteData) -> None:
        """Variants A and C share one graph but each accepts only its own binding."""
        with pytest.raises(ValidationError):
            build_custom_prior_model(bind_unidentified(vote_data))
        with pytest.raises(ValidationError):
            build_unidentified_model(bind_custom_priors(vote_data))

    def test_unidentified_and_custom_share_graph(self, vote_data: VoteData) -> None:
        a = build_unidentified_model(bind_unidentified(vote_data))
        c = build_custom_prior_model(bind_custom_priors(vote_data))
        assert [rv.name for rv in a.free_RVs] == [rv.name for rv in c.free_RVs]
        assert a.coords.keys() == c.coords.keys()
        assert not a.deterministics and not c.deterministics


# ── Log density agreement ────────────────────────────────────────────────────


def _point(binding, seed: int) -> tuple[dict, np.ndarray]:
    rng = np.random.default_rng(seed)
    n = binding.data.n_rollcalls
    alpha = rng.normal(0, 1, n)
    lam = rng.normal(0.5, 0.5, n)
    theta_free = rng.normal(0, 1, binding.n_free_theta)
    name = "theta_free" if binding.anchors is not None else "theta"
    point = {"alpha": alpha, "lambda": lam, name: theta_free}
    vector = pack_parameters(alpha, lam, theta_free)
    assert vector.size == n_parameters(binding)
    return point, vector


class TestLogDensityAgreement:
    @pytest.mark.parametrize("variant", ["unidentified", "fixed_reference", "custom_prior"])
    def test_pymc_matches_numpy(self, vote_data: VoteData, variant: str) -> None:
        binding = {
            "unidentified": lambda: bind_unidentified(vote_data),
            "fixed_reference": lambda: bind_fixed_reference(vote_data, ANCHORS),
            "custom_prior": lambda: bind_custom_priors(vote_data),
        }[variant]()
        model = build_model(binding)
        logp = model.compile_logp()

        for seed in (0, 1):
            point, vector = _point(binding, seed)
            assert float(logp(point)) == pytest.approx(log_posterior(vector, binding), rel=1e-8)
