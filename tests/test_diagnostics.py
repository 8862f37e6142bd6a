"""
Tests for convergence diagnostics, LOO, and posterior predictive checks.

Uses synthetic InferenceData from the make_idata fixture (no MCMC).

Run: uv run pytest tests/test_diagnostics.py -v
"""

import arviz as az
import numpy as np
import polars as pl
import pytest

from ideal_point.binding import bind_fixed_reference, bind_unidentified
from ideal_point.data import VoteData
from ideal_point.diagnostics import (
    add_log_likelihood,
    check_convergence,
    compare_models,
    compute_loo,
    free_parameter_names,
    run_ppc,
    summarize_pareto_k,
)
from ideal_point.models import ValidationError

ANCHORS = {"sen_a_a_1": 1.0, "sen_f_f_1": -1.0}

# ── Convergence ──────────────────────────────────────────────────────────────


class TestCheckConvergence:
    def test_iid_draws_pass(self, vote_data: VoteData, make_idata) -> None:
        binding = bind_unidentified(vote_data)
        diag = check_convergence(make_idata(binding, n_draws=1000), binding)
        assert diag["all_ok"]
        assert diag["divergences"] == 0
        assert len(diag["ebfmi"]) == 2

    def test_divergences_fail(self, vote_data: VoteData, make_idata) -> None:
        binding = bind_unidentified(vote_data)
        diag = check_convergence(make_idata(binding, n_draws=1000, divergences=20), binding)
        assert diag["divergences"] == 20
        assert not diag["divergences_ok"]
        assert not diag["all_ok"]

    def test_anchors_excluded(self, vote_data: VoteData, make_idata) -> None:
        """Anchored entries are constant; R-hat is computed on theta_free only."""
        binding = bind_fixed_reference(vote_data, ANCHORS)
        diag = check_convergence(make_idata(binding, n_draws=1000), binding)
        assert "theta_free_rhat_max" in diag
        assert "theta_rhat_max" not in diag
        assert diag["rhat_ok"]

    def test_free_parameter_names(self, vote_data: VoteData) -> None:
        assert free_parameter_names(bind_unidentified(vote_data)) == ["alpha", "lambda", "theta"]
        assert free_parameter_names(bind_fixed_reference(vote_data, ANCHORS))[-1] == "theta_free"

    def test_header_printed(self, vote_data: VoteData, make_idata, capsys) -> None:
        binding = bind_unidentified(vote_data)
        check_convergence(make_idata(binding), binding, label="(senate)")
        assert "CONVERGENCE DIAGNOSTICS (senate)" in capsys.readouterr().out


# ── LOO ──────────────────────────────────────────────────────────────────────


class TestLogLikelihood:
    def test_added_when_missing(self, vote_data: VoteData, make_idata) -> None:
        binding = bind_unidentified(vote_data)
        full = make_idata(binding)
        bare = az.InferenceData(posterior=full.posterior)
        assert "log_likelihood" not in bare.groups()

        added = add_log_likelihood(bare, binding)
        assert "log_likelihood" not in bare.groups()
        assert added.log_likelihood["y"].shape == (2, 200, vote_data.n_obs)
        np.testing.assert_allclose(
            added.log_likelihood["y"].values, full.log_likelihood["y"].values
        )

    def test_values_are_log_probabilities(self, vote_data: VoteData, make_idata) -> None:
        binding = bind_unidentified(vote_data)
        bare = az.InferenceData(posterior=make_idata(binding).posterior)
        added = add_log_likelihood(bare, binding)
        assert (added.log_likelihood["y"].values <= 0).all()


class TestLoo:
    def test_summary(self, vote_data: VoteData, make_idata) -> None:
        binding = bind_unidentified(vote_data)
        loo, summary = compute_loo(make_idata(binding), label="A")
        assert set(summary) == {"elpd_loo", "se", "p_loo", "pareto_k"}
        assert summary["elpd_loo"] < 0
        assert summary["pareto_k"]["total"] == vote_data.n_obs
        assert summary["elpd_loo"] == pytest.approx(float(loo.elpd_loo))

    def test_requires_log_likelihood(self, vote_data: VoteData, make_idata) -> None:
        bare = az.InferenceData(posterior=make_idata(bind_unidentified(vote_data)).posterior)
        with pytest.raises(ValidationError) as exc:
            compute_loo(bare)
        assert exc.value.field == "idata"

    def test_pareto_k_categories(self) -> None:
        class _Loo:
            pareto_k = np.array([0.1, 0.2, 0.55, 0.8, 1.2])

        counts = summarize_pareto_k(_Loo())
        assert counts == {
            "good": 2, "ok": 1, "bad": 1, "very_bad": 1, "total": 5, "max_k": 1.2,
        }


class TestCompareModels:
    def test_two_models(self, vote_data: VoteData, make_idata) -> None:
        idatas = {
            "unidentified": make_idata(bind_unidentified(vote_data), seed=1),
            "fixed_reference": make_idata(bind_fixed_reference(vote_data, ANCHORS), seed=2),
        }
        df = compare_models(idatas)
        assert isinstance(df, pl.DataFrame)
        assert df.height == 2
        assert sorted(df["model"].to_list()) == ["fixed_reference", "unidentified"]
        assert {"rank", "elpd_loo", "weight"} <= set(df.columns)
        assert df["weight"].sum() == pytest.approx(1.0)

    def test_needs_two(self, vote_data: VoteData, make_idata) -> None:
        with pytest.raises(ValidationError):
            compare_models({"only": make_idata(bind_unidentified(vote_data))})


# ── PPC ──────────────────────────────────────────────────────────────────────


class TestPPC:
    def test_keys_and_ranges(self, vote_data: VoteData, make_idata) -> None:
        binding = bind_unidentified(vote_data)
        ppc = run_ppc(make_idata(binding), binding, n_reps=100)
        assert ppc["n_replications"] == 100
        assert ppc["observed_yea_rate"] == pytest.approx(vote_data.y.mean())
        assert 0.0 <= ppc["bayesian_p_yea_rate"] <= 1.0
        assert 0.0 <= ppc["mean_replicated_accuracy"] <= 1.0

    def test_reps_capped_at_draws(self, vote_data: VoteData, make_idata) -> None:
        binding = bind_unidentified(vote_data)
        ppc = run_ppc(make_idata(binding, n_draws=10), binding, n_reps=500)
        assert ppc["n_replications"] == 20

    def test_reproducible(self, vote_data: VoteData, make_idata) -> None:
        binding = bind_unidentified(vote_data)
        idata = make_idata(binding)
        assert run_ppc(idata, binding, n_reps=50) == run_ppc(idata, binding, n_reps=50)
