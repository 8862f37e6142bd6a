"""Shared fixtures for ideal-point tests.

Provides a small synthetic Senate (6 legislators, 6 roll calls, VoteView cast
codes), its legislator metadata, the prepared VoteData, and a factory for
synthetic InferenceData so nothing here ever runs MCMC.
"""

import arviz as az
import numpy as np
import polars as pl
import pytest

from ideal_point.binding import ModelBinding
from ideal_point.data import VoteData, prepare_vote_data
from ideal_point.likelihood import pointwise_log_likelihood

SLUGS = ["sen_a_a_1", "sen_b_b_1", "sen_c_c_1", "sen_d_d_1", "sen_e_e_1", "sen_f_f_1"]

# ── Vote fixtures ────────────────────────────────────────────────────────────


@pytest.fixture
def senate_votes() -> pl.DataFrame:
    """Long vote table with cast codes (1=Yea, 6=Nay, 9=not voting).

    Layout:
        v1: A,B,C Yea; D,E,F Nay          (party-line)
        v2: 5Y/1N (only F Nay)
        v3: A,B,D,F Yea; E Nay; C absent
        v4: D,E,F Yea; A,B,C Nay          (party-line, reversed)
        v5: same as v1                    (party-line)
        v6: 6Y/0N                         (unanimous, always dropped)
    """
    layout = {
        "v1": [1, 1, 1, 6, 6, 6],
        "v2": [1, 1, 1, 1, 1, 6],
        "v3": [1, 1, 9, 1, 6, 1],
        "v4": [6, 6, 6, 1, 1, 1],
        "v5": [1, 1, 1, 6, 6, 6],
        "v6": [1, 1, 1, 1, 1, 1],
    }
    rows = [
        {"legislator_slug": slug, "vote_id": vote_id, "vote": codes[k]}
        for vote_id, codes in layout.items()
        for k, slug in enumerate(SLUGS)
    ]
    return pl.DataFrame(rows)


@pytest.fixture
def senate_legislators() -> pl.DataFrame:
    return pl.DataFrame({
        "slug": SLUGS,
        "full_name": ["Alice A", "Bob B", "Carol C", "Dan D", "Eve E", "Frank F"],
        "party": ["Republican"] * 3 + ["Democrat"] * 3,
    })


@pytest.fixture
def vote_data(senate_votes: pl.DataFrame) -> VoteData:
    """Prepared senate_votes: 6 legislators x 5 roll calls, 29 observations."""
    data, _ = prepare_vote_data(senate_votes)
    return data


@pytest.fixture
def tiny_data() -> VoteData:
    """4 legislators x 3 roll calls, fully observed."""
    leg_idx = np.tile(np.arange(4), 3)
    rollcall_idx = np.repeat(np.arange(3), 4)
    y = np.array([1, 1, 0, 0, 0, 1, 1, 0, 1, 0, 1, 0])
    return VoteData(
        leg_idx=leg_idx,
        rollcall_idx=rollcall_idx,
        y=y,
        legislators=("leg_0", "leg_1", "leg_2", "leg_3"),
        rollcalls=("rc_0", "rc_1", "rc_2"),
    ).validate()


# ── InferenceData factory ────────────────────────────────────────────────────


@pytest.fixture
def make_idata():
    """Factory: synthetic posterior for a binding, shaped like pm.sample() output.

    Ideal points are drawn around the legislator index order (highest index
    highest), so the expected ranking is known. Anchored legislators are held
    at their fixed values in every draw.
    """

    def _make(
        binding: ModelBinding,
        n_chains: int = 2,
        n_draws: int = 200,
        divergences: int = 0,
        seed: int = 42,
    ) -> az.InferenceData:
        rng = np.random.default_rng(seed)
        data = binding.data
        shape = (n_chains, n_draws)

        centers = np.linspace(-1.5, 1.5, data.n_legislators)
        theta = centers + rng.normal(0, 0.1, (*shape, data.n_legislators))
        alpha = rng.normal(0, 0.5, (*shape, data.n_rollcalls))
        lam = rng.normal(1, 0.2, (*shape, data.n_rollcalls))

        posterior = {"alpha": alpha, "lambda": lam}
        if binding.anchors is not None:
            theta[..., binding.anchors.fixed_idx] = binding.anchors.fixed_values
            posterior["theta_free"] = theta[..., binding.anchors.free_idx]
        posterior["theta"] = theta

        log_lik = np.empty((*shape, data.n_obs))
        for c in range(n_chains):
            for d in range(n_draws):
                log_lik[c, d] = pointwise_log_likelihood(alpha[c, d], lam[c, d], theta[c, d], data)

        diverging = np.zeros(shape, dtype=bool)
        diverging.flat[:divergences] = True
        sample_stats = {
            "diverging": diverging,
            "energy": rng.normal(0, 1, shape),
        }
        return az.from_dict(
            posterior=posterior,
            sample_stats=sample_stats,
            log_likelihood={"y": log_lik},
        )

    return _make
