"""PCA on the vote matrix: anchor suggestion and sampler starting values.

PC1 of the standardized, row-mean-imputed vote matrix is a fast proxy for the
latent dimension. It is used twice: its extremes (among legislators who vote
often enough) suggest the two fixed-reference anchors, and its standardized
scores give NUTS a starting point near the posterior mode.
"""

from __future__ import annotations

import numpy as np
import polars as pl
from sklearn.decomposition import PCA
from sklearn.preprocessing import StandardScaler

from ideal_point.binding import ModelBinding
from ideal_point.config import (
    ANCHOR_VALUES,
    LEFT_PARTY,
    MIN_PARTICIPATION_FOR_ANCHOR,
    RIGHT_PARTY,
)
from ideal_point.data import VoteData
from ideal_point.models import ValidationError


def vote_matrix(data: VoteData) -> np.ndarray:
    """Dense legislator x roll-call matrix: 1.0 Yea, 0.0 Nay, NaN not observed."""
    X = np.full((data.n_legislators, data.n_rollcalls), np.nan)
    X[data.leg_idx, data.rollcall_idx] = data.y
    return X


def impute_vote_matrix(X: np.ndarray) -> np.ndarray:
    """Fill missing votes with each legislator's own Yea rate.

    Row-mean imputation assumes absences are uninformative about ideology.
    Legislators with no observed votes get 0.5. Returns a new array.
    """
    X = np.array(X, dtype=np.float64)
    for i in range(X.shape[0]):
        row = X[i]
        valid_mask = ~np.isnan(row)
        if valid_mask.any():
            X[i, ~valid_mask] = row[valid_mask].mean()
        else:
            X[i] = 0.5
    return X


def fit_pca(
    X: np.ndarray, n_components: int = 1,
) -> tuple[np.ndarray, np.ndarray, PCA, StandardScaler]:
    """Standardize and fit PCA. Returns (scores, loadings, pca, scaler)."""
    n_components = min(n_components, *X.shape)
    scaler = StandardScaler()
    X_scaled = scaler.fit_transform(X)
    pca = PCA(n_components=n_components)
    scores = pca.fit_transform(X_scaled)
    loadings = pca.components_  # shape: (n_components, n_rollcalls)
    return scores, loadings, pca, scaler


def orient_pc1(
    scores: np.ndarray,
    loadings: np.ndarray,
    slugs: tuple[str, ...] | list[str],
    legislators: pl.DataFrame | None,
    right_party: str = RIGHT_PARTY,
    left_party: str = LEFT_PARTY,
) -> tuple[np.ndarray, np.ndarray]:
    """Flip PC1 sign so the right party has the higher mean score.

    PCA components have arbitrary sign; this matches the orientation the
    party-line discrimination signs assume. Without party metadata the sign
    is left alone. Returns new arrays.
    """
    scores, loadings = scores.copy(), loadings.copy()
    if legislators is None:
        return scores, loadings

    slug_to_party = dict(legislators.select("slug", "party").iter_rows())
    parties = np.array([slug_to_party.get(s, "Unknown") for s in slugs])
    right = scores[parties == right_party, 0]
    left = scores[parties == left_party, 0]
    right_mean = right.mean() if right.size else 0.0
    left_mean = left.mean() if left.size else 0.0

    if right_mean < left_mean:
        scores[:, 0] *= -1
        loadings[0, :] *= -1
        print(f"  PC1 sign flipped ({right_party} → positive)")
    else:
        print(f"  PC1 orientation OK ({right_party} already positive)")
    return scores, loadings


def compute_pc1(data: VoteData, legislators: pl.DataFrame | None = None) -> np.ndarray:
    """Oriented PC1 score per legislator, in legislator index order."""
    X = impute_vote_matrix(vote_matrix(data))
    scores, loadings, pca, _ = fit_pca(X, n_components=1)
    scores, _ = orient_pc1(scores, loadings, data.legislators, legislators)
    print(f"  PC1 explains {100 * pca.explained_variance_ratio_[0]:.1f}% of variance")
    return scores[:, 0]


def participation_rates(data: VoteData) -> np.ndarray:
    """Share of retained roll calls each legislator voted on."""
    counts = np.bincount(data.leg_idx, minlength=data.n_legislators)
    return counts / data.n_rollcalls


def select_anchors(
    pc1: np.ndarray,
    data: VoteData,
    legislators: pl.DataFrame | None = None,
    min_participation: float = MIN_PARTICIPATION_FOR_ANCHOR,
    anchor_values: tuple[float, float] = ANCHOR_VALUES,
) -> dict[str, float]:
    """Select right and left anchors from PC1 extremes.

    Guards: anchor must have >= ``min_participation`` of the retained roll
    calls, so a rarely-voting legislator with an extreme but noisy score is
    never pinned.

    Returns {right_slug: anchor_values[0], left_slug: anchor_values[1]}.
    """
    pc1 = np.asarray(pc1, dtype=np.float64)
    if pc1.shape != (data.n_legislators,):
        raise ValidationError("pc1", f"expected length {data.n_legislators}")

    eligible = np.flatnonzero(participation_rates(data) >= min_participation)
    if len(eligible) < 2:
        msg = (
            f"need two legislators with >= {min_participation:.0%} participation, "
            f"found {len(eligible)}"
        )
        raise ValidationError("anchors", msg)

    order = eligible[np.argsort(pc1[eligible], kind="stable")]
    right_idx, left_idx = int(order[-1]), int(order[0])
    right_slug = data.legislators[right_idx]
    left_slug = data.legislators[left_idx]

    names: dict[str, str] = {}
    if legislators is not None and "full_name" in legislators.columns:
        names = dict(legislators.select("slug", "full_name").iter_rows())
    right_name = names.get(right_slug, right_slug)
    left_name = names.get(left_slug, left_slug)
    print(f"  Right anchor: {right_name} ({right_slug}), PC1={pc1[right_idx]:+.3f}")
    print(f"  Left anchor:  {left_name} ({left_slug}), PC1={pc1[left_idx]:+.3f}")

    return {right_slug: float(anchor_values[0]), left_slug: float(anchor_values[1])}


def initial_values(
    binding: ModelBinding,
    pc1: np.ndarray,
    directions: np.ndarray | None = None,
) -> dict[str, np.ndarray]:
    """Starting values for the free parameters of ``binding``.

    theta starts at standardized PC1 (only the free entries for the
    fixed-reference variant). When party-line ``directions`` are given,
    lambda starts at their sign; otherwise it is left to PyMC's default.
    """
    pc1 = np.asarray(pc1, dtype=np.float64)
    if pc1.shape != (binding.data.n_legislators,):
        raise ValidationError("pc1", f"expected length {binding.data.n_legislators}")
    pc1_std = (pc1 - pc1.mean()) / pc1.std() if pc1.std() > 0 else pc1

    initvals: dict[str, np.ndarray] = {}
    if binding.anchors is not None:
        initvals["theta_free"] = pc1_std[binding.anchors.free_idx]
    else:
        initvals["theta"] = pc1_std
    if directions is not None:
        directions = np.asarray(directions, dtype=np.float64)
        if directions.shape != (binding.data.n_rollcalls,):
            raise ValidationError("directions", f"expected length {binding.data.n_rollcalls}")
        initvals["lambda"] = np.sign(directions)

    print(f"  PCA initvals: PC1 range [{pc1_std.min():.2f}, {pc1_std.max():.2f}]")
    return initvals
