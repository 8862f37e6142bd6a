"""Posterior summaries: ideal points and roll-call parameters as tables."""

from __future__ import annotations

import arviz as az
import numpy as np
import polars as pl

from ideal_point.binding import ModelBinding
from ideal_point.config import HDI_PROB
from ideal_point.data import SLUG_COL, VOTE_ID_COL
from ideal_point.models import LatentTraitEstimate, ValidationError


def summarize_draws(draws: np.ndarray, hdi_prob: float = HDI_PROB) -> pl.DataFrame:
    """Mean, sd and highest-density interval per index.

    ``draws`` is (chain, draw, n) as stored in InferenceData, or (sample, n)
    for pooled draws. Returns DataFrame(index, mean, sd, hdi_low, hdi_high).
    """
    draws = np.asarray(draws, dtype=np.float64)
    if draws.ndim == 2:
        draws = draws[np.newaxis, ...]
    if draws.ndim != 3:
        msg = f"expected (chain, draw, n) or (sample, n) draws, got shape {draws.shape}"
        raise ValidationError("draws", msg)
    if not 0 < hdi_prob < 1:
        raise ValidationError("hdi_prob", f"must lie in (0, 1), got {hdi_prob}")

    hdi = np.asarray(az.hdi(draws, hdi_prob=hdi_prob)).reshape(draws.shape[2], 2)
    return pl.DataFrame(
        {
            "index": np.arange(draws.shape[2]),
            "mean": draws.mean(axis=(0, 1)),
            "sd": draws.std(axis=(0, 1)),
            "hdi_low": hdi[:, 0],
            "hdi_high": hdi[:, 1],
        }
    )


def _posterior(idata: az.InferenceData, name: str) -> np.ndarray:
    if name not in idata.posterior:
        raise ValidationError("idata", f"posterior has no variable {name!r}")
    return idata.posterior[name].values


def extract_ideal_points(
    idata: az.InferenceData,
    binding: ModelBinding,
    legislators: pl.DataFrame | None = None,
    hdi_prob: float = HDI_PROB,
) -> pl.DataFrame:
    """Posterior summaries for legislator ideal points.

    Anchored legislators (fixed-reference variant) are flagged; their draws are
    constant so sd is 0 and the interval collapses to the anchor value.

    Returns DataFrame with legislator_slug, theta_mean, theta_sd,
    theta_hdi_low, theta_hdi_high, is_anchor, full_name, party, rank; sorted by
    theta_mean descending (rank 1 = highest).
    """
    theta = _posterior(idata, "theta")
    summary = summarize_draws(theta, hdi_prob)
    if summary.height != binding.data.n_legislators:
        msg = f"theta has {summary.height} entries, binding has {binding.data.n_legislators}"
        raise ValidationError("idata", msg)

    is_anchor = np.zeros(binding.data.n_legislators, dtype=bool)
    if binding.anchors is not None:
        is_anchor[binding.anchors.fixed_idx] = True

    df = summary.with_columns(
        pl.Series(SLUG_COL, list(binding.data.legislators)),
        pl.Series("is_anchor", is_anchor),
    ).select(
        SLUG_COL,
        pl.col("mean").alias("theta_mean"),
        pl.col("sd").alias("theta_sd"),
        pl.col("hdi_low").alias("theta_hdi_low"),
        pl.col("hdi_high").alias("theta_hdi_high"),
        "is_anchor",
    )

    # Join legislator metadata
    if legislators is not None:
        available = [c for c in ("full_name", "party") if c in legislators.columns]
        meta = legislators.select(pl.col("slug").alias(SLUG_COL), *available).unique(SLUG_COL)
        df = df.join(meta, on=SLUG_COL, how="left")
    for col in ("full_name", "party"):
        if col not in df.columns:
            df = df.with_columns(pl.lit(None, dtype=pl.Utf8).alias(col))

    df = df.sort("theta_mean", descending=True)
    return df.with_columns(pl.int_range(1, df.height + 1).alias("rank"))


def extract_rollcall_parameters(
    idata: az.InferenceData,
    binding: ModelBinding,
    rollcalls: pl.DataFrame | None = None,
    hdi_prob: float = HDI_PROB,
) -> pl.DataFrame:
    """Posterior summaries for roll-call difficulty (alpha) and discrimination (lambda).

    Positive lambda means legislators at the positive end of the scale are more
    likely to vote Yea. Sorted by lambda_mean descending.
    """
    alpha = summarize_draws(_posterior(idata, "alpha"), hdi_prob)
    lam = summarize_draws(_posterior(idata, "lambda"), hdi_prob)

    df = pl.DataFrame(
        {
            VOTE_ID_COL: list(binding.data.rollcalls),
            "alpha_mean": alpha["mean"],
            "alpha_sd": alpha["sd"],
            "lambda_mean": lam["mean"],
            "lambda_sd": lam["sd"],
            "lambda_hdi_low": lam["hdi_low"],
            "lambda_hdi_high": lam["hdi_high"],
        }
    )

    # Join rollcall metadata
    if rollcalls is not None:
        meta_cols = [VOTE_ID_COL, "bill_number", "short_title", "motion", "vote_date"]
        available = [c for c in meta_cols if c in rollcalls.columns]
        if VOTE_ID_COL in available and len(available) > 1:
            meta = rollcalls.select(available).unique(VOTE_ID_COL)
            df = df.join(meta, on=VOTE_ID_COL, how="left")

    return df.sort("lambda_mean", descending=True)


def to_estimates(ideal_points: pl.DataFrame) -> list[LatentTraitEstimate]:
    """Convert an extract_ideal_points() table into LatentTraitEstimate records."""
    return [
        LatentTraitEstimate(
            legislator_slug=row[SLUG_COL],
            full_name=row["full_name"] or "",
            party=row["party"] or "",
            theta_mean=float(row["theta_mean"]),
            theta_sd=float(row["theta_sd"]),
            theta_hdi_low=float(row["theta_hdi_low"]),
            theta_hdi_high=float(row["theta_hdi_high"]),
            rank=int(row["rank"]),
        )
        for row in ideal_points.iter_rows(named=True)
    ]
