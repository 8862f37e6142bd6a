"""MCMC convergence diagnostics, LOO model comparison, posterior predictive checks.

Sampler problems (divergences, poor mixing) are reported here, never
recovered from: a failed check is printed and recorded, and the caller
decides what to do with the run.
"""

from __future__ import annotations

import arviz as az
import numpy as np
import polars as pl
import xarray as xr
from scipy.special import expit

from ideal_point.binding import ModelBinding
from ideal_point.config import (
    BFMI_THRESHOLD,
    ESS_THRESHOLD,
    MAX_DIVERGENCES,
    PPC_REPLICATIONS,
    RANDOM_SEED,
    RHAT_THRESHOLD,
)
from ideal_point.identification import linear_predictor
from ideal_point.likelihood import pointwise_log_likelihood
from ideal_point.models import ValidationError
from ideal_point.run_context import print_header


def free_parameter_names(binding: ModelBinding) -> list[str]:
    """Sampled (non-deterministic) variables; anchored theta entries are constants."""
    return ["alpha", "lambda", "theta_free" if binding.anchors is not None else "theta"]


# ── Convergence ──────────────────────────────────────────────────────────────


def check_convergence(
    idata: az.InferenceData,
    binding: ModelBinding,
    label: str = "",
) -> dict:
    """Run standard MCMC convergence diagnostics.

    R-hat and bulk ESS are checked on the free parameters only.

    Returns dict with all diagnostic metrics and an ``all_ok`` flag.
    """
    print_header(f"CONVERGENCE DIAGNOSTICS {label}".rstrip())

    var_names = free_parameter_names(binding)
    diag: dict = {}

    rhat = az.rhat(idata, var_names=var_names)
    ess = az.ess(idata, var_names=var_names)
    rhat_ok = True
    ess_ok = True
    for name in var_names:
        rhat_max = float(rhat[name].max())
        ess_min = float(ess[name].min())
        diag[f"{name}_rhat_max"] = rhat_max
        diag[f"{name}_ess_min"] = ess_min
        rhat_ok = rhat_ok and rhat_max < RHAT_THRESHOLD
        ess_ok = ess_ok and ess_min > ESS_THRESHOLD
        rhat_status = "OK" if rhat_max < RHAT_THRESHOLD else "WARNING"
        ess_status = "OK" if ess_min > ESS_THRESHOLD else "WARNING"
        print(f"  {f'R-hat ({name}):':<22}max = {rhat_max:.4f}  {rhat_status}")
        print(f"  {f'ESS ({name}):':<22}min = {ess_min:.0f}  {ess_status}")

    # Divergences
    divergences = int(idata.sample_stats["diverging"].sum().values)
    diag["divergences"] = divergences
    div_ok = divergences < MAX_DIVERGENCES
    print(f"  Divergences:   {divergences}  {'OK' if div_ok else 'WARNING'}")

    # E-BFMI per chain
    bfmi_values = az.bfmi(idata)
    diag["ebfmi"] = [float(v) for v in bfmi_values]
    bfmi_ok = all(v > BFMI_THRESHOLD for v in bfmi_values)
    for i, v in enumerate(bfmi_values):
        print(f"  E-BFMI chain {i}: {v:.3f}  {'OK' if v > BFMI_THRESHOLD else 'WARNING'}")

    diag["rhat_ok"] = rhat_ok
    diag["ess_ok"] = ess_ok
    diag["divergences_ok"] = div_ok
    diag["bfmi_ok"] = bfmi_ok
    diag["all_ok"] = rhat_ok and ess_ok and div_ok and bfmi_ok
    if diag["all_ok"]:
        print("  CONVERGENCE: ALL CHECKS PASSED")
    else:
        print("  CONVERGENCE: SOME CHECKS FAILED, inspect diagnostics")

    return diag


# ── LOO-CV Model Comparison ──────────────────────────────────────────────────


def add_log_likelihood(idata: az.InferenceData, binding: ModelBinding) -> az.InferenceData:
    """Attach a ``log_likelihood`` group computed from the posterior draws.

    For InferenceData sampled without ``idata_kwargs={"log_likelihood": True}``.
    Returns a new object.
    """
    alpha = idata.posterior["alpha"].values
    lam = idata.posterior["lambda"].values
    theta = idata.posterior["theta"].values
    data = binding.data

    n_chains, n_draws = alpha.shape[0], alpha.shape[1]
    log_lik = np.empty((n_chains, n_draws, data.n_obs))
    for c in range(n_chains):
        for d in range(n_draws):
            log_lik[c, d] = pointwise_log_likelihood(alpha[c, d], lam[c, d], theta[c, d], data)

    ds = xr.Dataset(
        {"y": (["chain", "draw", "obs_id"], log_lik)},
        coords={
            "chain": np.arange(n_chains),
            "draw": np.arange(n_draws),
            "obs_id": np.arange(data.n_obs),
        },
    )
    idata = idata.copy()
    idata.add_groups({"log_likelihood": ds})
    return idata


def summarize_pareto_k(loo_result: az.ELPDData) -> dict:
    """Count observations in each Pareto k diagnostic category.

    Categories (Vehtari et al. 2017):
      good:       k < 0.5  (reliable)
      ok:         0.5 <= k < 0.7  (marginal)
      bad:        0.7 <= k < 1.0  (unreliable, higher variance)
      very_bad:   k >= 1.0  (PSIS fails)
    """
    k_values = np.asarray(loo_result.pareto_k)
    return {
        "good": int(np.sum(k_values < 0.5)),
        "ok": int(np.sum((k_values >= 0.5) & (k_values < 0.7))),
        "bad": int(np.sum((k_values >= 0.7) & (k_values < 1.0))),
        "very_bad": int(np.sum(k_values >= 1.0)),
        "total": int(k_values.size),
        "max_k": float(np.max(k_values)),
    }


def compute_loo(idata: az.InferenceData, label: str = "") -> tuple[az.ELPDData, dict]:
    """PSIS-LOO from the per-observation log-likelihood.

    Returns (loo_result, summary dict).
    """
    if "log_likelihood" not in idata.groups():
        raise ValidationError("idata", "no log_likelihood group; see add_log_likelihood()")
    loo = az.loo(idata, pointwise=True)
    pareto = summarize_pareto_k(loo)
    summary = {
        "elpd_loo": float(loo.elpd_loo),
        "se": float(loo.se),
        "p_loo": float(loo.p_loo),
        "pareto_k": pareto,
    }
    prefix = f"{label} " if label else ""
    print(f"  {prefix}ELPD (LOO): {summary['elpd_loo']:.1f} +/- {summary['se']:.1f}")
    print(f"  {prefix}p_loo: {summary['p_loo']:.1f}")
    if pareto["bad"] or pareto["very_bad"]:
        print(
            f"  WARNING: {pareto['bad'] + pareto['very_bad']} observations with Pareto k >= 0.7"
        )
    return loo, summary


def compare_models(model_idatas: dict[str, az.InferenceData]) -> pl.DataFrame:
    """Rank models by expected log predictive density (LOO).

    Args:
        model_idatas: {model_name: idata_with_log_likelihood}

    Returns:
        DataFrame with one row per model (best first) and ArviZ's comparison
        columns (rank, elpd_loo, p_loo, elpd_diff, weight, se, dse, ...).
    """
    if len(model_idatas) < 2:
        raise ValidationError("model_idatas", "need at least two models to compare")
    loo_results = {name: compute_loo(idata, name)[0] for name, idata in model_idatas.items()}
    comparison = az.compare(loo_results)

    columns = {"model": [str(m) for m in comparison.index]}
    for col in comparison.columns:
        columns[str(col)] = comparison[col].to_list()
    df = pl.DataFrame(columns, strict=False)

    print("\n  Model comparison (LOO):")
    for row in df.iter_rows(named=True):
        print(f"    {row['model']:20s}  rank {row['rank']}  weight {row['weight']:.3f}")
    return df


# ── Posterior Predictive Checks ──────────────────────────────────────────────


def run_ppc(
    idata: az.InferenceData,
    binding: ModelBinding,
    n_reps: int = PPC_REPLICATIONS,
    random_seed: int = RANDOM_SEED,
) -> dict:
    """Posterior predictive checks on overall Yea rate and classification accuracy."""
    print("\n  Posterior predictive checks:")

    theta_post = idata.posterior["theta"].values  # (chain, draw, leg)
    alpha_post = idata.posterior["alpha"].values  # (chain, draw, rollcall)
    lambda_post = idata.posterior["lambda"].values  # (chain, draw, rollcall)

    data = binding.data
    y_obs = data.y
    observed_yea_rate = float(y_obs.mean())

    n_chains, n_draws = theta_post.shape[0], theta_post.shape[1]
    n_reps = min(n_reps, n_chains * n_draws)

    rng = np.random.default_rng(random_seed)
    rep_yea_rates = np.empty(n_reps)
    rep_accuracies = np.empty(n_reps)

    for i in range(n_reps):
        c = rng.integers(0, n_chains)
        d = rng.integers(0, n_draws)
        mu = linear_predictor(
            alpha_post[c, d], lambda_post[c, d], theta_post[c, d], data.rollcall_idx, data.leg_idx
        )
        y_rep = rng.binomial(1, expit(mu))
        rep_yea_rates[i] = float(y_rep.mean())
        rep_accuracies[i] = float((y_rep == y_obs).mean())

    # Bayesian p-value
    p_yea_rate = float(np.mean(rep_yea_rates >= observed_yea_rate))
    mean_rep_accuracy = float(rep_accuracies.mean())

    print(f"    Observed Yea rate: {observed_yea_rate:.3f}")
    print(f"    Replicated Yea rate: {rep_yea_rates.mean():.3f} +/- {rep_yea_rates.std():.3f}")
    print(f"    Bayesian p-value (Yea rate): {p_yea_rate:.3f}")
    print(f"    Mean replicated accuracy: {mean_rep_accuracy:.3f}")

    if 0.1 <= p_yea_rate <= 0.9:
        print("    Result: WELL-CALIBRATED (p in [0.1, 0.9])")
    else:
        print("    Result: POTENTIAL MISFIT (p outside [0.1, 0.9])")

    return {
        "observed_yea_rate": observed_yea_rate,
        "replicated_yea_rate_mean": float(rep_yea_rates.mean()),
        "replicated_yea_rate_sd": float(rep_yea_rates.std()),
        "bayesian_p_yea_rate": p_yea_rate,
        "mean_replicated_accuracy": mean_rep_accuracy,
        "n_replications": n_reps,
    }
