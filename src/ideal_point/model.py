"""PyMC model graphs for the three identification variants, plus sampling.

All variants share one likelihood:

    mu_i = alpha[rollcall_i] + lambda[rollcall_i] * theta[legislator_i]
    y_i  ~ Bernoulli(logit^-1(mu_i))

and differ only in which ideal points are free and how they are regularized:

    unidentified     theta ~ prior (shared scalars); identification by prior only
    fixed_reference  theta[anchors] = literal values; theta_free ~ prior
    custom_prior     as unidentified, with per-legislator / per-roll-call vectors

Graph builders do no sampling; sample_model() hands a built graph to NUTS.
"""

from __future__ import annotations

import time

import arviz as az
import numpy as np
import pymc as pm
import pytensor.tensor as pt

from ideal_point.binding import ModelBinding
from ideal_point.config import (
    CUSTOM_PRIOR,
    DEFAULT_N_CHAINS,
    DEFAULT_N_SAMPLES,
    DEFAULT_N_TUNE,
    FIXED_REFERENCE,
    RANDOM_SEED,
    TARGET_ACCEPT,
    UNIDENTIFIED,
    VARIANTS,
)
from ideal_point.models import ValidationError


def _coords(binding: ModelBinding) -> dict:
    data = binding.data
    coords = {
        "legislator": list(data.legislators),
        "rollcall": list(data.rollcalls),
        "obs_id": np.arange(data.n_obs),
    }
    if binding.anchors is not None:
        coords["free_legislator"] = [data.legislators[i] for i in binding.anchors.free_idx]
    return coords


def _add_likelihood(binding: ModelBinding, alpha, lam, theta) -> None:
    """Bernoulli-logit likelihood shared by every variant. Call inside a model context."""
    data = binding.data
    mu = alpha[data.rollcall_idx] + lam[data.rollcall_idx] * theta[data.leg_idx]
    pm.Bernoulli("y", logit_p=mu, observed=data.y, dims="obs_id")


def _add_item_parameters(binding: ModelBinding):
    n = binding.data.n_rollcalls
    alpha = binding.alpha_prior.build("alpha", n, dims="rollcall")
    lam = binding.lambda_prior.build("lambda", n, dims="rollcall")
    return alpha, lam


def _expect_variant(binding: ModelBinding, variant: str) -> None:
    if binding.variant != variant:
        msg = f"binding is for {binding.variant!r}, builder expects {variant!r}"
        raise ValidationError("variant", msg)


def _build_free_theta_model(binding: ModelBinding) -> pm.Model:
    with pm.Model(coords=_coords(binding)) as model:
        alpha, lam = _add_item_parameters(binding)
        theta = binding.theta_prior.build("theta", binding.data.n_legislators, dims="legislator")
        _add_likelihood(binding, alpha, lam, theta)
    return model


def build_unidentified_model(binding: ModelBinding) -> pm.Model:
    """Variant A: theta ~ prior for every legislator, nothing pinned."""
    _expect_variant(binding, UNIDENTIFIED)
    return _build_free_theta_model(binding)


def build_fixed_reference_model(binding: ModelBinding) -> pm.Model:
    """Variant B: anchors pinned at literal values, the rest free.

    theta is a Deterministic assembled from the fixed values and theta_free,
    so posterior draws of theta carry the anchors at their literal values.
    """
    _expect_variant(binding, FIXED_REFERENCE)
    anchors = binding.anchors
    if anchors is None:
        raise ValidationError("anchors", "fixed_reference binding has no anchor partition")

    with pm.Model(coords=_coords(binding)) as model:
        alpha, lam = _add_item_parameters(binding)
        theta_free = binding.theta_prior.build(
            "theta_free", anchors.n_free, dims="free_legislator"
        )
        theta_raw = pt.zeros(binding.data.n_legislators)
        theta_raw = pt.set_subtensor(theta_raw[anchors.fixed_idx], anchors.fixed_values)
        theta_raw = pt.set_subtensor(theta_raw[anchors.free_idx], theta_free)
        theta = pm.Deterministic("theta", theta_raw, dims="legislator")
        _add_likelihood(binding, alpha, lam, theta)
    return model


def build_custom_prior_model(binding: ModelBinding) -> pm.Model:
    """Variant C: Variant A's graph with per-index prior vectors."""
    _expect_variant(binding, CUSTOM_PRIOR)
    return _build_free_theta_model(binding)


def build_model(binding: ModelBinding) -> pm.Model:
    match binding.variant:
        case "unidentified":
            return build_unidentified_model(binding)
        case "fixed_reference":
            return build_fixed_reference_model(binding)
        case "custom_prior":
            return build_custom_prior_model(binding)
        case _:
            msg = f"unknown variant {binding.variant!r}; supported: {', '.join(VARIANTS)}"
            raise ValidationError("variant", msg)


def sample_model(
    model: pm.Model,
    binding: ModelBinding,
    n_samples: int = DEFAULT_N_SAMPLES,
    n_tune: int = DEFAULT_N_TUNE,
    n_chains: int = DEFAULT_N_CHAINS,
    target_accept: float = TARGET_ACCEPT,
    random_seed: int = RANDOM_SEED,
) -> tuple[az.InferenceData, float]:
    """Sample a built model with NUTS.

    Per-observation log-likelihood draws are stored in the ``log_likelihood``
    group for LOO model comparison. Initial values come from
    ``binding.initvals`` when present. Divergences and other sampler problems
    are left in ``sample_stats`` for check_convergence() to report.

    Returns (InferenceData, sampling_time_seconds).
    """
    kwargs: dict = {}
    if binding.initvals:
        kwargs["initvals"] = dict(binding.initvals)
        ranges = ", ".join(
            f"{k} [{v.min():+.2f}, {v.max():+.2f}]" for k, v in binding.initvals.items()
        )
        print(f"  Initial values: {ranges}")

    print(f"  Sampling: {n_samples} draws, {n_tune} tune, {n_chains} chains")
    print(f"  target_accept={target_accept}, seed={random_seed}")
    t0 = time.time()
    with model:
        idata = pm.sample(
            draws=n_samples,
            tune=n_tune,
            chains=n_chains,
            target_accept=target_accept,
            random_seed=random_seed,
            progressbar=True,
            idata_kwargs={"log_likelihood": True},
            **kwargs,
        )
    sampling_time = time.time() - t0

    print(f"  Sampling complete in {sampling_time:.1f}s")
    return idata, sampling_time
