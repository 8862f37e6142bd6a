"""Per-variant data binding: the record a model builder consumes.

Each variant gets its own bind function returning a fresh, frozen ModelBinding
(data + priors + optional anchor partition). Nothing is rebound in place;
attaching initial values returns a new record via with_initvals().
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace

import numpy as np
from scipy.special import logit

from ideal_point.config import CUSTOM_PRIOR, FIXED_REFERENCE, UNIDENTIFIED, VARIANTS
from ideal_point.data import VoteData
from ideal_point.identification import identification_report
from ideal_point.models import ValidationError
from ideal_point.priors import (
    ALPHA_PRIOR,
    FIXED_REFERENCE_LAMBDA_PRIOR,
    LAMBDA_PRIOR,
    THETA_PRIOR,
    PriorSpec,
)


@dataclass(frozen=True, eq=False)
class AnchorPartition:
    """Split of the legislator index range into fixed anchors and free points.

    ``fixed_values[i]`` is the literal ideal point of legislator
    ``fixed_idx[i]`` (named ``fixed_names[i]``), in the order the anchors
    were given.
    """

    fixed_idx: np.ndarray
    fixed_values: np.ndarray
    fixed_names: tuple[str, ...]
    free_idx: np.ndarray

    @property
    def n_free(self) -> int:
        return len(self.free_idx)


@dataclass(frozen=True, eq=False)
class ModelBinding:
    variant: str
    data: VoteData
    alpha_prior: PriorSpec
    lambda_prior: PriorSpec
    theta_prior: PriorSpec
    anchors: AnchorPartition | None = None
    initvals: dict[str, np.ndarray] | None = None

    @property
    def n_free_theta(self) -> int:
        return self.anchors.n_free if self.anchors is not None else self.data.n_legislators

    def theta_from_free(self, theta_free: np.ndarray) -> np.ndarray:
        """Assemble the full ideal point vector from its free components."""
        if self.anchors is None:
            return np.asarray(theta_free, dtype=np.float64)
        theta = np.zeros(self.data.n_legislators)
        theta[self.anchors.fixed_idx] = self.anchors.fixed_values
        theta[self.anchors.free_idx] = theta_free
        return theta

    def describe_priors(self) -> dict[str, str]:
        label = "theta_free" if self.anchors is not None else "theta"
        return {
            "alpha": self.alpha_prior.describe(),
            "lambda": self.lambda_prior.describe(),
            label: self.theta_prior.describe(),
        }


def _check_item_priors(data: VoteData, alpha_prior: PriorSpec, lambda_prior: PriorSpec) -> None:
    alpha_prior.check_length(data.n_rollcalls, "alpha_prior")
    lambda_prior.check_length(data.n_rollcalls, "lambda_prior")


# ── Variant A ────────────────────────────────────────────────────────────────


def bind_unidentified(
    data: VoteData,
    alpha_prior: PriorSpec = ALPHA_PRIOR,
    lambda_prior: PriorSpec = LAMBDA_PRIOR,
    theta_prior: PriorSpec = THETA_PRIOR,
) -> ModelBinding:
    """Baseline: every ideal point free, identified only (weakly) by its prior."""
    data.validate()
    _check_item_priors(data, alpha_prior, lambda_prior)
    theta_prior.check_length(data.n_legislators, "theta_prior")
    return ModelBinding(UNIDENTIFIED, data, alpha_prior, lambda_prior, theta_prior)


# ── Variant B ────────────────────────────────────────────────────────────────


def partition_anchors(data: VoteData, anchors: Mapping[str, float]) -> AnchorPartition:
    """Resolve anchor slugs to indices and split off the free legislators.

    Fails fast if an anchor is not among the retained legislators, if values
    are not finite, or if the anchors do not identify the model (fewer than two
    distinct values).
    """
    index = {slug: i for i, slug in enumerate(data.legislators)}
    missing = [name for name in anchors if name not in index]
    if missing:
        msg = f"anchor legislator(s) not in the retained data: {', '.join(missing)}"
        raise ValidationError("anchors", msg)

    names = tuple(anchors)
    fixed_idx = np.array([index[name] for name in names], dtype=np.int64)
    fixed_values = np.array([float(anchors[name]) for name in names])
    if not np.all(np.isfinite(fixed_values)):
        raise ValidationError("anchors", "anchor values must be finite")

    report = identification_report(fixed_values)
    if not report.identified:
        raise ValidationError("anchors", report.describe())

    free_idx = np.setdiff1d(np.arange(data.n_legislators), fixed_idx).astype(np.int64)
    return AnchorPartition(fixed_idx, fixed_values, names, free_idx)


def bind_fixed_reference(
    data: VoteData,
    anchors: Mapping[str, float],
    alpha_prior: PriorSpec = ALPHA_PRIOR,
    lambda_prior: PriorSpec = FIXED_REFERENCE_LAMBDA_PRIOR,
    theta_prior: PriorSpec = THETA_PRIOR,
) -> ModelBinding:
    """Anchor legislators at literal ideal points; the rest get ``theta_prior``.

    ``theta_prior`` applies to the free subset only, so vector hyperparameters
    must have length n_legislators - len(anchors), in free-index order.
    """
    data.validate()
    partition = partition_anchors(data, anchors)
    _check_item_priors(data, alpha_prior, lambda_prior)
    theta_prior.check_length(partition.n_free, "theta_prior")
    return ModelBinding(
        FIXED_REFERENCE, data, alpha_prior, lambda_prior, theta_prior, anchors=partition
    )


# ── Variant C ────────────────────────────────────────────────────────────────


def bind_custom_priors(
    data: VoteData,
    alpha_prior: PriorSpec = ALPHA_PRIOR,
    lambda_prior: PriorSpec = LAMBDA_PRIOR,
    theta_prior: PriorSpec = THETA_PRIOR,
) -> ModelBinding:
    """Variant A's likelihood with per-index prior vectors.

    Scalar hyperparameters are broadcast so the binding always carries one
    location/scale per roll call and per legislator.
    """
    data.validate()
    _check_item_priors(data, alpha_prior, lambda_prior)
    theta_prior.check_length(data.n_legislators, "theta_prior")
    return ModelBinding(
        CUSTOM_PRIOR,
        data,
        alpha_prior.broadcast(data.n_rollcalls),
        lambda_prior.broadcast(data.n_rollcalls),
        theta_prior.broadcast(data.n_legislators),
    )


def empirical_priors(
    data: VoteData,
    directions: np.ndarray | None = None,
    alpha_scale: float = 2.5,
    lambda_loc: float = 1.0,
    lambda_scale: float = 1.0,
    theta_scale: float = 1.0,
    lopsided_theta_scale: float = 0.5,
    lopsided_share: float = 0.9,
) -> tuple[PriorSpec, PriorSpec, PriorSpec]:
    """Per-index priors computed from the observed votes.

    - alpha location: logit of each roll call's Yea share (clipped)
    - lambda location: +/- lambda_loc on party-line votes (``directions``), 0 otherwise
    - theta scale: tighter for legislators whose own Yea share is lopsided,
      since they contribute little information about their position

    Returns (alpha_prior, lambda_prior, theta_prior).
    """
    rc_votes = np.maximum(np.bincount(data.rollcall_idx, minlength=data.n_rollcalls), 1)
    yea_share = np.bincount(data.rollcall_idx, weights=data.y, minlength=data.n_rollcalls)
    yea_share = yea_share / rc_votes
    alpha_loc = logit(np.clip(yea_share, 0.02, 0.98))

    if directions is None:
        directions = np.zeros(data.n_rollcalls)
    directions = np.asarray(directions, dtype=np.float64)
    if directions.shape != (data.n_rollcalls,):
        raise ValidationError("directions", f"expected length {data.n_rollcalls}")

    leg_votes = np.maximum(np.bincount(data.leg_idx, minlength=data.n_legislators), 1)
    leg_share = np.bincount(data.leg_idx, weights=data.y, minlength=data.n_legislators)
    leg_share = leg_share / leg_votes
    lopsided = np.maximum(leg_share, 1 - leg_share) >= lopsided_share
    theta_sd = np.where(lopsided, lopsided_theta_scale, theta_scale)

    alpha_prior = PriorSpec("normal", loc=alpha_loc, scale=np.full(data.n_rollcalls, alpha_scale))
    lambda_prior = PriorSpec(
        "normal",
        loc=directions * lambda_loc,
        scale=np.full(data.n_rollcalls, lambda_scale),
    )
    theta_prior = PriorSpec("normal", loc=np.zeros(data.n_legislators), scale=theta_sd)
    return alpha_prior, lambda_prior, theta_prior


# ── Initialization interface ─────────────────────────────────────────────────


def with_initvals(binding: ModelBinding, initvals: Mapping[str, np.ndarray]) -> ModelBinding:
    """Return a copy of ``binding`` carrying starting values for free parameters.

    Keys are free-parameter names: "alpha", "lambda", and "theta" (variants A/C)
    or "theta_free" (variant B). Lengths must match the free-parameter priors.
    """
    expected = {
        "alpha": binding.data.n_rollcalls,
        "lambda": binding.data.n_rollcalls,
        "theta_free" if binding.anchors is not None else "theta": binding.n_free_theta,
    }
    checked: dict[str, np.ndarray] = {}
    for name, values in initvals.items():
        if name not in expected:
            msg = f"unknown free parameter {name!r}; expected one of {sorted(expected)}"
            raise ValidationError("initvals", msg)
        arr = np.asarray(values, dtype=np.float64)
        if arr.shape != (expected[name],):
            msg = f"{name} has shape {arr.shape}, expected ({expected[name]},)"
            raise ValidationError("initvals", msg)
        if not np.all(np.isfinite(arr)):
            raise ValidationError("initvals", f"{name} contains non-finite values")
        checked[name] = arr
    return replace(binding, initvals=checked)


def bind(variant: str, data: VoteData, **kwargs) -> ModelBinding:
    """Dispatch to the bind function for ``variant``."""
    match variant:
        case "unidentified":
            return bind_unidentified(data, **kwargs)
        case "fixed_reference":
            if kwargs.get("anchors") is None:
                msg = "fixed_reference needs anchors={slug: value, ...} with two distinct values"
                raise ValidationError("anchors", msg)
            return bind_fixed_reference(data, **kwargs)
        case "custom_prior":
            return bind_custom_priors(data, **kwargs)
        case _:
            msg = f"unknown variant {variant!r}; supported: {', '.join(VARIANTS)}"
            raise ValidationError("variant", msg)
