"""Invariances of the bilinear predictor mu = alpha + lambda * theta.

The likelihood sees the parameters only through mu, so any transformation that
leaves every mu unchanged leaves the likelihood unchanged:

  scale       (lambda, theta)  -> (lambda / c, theta * c)          c != 0
  shift       (alpha, theta)   -> (alpha - lambda * c, theta + c)
  reflection  (lambda, theta)  -> (-lambda, -theta)

Together they generate the affine family theta -> a * theta + b (a != 0) with the
item parameters compensating. Pinning a set of ideal points to literal values v
restricts the family to its stabiliser {(a, b) : a * v + b = v for every v}:

  - no fixed values:           a and b free      (2 continuous dimensions)
  - one distinct fixed value:  b = v0 * (1 - a)  (1 dimension; reflection about v0)
  - two or more distinct:      a = 1, b = 0      (identified)

Two anchors at distinct values therefore remove shift, scale and reflection at
once. This is a design-time property of the fixed-reference variant; the
functions below make it checkable, they are not consulted during sampling.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from scipy.special import expit

from ideal_point.models import ValidationError


def linear_predictor(
    alpha: np.ndarray,
    lam: np.ndarray,
    theta: np.ndarray,
    rollcall_idx: np.ndarray,
    leg_idx: np.ndarray,
) -> np.ndarray:
    """mu_i = alpha[j(i)] + lambda[j(i)] * theta[k(i)] for every observation i."""
    alpha, lam, theta = (np.asarray(a, dtype=np.float64) for a in (alpha, lam, theta))
    return alpha[rollcall_idx] + lam[rollcall_idx] * theta[leg_idx]


def full_crossing(n_legislators: int, n_rollcalls: int) -> tuple[np.ndarray, np.ndarray]:
    """Index arrays covering every (roll call, legislator) pair."""
    rollcall_idx, leg_idx = np.meshgrid(
        np.arange(n_rollcalls), np.arange(n_legislators), indexing="ij"
    )
    return rollcall_idx.ravel(), leg_idx.ravel()


def predicted_probabilities(
    alpha: np.ndarray,
    lam: np.ndarray,
    theta: np.ndarray,
    rollcall_idx: np.ndarray | None = None,
    leg_idx: np.ndarray | None = None,
) -> np.ndarray:
    """P(Yea) = logit^-1(mu), over the given observations or the full crossing."""
    if rollcall_idx is None or leg_idx is None:
        rollcall_idx, leg_idx = full_crossing(len(theta), len(alpha))
    return expit(linear_predictor(alpha, lam, theta, rollcall_idx, leg_idx))


# ── Transformation laws ──────────────────────────────────────────────────────


def rescale(lam: np.ndarray, theta: np.ndarray, c: float) -> tuple[np.ndarray, np.ndarray]:
    if c == 0:
        raise ValidationError("c", "scale factor must be nonzero")
    return np.asarray(lam) / c, np.asarray(theta) * c


def shift(
    alpha: np.ndarray, lam: np.ndarray, theta: np.ndarray, c: float
) -> tuple[np.ndarray, np.ndarray]:
    return np.asarray(alpha) - np.asarray(lam) * c, np.asarray(theta) + c


def reflect(lam: np.ndarray, theta: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    return -np.asarray(lam), -np.asarray(theta)


def invariance_deviations(
    alpha: np.ndarray,
    lam: np.ndarray,
    theta: np.ndarray,
    c: float,
    rollcall_idx: np.ndarray | None = None,
    leg_idx: np.ndarray | None = None,
) -> dict[str, float]:
    """Max |delta mu| under each transformation. All three are zero up to rounding."""
    if rollcall_idx is None or leg_idx is None:
        rollcall_idx, leg_idx = full_crossing(len(theta), len(alpha))
    mu = linear_predictor(alpha, lam, theta, rollcall_idx, leg_idx)

    lam_s, theta_s = rescale(lam, theta, c)
    alpha_t, theta_t = shift(alpha, lam, theta, c)
    lam_r, theta_r = reflect(lam, theta)
    transformed = {
        "scale": linear_predictor(alpha, lam_s, theta_s, rollcall_idx, leg_idx),
        "shift": linear_predictor(alpha_t, lam, theta_t, rollcall_idx, leg_idx),
        "reflection": linear_predictor(alpha, lam_r, theta_r, rollcall_idx, leg_idx),
    }
    return {name: float(np.max(np.abs(mu_t - mu))) for name, mu_t in transformed.items()}


# ── Identification check ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class IdentificationReport:
    """What remains of the affine family after pinning some ideal points."""

    n_fixed: int
    n_distinct: int
    residual_dimension: int
    reflection_free: bool

    @property
    def identified(self) -> bool:
        return self.residual_dimension == 0 and not self.reflection_free

    def describe(self) -> str:
        if self.identified:
            return f"identified ({self.n_distinct} distinct fixed values)"
        return (
            f"NOT identified: {self.residual_dimension} continuous dimension(s) remain"
            f"{', reflection remains' if self.reflection_free else ''}"
        )


def identification_report(fixed_values: np.ndarray | list[float]) -> IdentificationReport:
    values = np.asarray(fixed_values, dtype=np.float64).ravel()
    n_distinct = len(np.unique(values))
    residual = max(0, 2 - n_distinct)
    return IdentificationReport(
        n_fixed=len(values),
        n_distinct=n_distinct,
        residual_dimension=residual,
        reflection_free=n_distinct < 2,
    )
