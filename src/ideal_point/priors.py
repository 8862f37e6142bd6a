"""Prior specification dataclass shared by every model variant.

A PriorSpec names the distribution family and its location/scale/skew
hyperparameters. Each hyperparameter is either a scalar (shared across every
index) or a per-index vector. The same spec drives the PyMC graph (build) and
the NumPy reference density (logpdf, grad_logpdf), so the two cannot drift apart.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from scipy import stats

from ideal_point.models import ValidationError

DISTRIBUTIONS = ("normal", "skew_normal")


def _as_param(value: float | np.ndarray) -> float | np.ndarray:
    """Scalar as float; vector as a private read-only copy, so validation holds."""
    arr = np.array(value, dtype=np.float64)
    if arr.ndim == 0:
        return float(arr)
    if arr.ndim > 1:
        msg = f"expected a scalar or 1-D vector, got shape {arr.shape}"
        raise ValidationError("prior", msg)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class PriorSpec:
    """Specification for one parameter block's prior.

    Examples:
        PriorSpec("normal", loc=0, scale=5)                 # shared scalars
        PriorSpec("skew_normal", loc=0, scale=1, skew=2)    # soft positive lean
        PriorSpec("normal", loc=np.zeros(40), scale=sds)    # per-index vectors
    """

    distribution: str
    loc: float | np.ndarray = 0.0
    scale: float | np.ndarray = 1.0
    skew: float | np.ndarray = 0.0

    def __post_init__(self) -> None:
        if self.distribution not in DISTRIBUTIONS:
            msg = (
                f"unknown prior distribution {self.distribution!r}; "
                f"supported: {', '.join(DISTRIBUTIONS)}"
            )
            raise ValidationError("distribution", msg)
        for name in ("loc", "scale", "skew"):
            object.__setattr__(self, name, _as_param(getattr(self, name)))

        scale = np.asarray(self.scale)
        if not np.all(np.isfinite(scale)) or np.any(scale <= 0):
            msg = f"prior scale must be strictly positive and finite, got {self.scale!r}"
            raise ValidationError("scale", msg)
        for name in ("loc", "skew"):
            if not np.all(np.isfinite(np.asarray(getattr(self, name)))):
                raise ValidationError(name, f"prior {name} must be finite")
        if self.distribution == "normal" and np.any(np.asarray(self.skew) != 0):
            raise ValidationError("skew", "a normal prior takes no skew")

        sizes = {np.size(p) for p in (self.loc, self.scale, self.skew) if np.ndim(p) == 1}
        if len(sizes) > 1:
            msg = f"vector hyperparameters disagree in length: {sorted(sizes)}"
            raise ValidationError("prior", msg)

    @property
    def size(self) -> int | None:
        """Length of the vector hyperparameters, or None when all are scalars."""
        for p in (self.loc, self.scale, self.skew):
            if np.ndim(p) == 1:
                return int(np.size(p))
        return None

    def check_length(self, n: int, field: str) -> None:
        """Raise unless the spec is scalar or its vectors have length n."""
        if self.size is not None and self.size != n:
            msg = f"prior vectors have length {self.size}, expected {n}"
            raise ValidationError(field, msg)

    def broadcast(self, n: int) -> PriorSpec:
        """Return an equivalent spec whose hyperparameters are all length-n vectors."""
        self.check_length(n, "prior")
        return PriorSpec(
            self.distribution,
            loc=np.broadcast_to(self.loc, (n,)).copy(),
            scale=np.broadcast_to(self.scale, (n,)).copy(),
            skew=np.broadcast_to(self.skew, (n,)).copy(),
        )

    def build(self, name: str, n: int, dims: str | None = None):
        """Instantiate the PyMC distribution inside an active model context.

        Must be called inside a ``with pm.Model():`` block.
        """
        import pymc as pm

        match self.distribution:
            case "normal":
                return pm.Normal(name, mu=self.loc, sigma=self.scale, shape=n, dims=dims)
            case "skew_normal":
                return pm.SkewNormal(
                    name,
                    mu=self.loc,
                    sigma=self.scale,
                    alpha=self.skew,
                    shape=n,
                    dims=dims,
                )
            case _:
                msg = f"unknown prior distribution {self.distribution!r}"
                raise ValidationError("distribution", msg)

    def logpdf(self, x: np.ndarray) -> np.ndarray:
        """Elementwise log density at x."""
        if self.distribution == "skew_normal":
            return stats.skewnorm.logpdf(x, self.skew, loc=self.loc, scale=self.scale)
        return stats.norm.logpdf(x, loc=self.loc, scale=self.scale)

    def grad_logpdf(self, x: np.ndarray) -> np.ndarray:
        """Elementwise derivative of logpdf with respect to x."""
        z = (np.asarray(x, dtype=np.float64) - self.loc) / self.scale
        grad = -z
        if self.distribution == "skew_normal":
            sz = self.skew * z
            # d/dz log Phi(a z) = a * phi(a z) / Phi(a z), in log space for stability
            grad = grad + self.skew * np.exp(stats.norm.logpdf(sz) - stats.norm.logcdf(sz))
        return grad / self.scale

    def describe(self) -> str:
        """Human-readable description for logs and manifests.

        Returns:
            String like "Normal(loc=0.0, scale=5.0)" or
            "SkewNormal(loc=0.0, scale=1.0, skew=2.0)". Vector hyperparameters
            are shown as "vector[n]".
        """

        def fmt(p: float | np.ndarray) -> str:
            return f"vector[{np.size(p)}]" if np.ndim(p) == 1 else f"{p}"

        if self.distribution == "skew_normal":
            return (
                f"SkewNormal(loc={fmt(self.loc)}, scale={fmt(self.scale)}, "
                f"skew={fmt(self.skew)})"
            )
        return f"Normal(loc={fmt(self.loc)}, scale={fmt(self.scale)})"


# Defaults per variant. The unidentified baseline leans on a skewed discrimination
# prior for weak orientation; with anchors the sign is pinned, so Normal suffices.
ALPHA_PRIOR = PriorSpec("normal", loc=0.0, scale=5.0)
LAMBDA_PRIOR = PriorSpec("skew_normal", loc=0.0, scale=2.5, skew=2.0)
THETA_PRIOR = PriorSpec("normal", loc=0.0, scale=1.0)
FIXED_REFERENCE_LAMBDA_PRIOR = PriorSpec("normal", loc=0.0, scale=1.0)
