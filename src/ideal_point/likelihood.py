"""Reference log density for a bound model, in plain NumPy/SciPy.

This is the model-to-sampler contract written out explicitly: a deterministic,
side-effect-free map from a flat parameter vector and a ModelBinding to the
unnormalized log posterior and its gradient. The PyMC graph in model.py
computes the same quantity; tests hold the two together.

Vector layout: [alpha (n_rollcalls), lambda (n_rollcalls), theta_free (n_free)],
where theta_free is every ideal point for the unidentified/custom-prior
variants and the non-anchored ones for the fixed-reference variant.
"""

from __future__ import annotations

import numpy as np
from scipy.special import expit

from ideal_point.binding import ModelBinding
from ideal_point.data import VoteData
from ideal_point.identification import linear_predictor
from ideal_point.models import ValidationError


def n_parameters(binding: ModelBinding) -> int:
    return 2 * binding.data.n_rollcalls + binding.n_free_theta


def pack_parameters(
    alpha: np.ndarray, lam: np.ndarray, theta_free: np.ndarray
) -> np.ndarray:
    return np.concatenate([np.ravel(alpha), np.ravel(lam), np.ravel(theta_free)]).astype(
        np.float64
    )


def unpack_parameters(
    vector: np.ndarray, binding: ModelBinding
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Split a flat vector into (alpha, lambda, theta_free)."""
    vector = np.asarray(vector, dtype=np.float64)
    expected = n_parameters(binding)
    if vector.shape != (expected,):
        msg = f"expected a flat vector of length {expected}, got shape {vector.shape}"
        raise ValidationError("parameters", msg)
    n = binding.data.n_rollcalls
    return vector[:n], vector[n : 2 * n], vector[2 * n :]


def pointwise_log_likelihood(
    alpha: np.ndarray, lam: np.ndarray, theta: np.ndarray, data: VoteData
) -> np.ndarray:
    """log Bernoulli(y | logit^-1(mu)) for every observation.

    Written as y * mu - log(1 + exp(mu)), which is stable for large |mu|.
    """
    mu = linear_predictor(alpha, lam, theta, data.rollcall_idx, data.leg_idx)
    return data.y * mu - np.logaddexp(0.0, mu)


def log_prior(
    alpha: np.ndarray, lam: np.ndarray, theta_free: np.ndarray, binding: ModelBinding
) -> float:
    return float(
        binding.alpha_prior.logpdf(alpha).sum()
        + binding.lambda_prior.logpdf(lam).sum()
        + binding.theta_prior.logpdf(theta_free).sum()
    )


def log_posterior(vector: np.ndarray, binding: ModelBinding) -> float:
    """Unnormalized log posterior density; -inf for non-finite parameters."""
    alpha, lam, theta_free = unpack_parameters(vector, binding)
    if not np.all(np.isfinite(vector)):
        return -np.inf
    theta = binding.theta_from_free(theta_free)
    total = log_prior(alpha, lam, theta_free, binding)
    total += float(pointwise_log_likelihood(alpha, lam, theta, binding.data).sum())
    return total if np.isfinite(total) else -np.inf


def log_posterior_and_grad(
    vector: np.ndarray, binding: ModelBinding
) -> tuple[float, np.ndarray]:
    """Log posterior and its gradient with respect to the flat vector.

    d/d mu_i of the log likelihood is y_i - p_i; the chain rule through
    mu_i = alpha_j + lambda_j * theta_k scatters it onto the three blocks.
    """
    alpha, lam, theta_free = unpack_parameters(vector, binding)
    if not np.all(np.isfinite(vector)):
        return -np.inf, np.zeros_like(np.asarray(vector, dtype=np.float64))

    data = binding.data
    theta = binding.theta_from_free(theta_free)
    mu = linear_predictor(alpha, lam, theta, data.rollcall_idx, data.leg_idx)
    resid = data.y - expit(mu)

    n_rc, n_leg = data.n_rollcalls, data.n_legislators
    grad_alpha = np.bincount(data.rollcall_idx, weights=resid, minlength=n_rc)
    grad_lam = np.bincount(
        data.rollcall_idx, weights=resid * theta[data.leg_idx], minlength=n_rc
    )
    grad_theta = np.bincount(
        data.leg_idx, weights=resid * lam[data.rollcall_idx], minlength=n_leg
    )
    if binding.anchors is not None:
        grad_theta = grad_theta[binding.anchors.free_idx]

    grad_alpha += binding.alpha_prior.grad_logpdf(alpha)
    grad_lam += binding.lambda_prior.grad_logpdf(lam)
    grad_theta += binding.theta_prior.grad_logpdf(theta_free)

    value = log_prior(alpha, lam, theta_free, binding)
    value += float((data.y * mu - np.logaddexp(0.0, mu)).sum())
    grad = pack_parameters(grad_alpha, grad_lam, grad_theta)
    if not np.isfinite(value):
        return -np.inf, np.zeros_like(grad)
    return value, grad


def log_density_function(binding: ModelBinding):
    """Close over a binding: returns f(vector) -> (log density, gradient).

    This is the shape external gradient-based samplers expect. The binding is
    immutable, so one closure can be shared by concurrent chains.
    """

    def logp_and_grad(vector: np.ndarray) -> tuple[float, np.ndarray]:
        return log_posterior_and_grad(vector, binding)

    return logp_and_grad
