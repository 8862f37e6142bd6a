"""Data classes for vote observations and posterior estimates."""

from dataclasses import dataclass


class ValidationError(ValueError):
    """Input rejected before any density evaluation or sampling.

    Carries the name of the offending field so callers can report it.
    """

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field


@dataclass(frozen=True)
class Observation:
    """One legislator's recorded Yea (1) or Nay (0) on one roll call."""
    legislator_index: int
    rollcall_index: int
    vote: int


@dataclass(frozen=True)
class LatentTraitEstimate:
    """Posterior summary of one legislator's ideal point."""
    legislator_slug: str
    full_name: str
    party: str
    theta_mean: float
    theta_sd: float
    theta_hdi_low: float
    theta_hdi_high: float
    rank: int
