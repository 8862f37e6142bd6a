"""Ideal Point - Bayesian ideal point estimation from legislative roll-call votes."""

__version__ = "0.1.0"

from ideal_point.binding import ModelBinding as ModelBinding
from ideal_point.binding import bind as bind
from ideal_point.data import VoteData as VoteData
from ideal_point.data import prepare_vote_data as prepare_vote_data
from ideal_point.model import build_model as build_model
from ideal_point.model import sample_model as sample_model
from ideal_point.models import LatentTraitEstimate as LatentTraitEstimate
from ideal_point.models import Observation as Observation
from ideal_point.models import ValidationError as ValidationError
from ideal_point.priors import PriorSpec as PriorSpec
