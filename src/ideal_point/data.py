"""Roll-call data preparation: recode, filter, and index long-format votes.

Input is a long vote table with one row per (legislator, roll call):

    legislator_slug | vote_id | vote

where ``vote`` is either a VoteView integer cast code (0-9) or a string
category ("Yea", "Nay", "Absent and Not Voting", ...). The output is a
VoteData record of dense 0-based index arrays consumed by every model variant.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
import polars as pl

from ideal_point.config import (
    LEFT_PARTY,
    MIN_VOTES,
    MINORITY_THRESHOLD,
    MISSING_CODES,
    NAY_CODES,
    NAY_LABELS,
    PARTY_LINE_THRESHOLD,
    RIGHT_PARTY,
    YEA_CODES,
    YEA_LABELS,
)
from ideal_point.models import Observation, ValidationError

SLUG_COL = "legislator_slug"
VOTE_ID_COL = "vote_id"


@dataclass(frozen=True, eq=False)
class VoteData:
    """Observed votes as parallel index arrays plus the index tables.

    ``legislators[k]`` is the slug behind dense legislator index k and
    ``rollcalls[j]`` the vote id behind roll-call index j.
    """

    leg_idx: np.ndarray
    rollcall_idx: np.ndarray
    y: np.ndarray
    legislators: tuple[str, ...]
    rollcalls: tuple[str, ...]

    @property
    def n_legislators(self) -> int:
        return len(self.legislators)

    @property
    def n_rollcalls(self) -> int:
        return len(self.rollcalls)

    @property
    def n_obs(self) -> int:
        return int(self.y.shape[0])

    def validate(self) -> VoteData:
        """Check counts, array lengths, index ranges and vote values. Returns self."""
        if self.n_legislators < 1:
            raise ValidationError("legislators", "at least one legislator is required")
        if self.n_rollcalls < 1:
            raise ValidationError("rollcalls", "at least one roll call is required")
        for name in ("leg_idx", "rollcall_idx", "y"):
            if getattr(self, name).ndim != 1:
                raise ValidationError(name, "must be a 1-D array")
        if not (self.leg_idx.shape == self.rollcall_idx.shape == self.y.shape):
            msg = (
                f"index arrays differ in length: leg_idx={self.leg_idx.shape[0]}, "
                f"rollcall_idx={self.rollcall_idx.shape[0]}, y={self.y.shape[0]}"
            )
            raise ValidationError("y", msg)
        if self.n_obs == 0:
            raise ValidationError("y", "no observed votes")
        for name, upper in (
            ("leg_idx", self.n_legislators),
            ("rollcall_idx", self.n_rollcalls),
        ):
            idx = getattr(self, name)
            if idx.min() < 0 or idx.max() >= upper:
                msg = f"values must lie in [0, {upper - 1}], got [{idx.min()}, {idx.max()}]"
                raise ValidationError(name, msg)
        if not np.isin(self.y, (0, 1)).all():
            raise ValidationError("y", "votes must be 0 (Nay) or 1 (Yea)")
        return self

    def observations(self) -> list[Observation]:
        return [
            Observation(int(k), int(j), int(v))
            for k, j, v in zip(self.leg_idx, self.rollcall_idx, self.y, strict=True)
        ]

    @classmethod
    def from_observations(
        cls,
        observations: Sequence[Observation],
        legislators: Sequence[str],
        rollcalls: Sequence[str],
    ) -> VoteData:
        """Build and validate a VoteData from explicit Observation records."""
        data = cls(
            leg_idx=np.array([o.legislator_index for o in observations], dtype=np.int64),
            rollcall_idx=np.array([o.rollcall_index for o in observations], dtype=np.int64),
            y=np.array([o.vote for o in observations], dtype=np.int64),
            legislators=tuple(legislators),
            rollcalls=tuple(rollcalls),
        )
        return data.validate()


# ── Recoding ─────────────────────────────────────────────────────────────────


def recode_votes(votes: pl.DataFrame) -> pl.DataFrame:
    """Add a boolean ``yea`` column and drop rows with no substantive vote.

    Integer columns are read as VoteView cast codes: 1-3 Yea, 4-6 Nay,
    0/7/8/9 missing. String columns: Yea/Nay labels map to True/False, every
    other label (absent, present and passing, not voting) is missing.

    Raises ValidationError on integer codes outside 0-9.
    """
    if votes.schema["vote"].is_integer():
        known = [*YEA_CODES, *NAY_CODES, *MISSING_CODES]
        unknown = votes.filter(~pl.col("vote").is_in(known))["vote"].unique().to_list()
        if unknown:
            raise ValidationError("vote", f"unknown cast codes {sorted(unknown)}")
        yea, nay = list(YEA_CODES), list(NAY_CODES)
    else:
        yea, nay = list(YEA_LABELS), list(NAY_LABELS)

    recoded = votes.with_columns(
        pl.when(pl.col("vote").is_in(yea))
        .then(True)
        .when(pl.col("vote").is_in(nay))
        .then(False)
        .otherwise(None)
        .alias("yea")
    )
    return recoded.drop_nulls(subset=["yea"])


# ── Filtering ────────────────────────────────────────────────────────────────


def drop_unanimous_rollcalls(
    votes: pl.DataFrame,
    minority_threshold: float = MINORITY_THRESHOLD,
) -> tuple[pl.DataFrame, dict]:
    """Drop roll calls with no (or too small a) minority side.

    All-Yea and all-Nay roll calls carry no information about the latent
    dimension and are always dropped. A positive ``minority_threshold``
    additionally drops near-unanimous ones (minority share below it).

    Expects recoded votes (``yea`` column). Returns (filtered, manifest).
    """
    per_rollcall = (
        votes.group_by(VOTE_ID_COL)
        .agg(pl.col("yea").cast(pl.Float64).mean().alias("yea_frac"))
        .with_columns(
            pl.min_horizontal(pl.col("yea_frac"), 1 - pl.col("yea_frac")).alias("minority_frac")
        )
    )
    keep = per_rollcall.filter(
        (pl.col("minority_frac") > 0) & (pl.col("minority_frac") >= minority_threshold)
    )[VOTE_ID_COL]

    manifest = {
        "minority_threshold": minority_threshold,
        "rollcalls_before": per_rollcall.height,
        "rollcalls_dropped_unanimous": per_rollcall.height - keep.len(),
        "rollcalls_after": keep.len(),
    }
    return votes.filter(pl.col(VOTE_ID_COL).is_in(keep.to_list())), manifest


def drop_inactive_legislators(
    votes: pl.DataFrame,
    min_votes: int = MIN_VOTES,
) -> tuple[pl.DataFrame, dict]:
    """Drop legislators with fewer than ``min_votes`` substantive votes."""
    counts = votes.group_by(SLUG_COL).agg(pl.len().alias("n_votes"))
    active = counts.filter(pl.col("n_votes") >= min_votes)[SLUG_COL]
    manifest = {
        "min_votes": min_votes,
        "legislators_before": counts.height,
        "legislators_dropped_low_participation": counts.height - active.len(),
        "legislators_after": active.len(),
    }
    return votes.filter(pl.col(SLUG_COL).is_in(active.to_list())), manifest


# ── Indexing ─────────────────────────────────────────────────────────────────


def index_votes(votes: pl.DataFrame) -> VoteData:
    """Assign dense 0-based indices (sorted slug / vote id order) and validate."""
    slugs = sorted(votes[SLUG_COL].unique().to_list())
    vote_ids = sorted(votes[VOTE_ID_COL].unique().to_list())
    slug_to_idx = {s: i for i, s in enumerate(slugs)}
    vote_to_idx = {v: i for i, v in enumerate(vote_ids)}

    indexed = votes.with_columns(
        pl.col(SLUG_COL).replace_strict(slug_to_idx, return_dtype=pl.Int64).alias("leg_idx"),
        pl.col(VOTE_ID_COL)
        .replace_strict(vote_to_idx, return_dtype=pl.Int64)
        .alias("rollcall_idx"),
    )

    data = VoteData(
        leg_idx=indexed["leg_idx"].to_numpy().astype(np.int64),
        rollcall_idx=indexed["rollcall_idx"].to_numpy().astype(np.int64),
        y=indexed["yea"].cast(pl.Int64).to_numpy().astype(np.int64),
        legislators=tuple(slugs),
        rollcalls=tuple(vote_ids),
    )
    return data.validate()


def prepare_vote_data(
    votes: pl.DataFrame,
    minority_threshold: float = MINORITY_THRESHOLD,
    min_votes: int = MIN_VOTES,
) -> tuple[VoteData, dict]:
    """Recode, filter and index a raw long vote table.

    Returns (VoteData, manifest) where the manifest records every filter for
    reproducibility.
    """
    duplicated = votes.height - votes.unique(subset=[SLUG_COL, VOTE_ID_COL]).height
    if duplicated:
        print(f"  Warning: {duplicated} duplicate (legislator, roll call) rows")

    recoded = recode_votes(votes)
    manifest: dict = {
        "rows_in": votes.height,
        "rows_missing": votes.height - recoded.height,
    }

    # Dropping a legislator can leave a roll call unanimous, so alternate
    # both filters until neither removes a row.
    filtered = recoded
    passes = 0
    while True:
        passes += 1
        height_before = filtered.height
        filtered, rc_manifest = drop_unanimous_rollcalls(filtered, minority_threshold)
        filtered, leg_manifest = drop_inactive_legislators(filtered, min_votes)
        if passes == 1:
            manifest.update(rc_manifest)
            manifest.update(leg_manifest)
        else:
            manifest["rollcalls_dropped_unanimous"] += rc_manifest["rollcalls_dropped_unanimous"]
            manifest["rollcalls_after"] = rc_manifest["rollcalls_after"]
            manifest["legislators_dropped_low_participation"] += leg_manifest[
                "legislators_dropped_low_participation"
            ]
            manifest["legislators_after"] = leg_manifest["legislators_after"]
        if filtered.height == height_before:
            break
    manifest["filter_passes"] = passes

    if filtered.height == 0:
        raise ValidationError("votes", "no contested votes remain after filtering")

    data = index_votes(filtered)
    manifest["n_obs"] = data.n_obs
    manifest["n_legislators"] = data.n_legislators
    manifest["n_rollcalls"] = data.n_rollcalls

    print(f"  {data.n_legislators} legislators x {data.n_rollcalls} roll calls")
    print(
        f"  Observed cells: {data.n_obs:,} / {data.n_legislators * data.n_rollcalls:,} "
        f"({100 * data.n_obs / (data.n_legislators * data.n_rollcalls):.1f}%)"
    )
    print(f"  Yea rate: {data.y.mean():.3f}")
    return data, manifest


# ── Party-line detection ─────────────────────────────────────────────────────


def classify_party_line(
    votes: pl.DataFrame,
    legislators: pl.DataFrame,
    threshold: float = PARTY_LINE_THRESHOLD,
    right_party: str = RIGHT_PARTY,
    left_party: str = LEFT_PARTY,
) -> pl.DataFrame:
    """Classify each roll call as party-line, bipartisan, or mixed.

    Definition (each party's Yea rate against ``threshold``):
      - bipartisan: both parties above threshold in the same direction
      - party-line: parties above threshold in opposite directions
      - mixed: everything else

    ``direction`` is +1 when the right party carried the Yea side of a
    party-line vote, -1 when the left party did, and 0 otherwise. It seeds
    the sign of the discrimination parameter.

    Expects recoded votes. Returns DataFrame(vote_id, vote_alignment, direction).
    """
    with_party = votes.join(
        legislators.select(pl.col("slug").alias(SLUG_COL), "party"),
        on=SLUG_COL,
        how="inner",
    )
    yea_rates = (
        with_party.filter(pl.col("party").is_in([right_party, left_party]))
        .group_by(VOTE_ID_COL, "party")
        .agg(pl.col("yea").cast(pl.Float64).mean().alias("yea_rate"))
    )
    right = yea_rates.filter(pl.col("party") == right_party).select(
        VOTE_ID_COL, pl.col("yea_rate").alias("right_yea")
    )
    left = yea_rates.filter(pl.col("party") == left_party).select(
        VOTE_ID_COL, pl.col("yea_rate").alias("left_yea")
    )
    rollcalls = votes.select(VOTE_ID_COL).unique()
    combined = rollcalls.join(right, on=VOTE_ID_COL, how="left").join(
        left, on=VOTE_ID_COL, how="left"
    )

    low = 1 - threshold
    right_yea = pl.col("right_yea") > threshold
    right_nay = pl.col("right_yea") < low
    left_yea = pl.col("left_yea") > threshold
    left_nay = pl.col("left_yea") < low

    classified = combined.with_columns(
        pl.when((right_yea & left_yea) | (right_nay & left_nay))
        .then(pl.lit("bipartisan"))
        .when((right_yea & left_nay) | (right_nay & left_yea))
        .then(pl.lit("party-line"))
        .otherwise(pl.lit("mixed"))
        .alias("vote_alignment"),
        pl.when(right_yea & left_nay)
        .then(1)
        .when(right_nay & left_yea)
        .then(-1)
        .otherwise(0)
        .cast(pl.Int64)
        .alias("direction"),
    )

    counts = classified.group_by("vote_alignment").agg(pl.len()).sort("len", descending=True)
    print("\n  Vote alignment classification:")
    for row in counts.iter_rows(named=True):
        pct = 100 * row["len"] / classified.height
        print(f"    {row['vote_alignment']:14s}  {row['len']:>4}  ({pct:5.1f}%)")

    return classified.select(VOTE_ID_COL, "vote_alignment", "direction").sort(VOTE_ID_COL)


def party_line_directions(party_line: pl.DataFrame, data: VoteData) -> np.ndarray:
    """Align the party-line ``direction`` column to the roll-call index order."""
    lookup = dict(party_line.select(VOTE_ID_COL, "direction").iter_rows())
    return np.array([lookup.get(v, 0) for v in data.rollcalls], dtype=np.int64)
