"""Command-line interface: estimate ideal points from a long roll-call vote CSV."""

import argparse
from pathlib import Path

import polars as pl

from ideal_point.binding import (
    bind_custom_priors,
    bind_fixed_reference,
    bind_unidentified,
    empirical_priors,
    with_initvals,
)
from ideal_point.config import (
    CLI_MIN_VOTES,
    CLI_MINORITY_THRESHOLD,
    CUSTOM_PRIOR,
    DEFAULT_N_CHAINS,
    DEFAULT_N_SAMPLES,
    DEFAULT_N_TUNE,
    FIXED_REFERENCE,
    RANDOM_SEED,
    TARGET_ACCEPT,
    VARIANTS,
)
from ideal_point.data import (
    classify_party_line,
    party_line_directions,
    prepare_vote_data,
    recode_votes,
)
from ideal_point.diagnostics import check_convergence, compute_loo, run_ppc
from ideal_point.identification import identification_report
from ideal_point.initial import compute_pc1, initial_values, select_anchors
from ideal_point.model import build_model, sample_model
from ideal_point.models import ValidationError
from ideal_point.output import save_estimates_csv, save_manifest
from ideal_point.run_context import RunContext, print_header
from ideal_point.summarize import (
    extract_ideal_points,
    extract_rollcall_parameters,
    to_estimates,
)


def parse_anchor(text: str) -> tuple[str, float]:
    """Parse a SLUG=VALUE anchor argument."""
    slug, sep, value = text.partition("=")
    if not sep or not slug:
        raise argparse.ArgumentTypeError(f"expected SLUG=VALUE, got {text!r}")
    try:
        return slug.strip(), float(value)
    except ValueError:
        msg = f"anchor value must be a number, got {value!r}"
        raise argparse.ArgumentTypeError(msg) from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ideal-point",
        description="Estimate legislator ideal points from roll-call votes (Bayesian 2PL IRT).",
    )
    parser.add_argument(
        "votes",
        type=Path,
        help="Long vote CSV with legislator_slug, vote_id, vote columns",
    )
    parser.add_argument(
        "--legislators",
        type=Path,
        default=None,
        help="Legislator CSV with slug, full_name, party (enables party-line signs)",
    )
    parser.add_argument(
        "--rollcalls",
        type=Path,
        default=None,
        help="Roll call CSV with vote_id and bill metadata, joined into the output",
    )
    parser.add_argument(
        "--variant",
        choices=VARIANTS,
        default=FIXED_REFERENCE,
        help=f"Identification strategy (default: {FIXED_REFERENCE})",
    )
    parser.add_argument(
        "--anchor",
        type=parse_anchor,
        action="append",
        default=[],
        metavar="SLUG=VALUE",
        help="Fix a legislator's ideal point (repeatable; fixed_reference only)",
    )
    parser.add_argument(
        "--auto-anchors",
        action="store_true",
        help="Pick anchors from PCA PC1 extremes (fixed_reference only)",
    )
    parser.add_argument(
        "--pca-init",
        action="store_true",
        help="Start the sampler at standardized PCA PC1 scores",
    )
    parser.add_argument("--n-samples", type=int, default=DEFAULT_N_SAMPLES)
    parser.add_argument("--n-tune", type=int, default=DEFAULT_N_TUNE)
    parser.add_argument("--n-chains", type=int, default=DEFAULT_N_CHAINS)
    parser.add_argument("--target-accept", type=float, default=TARGET_ACCEPT)
    parser.add_argument("--seed", type=int, default=RANDOM_SEED)
    parser.add_argument(
        "--minority-threshold",
        type=float,
        default=CLI_MINORITY_THRESHOLD,
        help=f"Drop roll calls whose minority share is below this "
        f"(default: {CLI_MINORITY_THRESHOLD})",
    )
    parser.add_argument(
        "--min-votes",
        type=int,
        default=CLI_MIN_VOTES,
        help=f"Drop legislators with fewer substantive votes (default: {CLI_MIN_VOTES})",
    )
    parser.add_argument(
        "--dataset",
        default=None,
        help="Name for the results directory (default: votes file name)",
    )
    parser.add_argument(
        "--results-root",
        type=Path,
        default=Path("results"),
        help="Root of the results tree (default: results/)",
    )
    parser.add_argument(
        "--skip-ppc",
        action="store_true",
        help="Skip posterior predictive checks and LOO",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.variant == FIXED_REFERENCE and not args.anchor and not args.auto_anchors:
        parser.error("fixed_reference needs --anchor SLUG=VALUE (twice) or --auto-anchors")
    if args.variant != FIXED_REFERENCE and (args.anchor or args.auto_anchors):
        parser.error(f"anchors only apply to the {FIXED_REFERENCE} variant")
    if args.anchor and args.auto_anchors:
        parser.error("use either --anchor or --auto-anchors, not both")
    if not args.votes.exists():
        parser.error(f"votes file not found: {args.votes}")

    dataset = args.dataset or args.votes.stem
    try:
        with RunContext(
            dataset=dataset,
            variant=args.variant,
            params=vars(args),
            results_root=args.results_root,
        ) as ctx:
            run(args, ctx)
    except ValidationError as exc:
        parser.exit(2, f"{parser.prog}: error: {exc}\n")


def run(args: argparse.Namespace, ctx: RunContext) -> None:
    print(f"Bayesian IRT ideal points: {args.votes}")
    print(f"Variant:   {args.variant}")
    print(f"Output:    {ctx.run_dir}")
    print(f"Samples:   {args.n_samples} draws, {args.n_tune} tune, {args.n_chains} chains")

    # ── Phase 1: Load data ──
    print_header("PHASE 1: LOADING DATA")
    votes = pl.read_csv(args.votes)
    legislators = pl.read_csv(args.legislators) if args.legislators else None
    rollcalls = pl.read_csv(args.rollcalls) if args.rollcalls else None
    print(f"  Votes: {votes.height:,} rows")
    if legislators is not None:
        print(f"  Legislators: {legislators.height}")
    if rollcalls is not None:
        print(f"  Rollcalls: {rollcalls.height}")

    # ── Phase 2: Prepare data ──
    print_header("PHASE 2: PREPARE VOTE DATA")
    data, manifest = prepare_vote_data(votes, args.minority_threshold, args.min_votes)

    directions = None
    if legislators is not None:
        party_line = classify_party_line(recode_votes(votes), legislators)
        directions = party_line_directions(party_line, data)

    pc1 = None
    if args.pca_init or args.auto_anchors:
        print("\n  PCA on the imputed vote matrix:")
        pc1 = compute_pc1(data, legislators)

    # ── Phase 3: Bind ──
    print_header("PHASE 3: MODEL BINDING")
    if args.variant == FIXED_REFERENCE:
        if args.auto_anchors:
            print("  Selecting anchors from PCA PC1 extremes:")
            anchors = select_anchors(pc1, data, legislators)
        else:
            anchors = dict(args.anchor)
        binding = bind_fixed_reference(data, anchors)
        report = identification_report(binding.anchors.fixed_values)
        print(f"  Anchors: {anchors}")
        print(f"  Identification: {report.describe()}")
    elif args.variant == CUSTOM_PRIOR:
        alpha_prior, lambda_prior, theta_prior = empirical_priors(data, directions)
        binding = bind_custom_priors(data, alpha_prior, lambda_prior, theta_prior)
    else:
        binding = bind_unidentified(data)
        print("  Identification: prior only (posterior may be multimodal)")
    for name, desc in binding.describe_priors().items():
        print(f"  {name:12s} ~ {desc}")

    if args.pca_init:
        binding = with_initvals(binding, initial_values(binding, pc1, directions))

    # ── Phase 4: Build and sample ──
    print_header("PHASE 4: MCMC SAMPLING")
    model = build_model(binding)
    idata, sampling_time = sample_model(
        model,
        binding,
        n_samples=args.n_samples,
        n_tune=args.n_tune,
        n_chains=args.n_chains,
        target_accept=args.target_accept,
        random_seed=args.seed,
    )

    # ── Phase 5: Convergence diagnostics ──
    diagnostics = check_convergence(idata, binding, args.variant)

    # ── Phase 6: Extract posteriors ──
    print_header("PHASE 6: EXTRACT POSTERIORS")
    ideal_points = extract_ideal_points(idata, binding, legislators)
    rollcall_params = extract_rollcall_parameters(idata, binding, rollcalls)

    print("\n  Top 5 (positive end):")
    for row in ideal_points.head(5).iter_rows(named=True):
        _print_ideal_point(row)
    print("  Bottom 5 (negative end):")
    for row in ideal_points.tail(5).iter_rows(named=True):
        _print_ideal_point(row)

    ideal_points.write_parquet(ctx.data_dir / "ideal_points.parquet")
    rollcall_params.write_parquet(ctx.data_dir / "rollcall_params.parquet")
    print("  Saved: ideal_points.parquet")
    print("  Saved: rollcall_params.parquet")
    save_estimates_csv(ctx.data_dir / "ideal_points.csv", to_estimates(ideal_points))

    nc_path = ctx.data_dir / "idata.nc"
    idata.to_netcdf(str(nc_path))
    print(f"  Saved: {nc_path.name}")

    # ── Phase 7: Posterior predictive checks + LOO ──
    ppc: dict = {}
    loo_summary: dict = {}
    if args.skip_ppc:
        print_header("PHASE 7: POSTERIOR PREDICTIVE CHECKS (SKIPPED)")
    else:
        print_header("PHASE 7: POSTERIOR PREDICTIVE CHECKS")
        ppc = run_ppc(idata, binding, random_seed=args.seed)
        _, loo_summary = compute_loo(idata)

    # ── Phase 8: Manifest ──
    print_header("PHASE 8: FILTERING MANIFEST")
    manifest.update(
        {
            "model": "2PL IRT",
            "variant": args.variant,
            "priors": binding.describe_priors(),
            "anchors": (
                dict(zip(binding.anchors.fixed_names, binding.anchors.fixed_values.tolist()))
                if binding.anchors is not None
                else None
            ),
            "pca_init": args.pca_init,
            "sampling": {
                "n_samples": args.n_samples,
                "n_tune": args.n_tune,
                "n_chains": args.n_chains,
                "target_accept": args.target_accept,
                "seed": args.seed,
                "sampling_time_s": round(sampling_time, 1),
            },
            "convergence": diagnostics,
            "ppc": ppc,
            "loo": loo_summary,
        }
    )
    save_manifest(manifest, ctx.run_dir)


def _print_ideal_point(row: dict) -> None:
    name = row["full_name"] or row["legislator_slug"]
    party = row["party"] or ""
    print(
        f"    {name:30s}  {party:12s}  "
        f"theta={row['theta_mean']:+.3f}  [{row['theta_hdi_low']:+.3f}, "
        f"{row['theta_hdi_high']:+.3f}]"
    )
