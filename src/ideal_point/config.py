"""Configuration constants for ideal point estimation."""

# Sampling (passed through to PyMC's NUTS)
DEFAULT_N_SAMPLES = 2000
DEFAULT_N_TUNE = 1000
DEFAULT_N_CHAINS = 2
TARGET_ACCEPT = 0.9
RANDOM_SEED = 42

# Model variants
UNIDENTIFIED = "unidentified"
FIXED_REFERENCE = "fixed_reference"
CUSTOM_PRIOR = "custom_prior"
VARIANTS = (UNIDENTIFIED, FIXED_REFERENCE, CUSTOM_PRIOR)

# Vote recoding: VoteView cast codes
YEA_CODES = (1, 2, 3)  # Yea, paired Yea, announced Yea
NAY_CODES = (4, 5, 6)  # announced Nay, paired Nay, Nay
MISSING_CODES = (0, 7, 8, 9)  # not a member, present (x2), not voting

# Vote recoding: string categories (as written by state-legislature scrapers)
YEA_LABELS = ("Yea", "Yes", "Aye")
NAY_LABELS = ("Nay", "No")

# Filtering
MINORITY_THRESHOLD = 0.0  # 0.0 drops strictly unanimous roll calls only
CLI_MINORITY_THRESHOLD = 0.025  # VoteView standard for the command-line pipeline
MIN_VOTES = 1
CLI_MIN_VOTES = 20

# Party-line detection
PARTY_LINE_THRESHOLD = 0.9  # each party >90% in opposite directions
RIGHT_PARTY = "Republican"  # positive end of the latent scale
LEFT_PARTY = "Democrat"

# Anchors
ANCHOR_VALUES = (1.0, -1.0)  # (right anchor, left anchor)
MIN_PARTICIPATION_FOR_ANCHOR = 0.50

# Summaries
HDI_PROB = 0.95

# Convergence thresholds
RHAT_THRESHOLD = 1.01
ESS_THRESHOLD = 400
MAX_DIVERGENCES = 10
BFMI_THRESHOLD = 0.3
PPC_REPLICATIONS = 500
