from pathlib import Path

# ---------- Paths (relative to the working directory) ----------

DATA_DIR = Path("data")
PROMINENCE_CSV = DATA_DIR / "prominence_data.csv"
SCORES_CSV = DATA_DIR / "prominence_scores.csv"

RESULTS_DIR = Path("results")
MODELS_SUBDIR = "models"
PLOTS_SUBDIR = "plots"

FIXED_EFFECTS_FILE = "fixed_effects.csv"
POSTERIOR_SAMPLES_FILE = "posterior_samples.csv"
RANDOM_SLOPES_FILE = "random_slopes.csv"
MISSING_AUDIT_FILE = "missing_audit.csv"
MERGED_DATA_FILE = "merged_data.csv"

CSV_SEP = ","

# ---------- Columns ----------

ID_COLS = ["Speaker", "Sentence", "Word"]
UID_COL = "uid"
UID_SEP = "_"

RESPONSE_COL = "Prominence"

# Random-effects structure: by-speaker intercept + slope,
# intercept-only for sentence and word.
SLOPE_GROUP = "Speaker"
INTERCEPT_GROUPS = ["Sentence", "Word"]

# Acoustic measures from the prominence dataset
PROMINENCE_VARIABLES = [
    "max_ewf0",    # energy-weighted f0, maximum
    "mean_ewf0",   # energy-weighted f0, mean
    "max_sync",
    "mean_sync",
    "max_scale",
    "mean_scale",
]

# Legacy measures from the reference score dataset
LEGACY_VARIABLES = [
    "mean_f0",
    "rms_norm",
]

ACOUSTIC_VARIABLES = PROMINENCE_VARIABLES + LEGACY_VARIABLES

Z_PREFIX = "z_"

# Share of rows with a missing acoustic value we accept without remediation
MISSING_RATE_THRESHOLD = 0.03

# ---------- Sampler ----------

SAMPLER_SETTINGS = dict(
    iter=4000,           # total iterations per chain, warmup included
    warmup=2000,         # discarded tuning iterations
    chains=4,
    target_accept=0.99,
    max_treedepth=15,
    random_seed=123,
    nuts_sampler="pymc",  # or "nutpie"
    prior_sd=1.0,         # Normal(0, prior_sd) on the fixed-effect slope
)

RHAT_WARN = 1.01
HDI_PROB = 0.95
PPC_NUM_SAMPLES = 100
