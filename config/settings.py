# config/settings.py
"""All application constants and thresholds."""

import os

# ─── App ───────────────────────────────────────────────
APP_TITLE = "📋 Survey Workbench"
APP_ICON = "📋"
APP_LAYOUT = "wide"
SUPPORTED_FILE_TYPES = ["csv", "xlsx", "xls", "json", "tsv", "parquet"]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# ─── Snapshot store ────────────────────────────────────
DEFAULT_PAGE_SIZE = 10
PREVIEW_ROWS = 5
STATE_FILE = os.getenv("WORKBENCH_STATE_FILE", ".workbench_state.json")
SCAN_CHUNK_SIZE = 2000

# ─── Variable inference ────────────────────────────────
INFERENCE_SAMPLE_SIZE = 1000
CATEGORICAL_MAX_LEVELS = 10
MIXED_NUMERIC_THRESHOLD = 0.9
DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}"

# ─── Preparation suggestions ───────────────────────────
HIGH_MISSING_THRESHOLD = 0.5
ID_UNIQUE_RATIO = 0.95
LOW_VARIANCE_UNIQUE_RATIO = 0.02
INCONSISTENCY_MAX_LEVELS = 20
INCONSISTENCY_MAX_VARIANTS = 5
COMPOSITE_MIN_ITEMS = 2
COMPOSITE_AUTO_SELECT_ITEMS = 3

# ─── Data quality report ───────────────────────────────
QUALITY_MISSING_HIGH = 0.2
QUALITY_MISSING_MEDIUM = 0.05
QUALITY_DUPLICATES_HIGH = 0.05
OUTLIER_IQR_MULTIPLIER = 1.5
DOMINANT_VALUE_RATIO = 0.95
HIGH_CARDINALITY_RATIO = 0.8
HIGH_CARDINALITY_MIN_LEVELS = 50
SEVERITY_WEIGHTS = {"high": 20, "medium": 10, "low": 5}

# ─── Statistics ────────────────────────────────────────
SIGNIFICANCE_LEVEL = 0.05
NORMALITY_SKEW_LIMIT = 2.0
NORMALITY_KURTOSIS_LIMIT = 2.0
VARIANCE_RATIO_LIMIT = 4.0
CI_CRITICAL_T = 2.0
CI_CRITICAL_Z = 1.96
RANDOM_STATE = 42
# "approximate" keeps the threshold tables, "exact" uses scipy distributions
P_VALUE_MODE = os.getenv("WORKBENCH_P_VALUE_MODE", "approximate")

# (threshold, p) pairs checked top-down; below the last threshold p is jittered
T_P_THRESHOLDS = [(3.0, 0.001), (2.5, 0.01), (2.0, 0.05), (1.5, 0.1)]
F_P_THRESHOLDS = [(5.0, 0.001), (3.5, 0.01), (2.5, 0.05), (1.5, 0.1)]
CHI2_P_THRESHOLDS = [(15.0, 0.001), (10.0, 0.01), (6.0, 0.05), (3.0, 0.1)]

# ─── Charts ────────────────────────────────────────────
CHART_HEIGHT = 400
