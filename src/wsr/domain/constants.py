"""Centralized constants for the wsr engine.

All magic numbers and configuration defaults live here so every layer
imports from a single source of truth.
"""

# ---------- FSRS ----------
# FSRS-6 default weights (w0-w20)
FSRS_DEFAULT_WEIGHTS: tuple[float, ...] = (
    0.2120,  # w0:  initial stability for Again
    1.2931,  # w1:  initial stability for Hard
    2.3065,  # w2:  initial stability for Good
    8.2956,  # w3:  initial stability for Easy
    6.4133,  # w4:  initial difficulty base
    0.8334,  # w5:  initial difficulty grade modifier
    3.0194,  # w6:  difficulty delta
    0.0010,  # w7:  difficulty mean reversion
    1.8722,  # w8:  stability increase base
    0.1666,  # w9:  stability saturation exponent
    0.7960,  # w10: retrievability influence on stability
    1.4835,  # w11: forget stability base
    0.0614,  # w12: forget difficulty influence
    0.2629,  # w13: forget stability influence
    1.6483,  # w14: forget retrievability influence
    0.6014,  # w15: hard penalty
    1.8729,  # w16: easy bonus
    0.5425,  # w17: same-day review base
    0.0912,  # w18: same-day review grade modifier
    0.0658,  # w19: same-day review stability influence
    0.1542,  # w20: forgetting curve decay
)

MIN_DIFFICULTY = 1.0
MAX_DIFFICULTY = 10.0
DEFAULT_DESIRED_RETENTION = 0.9
DEFAULT_MAXIMUM_INTERVAL = 36500  # days
DEFAULT_LEARNING_STEPS = ("1m", "10m")
DEFAULT_RELEARNING_STEPS = ("10m",)

# ---------- Review queue ----------
TIME_DECAY_KEY = "@TIME_DECAY"
REVIEW_TAG = "review"
DISMISS_TAG = "dismiss"

# ---------- Corpus scan ----------
SCAN_BATCH_SIZE = 50

# ---------- Extracts ----------
EXTRACT_PREFIX = "Extracted"
QA_PREFIX = "QA"
EXTRACT_FIRST_DUE_DAYS = 1
