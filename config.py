# config.py — Path connector configuration
# Edit this file to change matching precision, HTTP behaviour, output format, etc.
# Every value here can be overridden from the connect_paths.py command line.

# ── Endpoint matching ────────────────────────────────────────────────
# Decimal digits kept when quantizing an endpoint into a lookup key.
# Two endpoints connect only when both components round to the same value
# at this precision (6 digits is ~0.1 m in lon/lat degrees).
KEY_PRECISION = 6

# ── Sequential mode ──────────────────────────────────────────────────
# Max Euclidean distance (coordinate units) between the end of the growing
# path and a candidate segment's endpoint for --mode sequential (~10 m).
SEQUENTIAL_TOLERANCE = 0.0001

# Merge strategy used when --mode is not given: "endpoint" or "sequential".
DEFAULT_MODE = "endpoint"
MODES = ("endpoint", "sequential")

# ── Remote input ─────────────────────────────────────────────────────
# Used when the input argument is an http(s) URL instead of a local file.
HTTP_TIMEOUT = 60
MAX_RETRIES = 3
RETRY_DELAY = 5

# ── Output ───────────────────────────────────────────────────────────
JSON_INDENT = 2

# ── Logging ──────────────────────────────────────────────────────────
LOG_FILE = "connect_paths.log"
