"""
constants.py – Shared labels, storage keys, and thresholds.
"""

# ── CN code validation ────────────────────────────────────────
CN_CODE_PATTERN = r"[0-9]{8}"
CN_PREFIX_LENGTH = 2

CN_LABEL_VALID = "Valid CN Code"
CN_LABEL_INVALID = "Must be exactly 8 digits"
DEFAULT_PRODUCT_TYPE = "Unknown"

# ── Precursor materials (order shown in the material picker) ──
PRECURSOR_MATERIALS = ("Iron Ore", "Scrap", "Aluminum", "Coke")

# ── Local draft storage ───────────────────────────────────────
DRAFT_SLOT = "cbamCalculatorState"
DEFAULT_STATE_DIR = "~/.cbam"
STATE_FILE_NAME = "storage.json"

# ── Accounts ──────────────────────────────────────────────────
# Minimum password length enforced before any sign-up call.
PASSWORD_MIN_LENGTH = 6
EMAIL_PATTERN = r"[^@\s]+@[^@\s]+\.[^@\s]+"

# Seconds to wait for the identity provider to finish initialising.
DEFAULT_AUTH_INIT_TIMEOUT = 10.0

# ── Dashboard ─────────────────────────────────────────────────
LOW_IMPACT_THRESHOLD = 1.0     # tCO2e per tonne
STATUS_LOW_IMPACT = "Low Impact"
STATUS_HIGH_IMPACT = "High Impact"
DEFAULT_DISPLAY_NAME = "User"
DEFAULT_COMPANY_NAME = "Independent Exporter"

# ── Export ────────────────────────────────────────────────────
PDF_MIME_TYPE = "application/pdf"
XML_MIME_TYPE = "application/xml"
REPORT_TITLE = "CBAM Embedded Emissions Report"
