"""Application configuration."""

import os
from dataclasses import dataclass
from pathlib import Path
from dotenv import load_dotenv

# Base paths
BASE_DIR = Path(__file__).resolve().parent.parent

# Load .env from backend root (before any os.getenv calls)
load_dotenv(BASE_DIR / ".env")
TEMPLATES_DIR = Path(__file__).resolve().parent / "reports" / "templates"


def _env_bool(name: str, default: str = "") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


# Ollama configuration (AI runsheet extraction fallback)
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "qwen3:32b")
LLM_TIMEOUT = int(os.getenv("LLM_TIMEOUT", "300"))
LLM_MAX_RETRIES = int(os.getenv("LLM_MAX_RETRIES", "3"))
LLM_CONTEXT_WINDOW = 32768
LLM_MAX_INPUT_CHARS = 100000  # Safety cap before truncation
AI_EXTRACTION_ENABLED = _env_bool("LEASECHECK_AI_EXTRACTION")

# Concurrency: tracts are independent, the API fans them out to worker threads
MAX_CONCURRENT_RUNS = int(os.getenv("MAX_CONCURRENT_RUNS", "4"))

# Debug trace mode: set LEASECHECK_TRACE=1 to get detailed engine logs
TRACE_ENABLED = _env_bool("LEASECHECK_TRACE")

# Lease heuristics. The 3-year primary term is the common statutory term in
# North Dakota; other jurisdictions must override it.
DEFAULT_PRIMARY_TERM_YEARS = int(os.getenv("LEASECHECK_DEFAULT_TERM_YEARS", "3"))

# A bare recorded year ("1950") sorts as this month/day of the year
BARE_YEAR_MONTH = int(os.getenv("LEASECHECK_BARE_YEAR_MONTH", "7"))
BARE_YEAR_DAY = int(os.getenv("LEASECHECK_BARE_YEAR_DAY", "1"))

# Ledger / report arithmetic
SUM_TOLERANCE = float(os.getenv("LEASECHECK_SUM_TOLERANCE", "1e-6"))
PERCENT_DECIMALS = 8
NET_ACRE_DECIMALS = int(os.getenv("LEASECHECK_NET_ACRE_DECIMALS", "8"))

# Unresolvable tract acreage. Off by default: the report says "unresolved".
ESTIMATE_UNRESOLVED_ACREAGE = _env_bool("LEASECHECK_ESTIMATE_ACREAGE")
ESTIMATED_ACRES = float(os.getenv("LEASECHECK_ESTIMATED_ACRES", "160"))

# Similarity matcher threshold (the default matcher is variant containment)
NAME_SIMILARITY_THRESHOLD = float(os.getenv("LEASECHECK_NAME_THRESHOLD", "0.85"))

# Default runsheet columns when an export carries no header line
DEFAULT_RUNSHEET_HEADERS = [
    "Book and Page", "Instrument Number", "Instrument Type", "Dated", "Recorded",
    "Grantor(s)", "Grantee(s)", "Description", "Comments",
]

# Leasehold status display labels (report / HTML)
STATUS_LABELS = {
    "Open": {"label": "Appears Open", "color": "#1A7A3A"},
    "CurrentlyLeased": {"label": "Last Lease of Record", "color": "#1F4E99"},
    "Expired": {"label": "Expired (Appears Open)", "color": "#C27A00"},
    "ExpiredPotentialHBP": {"label": "Expired (Potential HBP)", "color": "#BF4A00"},
    "Unknown": {"label": "Unknown - Manual Review Required", "color": "#BF1C2E"},
}


@dataclass(frozen=True)
class EngineConfig:
    """Per-run engine parameters.

    Defaults come from the environment-backed constants above; callers pass
    their own instance for jurisdiction- or dataset-specific runs.
    """
    default_term_years: int = DEFAULT_PRIMARY_TERM_YEARS
    bare_year_month: int = BARE_YEAR_MONTH
    bare_year_day: int = BARE_YEAR_DAY
    sum_tolerance: float = SUM_TOLERANCE
    percent_decimals: int = PERCENT_DECIMALS
    net_acre_decimals: int = NET_ACRE_DECIMALS
    estimate_unresolved_acreage: bool = ESTIMATE_UNRESOLVED_ACREAGE
    estimated_acres: float = ESTIMATED_ACRES
