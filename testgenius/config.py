"""Application configuration and constants."""
import os
from pathlib import Path


def _parse_int_env(name: str, default: int) -> int:
    """Parse integer from environment variable."""
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _parse_float_env(name: str, default: float) -> float:
    """Parse float from environment variable."""
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


APP_NAME = "TestGenius"
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# Directories
DATA_DIR = Path(os.environ.get("TESTGENIUS_DATA_DIR", Path.cwd() / "data"))
DATA_DIR.mkdir(parents=True, exist_ok=True)

SNAPSHOTS_DIR = Path(os.environ.get("SNAPSHOTS_DIR", DATA_DIR / "in_progress"))
SNAPSHOTS_DIR.mkdir(parents=True, exist_ok=True)

# Database
DB_DIR = Path(os.environ.get("DB_DIR", DATA_DIR))
DB_DIR.mkdir(parents=True, exist_ok=True)
DATABASE_URL = os.environ.get(
    "DATABASE_URL", f"sqlite:///{DB_DIR / 'testgenius.db'}"
)

# Authentication
SECRET_KEY = os.environ.get(
    "SECRET_KEY",
    "CHANGE_ME_IN_PRODUCTION_USE_openssl_rand_hex_32"
)
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = _parse_int_env("ACCESS_TOKEN_EXPIRE_MINUTES", 60)
SESSION_EXTEND_MINUTES = _parse_int_env("SESSION_EXTEND_MINUTES", 60)

# Gemini
GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY") or os.environ.get("API_KEY")
GEMINI_MODEL = os.environ.get("GEMINI_MODEL", "gemini-2.5-flash")
GEMINI_BASE_URL = os.environ.get(
    "GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
)
GEMINI_TIMEOUT_SECONDS = _parse_float_env("GEMINI_TIMEOUT_SECONDS", 120.0)

# Cleanup
SNAPSHOT_RETENTION_DAYS = _parse_int_env("SNAPSHOT_RETENTION_DAYS", 7)
CLEANUP_INTERVAL_SECONDS = _parse_int_env("CLEANUP_INTERVAL_SECONDS", 24 * 60 * 60)

# Test generation
DEFAULT_NUM_QUESTIONS = 5
MAX_QUESTIONS = 50
NUM_QUESTIONS_AI_DECIDES = 0
OPTIONS_PER_QUESTION = 4
MIN_DIFFICULTY = 1
MAX_DIFFICULTY = 5
MIN_NEGATIVE_MARKS = 0.01
GENERATION_TEMPERATURE = 0.3
EXPLANATION_TEMPERATURE = 0.2
CHAT_TEMPERATURE = 0.5

# Uploads
MAX_FILE_SIZE_MB = 10
MAX_FILE_SIZE_BYTES = MAX_FILE_SIZE_MB * 1024 * 1024
SUPPORTED_IMAGE_TYPES = {"image/jpeg", "image/png", "image/webp"}
SUPPORTED_TEXT_TYPES = {"text/plain"}
SUPPORTED_PDF_MIME_TYPE = "application/pdf"
SUPPORTED_DOCX_MIME_TYPE = (
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
)
IMAGE_MAX_DIMENSION = 2048  # pixels

# Leaderboard
LEADERBOARD_LIMIT = 23  # podium of 3 + table of 20
LEADERBOARD_TABLE_SIZE = 20
