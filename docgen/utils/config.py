"""Load and validate environment variables. Uses python-dotenv.

Callers should use the accessor functions below rather than reading `os.environ`
directly, to keep environment handling consistent.
"""

from pathlib import Path

from dotenv import load_dotenv
import os


def _project_root() -> Path:
    """Resolve project root (the directory holding app.py)."""
    return Path(__file__).resolve().parent.parent.parent


def load_config() -> None:
    """
    Load .env from project root. Idempotent; safe to call multiple times.
    Uses override=True to ensure .env values take precedence over existing env vars.
    """
    root = _project_root()
    env_path = root / ".env"
    load_dotenv(env_path, override=True)


def get_required(key: str) -> str:
    """
    Get required env var. Raises if missing or empty.

    Raises:
        ValueError: If key is missing or empty after trimming.
    """
    load_config()
    val = os.getenv(key, "").strip()
    if not val:
        raise ValueError(
            f"Missing required environment variable: {key}. "
            "Set it in .env or export it."
        )
    return val


def get_optional(key: str, default: str = "") -> str:
    """Get optional env var; return default if missing or empty."""
    load_config()
    val = os.getenv(key, "").strip()
    return val if val else default


def get_optional_int(key: str, default: int) -> int:
    """Get optional env var as int; return default if missing or invalid."""
    load_config()
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def get_optional_float(key: str, default: float) -> float:
    """Get optional env var as float; return default if missing or invalid."""
    load_config()
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


# --- Public config accessors ---

def remote_url() -> str:
    """Optional: base URL of the remote collection store. Default local PocketBase."""
    return get_optional("DOCGEN_REMOTE_URL", "http://127.0.0.1:8090").rstrip("/")


def remote_token() -> str | None:
    """Optional: bearer token for the remote store. None means anonymous requests."""
    val = get_optional("DOCGEN_REMOTE_TOKEN", "")
    return val or None


def remote_timeout() -> float:
    """Optional: per-request timeout in seconds. Default 30."""
    return get_optional_float("DOCGEN_REMOTE_TIMEOUT", 30.0)


def page_size() -> int:
    """Optional: page size used when listing a whole collection. Default 200."""
    size = get_optional_int("DOCGEN_PAGE_SIZE", 200)
    return size if size > 0 else 200


def read_state_path() -> Path:
    """Optional: file holding the notification read-set. Default data/notif_read.json."""
    raw = get_optional("DOCGEN_READ_STATE_PATH", "")
    if raw:
        return Path(raw)
    return project_root() / "data" / "notif_read.json"


def log_level() -> str:
    """Optional: logger level name. Default INFO."""
    return get_optional("DOCGEN_LOG_LEVEL", "INFO").upper()


def log_file() -> Path | None:
    """Optional: file receiving a copy of the log. Default none (stderr only)."""
    raw = get_optional("DOCGEN_LOG_FILE", "")
    return Path(raw) if raw else None


def search_min_chars() -> int:
    """Optional: minimum trimmed query length before search runs. Default 2."""
    return get_optional_int("DOCGEN_SEARCH_MIN_CHARS", 2)


def search_cap() -> int:
    """Optional: max results per search category. Default 3."""
    return get_optional_int("DOCGEN_SEARCH_CAP", 3)


def project_root() -> Path:
    """Project root directory."""
    return _project_root()
