"""
Environment variable loader for the MCP server.
Handles loading credentials and size/paging overrides from .env or environment.
"""
import os
import json
from pathlib import Path

from dotenv import load_dotenv

import config


def _find_env_file() -> Path | None:
    current = Path(__file__).parent
    for _ in range(3):  # Check up to 3 levels up
        env_path = current / ".env"
        if env_path.exists():
            return env_path
        current = current.parent
    return None


_env_file = _find_env_file()
if _env_file:
    load_dotenv(_env_file)


def get_google_credentials() -> dict:
    """
    Get Google Service Account credentials.

    Priority:
    1. GOOGLE_CREDENTIALS_FILE (path to JSON file)
    2. GOOGLE_CREDENTIALS_JSON (JSON string content)

    Returns:
        dict: Parsed credentials dictionary

    Raises:
        RuntimeError: If no credentials are configured
    """
    creds_file = os.environ.get("GOOGLE_CREDENTIALS_FILE")
    if creds_file:
        creds_path = Path(creds_file)
        if not creds_path.exists():
            raise RuntimeError(f"GOOGLE_CREDENTIALS_FILE not found: {creds_file}")
        with open(creds_path, "r") as f:
            return json.load(f)

    creds_json = os.environ.get("GOOGLE_CREDENTIALS_JSON")
    if creds_json:
        try:
            return json.loads(creds_json)
        except json.JSONDecodeError as e:
            raise RuntimeError(f"Invalid GOOGLE_CREDENTIALS_JSON: {e}")

    raise RuntimeError(
        "No Google credentials configured. "
        "Set GOOGLE_CREDENTIALS_FILE or GOOGLE_CREDENTIALS_JSON in .env"
    )


def get_int(name: str, default: int) -> int:
    """Read a positive integer override, falling back to default."""
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}")
    if value <= 0:
        raise RuntimeError(f"{name} must be positive, got {value}")
    return value


def get_port() -> int:
    """Get server port from environment."""
    return int(os.environ.get("PORT", "8080"))


def get_max_response_bytes() -> int:
    """Byte ceiling for inline analysis responses."""
    return get_int("SHEETS_MAX_RESPONSE_BYTES", config.MAX_RESPONSE_SIZE_BYTES)


def get_default_page_size() -> int:
    """Sheets per page when the caller does not choose."""
    return get_int("SHEETS_DEFAULT_PAGE_SIZE", config.DEFAULT_PAGE_SIZE)


def get_max_page_size() -> int:
    """Hard maximum for caller-chosen page sizes."""
    return get_int("SHEETS_MAX_PAGE_SIZE", config.MAX_PAGE_SIZE)


def get_log_level() -> str:
    """Logging level name for the server process."""
    return os.environ.get("LOG_LEVEL", "INFO").upper()
