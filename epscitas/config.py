"""
This module holds the runtime configuration of the EPS Citas client.

Settings are read once from environment variables by `load_settings` and then
passed explicitly to the HTTP client, the session storage and the UI. Nothing
else in the package reads the environment directly.

Recognised variables:
- `EPS_CITAS_API_URL`: base URL of the REST backend.
- `EPS_CITAS_TIMEOUT`: request timeout in seconds.
- `EPS_CITAS_SESSION_DIR` / `EPS_CITAS_KEY_FILE`: directory of the encrypted per-browser
  session files and the key protecting them.
- `EPS_CITAS_DEMO_MODE`: enables sample insurer data when the backend is unreachable.
- `EPS_CITAS_REFRESH_SECONDS`: auto-refresh interval of appointment lists.
- `EPS_CITAS_LOG_LEVEL`: logging level name.
"""
# epscitas/config.py

import os
from dataclasses import dataclass, field

DEFAULT_API_URL = "http://localhost:8000/api"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_REFRESH_SECONDS = 30
DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}

_TRUTHY = ("1", "true", "yes", "y", "on")


@dataclass
class Settings:
    """Client configuration.

    Attributes:
        api_url (str): Base URL of the backend, without a trailing slash.
        timeout (float): Fixed ceiling for every request, in seconds.
        session_dir (str): Directory holding one encrypted session document per browser session.
        key_file (str): Path of the Fernet key protecting every session document.
        demo_mode (bool): Whether sample data may stand in for failed insurer loads.
        refresh_seconds (int): Auto-refresh interval for appointment lists.
        log_level (str): Name of the logging level.
        headers (dict): Headers sent with every request.
    """
    api_url: str = DEFAULT_API_URL
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    session_dir: str = ".sessions"
    key_file: str = "secret.key"
    demo_mode: bool = False
    refresh_seconds: int = DEFAULT_REFRESH_SECONDS
    log_level: str = "INFO"
    headers: dict = field(default_factory=lambda: dict(DEFAULT_HEADERS))

    def __post_init__(self):
        self.api_url = self.api_url.rstrip("/")


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUTHY


def load_settings() -> Settings:
    """Builds a `Settings` instance from the environment.

    Returns:
        Settings: The configuration, with defaults for any unset variable.
    """
    return Settings(
        api_url=os.getenv("EPS_CITAS_API_URL", DEFAULT_API_URL),
        timeout=float(os.getenv("EPS_CITAS_TIMEOUT", DEFAULT_TIMEOUT_SECONDS)),
        session_dir=os.getenv("EPS_CITAS_SESSION_DIR", ".sessions"),
        key_file=os.getenv("EPS_CITAS_KEY_FILE", "secret.key"),
        demo_mode=_env_flag("EPS_CITAS_DEMO_MODE"),
        refresh_seconds=int(os.getenv("EPS_CITAS_REFRESH_SECONDS", DEFAULT_REFRESH_SECONDS)),
        log_level=os.getenv("EPS_CITAS_LOG_LEVEL", "INFO").upper(),
    )
