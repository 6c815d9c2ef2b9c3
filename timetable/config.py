# timetable/config.py
import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from timetable.errors import ConfigError

BACKENDS = ("local", "drive")
DEFAULT_SAVE_DELAY = 0.9
DEFAULT_HTTP_TIMEOUT = 10.0


@dataclass
class Settings:
    backend: str = "local"
    data_dir: str = field(default_factory=lambda: os.path.join(os.getcwd(), "data"))
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    api_key: Optional[str] = None
    refresh_token: Optional[str] = None
    token_path: Optional[str] = None
    redirect_uri: str = "http://127.0.0.1:5000/auth/callback"
    save_delay: float = DEFAULT_SAVE_DELAY
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    host: str = "127.0.0.1"
    port: int = 5000
    log_level: str = "INFO"

    @property
    def token_file(self):
        return self.token_path or os.path.join(self.data_dir, "drive_token.json")


def _float_env(env, name, default):
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")
    if value < 0:
        raise ConfigError(f"{name} must not be negative")
    return value


def load_settings(env=None, dotenv=True) -> Settings:
    """Read settings from the environment (and a .env file next to the cwd)."""
    if dotenv:
        load_dotenv()
    if env is None:
        env = os.environ

    backend = env.get("TIMETABLE_BACKEND", "local").strip().lower()
    if backend not in BACKENDS:
        raise ConfigError(f"TIMETABLE_BACKEND must be one of {', '.join(BACKENDS)}, got {backend!r}")

    port_raw = env.get("TIMETABLE_PORT", "5000")
    try:
        port = int(port_raw)
    except ValueError:
        raise ConfigError(f"TIMETABLE_PORT must be an integer, got {port_raw!r}")

    settings = Settings(
        backend=backend,
        data_dir=env.get("TIMETABLE_DATA_DIR") or os.path.join(os.getcwd(), "data"),
        client_id=env.get("GOOGLE_CLIENT_ID") or None,
        client_secret=env.get("GOOGLE_CLIENT_SECRET") or None,
        api_key=env.get("GOOGLE_API_KEY") or None,
        refresh_token=env.get("GOOGLE_REFRESH_TOKEN") or None,
        token_path=env.get("TIMETABLE_TOKEN_PATH") or None,
        redirect_uri=env.get("TIMETABLE_REDIRECT_URI") or Settings.redirect_uri,
        save_delay=_float_env(env, "TIMETABLE_SAVE_DELAY", DEFAULT_SAVE_DELAY),
        http_timeout=_float_env(env, "TIMETABLE_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT),
        host=env.get("TIMETABLE_HOST", "127.0.0.1"),
        port=port,
        log_level=env.get("LOG_LEVEL", "INFO").upper(),
    )
    if settings.backend == "drive" and not settings.client_id:
        raise ConfigError("GOOGLE_CLIENT_ID is required for the drive backend")
    return settings
