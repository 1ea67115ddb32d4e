"""Client configuration loader.

Loads defaults from the TOML file shipped in ``drip/config`` and applies
environment overrides. Environment variables are read with this priority:
  1. Variables already set in the shell (highest)
  2. ~/.drip/drip.env
  3. .env in the current directory
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

# Default config directory relative to the drip package
_CONFIG_DIR = Path(__file__).parent / "config"

DRIP_HOME = Path.home() / ".drip"
ENV_FILE = DRIP_HOME / "drip.env"
_ENV_PREFIX = "DRIP_"

# Map env var to (section, key) in the TOML layout
_ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "DRIP_BASE_URL": ("client", "base_url"),
    "DRIP_LANG": ("client", "default_lang"),
    "DRIP_REVEAL_INTERVAL": ("stream", "reveal_interval"),
    "DRIP_REQUEST_TIMEOUT": ("stream", "request_timeout"),
    "DRIP_RECONNECT_DELAY": ("stream", "reconnect_delay"),
}


class Endpoints(BaseModel):
    """Streaming endpoint paths relative to the base URL."""

    chat: str = "/infer"
    translate: str = "/translate"
    metrics: str = "/system/metrics"


class ClientConfig(BaseModel):
    """Resolved client settings."""

    base_url: str = Field(default="http://localhost:5005", description="Backend base URL")
    default_lang: str = Field(
        default="auto", pattern=r"^(auto|[a-z]{2})$", description="Default language selector"
    )
    reveal_interval: float = Field(
        default=0.045, gt=0.0, description="Seconds between revealed words"
    )
    request_timeout: float = Field(
        default=30.0, gt=0.0, description="Deadline for interactive streams in seconds"
    )
    reconnect_delay: float = Field(
        default=5.0, ge=0.0, description="Fixed delay before the metrics feed reconnects"
    )
    endpoints: Endpoints = Field(default_factory=Endpoints)
    backend_timeout: float = Field(default=10.0, gt=0.0)
    download_timeout: float = Field(default=300.0, gt=0.0)
    measure_timeout: float = Field(default=60.0, gt=0.0)


def load_env() -> None:
    """Load DRIP_* variables from ~/.drip/drip.env and .env into os.environ.

    Existing environment variables are never overwritten, and files loaded
    earlier win over files loaded later.
    """
    for env_file in (ENV_FILE, Path.cwd() / ".env"):
        if env_file.is_file():
            _load_env_file(env_file)


def _load_env_file(path: Path) -> list[str]:
    """Apply the ``DRIP_*`` assignments in ``path``; return the keys set.

    Keys without the ``DRIP_`` prefix are ignored. An ``export`` prefix is
    accepted.
    """
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError as exc:
        logger.warning("Skipping env file %s: %s", path, exc)
        return []

    applied: list[str] = []
    for raw in lines:
        name, sep, value = raw.strip().removeprefix("export ").partition("=")
        name = name.strip()
        if not sep or not name.startswith(_ENV_PREFIX):
            continue
        if os.environ.get(name):
            continue
        os.environ[name] = value.strip().strip("'\"")
        applied.append(name)

    if applied:
        logger.debug("%s set %s", path, ", ".join(applied))
    return applied


def load_client_config(config_path: Path | None = None) -> ClientConfig:
    """Load client settings from TOML and apply environment overrides.

    Args:
        config_path: Path to a defaults TOML file. Defaults to
            drip/config/defaults.toml.

    Returns:
        The resolved ClientConfig.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If a value in the file or environment is invalid.
    """
    path = config_path or _CONFIG_DIR / "defaults.toml"
    if not path.exists():
        raise FileNotFoundError(f"Client config not found: {path}")

    with open(path, "rb") as f:
        raw = tomllib.load(f)

    for env_var, (section, key) in _ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value:
            raw.setdefault(section, {})[key] = value

    client = raw.get("client", {})
    stream = raw.get("stream", {})
    backend = raw.get("backend", {})

    try:
        return ClientConfig(
            base_url=client.get("base_url", "http://localhost:5005"),
            default_lang=client.get("default_lang", "auto"),
            reveal_interval=stream.get("reveal_interval", 0.045),
            request_timeout=stream.get("request_timeout", 30.0),
            reconnect_delay=stream.get("reconnect_delay", 5.0),
            endpoints=Endpoints(**raw.get("endpoints", {})),
            backend_timeout=backend.get("timeout", 10.0),
            download_timeout=backend.get("download_timeout", 300.0),
            measure_timeout=backend.get("measure_timeout", 60.0),
        )
    except ValidationError as exc:
        raise ValueError(f"Invalid client config in {path}: {exc}") from exc
