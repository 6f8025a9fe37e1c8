from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from leadsync.exceptions import ConfigurationError
from leadsync.schema import validate_identifier
from leadsync.store import TrustedPredicate, normalize_direction

# Load .env from project root if present; real environment wins.
ROOT = Path(__file__).resolve().parents[1]
load_dotenv(ROOT / ".env", override=False)


def _getenv_int(name: str, default: int) -> int:
    v = os.getenv(name, str(default)).strip()
    try:
        return int(v)
    except ValueError as err:
        raise ConfigurationError(
            f"Environment variable {name} must be an integer; got {v!r}"
        ) from err


def _getenv_float(name: str, default: float) -> float:
    v = os.getenv(name, str(default)).strip()
    try:
        return float(v)
    except ValueError as err:
        raise ConfigurationError(
            f"Environment variable {name} must be a number; got {v!r}"
        ) from err


def _getenv_str(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip()


def require_env(names: list[str]) -> dict[str, str]:
    """Return {name: value} or raise ConfigurationError naming every missing variable."""
    values = {name: _getenv_str(name) for name in names}
    missing = [name for name, value in values.items() if not value]
    if missing:
        raise ConfigurationError(
            "Missing required environment variable(s): " + ", ".join(missing)
        )
    return values


# -------------------------------
# Provider defaults (env-overridable)
# -------------------------------
DEFAULT_CONFIG_PATH = ROOT / "config.yaml"
HTTP_TIMEOUT_SEC: float = _getenv_float("HTTP_TIMEOUT_SEC", 30.0)
LOG_LEVEL: str = _getenv_str("LOG_LEVEL", "INFO")

NEVERBOUNCE_BASE_URL = "https://api.neverbounce.com/v4"
NEVERBOUNCE_MAX_ATTEMPTS_DEFAULT = 5
NEVERBOUNCE_POLL_INTERVAL_SEC_DEFAULT = 3.0
NEVERBOUNCE_POLL_TIMEOUT_SEC_DEFAULT = 300.0

MAUTIC_MAX_ATTEMPTS_DEFAULT = 4

STAGE_DEFAULTS: dict[str, Any] = {
    "batch_size": 100,
    "order_by": "last_import",
    "order_dir": "DESC",
    "where": None,
}


@dataclass(frozen=True)
class StageConfig:
    batch_size: int = 100
    order_by: str = "last_import"
    order_dir: str = "DESC"
    where: TrustedPredicate | None = None

    @classmethod
    def from_mapping(cls, name: str, raw: Any) -> StageConfig:
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Config section {name!r} must be a mapping.")
        merged = {**STAGE_DEFAULTS, **raw}

        batch_size = merged["batch_size"]
        if isinstance(batch_size, bool) or not isinstance(batch_size, int) or batch_size <= 0:
            raise ConfigurationError(
                f"{name}.batch_size must be a positive integer; got {batch_size!r}"
            )

        return cls(
            batch_size=batch_size,
            order_by=validate_identifier(str(merged["order_by"]), what="order field"),
            order_dir=normalize_direction(str(merged["order_dir"])),
            where=TrustedPredicate.from_config(merged["where"]),
        )


def _env_token(label: str) -> str:
    return re.sub(r"[^A-Za-z0-9]+", "_", label).strip("_").upper()


@dataclass(frozen=True)
class SourceConfig:
    label: str
    query: str
    columns: dict[str, str]
    url_env: str

    @property
    def url(self) -> str:
        """Connection URL, read from the environment at use time."""
        return _getenv_str(self.url_env)

    @classmethod
    def from_mapping(cls, idx: int, raw: Any) -> SourceConfig:
        if not isinstance(raw, dict):
            raise ConfigurationError(f"sources[{idx}] must be a mapping.")
        label = str(raw.get("label") or f"source{idx}").strip()
        query = str(raw.get("query") or "").strip()
        if not query:
            raise ConfigurationError(f"Source {label!r} has no 'query' configured.")
        columns = raw.get("columns") or {}
        if not isinstance(columns, dict):
            raise ConfigurationError(f"Source {label!r}: 'columns' must be a mapping name -> type.")
        url_env = str(raw.get("url_env") or f"DB_{_env_token(label)}_URL")
        return cls(
            label=label,
            query=query,
            columns={str(k): str(v) for k, v in columns.items()},
            url_env=url_env,
        )


@dataclass(frozen=True)
class AppConfig:
    state_db: Path
    log_file: Path
    lock_dir: Path
    sources: list[SourceConfig] = field(default_factory=list)
    verify: StageConfig = field(default_factory=StageConfig)
    export: StageConfig = field(default_factory=StageConfig)


@dataclass(frozen=True)
class NeverBounceSettings:
    api_key: str
    base_url: str = NEVERBOUNCE_BASE_URL
    max_attempts: int = NEVERBOUNCE_MAX_ATTEMPTS_DEFAULT
    poll_interval_s: float = NEVERBOUNCE_POLL_INTERVAL_SEC_DEFAULT
    poll_timeout_s: float = NEVERBOUNCE_POLL_TIMEOUT_SEC_DEFAULT
    timeout_s: float = HTTP_TIMEOUT_SEC


@dataclass(frozen=True)
class MauticSettings:
    base_url: str
    user: str
    password: str
    max_attempts: int = MAUTIC_MAX_ATTEMPTS_DEFAULT
    timeout_s: float = HTTP_TIMEOUT_SEC


def config_path() -> Path:
    raw = _getenv_str("LEADSYNC_CONFIG")
    return Path(raw) if raw else DEFAULT_CONFIG_PATH


def _resolve(base: Path, value: Any, default: str) -> Path:
    p = Path(str(value or default))
    return p if p.is_absolute() else (base / p)


def load_config(path: str | Path | None = None) -> AppConfig:
    """
    Load deployment configuration from YAML (default: $LEADSYNC_CONFIG or
    config.yaml in the project root). Relative paths resolve against the
    directory holding the config file.
    """
    cfg_path = Path(path) if path is not None else config_path()
    try:
        text = cfg_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Unable to read config file {cfg_path}: {exc}") from exc

    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {cfg_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {cfg_path} must contain a mapping.")

    base = cfg_path.resolve().parent
    raw_sources = data.get("sources") or []
    if not isinstance(raw_sources, list):
        raise ConfigurationError("'sources' must be a list.")

    return AppConfig(
        state_db=_resolve(base, data.get("state_db"), "data/state.db"),
        log_file=_resolve(base, data.get("log_file"), "data/leadsync.log"),
        lock_dir=_resolve(base, data.get("lock_dir"), "data"),
        sources=[SourceConfig.from_mapping(i, s) for i, s in enumerate(raw_sources)],
        verify=StageConfig.from_mapping("verify", data.get("verify")),
        export=StageConfig.from_mapping("export", data.get("export")),
    )


def load_neverbounce_settings() -> NeverBounceSettings:
    env = require_env(["NEVERBOUNCE_API_KEY"])
    return NeverBounceSettings(
        api_key=env["NEVERBOUNCE_API_KEY"],
        base_url=_getenv_str("NEVERBOUNCE_BASE_URL", NEVERBOUNCE_BASE_URL).rstrip("/"),
        max_attempts=_getenv_int("NEVERBOUNCE_MAX_ATTEMPTS", NEVERBOUNCE_MAX_ATTEMPTS_DEFAULT),
        poll_interval_s=_getenv_float(
            "NEVERBOUNCE_POLL_INTERVAL_SEC", NEVERBOUNCE_POLL_INTERVAL_SEC_DEFAULT
        ),
        poll_timeout_s=_getenv_float(
            "NEVERBOUNCE_POLL_TIMEOUT_SEC", NEVERBOUNCE_POLL_TIMEOUT_SEC_DEFAULT
        ),
        timeout_s=_getenv_float("HTTP_TIMEOUT_SEC", HTTP_TIMEOUT_SEC),
    )


def load_mautic_settings() -> MauticSettings:
    env = require_env(["MAUTIC_BASE_URL", "MAUTIC_USER", "MAUTIC_PASS"])
    return MauticSettings(
        base_url=env["MAUTIC_BASE_URL"].rstrip("/"),
        user=env["MAUTIC_USER"],
        password=env["MAUTIC_PASS"],
        max_attempts=_getenv_int("MAUTIC_MAX_ATTEMPTS", MAUTIC_MAX_ATTEMPTS_DEFAULT),
        timeout_s=_getenv_float("HTTP_TIMEOUT_SEC", HTTP_TIMEOUT_SEC),
    )


__all__ = [
    "ROOT",
    "AppConfig",
    "StageConfig",
    "SourceConfig",
    "NeverBounceSettings",
    "MauticSettings",
    "config_path",
    "load_config",
    "load_neverbounce_settings",
    "load_mautic_settings",
    "require_env",
    "HTTP_TIMEOUT_SEC",
    "LOG_LEVEL",
]
