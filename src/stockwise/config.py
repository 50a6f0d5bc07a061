from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os
import sys

from stockwise.domain.errors import ValidationError


@dataclass(frozen=True)
class AppPaths:
    base_dir: Path
    db_path: Path
    logs_dir: Path


@dataclass(frozen=True)
class AlertSettings:
    dedup_hours: int = 24
    expiry_alert_days: int = 30
    expiring_window_days: int = 30


def _windows_appdata() -> Path:
    return Path(os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming")))


def _mac_app_support() -> Path:
    return Path.home() / "Library" / "Application Support"


def _platform_base(app_name: str) -> Path:
    if sys.platform.startswith("win"):
        return _windows_appdata() / app_name
    if sys.platform == "darwin":
        return _mac_app_support() / app_name
    return Path.home() / f".{app_name.lower()}"


def get_app_paths(app_name: str = "StockWise") -> AppPaths:
    """Per-user data dir. STOCKWISE_HOME overrides the platform default."""
    override = os.environ.get("STOCKWISE_HOME", "").strip()
    base = Path(override).expanduser() if override else _platform_base(app_name)

    paths = AppPaths(base_dir=base, db_path=base / "stockwise.db", logs_dir=base / "logs")
    paths.logs_dir.mkdir(parents=True, exist_ok=True)
    return paths


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ValidationError(f"{name} must be an integer. Received: {raw!r}") from e
    if value < 0:
        raise ValidationError(f"{name} must be >= 0.")
    return value


def load_alert_settings() -> AlertSettings:
    return AlertSettings(
        dedup_hours=_env_int("STOCKWISE_DEDUP_HOURS", 24),
        expiry_alert_days=_env_int("STOCKWISE_EXPIRY_ALERT_DAYS", 30),
        expiring_window_days=_env_int("STOCKWISE_EXPIRING_WINDOW_DAYS", 30),
    )


def db_timeout_seconds() -> float:
    return float(_env_int("STOCKWISE_DB_TIMEOUT", 5))
