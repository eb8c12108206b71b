"""Environment-driven settings.

Values come from process environment variables; a ``.env`` file in the working
directory is loaded first without overriding variables that are already set.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .errors import ConfigError
from .logging_conf import get_logger

__all__ = ["Settings", "load_settings"]

logger = get_logger("config")

STORAGE_BACKENDS = ("drive", "memory")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw, 10)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer") from e


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number") from e


@dataclass(frozen=True)
class Settings:
    # Token store; None keeps tokens in memory only.
    tokens_file: Path | None = Path("customer-tokens.json")
    token_ttl_days: int = 7

    storage_backend: str = "drive"
    drive_root_folder_id: str | None = None
    drive_root_folder_name: str = "Ani-Defteri-Siparisler"
    drive_access_token: str | None = None
    drive_timeout: float = 30.0
    drive_read_retries: int = 3

    admin_username: str = "admin"
    admin_password: str | None = None

    public_base_url: str | None = None
    order_timezone: str = "UTC"
    general_photos_field: str = "12_Genel_Photos"
    max_upload_bytes: int = 20 * 1024 * 1024
    max_upload_files: int = 80
    # Sum of all files in one submission.
    max_request_bytes: int = 200 * 1024 * 1024
    # Order submissions per client address per window; 0 disables the limit.
    order_rate_limit: int = 5
    order_rate_window_minutes: int = 15

    def validate(self) -> None:
        """Raise ConfigError listing every missing or inconsistent value."""
        errors: list[str] = []
        if self.storage_backend not in STORAGE_BACKENDS:
            errors.append(f"STORAGE_BACKEND must be one of: {', '.join(STORAGE_BACKENDS)}")
        if self.storage_backend == "drive" and not self.drive_access_token:
            errors.append("DRIVE_ACCESS_TOKEN is required for the drive backend")
        if not self.admin_username:
            errors.append("ADMIN_USERNAME is required")
        if not self.admin_password:
            errors.append("ADMIN_PASSWORD is required")
        if self.token_ttl_days < 1:
            errors.append("TOKEN_TTL_DAYS must be at least 1")
        if self.order_rate_limit < 0 or self.order_rate_window_minutes < 1:
            errors.append("ORDER_RATE_LIMIT must be >= 0 and ORDER_RATE_WINDOW_MINUTES >= 1")
        if errors:
            raise ConfigError("Configuration error:\n" + "\n".join(f"  - {e}" for e in errors))

        if self.storage_backend == "drive" and not self.drive_root_folder_id:
            logger.warning(
                "config.root_folder_lookup",
                extra={
                    "event": "config_root_folder_lookup",
                    "root_folder_name": self.drive_root_folder_name,
                },
            )


def load_settings(env_file: str | os.PathLike[str] | None = ".env") -> Settings:
    """Build Settings from the environment (after loading ``env_file`` if present)."""
    if env_file is not None and Path(env_file).is_file():
        load_dotenv(env_file, override=False)

    tokens_file = os.getenv("TOKENS_FILE", "customer-tokens.json").strip()
    return Settings(
        tokens_file=Path(tokens_file) if tokens_file else None,
        token_ttl_days=_env_int("TOKEN_TTL_DAYS", 7),
        storage_backend=os.getenv("STORAGE_BACKEND", "drive").strip().lower(),
        drive_root_folder_id=os.getenv("DRIVE_ROOT_FOLDER_ID") or None,
        drive_root_folder_name=os.getenv("DRIVE_ROOT_FOLDER_NAME", "Ani-Defteri-Siparisler"),
        drive_access_token=os.getenv("DRIVE_ACCESS_TOKEN") or None,
        drive_timeout=_env_float("DRIVE_TIMEOUT", 30.0),
        drive_read_retries=_env_int("DRIVE_READ_RETRIES", 3),
        admin_username=os.getenv("ADMIN_USERNAME", "admin"),
        admin_password=os.getenv("ADMIN_PASSWORD") or None,
        public_base_url=(os.getenv("PUBLIC_BASE_URL") or "").rstrip("/") or None,
        order_timezone=os.getenv("ORDER_TIMEZONE", "UTC"),
        general_photos_field=os.getenv("GENERAL_PHOTOS_FIELD", "12_Genel_Photos"),
        max_upload_bytes=_env_int("MAX_UPLOAD_BYTES", 20 * 1024 * 1024),
        max_upload_files=_env_int("MAX_UPLOAD_FILES", 80),
        max_request_bytes=_env_int("MAX_REQUEST_BYTES", 200 * 1024 * 1024),
        order_rate_limit=_env_int("ORDER_RATE_LIMIT", 5),
        order_rate_window_minutes=_env_int("ORDER_RATE_WINDOW_MINUTES", 15),
    )
