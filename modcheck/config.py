"""
ModCheck configuration.

Settings are read from environment variables (a local .env file is loaded
first). Every setting has a default so the engine works without any env.

Env vars:
    MODCHECK_MAX_CONCURRENT      (default: 3)
    MODCHECK_TIMEOUT_SECONDS     (default: 30)
    MODCHECK_MAX_EXCERPT_BYTES   (default: 65536)
    MODCHECK_MAX_FILE_SIZE       (default: 1048576)
    MODCHECK_MAX_FILE_LINES      (default: 200)
    MODCHECK_RULES_FILE          (optional YAML with extra rules)
    MODCHECK_ARCHITECTURE_FILE   (optional YAML with layer ordering)
    MODCHECK_BACKUP_DIR          (default: .modcheck/backups)
    MODCHECK_LOG_LEVEL           (default: INFO)
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional

import dotenv

dotenv.load_dotenv()

VERSION = "0.1.0"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got '{raw}'")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got '{raw}'")


@dataclass
class ModCheckSettings:
    """
    Runtime settings for the validation pipeline.

    Attributes:
        max_concurrent: Upper bound on module pipelines in flight during a batch
        timeout_seconds: Per-module time budget
        max_excerpt_bytes: Byte ceiling for each captured source excerpt
        max_file_size: Files above this size are skipped by the scanners
        max_file_lines: Line limit used by the FILE scope built-in check
        rules_file: Optional YAML file with additional rules
        architecture_file: Optional YAML file with the layer ordering
        backup_dir: Directory (relative to the module) for auto-fix backups
        log_level: Logging level name
    """
    max_concurrent: int = 3
    timeout_seconds: float = 30.0
    max_excerpt_bytes: int = 64 * 1024
    max_file_size: int = 1024 * 1024
    max_file_lines: int = 200
    rules_file: Optional[str] = None
    architecture_file: Optional[str] = None
    backup_dir: str = ".modcheck/backups"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "ModCheckSettings":
        """Build settings from MODCHECK_* environment variables."""
        return cls(
            max_concurrent=_env_int("MODCHECK_MAX_CONCURRENT", 3),
            timeout_seconds=_env_float("MODCHECK_TIMEOUT_SECONDS", 30.0),
            max_excerpt_bytes=_env_int("MODCHECK_MAX_EXCERPT_BYTES", 64 * 1024),
            max_file_size=_env_int("MODCHECK_MAX_FILE_SIZE", 1024 * 1024),
            max_file_lines=_env_int("MODCHECK_MAX_FILE_LINES", 200),
            rules_file=os.getenv("MODCHECK_RULES_FILE") or None,
            architecture_file=os.getenv("MODCHECK_ARCHITECTURE_FILE") or None,
            backup_dir=os.getenv("MODCHECK_BACKUP_DIR", ".modcheck/backups"),
            log_level=os.getenv("MODCHECK_LOG_LEVEL", "INFO").upper(),
        )


def configure_logging(level: Optional[str] = None) -> None:
    """Install a basic console handler for the modcheck loggers."""
    level_name = (level or os.getenv("MODCHECK_LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
