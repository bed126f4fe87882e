# src/pg_refresh/config.py

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from loguru import logger

from pg_refresh.core.dataset import DuplicatePolicy

ISOLATION_LEVELS = (
    "SERIALIZABLE",
    "REPEATABLE READ",
    "READ COMMITTED",
    "READ UNCOMMITTED",
)

# levels that let a concurrent writer slip a key in between DELETE and INSERT
WEAK_ISOLATION_LEVELS = ("READ COMMITTED", "READ UNCOMMITTED")


def project_root() -> Path:
    """
    src/pg_refresh/config.py -> parents:
    pg_refresh (0), src (1), repo root (2)
    """
    return Path(__file__).resolve().parents[2]


@dataclass(frozen=True)
class Paths:
    base_dir: Path
    data_dir: Path
    log_dir: Path


def build_paths() -> Paths:
    base = project_root()

    data_dir = Path(os.getenv("DATA_DIR", str(base / "data")))
    data_dir.mkdir(parents=True, exist_ok=True)

    log_dir = Path(os.getenv("LOG_DIR", str(base / "logs")))
    log_dir.mkdir(parents=True, exist_ok=True)

    return Paths(base_dir=base, data_dir=data_dir, log_dir=log_dir)


def configure_logging(paths: Paths) -> None:

    logger.remove()

    logger.add(
        sys.stdout,
        level=os.getenv("LOG_LEVEL", "INFO"),
        colorize=True,
        backtrace=False,
        diagnose=False,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
               "<level>{level}</level> | "
               "<level>{message}</level>",
    )

    logger.add(
        str(paths.log_dir / "app.log"),
        rotation="10 MB",
        retention="7 days",
        level="DEBUG",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function}:{line} | {message}",
    )


def normalize_isolation_level(level: Optional[str]) -> Optional[str]:
    if level is None or not level.strip():
        return None
    norm = " ".join(level.replace("_", " ").upper().split())
    if norm not in ISOLATION_LEVELS:
        raise ValueError(f"Unknown isolation level: {level!r} (expected one of {ISOLATION_LEVELS})")
    return norm


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return float(raw)


@dataclass(frozen=True)
class RefreshSettings:
    staging_prefix: str = "stg_"
    isolation_level: Optional[str] = "SERIALIZABLE"
    timeout_seconds: Optional[float] = None
    duplicate_policy: DuplicatePolicy = DuplicatePolicy.REJECT
    batch_size: int = 10_000
    analyze: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "isolation_level", normalize_isolation_level(self.isolation_level))
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be positive, got {self.timeout_seconds}")
        if self.batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {self.batch_size}")

    @property
    def weak_isolation(self) -> bool:
        return self.isolation_level in WEAK_ISOLATION_LEVELS

    @classmethod
    def from_env(cls) -> "RefreshSettings":
        return cls(
            staging_prefix=os.getenv("STAGING_PREFIX", "stg_"),
            isolation_level=os.getenv("REFRESH_ISOLATION_LEVEL", "SERIALIZABLE"),
            timeout_seconds=_env_float("REFRESH_TIMEOUT_SECONDS"),
            duplicate_policy=DuplicatePolicy(os.getenv("REFRESH_DUPLICATE_POLICY", "reject").lower()),
            batch_size=int(os.getenv("LOADER_BATCH_SIZE", "10000")),
            analyze=_env_bool("REFRESH_ANALYZE", True),
        )


def database_url_from_env() -> str:
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    user = os.getenv("DB_USER", "postgres")
    password = os.getenv("DB_PASSWORD", "postgres")
    host = os.getenv("DB_HOST", "localhost")
    port = os.getenv("DB_PORT", "5432")
    db = os.getenv("DB_NAME", "postgres")
    return f"postgresql+psycopg2://{user}:{password}@{host}:{port}/{db}"
