"""Runtime configuration for the finance tracker.

Values come from ``FINANCE_TRACKER_*`` environment variables; anything not
set falls back to the defaults below.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import List, Mapping, Optional

ENV_PREFIX = "FINANCE_TRACKER_"
DEV_ENVIRONMENTS = {"dev", "development"}


@dataclass
class AppConfig:
    env: str = "prod"
    data_dir: Path = Path("data")
    allowed_origins: List[str] = field(default_factory=list)
    cache_seconds: float = 30.0
    log_level: str = "INFO"

    @property
    def is_dev(self) -> bool:
        return self.env in DEV_ENVIRONMENTS

    @property
    def stale_after(self) -> timedelta:
        return timedelta(seconds=self.cache_seconds)

    @staticmethod
    def from_env(environ: Optional[Mapping[str, str]] = None) -> "AppConfig":
        env = os.environ if environ is None else environ

        def get(name: str, default: str = "") -> str:
            return (env.get(ENV_PREFIX + name) or default).strip()

        origins = [origin.strip() for origin in get("ALLOWED_ORIGINS").split(",") if origin.strip()]
        try:
            cache_seconds = float(get("CACHE_SECONDS", "30"))
        except ValueError as exc:
            raise ValueError(f"{ENV_PREFIX}CACHE_SECONDS must be a number") from exc
        if cache_seconds < 0:
            raise ValueError(f"{ENV_PREFIX}CACHE_SECONDS cannot be negative")

        return AppConfig(
            env=get("ENV", "prod").lower(),
            data_dir=Path(get("DATA_DIR", "data")),
            allowed_origins=origins,
            cache_seconds=cache_seconds,
            log_level=get("LOG_LEVEL", "INFO").upper(),
        )
