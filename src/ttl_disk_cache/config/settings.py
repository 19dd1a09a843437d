"""Configuration settings for the disk cache."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

CACHE_DIRNAME = "__caches__"


def _optional_float(raw: Optional[str], default: Optional[float]) -> Optional[float]:
    if raw is None:
        return default
    raw = raw.strip()
    if not raw or raw.lower() == "none":
        return None
    return float(raw)


@dataclass
class CacheSettings:
    root: str = field(default_factory=lambda: os.getenv("DISK_CACHE_ROOT", "data"))
    default_max_age: float = field(
        default_factory=lambda: float(os.getenv("DISK_CACHE_MAX_AGE", 60 * 60))
    )
    # None waits forever for a writer to release the lock
    lock_timeout: Optional[float] = field(
        default_factory=lambda: _optional_float(os.getenv("DISK_CACHE_LOCK_TIMEOUT"), 60.0)
    )
    poll_interval: float = field(
        default_factory=lambda: float(os.getenv("DISK_CACHE_POLL_INTERVAL", 0.1))
    )

    @property
    def cache_dir(self) -> Path:
        return Path(self.root) / CACHE_DIRNAME


class Settings:
    cache = CacheSettings()


settings = Settings()
