"""
Pydantic models for the public entry point.
Why: reject bad store names before they turn into paths on disk.
"""

from typing import Any, Callable

from pydantic import BaseModel, Field, field_validator

from ..config.settings import settings


class DiskCacheOptions(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    poll: Callable[..., Any]
    max_age: float = Field(default_factory=lambda: settings.cache.default_max_age, ge=0)
    silent: bool = False

    @field_validator("name")
    @classmethod
    def name_is_single_path_segment(cls, v: str) -> str:
        if v in (".", "..") or "/" in v or "\\" in v or "\x00" in v:
            raise ValueError("name must be a single directory name")
        return v
