"""
Runtime settings, read from the environment.

Entry points (main.py, api.py) call dotenv.load_dotenv() before building
Settings, so a local .env file works the same as exported variables.
"""

from __future__ import annotations

import os
from typing import Mapping, Optional

from pydantic import BaseModel, Field

NOMINATIM_SEARCH_URL = "https://nominatim.openstreetmap.org/search"


class Settings(BaseModel):
    geocoder_url: str = NOMINATIM_SEARCH_URL
    geocoder_user_agent: str = "SchoolMapApp/1.0"
    geocoder_country: str = "gb"
    geocoder_min_interval: float = Field(default=1.0, ge=0.0)  # seconds between requests
    geocoder_timeout: float = Field(default=15.0, gt=0.0)
    geocoder_cache_size: int = Field(default=1000, ge=1)
    validation_batch_size: int = Field(default=10, ge=1)
    validation_batch_pause: float = Field(default=1.0, ge=0.0)
    filter_cache_ttl: float = Field(default=60.0, ge=0.0)
    search_cache_ttl: float = Field(default=300.0, ge=0.0)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from upper-cased environment variables.

        Unset variables keep their defaults; pydantic coerces the strings.
        """
        env = os.environ if environ is None else environ
        values = {
            name: env[name.upper()]
            for name in cls.model_fields
            if name.upper() in env
        }
        return cls(**values)
