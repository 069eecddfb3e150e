"""Runtime configuration read from environment variables.

Settings are built explicitly per request and handed to the client, so tests
and alternative entry points can inject their own values.
"""

from __future__ import annotations

import os
from typing import Optional

from pydantic import BaseModel, Field

DEFAULT_BASE_URL = "https://api.pipedrive.com/v1"
DEFAULT_EXTRACT_LIMIT = 5000
DEFAULT_SCORE_LIMIT = 500


class Settings(BaseModel):
    """Pipedrive connection and default limits."""

    api_token: str = Field(min_length=1)
    base_url: str = DEFAULT_BASE_URL
    extract_limit: int = Field(default=DEFAULT_EXTRACT_LIMIT, gt=0)
    score_limit: int = Field(default=DEFAULT_SCORE_LIMIT, gt=0)

    @classmethod
    def from_env(cls, environ: Optional[dict[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ

        api_token = env.get("PIPEDRIVE_API_TOKEN", "")
        if not api_token:
            raise ValueError("PIPEDRIVE_API_TOKEN environment variable is required")

        base_url = env.get("PIPEDRIVE_BASE_URL", "")
        if not base_url:
            domain = env.get("PIPEDRIVE_COMPANY_DOMAIN", "")
            base_url = f"https://{domain}.pipedrive.com/api/v1" if domain else DEFAULT_BASE_URL

        return cls(
            api_token=api_token,
            base_url=base_url.rstrip("/"),
            extract_limit=int(env.get("PIPEDRIVE_EXTRACT_LIMIT", str(DEFAULT_EXTRACT_LIMIT))),
            score_limit=int(env.get("PIPEDRIVE_SCORE_LIMIT", str(DEFAULT_SCORE_LIMIT))),
        )
