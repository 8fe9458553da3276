"""
Runtime configuration.

Values come from environment variables (a local `.env` file is loaded
first). Components take plain constructor arguments; only entry points
build a Settings instance.
"""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

DEFAULT_MODEL = "gemini-2.0-flash"
DEFAULT_PROFILE_MAX_AGE_HOURS = 24.0
DEFAULT_KB_MAX_WORKERS = 5
DEFAULT_HISTORY_WINDOW = 5


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


class Settings(BaseModel):
    google_api_key: Optional[str] = Field(None, description="Gemini API key")
    model: str = DEFAULT_MODEL
    github_token: Optional[str] = None
    storage_path: str = "openbook_storage"
    profile_max_age_hours: float = Field(DEFAULT_PROFILE_MAX_AGE_HOURS, gt=0)
    kb_max_workers: int = Field(DEFAULT_KB_MAX_WORKERS, ge=1)
    history_window: int = Field(DEFAULT_HISTORY_WINDOW, ge=0)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            google_api_key=os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY"),
            model=os.getenv("OPENBOOK_MODEL") or DEFAULT_MODEL,
            github_token=os.getenv("GITHUB_TOKEN") or None,
            storage_path=os.getenv("OPENBOOK_STORAGE_PATH") or "openbook_storage",
            profile_max_age_hours=_env_number(
                "OPENBOOK_PROFILE_MAX_AGE_HOURS", DEFAULT_PROFILE_MAX_AGE_HOURS, float
            ),
            kb_max_workers=_env_number("OPENBOOK_KB_MAX_WORKERS", DEFAULT_KB_MAX_WORKERS, int),
            history_window=_env_number("OPENBOOK_HISTORY_WINDOW", DEFAULT_HISTORY_WINDOW, int),
        )
