import os
from functools import lru_cache
from pathlib import Path
from typing import Optional


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        auth_secret: str,
        token_max_age_secs: int,
        llm_api_url: str,
        llm_api_key: Optional[str],
        llm_timeout_secs: float,
        client_url: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.auth_secret = auth_secret
        self.token_max_age_secs = token_max_age_secs
        self.llm_api_url = llm_api_url
        self.llm_api_key = llm_api_key
        self.llm_timeout_secs = llm_timeout_secs
        self.client_url = client_url


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINTRACK_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "fintrack.db"
    database_url = os.getenv("FINTRACK_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("FINTRACK_TIMEZONE", "Asia/Kolkata")
    auth_secret = os.getenv(
        "FINTRACK_AUTH_SECRET",
        "4f1c0b7de2a94c3385e1d2b65ac0f7e91b8d64a3c2e5f7091a3b5c7d9e1f2a4b",
    )
    token_max_age_secs = int(os.getenv("FINTRACK_TOKEN_MAX_AGE_SECS", "3600"))
    llm_api_url = os.getenv(
        "FINTRACK_LLM_API_URL",
        "https://generativelanguage.googleapis.com/v1beta/models/"
        "gemini-2.0-flash:generateContent",
    )
    llm_api_key = os.getenv("FINTRACK_LLM_API_KEY") or None
    llm_timeout_secs = float(os.getenv("FINTRACK_LLM_TIMEOUT_SECS", "20"))
    client_url = os.getenv("FINTRACK_CLIENT_URL", "http://localhost:3000")
    return Settings(
        database_url=database_url,
        timezone=timezone,
        auth_secret=auth_secret,
        token_max_age_secs=token_max_age_secs,
        llm_api_url=llm_api_url,
        llm_api_key=llm_api_key,
        llm_timeout_secs=llm_timeout_secs,
        client_url=client_url,
    )
