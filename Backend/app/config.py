# app/config.py
from __future__ import annotations

import tempfile
from pathlib import Path

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

# Backend/app/config.py -> parents[1] = Backend, parents[2] = repo root
ENV_FILE = Path(__file__).resolve().parents[1] / ".env"
REPO_ROOT = Path(__file__).resolve().parents[2]
load_dotenv(ENV_FILE, override=False)


class Settings(BaseSettings):
    # ---- App ----
    APP_VERSION: str = "1.4.0"
    LOG_LEVEL: str = "INFO"

    # ---- Upstream newsletter ----
    UPSTREAM_BASE_URL: str = "https://tldr.tech"
    USER_AGENT: str = "TLDR-Proxy/1.4"
    ICON_USER_AGENT: str = "Mozilla/5.0 (CardImageFetcher/1.0)"

    # ---- Timeouts (seconds) ----
    FETCH_CONNECT_TIMEOUT_S: float = 5.0
    FETCH_TIMEOUT_S: float = 12.0
    HEAD_CONNECT_TIMEOUT_S: float = 4.0
    HEAD_TIMEOUT_S: float = 6.0
    HEAD_MAX_REDIRECTS: int = 5
    ARTICLE_TIMEOUT_S: float = 5.0

    # ---- Small object cache ----
    CACHE_DIR: str = str(Path(tempfile.gettempdir()) / "tldr_cache")
    # Bump to invalidate entries written by older classifier/resolver logic.
    CACHE_VERSION: str = "cachebust4"
    SPONSOR_SNIFF_TTL_S: int = 600
    CARD_IMAGE_TTL_S: int = 43200

    # ---- Images ----
    FAVICON_SERVICE_URL: str = "https://www.google.com/s2/favicons?domain={host}&sz=256"
    IMAGE_CONCURRENCY: int = 6
    IMAGE_ITEM_TIMEOUT_S: float = 8.0
    NEWS_REQUEST_BUDGET_S: float = 20.0

    # ---- Extraction / classification ----
    MAX_EXTRACTED_ITEMS: int = 60
    SPONSOR_RULES_PATH: str = str(REPO_ROOT / "configs" / "sponsor_rules.yml")

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
