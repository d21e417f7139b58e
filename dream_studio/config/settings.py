"""
Centralized settings

環境変数とデフォルト値の単一ソースを提供する。
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

PHOTOMAKER_MODEL_ID = "tencentarc/photomaker"
PHOTOMAKER_VERSION_ID = "ddfc2b08d209f9fa8c1eca692712918bd449f695dabb4a958da31802a9570fe4"


def _find_project_root(start: Path) -> Path | None:
    for current in (start, *start.parents):
        if (current / "pyproject.toml").exists() or (current / ".git").exists():
            return current
    return None


_project_root = _find_project_root(Path.cwd())
_dotenv_path = (_project_root or Path.cwd()) / ".env"
load_dotenv(_dotenv_path, override=False)


class Settings(BaseModel):
    """アプリケーション設定"""

    replicate_api_token: str = Field(default="", alias="REPLICATE_API_TOKEN")
    replicate_base_url: str = Field(
        default="https://api.replicate.com/v1", alias="REPLICATE_BASE_URL"
    )
    replicate_model_version: str = Field(
        default=PHOTOMAKER_VERSION_ID, alias="REPLICATE_MODEL_VERSION"
    )
    api_timeout: float = Field(default=30.0, alias="API_TIMEOUT")
    log_level: str = Field(default="WARNING", alias="LOG_LEVEL")

    # Progress estimation / polling
    estimated_total_seconds: float = Field(
        default=30.0, gt=0, alias="PREDICTION_ESTIMATED_SECONDS"
    )
    tick_interval_seconds: float = Field(default=0.5, gt=0, alias="PREDICTION_TICK_SECONDS")
    poll_interval_seconds: float = Field(default=1.0, gt=0, alias="PREDICTION_POLL_SECONDS")
    deadline_seconds: float | None = Field(default=None, alias="PREDICTION_DEADLINE_SECONDS")

    model_config = {"populate_by_name": True}

    @field_validator("deadline_seconds", mode="before")
    @classmethod
    def _empty_deadline_is_none(cls, value: object) -> object:
        """空文字の環境変数はデッドラインなしとして扱う"""
        if isinstance(value, str) and not value.strip():
            return None
        return value


@lru_cache
def get_settings() -> Settings:
    """キャッシュされた設定を取得"""
    return Settings.model_validate(dict(os.environ))


def reload_settings() -> Settings:
    """環境変数の再読み込み"""
    get_settings.cache_clear()
    return get_settings()
