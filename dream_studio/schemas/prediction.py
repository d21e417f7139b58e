"""
Prediction Schemas

PhotoMaker 予測ジョブの入力・ステータス・進捗イベント・結果のスキーマ定義
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_NEGATIVE_PROMPT = (
    "nsfw, lowres, bad anatomy, bad hands, text, error, missing fingers, "
    "extra digit, fewer digits, cropped, worst quality, low quality, "
    "normal quality, jpeg artifacts, signature, watermark, username, blurry"
)


class JobStatus(str, Enum):
    """サーバーが報告する予測ステータス"""

    STARTING = "starting"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"
    UNKNOWN = "unknown"

    @classmethod
    def _missing_(cls, value: object) -> JobStatus:
        # 未知のステータスはエラーではなく UNKNOWN として扱う
        return cls.UNKNOWN

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES


_TERMINAL_STATUSES = frozenset({JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.CANCELED})


def _coerce_status(value: Any) -> Any:
    if isinstance(value, str) and not isinstance(value, JobStatus):
        return JobStatus(value.lower())
    return value


class ControllerState(str, Enum):
    """コントローラーの状態遷移 (idle -> active -> terminal)"""

    IDLE = "idle"
    ACTIVE = "active"
    TERMINAL = "terminal"


class PhotoMakerInput(BaseModel):
    """PhotoMaker 入力パラメータ（投入後は不変）"""

    model_config = ConfigDict(frozen=True)

    input_image: str = Field(description="入力画像URL")
    prompt: str = Field(min_length=1, description="プロンプト")
    num_steps: int = Field(default=50, ge=1, le=100)

    style_name: str | None = Field(default="Photographic (Default)")
    negative_prompt: str | None = Field(default=DEFAULT_NEGATIVE_PROMPT)
    num_outputs: int | None = Field(default=1, ge=1, le=4)
    style_strength_ratio: float | None = Field(default=20, ge=15, le=50)
    guidance_scale: float | None = Field(default=5, ge=1, le=10)
    seed: int | None = None

    input_image2: str | None = None
    input_image3: str | None = None
    input_image4: str | None = None

    disable_safety_checker: bool | None = False

    def to_payload(self) -> dict[str, Any]:
        """API送信用 dict（未設定の任意項目は含めない）"""
        return self.model_dump(exclude_none=True)


class JobHandle(BaseModel):
    """投入済みジョブの識別子"""

    model_config = ConfigDict(frozen=True)

    id: str
    status: JobStatus = JobStatus.STARTING
    urls: dict[str, str] | None = None


class Prediction(BaseModel):
    """Replicate prediction リソース"""

    id: str
    status: JobStatus
    version: str | None = None
    output: list[str] | None = None
    error: str | None = None
    logs: str | None = None
    urls: dict[str, str] | None = None
    created_at: str | None = None
    started_at: str | None = None
    completed_at: str | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, value: Any) -> Any:
        return _coerce_status(value)

    @field_validator("output", mode="before")
    @classmethod
    def _normalize_output(cls, value: Any) -> Any:
        # 単一URLを返すモデルもあるためリストに揃える
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("error", mode="before")
    @classmethod
    def _stringify_error(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    def to_handle(self) -> JobHandle:
        return JobHandle(id=self.id, status=self.status, urls=self.urls)

    def to_update(self) -> PredictionUpdate:
        return PredictionUpdate(status=self.status, output=self.output, error=self.error)


class PredictionUpdate(BaseModel):
    """サービスから受信したステータス更新1件"""

    status: JobStatus
    output: list[str] | None = None
    error: str | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, value: Any) -> Any:
        return _coerce_status(value)


class ProgressEvent(BaseModel):
    """購読者に配信する進捗イベント"""

    job_id: str | None = Field(default=None, description="予測ID（投入前はNone）")
    status: JobStatus | None = Field(default=None, description="最新のサーバーステータス")
    progress: float = Field(ge=0.0, le=1.0, description="進捗（0.0 - 1.0）")
    message: str | None = Field(default=None, description="ステータスメッセージ")


class GeneratedImage(BaseModel):
    """読み込み済みの出力画像"""

    reference: str
    data: bytes = Field(repr=False)
    content_type: str | None = None


class ImageLoadFailure(BaseModel):
    """許容された個別画像の読み込み失敗"""

    reference: str
    reason: str


class JobResult(BaseModel):
    """成功したジョブの結果"""

    job_id: str
    images: list[GeneratedImage] = Field(min_length=1)
    failures: list[ImageLoadFailure] = Field(default_factory=list)
