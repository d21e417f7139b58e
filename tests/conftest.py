"""
PyTest設定ファイル

テストに使用する共通フィクスチャやフェイク実装を定義します。
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable

import pytest

from dream_studio.config.settings import get_settings, reload_settings
from dream_studio.schemas.prediction import JobHandle, JobStatus, PhotoMakerInput, PredictionUpdate
from dream_studio.shared.exceptions import ImageLoadFailedError

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 24
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 24


class FakePredictionService:
    """スクリプト化されたステータス更新を返すフェイク予測サービス"""

    def __init__(
        self,
        updates: Iterable[PredictionUpdate] = (),
        terminal: JobStatus = JobStatus.SUCCEEDED,
        create_error: Exception | None = None,
        poll_error: Exception | None = None,
        cancel_error: Exception | None = None,
        hold_polling: bool = False,
        hold_submission: bool = False,
    ) -> None:
        self.updates = list(updates)
        self.terminal = terminal
        self.create_error = create_error
        self.poll_error = poll_error
        self.cancel_error = cancel_error
        self.requests: list[PhotoMakerInput] = []
        self.cancelled: list[str] = []
        self.submitted = asyncio.Event()
        self.polling = asyncio.Event()
        self.release_polling = asyncio.Event()
        self.release_submission = asyncio.Event()
        if not hold_polling:
            self.release_polling.set()
        if not hold_submission:
            self.release_submission.set()

    async def create_job(self, request: PhotoMakerInput) -> JobHandle:
        self.requests.append(request)
        if self.create_error is not None:
            raise self.create_error
        self.submitted.set()
        await self.release_submission.wait()
        return JobHandle(id=f"pred-{len(self.requests)}")

    async def poll_or_stream(self, handle, on_update) -> JobStatus:
        self.polling.set()
        await self.release_polling.wait()
        if self.poll_error is not None:
            raise self.poll_error
        for update in self.updates:
            await asyncio.sleep(0)
            on_update(update)
        return self.terminal

    async def cancel_job(self, handle: JobHandle) -> None:
        self.cancelled.append(handle.id)
        if self.cancel_error is not None:
            raise self.cancel_error


class FakeImageLoader:
    """参照ごとに固定のバイト列を返すフェイクローダー（未登録は失敗）"""

    def __init__(self, images: dict[str, bytes] | None = None) -> None:
        self.images = images or {}
        self.calls: list[str] = []

    async def load(self, reference: str) -> bytes:
        self.calls.append(reference)
        await asyncio.sleep(0)
        if reference not in self.images:
            raise ImageLoadFailedError("Image request returned 404", reference)
        return self.images[reference]


@pytest.fixture
def photo_request() -> PhotoMakerInput:
    return PhotoMakerInput(
        input_image="https://example.com/newton_0.jpg",
        prompt="a photo of a scientist img",
    )


@pytest.fixture
def clean_settings(monkeypatch):
    """環境変数を初期化した設定（テスト終了時にキャッシュをクリア）"""
    for name in (
        "REPLICATE_API_TOKEN",
        "REPLICATE_BASE_URL",
        "REPLICATE_MODEL_VERSION",
        "API_TIMEOUT",
        "LOG_LEVEL",
        "PREDICTION_ESTIMATED_SECONDS",
        "PREDICTION_TICK_SECONDS",
        "PREDICTION_POLL_SECONDS",
        "PREDICTION_DEADLINE_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)
    yield reload_settings()
    get_settings.cache_clear()


@pytest.fixture
def service_factory():
    """FakePredictionService を生成するファクトリ"""
    return FakePredictionService


@pytest.fixture
def loader_factory():
    """FakeImageLoader を生成するファクトリ"""
    return FakeImageLoader


@pytest.fixture
def succeeded_updates():
    """starting -> processing -> succeeded の更新列を生成"""

    def _build(*outputs: str) -> list[PredictionUpdate]:
        return [
            PredictionUpdate(status=JobStatus.STARTING),
            PredictionUpdate(status=JobStatus.PROCESSING),
            PredictionUpdate(status=JobStatus.SUCCEEDED, output=list(outputs)),
        ]

    return _build


@pytest.fixture
def png_bytes() -> bytes:
    return PNG_BYTES


@pytest.fixture
def jpeg_bytes() -> bytes:
    return JPEG_BYTES
