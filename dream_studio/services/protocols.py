"""
Collaborator protocols for the prediction controller.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from dream_studio.schemas.prediction import JobHandle, JobStatus, PhotoMakerInput, PredictionUpdate

UpdateCallback = Callable[[PredictionUpdate], None]


class PredictionService(Protocol):
    """リモート予測サービス"""

    async def create_job(self, request: PhotoMakerInput) -> JobHandle:
        """ジョブを投入する (SubmissionFailedError)"""
        ...

    async def poll_or_stream(self, handle: JobHandle, on_update: UpdateCallback) -> JobStatus:
        """terminal ステータスまで更新を受信し、受信順に on_update を呼ぶ (PollingFailedError)"""
        ...

    async def cancel_job(self, handle: JobHandle) -> None:
        """ベストエフォートのキャンセル。例外は送出しない"""
        ...


class ImageLoader(Protocol):
    """出力画像ローダー"""

    async def load(self, reference: str) -> bytes:
        """画像バイト列を取得する (ImageLoadFailedError)"""
        ...
