"""
Replicate Prediction Service

ReplicateAsyncClient を create / poll / cancel のジョブ契約に適合させるアダプター
"""

from __future__ import annotations

import asyncio

from loguru import logger

from dream_studio.clients.exceptions import APIError
from dream_studio.clients.replicate_client import ReplicateAsyncClient
from dream_studio.schemas.prediction import JobHandle, JobStatus, PhotoMakerInput
from dream_studio.services.protocols import UpdateCallback
from dream_studio.shared.exceptions import PollingFailedError, SubmissionFailedError


class ReplicatePredictionService:
    """Replicate 上の PhotoMaker 予測ジョブを扱うサービス"""

    def __init__(
        self,
        client: ReplicateAsyncClient,
        model_version: str,
        poll_interval: float = 1.0,
    ) -> None:
        """
        初期化

        Args:
            client: Replicate API クライアント
            model_version: モデルバージョンID
            poll_interval: ステータス取得間隔（秒）
        """
        self._client = client
        self._model_version = model_version
        self._poll_interval = poll_interval

    async def create_job(self, request: PhotoMakerInput) -> JobHandle:
        payload = request.to_payload()
        logger.debug(f"Prediction input: {payload}")
        try:
            prediction = await self._client.create_prediction(self._model_version, payload)
        except APIError as e:
            raise SubmissionFailedError(f"Failed to create prediction: {e}") from e
        logger.info(f"予測ジョブ作成: {prediction.id} ({prediction.status.value})")
        return prediction.to_handle()

    async def poll_or_stream(self, handle: JobHandle, on_update: UpdateCallback) -> JobStatus:
        """
        terminal ステータスになるまでポーリング

        取得ごとに on_update を受信順で呼び出す。

        Args:
            handle: ジョブハンドル
            on_update: 更新コールバック

        Returns:
            terminal ステータス

        Raises:
            PollingFailedError: ステータス取得の通信エラー
        """
        while True:
            try:
                prediction = await self._client.get_prediction(handle.id)
            except APIError as e:
                raise PollingFailedError(
                    f"Failed to poll prediction {handle.id}: {e}", job_id=handle.id
                ) from e

            if prediction.status is JobStatus.UNKNOWN:
                logger.debug(f"予測 {handle.id}: 未知のステータスを受信")
            on_update(prediction.to_update())

            if prediction.status.is_terminal:
                logger.info(f"予測ジョブ終了: {handle.id} ({prediction.status.value})")
                return prediction.status

            await asyncio.sleep(self._poll_interval)

    async def cancel_job(self, handle: JobHandle) -> None:
        try:
            await self._client.cancel_prediction(handle.id)
        except APIError as e:
            logger.warning(f"予測キャンセル要求に失敗: {handle.id}: {e}")
            return
        logger.info(f"予測キャンセル要求送信: {handle.id}")
