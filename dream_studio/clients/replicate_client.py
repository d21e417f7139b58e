"""
Replicate Async API Client

Replicate Predictions API への非同期 HTTP クライアント。
指数バックオフリトライとエラーマッピングを内蔵。
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
from loguru import logger

from dream_studio import __version__
from dream_studio.clients.exceptions import (
    APIAuthenticationError,
    APIConnectionError,
    APIError,
    APINotFoundError,
    APIServerError,
    APITimeoutError,
    APIValidationError,
)
from dream_studio.schemas.prediction import Prediction

DEFAULT_BASE_URL = "https://api.replicate.com/v1"


class ReplicateAsyncClient:
    """Replicate Predictions API 非同期クライアント

    Args:
        api_token: Replicate API トークン
        base_url: API ベースURL
        timeout: リクエストタイムアウト（秒）
        backoff_base: リトライ待機の基準秒数（attempt ごとに2倍）
    """

    MAX_RETRIES = 3
    RETRY_STATUSES = frozenset({429, 500, 502, 503, 504})
    # POST /predictions は作成済みの可能性がある 5xx ではリトライしない
    CREATE_RETRY_STATUSES = frozenset({429})

    def __init__(
        self,
        api_token: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        backoff_base: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_token = api_token
        self.base_url = base_url.rstrip("/")
        self._backoff_base = backoff_base
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {api_token}",
                "Content-Type": "application/json",
                "Accept": "application/json",
                "User-Agent": f"dream-studio/{__version__}",
            },
            timeout=timeout,
            transport=transport,
        )

    @property
    def has_api_token(self) -> bool:
        return bool(self._api_token)

    @property
    def masked_token(self) -> str | None:
        if not self._api_token:
            return None
        token = self._api_token
        if len(token) > 8:
            return f"{token[:4]}...{token[-4:]}"
        return "****"

    async def __aenter__(self) -> ReplicateAsyncClient:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """HTTP クライアントをクローズ"""
        await self._client.aclose()

    # ============================================
    # Predictions API
    # ============================================

    async def create_prediction(self, version: str, input: dict[str, Any]) -> Prediction:
        """予測ジョブを作成する。

        Args:
            version: モデルバージョンID
            input: モデル入力

        Returns:
            作成された prediction
        """
        body = await self._request(
            "POST",
            "/predictions",
            json={"version": version, "input": input},
            retry_statuses=self.CREATE_RETRY_STATUSES,
            retry_timeouts=False,
        )
        prediction = Prediction.model_validate(body)
        logger.debug(f"Replicate prediction created: {prediction.id} ({prediction.status.value})")
        return prediction

    async def get_prediction(self, prediction_id: str) -> Prediction:
        """予測ジョブの現在状態を取得する。"""
        body = await self._request("GET", f"/predictions/{prediction_id}")
        return Prediction.model_validate(body)

    async def cancel_prediction(self, prediction_id: str) -> Prediction:
        """予測ジョブをキャンセルする。"""
        body = await self._request(
            "POST",
            f"/predictions/{prediction_id}/cancel",
            retry_statuses=frozenset(),
            retry_timeouts=False,
        )
        return Prediction.model_validate(body)

    # ============================================
    # Transport
    # ============================================

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        retry_statuses: frozenset[int] = RETRY_STATUSES,
        retry_timeouts: bool = True,
    ) -> dict[str, Any]:
        """HTTP リクエストを実行（429/5xx/timeout は指数バックオフでリトライ）

        Raises:
            APIConnectionError: 接続失敗
            APITimeoutError: タイムアウト（リトライ上限超過）
            APIError: その他のAPIエラー
        """
        for attempt in range(self.MAX_RETRIES + 1):
            try:
                resp = await self._client.request(method, path, json=json)
            except httpx.TimeoutException as e:
                if not retry_timeouts or attempt >= self.MAX_RETRIES:
                    raise APITimeoutError(f"Request timeout: {method} {path}") from e
                wait = self._backoff(attempt)
                logger.warning(
                    f"Replicate API {method} {path} timeout, "
                    f"retrying in {wait}s (attempt {attempt + 1}/{self.MAX_RETRIES})"
                )
                await asyncio.sleep(wait)
                continue
            except httpx.ConnectError as e:
                raise APIConnectionError(f"Connection failed: {self.base_url}{path}") from e
            except httpx.HTTPError as e:
                raise APIError(f"HTTP error: {e}") from e

            if resp.status_code in retry_statuses and attempt < self.MAX_RETRIES:
                wait = self._backoff(attempt)
                logger.warning(
                    f"Replicate API {method} {path} returned {resp.status_code}, "
                    f"retrying in {wait}s (attempt {attempt + 1}/{self.MAX_RETRIES})"
                )
                await asyncio.sleep(wait)
                continue

            self._handle_response_error(resp)
            result: dict[str, Any] = resp.json()
            return result

        # unreachable, but satisfies type checker
        raise APIError(f"Max retries exceeded: {method} {path}")

    def _backoff(self, attempt: int) -> float:
        return self._backoff_base * (2**attempt)

    @staticmethod
    def _handle_response_error(response: httpx.Response) -> None:
        """HTTP エラーレスポンスを例外に変換する。"""
        if response.is_success:
            return

        status_code = response.status_code
        error_detail = response.text
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict):
            error_detail = payload.get("detail") or payload.get("message") or error_detail

        if status_code in (401, 403):
            raise APIAuthenticationError(f"Authentication failed: {error_detail}", status_code)
        elif status_code == 404:
            raise APINotFoundError(f"Resource not found: {error_detail}")
        elif status_code in (400, 422):
            raise APIValidationError(f"Validation error: {error_detail}", status_code)
        elif status_code >= 500:
            raise APIServerError(f"Server error ({status_code}): {error_detail}", status_code)
        else:
            raise APIError(f"API error ({status_code}): {error_detail}", status_code)
