"""
HTTP Image Loader

出力画像URLから画像バイト列を取得する。
"""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from dream_studio.shared.exceptions import ImageLoadFailedError
from dream_studio.shared.utils.image_format import sniff_image_type


class HttpImageLoader:
    """httpx ベースの画像ローダー"""

    def __init__(
        self,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            timeout=timeout, follow_redirects=True, transport=transport
        )

    async def __aenter__(self) -> HttpImageLoader:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def load(self, reference: str) -> bytes:
        """
        画像を取得

        Args:
            reference: 画像URL

        Returns:
            画像バイト列

        Raises:
            ImageLoadFailedError: 取得失敗、空レスポンス、画像として解釈できないデータ
        """
        try:
            resp = await self._client.get(reference)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ImageLoadFailedError(
                f"Image request returned {e.response.status_code}", reference
            ) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise ImageLoadFailedError(f"Image request failed: {e}", reference) from e

        data = resp.content
        if not data:
            raise ImageLoadFailedError("Image response was empty", reference)
        if sniff_image_type(data) is None:
            raise ImageLoadFailedError("Could not create image from data", reference)

        logger.debug(f"画像取得成功: {reference} ({len(data)} bytes)")
        return data
