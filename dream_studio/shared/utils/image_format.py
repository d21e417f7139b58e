"""Image format detection from leading bytes."""

from __future__ import annotations

_IMAGE_SIGNATURES: tuple[tuple[bytes, str], ...] = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
)

_EXTENSIONS: dict[str, str] = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/gif": ".gif",
    "image/webp": ".webp",
}


def sniff_image_type(data: bytes) -> str | None:
    """先頭バイトから画像形式を判定（判定不能ならNone）"""
    for signature, content_type in _IMAGE_SIGNATURES:
        if data.startswith(signature):
            return content_type
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return None


def extension_for(content_type: str | None) -> str:
    """content type に対応する拡張子（不明なら .bin）"""
    if content_type is None:
        return ".bin"
    return _EXTENSIONS.get(content_type, ".bin")
