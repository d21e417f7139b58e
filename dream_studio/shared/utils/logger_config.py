"""
Loguruベースのログ設定モジュール

CLI とサービス層で共通のログ設定を提供します。
環境変数やフラグによるログレベル制御に対応。
"""

import re
import sys
from typing import Optional

from loguru import logger

from dream_studio.config.settings import reload_settings


def sanitize_sensitive_info(message: str) -> str:
    """
    ログメッセージから機密情報を除去

    Args:
        message: 元のログメッセージ

    Returns:
        サニタイズされたログメッセージ
    """
    # Replicate API トークン
    message = re.sub(r"r8_[A-Za-z0-9]+", "r8_***", message)

    # Authorization ヘッダー
    message = re.sub(r"(Bearer|Token)\s+[^\s\"']+", r"\1 ***", message)

    # パスワードやキーらしき文字列をマスク
    message = re.sub(
        r"(password|passwd|pwd|api_key|token|secret)[=:\s]+[^\s]+",
        r"\1=***",
        message,
        flags=re.IGNORECASE,
    )

    return message


def setup_logger(
    verbose: bool = False, quiet: bool = False, level_override: Optional[str] = None
) -> None:
    """
    logger設定

    Args:
        verbose: DEBUG以上を出力
        quiet: ERROR以上のみ出力
        level_override: 明示的なログレベル（最優先）
    """
    # 既存のハンドラーを削除
    logger.remove()

    if level_override:
        level = level_override.upper()
    elif quiet:
        level = "ERROR"
    elif verbose:
        level = "DEBUG"
    else:
        # 環境変数から取得、デフォルトはWARNING
        level = reload_settings().log_level.upper()

    def secure_message_filter(record):
        """ログレコードの機密情報をサニタイズ"""
        if "message" in record:
            record["message"] = sanitize_sensitive_info(str(record["message"]))
        return True

    format_string = (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
        "<level>{message}</level>"
    )

    logger.add(
        sys.stderr,
        level=level,
        format=format_string,
        colorize=True,
        backtrace=verbose,
        diagnose=False,
        filter=secure_message_filter,
    )

    logger.debug(f"Logger initialized - Level: {level}")
