"""
カスタム例外モジュール

プロジェクト固有の例外クラスを定義
"""

from __future__ import annotations


class DreamStudioError(Exception):
    """プロジェクトの基底例外クラス"""

    pass


# =============================================================================
# 設定関連
# =============================================================================


class ConfigurationError(DreamStudioError):
    """設定エラー"""

    pass


# =============================================================================
# 予測ジョブ関連
# =============================================================================


class PredictionError(DreamStudioError):
    """予測ジョブの終端エラーの基底クラス"""

    def __init__(self, message: str, job_id: str | None = None) -> None:
        super().__init__(message)
        self.job_id = job_id


class SubmissionFailedError(PredictionError):
    """ジョブ作成リクエストの失敗"""

    pass


class PollingFailedError(PredictionError):
    """ステータス取得中の通信エラー、またはデッドライン超過"""

    pass


class JobFailedError(PredictionError):
    """サーバー側でジョブが failed になった"""

    pass


class JobCanceledError(PredictionError):
    """ジョブがキャンセルされた（ユーザー操作またはサーバー側）"""

    pass


class NoImagesProducedError(PredictionError):
    """出力が空、または全ての画像の読み込みに失敗した"""

    def __init__(
        self,
        message: str,
        job_id: str | None = None,
        failures: list[ImageLoadFailedError] | None = None,
    ) -> None:
        super().__init__(message, job_id=job_id)
        self.failures = failures or []


class ImageLoadFailedError(PredictionError):
    """個別の出力画像の読み込み失敗"""

    def __init__(self, message: str, reference: str) -> None:
        super().__init__(message)
        self.reference = reference
