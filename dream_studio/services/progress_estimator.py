"""
Progress Estimator

経過時間ベースの推定とサーバーステータスベースの下限を単調にマージする。
"""

from __future__ import annotations

import time
from collections.abc import Callable

from dream_studio.schemas.prediction import JobStatus

TIME_ESTIMATE_CAP = 0.95
STARTING_PROGRESS = 0.10
PROCESSING_PROGRESS = 0.20


class ProgressEstimator:
    """単調非減少な進捗推定

    2つの推定器が同じ値に書き込む:
      - 時間ベース: min(elapsed / estimated_total_seconds, 0.95)
      - ステータスベース: starting=0.10, processing>=0.20, succeeded=1.00

    いずれも現在値より厳密に大きい候補のみ適用する。

    Args:
        estimated_total_seconds: 想定総所要時間（秒）
        clock: 単調時計（テスト用に差し替え可能）
    """

    def __init__(
        self,
        estimated_total_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if estimated_total_seconds <= 0:
            raise ValueError("estimated_total_seconds must be positive")
        self._estimated_total = estimated_total_seconds
        self._clock = clock
        self._value = 0.0
        self._started_at: float | None = None
        self._timer_running = False

    @property
    def value(self) -> float:
        return self._value

    @property
    def timer_running(self) -> bool:
        """時間ベース推定が有効か"""
        return self._timer_running

    @property
    def elapsed(self) -> float:
        if self._started_at is None:
            return 0.0
        return max(0.0, self._clock() - self._started_at)

    def reset(self) -> None:
        """新しいジョブの開始: 0.0 に戻し計時を開始"""
        self._value = 0.0
        self._started_at = self._clock()
        self._timer_running = True

    def stop_timer(self) -> None:
        self._timer_running = False

    def time_estimate(self) -> float:
        return min(self.elapsed / self._estimated_total, TIME_ESTIMATE_CAP)

    def apply_tick(self) -> bool:
        """時間ベース推定を適用。値が進んだら True"""
        if not self._timer_running:
            return False
        return self._advance(self.time_estimate())

    def apply_status(self, status: JobStatus) -> bool:
        """ステータスベース推定を適用。値が進んだら True"""
        if status is JobStatus.STARTING:
            return self._advance(STARTING_PROGRESS)
        if status is JobStatus.PROCESSING:
            return self._advance(PROCESSING_PROGRESS)
        if status is JobStatus.SUCCEEDED:
            self._timer_running = False
            return self._advance(1.0)
        if status in (JobStatus.FAILED, JobStatus.CANCELED):
            self._timer_running = False
        return False

    def complete(self) -> None:
        """成功時に 1.0 へ確定"""
        self._timer_running = False
        self._advance(1.0)

    def _advance(self, candidate: float) -> bool:
        if candidate > self._value:
            self._value = min(candidate, 1.0)
            return True
        return False
