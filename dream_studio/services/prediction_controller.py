"""
Prediction Progress Controller

1つのリモート画像生成ジョブを投入から終端まで駆動し、
(ステータス, 進捗) を購読者に配信する。

状態遷移:
    idle -> active -> terminal
    active -> idle        (cancel)
    active -> active'     (start: 旧ジョブを cancel してから開始)

全ての状態変更はコントローラーを所有するイベントループ上で行う。
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Callable, Coroutine
from datetime import datetime
from functools import partial
from typing import Any

from loguru import logger

from dream_studio.schemas.prediction import (
    ControllerState,
    GeneratedImage,
    ImageLoadFailure,
    JobHandle,
    JobResult,
    JobStatus,
    PhotoMakerInput,
    PredictionUpdate,
    ProgressEvent,
)
from dream_studio.services.progress_estimator import ProgressEstimator
from dream_studio.services.protocols import ImageLoader, PredictionService
from dream_studio.shared.exceptions import (
    ImageLoadFailedError,
    JobCanceledError,
    JobFailedError,
    NoImagesProducedError,
    PollingFailedError,
    PredictionError,
    SubmissionFailedError,
)
from dream_studio.shared.utils.image_format import sniff_image_type


class PredictionRun:
    """1回のジョブ実行

    events() で進捗イベントを購読し、result() で結果を待つ。
    """

    def __init__(self, request: PhotoMakerInput) -> None:
        self.request = request
        self.handle: JobHandle | None = None
        self.output: list[str] | None = None
        self.error: str | None = None
        self.created_at: datetime = datetime.now()
        self.task: asyncio.Task[None] | None = None
        self.submission: asyncio.Future[JobHandle] | None = None
        self._outcome: asyncio.Future[JobResult] = asyncio.get_running_loop().create_future()
        self._subscribers: list[asyncio.Queue[ProgressEvent | None]] = []
        self._latest = ProgressEvent(progress=0.0)

    @property
    def job_id(self) -> str | None:
        return self.handle.id if self.handle else None

    @property
    def done(self) -> bool:
        return self._outcome.done()

    @property
    def latest(self) -> ProgressEvent:
        """最後に配信したイベント"""
        return self._latest

    async def events(self) -> AsyncIterator[ProgressEvent]:
        """
        進捗イベントを購読

        現在の状態を1回送信した後、更新を受信順に送信する。
        ジョブが終端に達すると終了する。
        """
        if self.done:
            yield self._latest
            return

        queue: asyncio.Queue[ProgressEvent | None] = asyncio.Queue()
        self._subscribers.append(queue)
        try:
            yield self._latest
            while True:
                event = await queue.get()
                if event is None:
                    return
                yield event
        finally:
            self._subscribers.remove(queue)

    async def result(self) -> JobResult:
        """
        終端結果を待つ

        Raises:
            PredictionError: ジョブの失敗・キャンセル
        """
        return await asyncio.shield(self._outcome)

    def _publish(self, event: ProgressEvent) -> None:
        self._latest = event
        for queue in self._subscribers:
            queue.put_nowait(event)

    def _finish(
        self,
        event: ProgressEvent,
        result: JobResult | None = None,
        error: BaseException | None = None,
    ) -> bool:
        if self._outcome.done():
            return False
        if error is not None:
            self._outcome.set_exception(error)
            # 結果を読まれないまま破棄されても "never retrieved" を出さない
            self._outcome.exception()
        else:
            self._outcome.set_result(result)
        self._publish(event)
        # 終了シグナル
        for queue in self._subscribers:
            queue.put_nowait(None)
        return True


class PredictionProgressController:
    """予測ジョブ進捗コントローラー

    Args:
        service: リモート予測サービス
        loader: 出力画像ローダー
        estimated_total_seconds: 時間ベース推定の想定総所要時間
        tick_interval: 時間ベース推定の更新間隔（秒）
        deadline_seconds: 全体デッドライン（None は無制限）
        clock: 単調時計
    """

    def __init__(
        self,
        service: PredictionService,
        loader: ImageLoader,
        estimated_total_seconds: float = 30.0,
        tick_interval: float = 0.5,
        deadline_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._service = service
        self._loader = loader
        self._tick_interval = tick_interval
        self._deadline = deadline_seconds
        self._estimator = ProgressEstimator(estimated_total_seconds, clock=clock)
        self._lock = asyncio.Lock()
        self._state = ControllerState.IDLE
        self._status: JobStatus | None = None
        self._handle: JobHandle | None = None
        self._run: PredictionRun | None = None
        self._ticker: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[None]] = set()

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is ControllerState.ACTIVE

    @property
    def progress(self) -> float:
        return self._estimator.value

    @property
    def status(self) -> JobStatus | None:
        return self._status

    @property
    def handle(self) -> JobHandle | None:
        return self._handle

    @property
    def current_run(self) -> PredictionRun | None:
        return self._run

    async def __aenter__(self) -> PredictionProgressController:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    # ============================================
    # Transitions
    # ============================================

    async def start(self, request: PhotoMakerInput) -> PredictionRun:
        """
        新しいジョブを開始

        実行中のジョブがあれば先にキャンセルする。

        Args:
            request: PhotoMaker 入力

        Returns:
            ジョブ実行（イベント購読と結果待ち）
        """
        async with self._lock:
            if self._state is ControllerState.ACTIVE and self._run is not None:
                self._cancel_active(self._run, "superseded by a new job")

            run = PredictionRun(request)
            self._run = run
            self._state = ControllerState.ACTIVE
            self._status = None
            self._handle = None
            self._estimator.reset()
            self._publish(run)

            self._ticker = asyncio.create_task(self._tick(run), name="prediction-progress-ticker")
            run.task = asyncio.create_task(self._drive(run), name="prediction-drive")
            logger.debug(f"予測ジョブ開始: prompt={request.prompt!r}")
            return run

    async def cancel(self) -> None:
        """
        実行中のジョブをキャンセル

        リモートへのキャンセル要求はベストエフォートで、完了を待たない。
        実行中のジョブがなければ何もしない（冪等）。
        """
        async with self._lock:
            run = self._run
            if self._state is not ControllerState.ACTIVE or run is None:
                return
            self._cancel_active(run, "cancelled by user")

    async def aclose(self) -> None:
        """ジョブをキャンセルし、保留中のリモートキャンセルの完了を待つ"""
        await self.cancel()
        run = self._run
        if run is not None:
            waits = [f for f in (run.task, run.submission) if f is not None]
            await asyncio.gather(*waits, return_exceptions=True)
        while pending := [t for t in self._background if not t.done()]:
            await asyncio.gather(*pending, return_exceptions=True)

    def _cancel_active(self, run: PredictionRun, reason: str) -> None:
        self._state = ControllerState.IDLE
        self._stop_ticker()
        self._cancel_remote(run)
        self._handle = None
        self._status = JobStatus.CANCELED

        error = JobCanceledError(f"Prediction {reason}", job_id=run.job_id)
        run._finish(self._snapshot(run, message=str(error)), error=error)
        if run.task is not None and not run.task.done():
            run.task.cancel()
        logger.info(f"予測ジョブキャンセル: {run.job_id or '(未投入)'} ({reason})")

    def _cancel_remote(self, run: PredictionRun) -> None:
        if run.handle is not None:
            self._spawn(self._remote_cancel(run.handle))
        elif run.submission is not None:
            # 投入中: ハンドルが返り次第キャンセルする
            run.submission.add_done_callback(self._cancel_late_submission)

    def _cancel_late_submission(self, submission: asyncio.Future[JobHandle]) -> None:
        if submission.cancelled() or submission.exception() is not None:
            return
        self._spawn(self._remote_cancel(submission.result()))

    async def _remote_cancel(self, handle: JobHandle) -> None:
        try:
            await self._service.cancel_job(handle)
        except Exception as e:
            logger.warning(f"リモートキャンセル失敗: {handle.id}: {e}")

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # ============================================
    # Progress
    # ============================================

    def _snapshot(self, run: PredictionRun, message: str | None = None) -> ProgressEvent:
        return ProgressEvent(
            job_id=run.job_id,
            status=self._status,
            progress=self._estimator.value,
            message=message,
        )

    def _publish(self, run: PredictionRun, message: str | None = None) -> None:
        run._publish(self._snapshot(run, message))

    def _is_current(self, run: PredictionRun) -> bool:
        return run is self._run and self._state is ControllerState.ACTIVE

    def _ensure_current(self, run: PredictionRun) -> None:
        if not self._is_current(run):
            raise JobCanceledError("Prediction is no longer active", job_id=run.job_id)

    async def _tick(self, run: PredictionRun) -> None:
        while True:
            await asyncio.sleep(self._tick_interval)
            if not self._is_current(run) or not self._estimator.timer_running:
                return
            if self._estimator.apply_tick():
                self._publish(run)

    def _stop_ticker(self) -> None:
        self._estimator.stop_timer()
        if self._ticker is not None and not self._ticker.done():
            self._ticker.cancel()
        self._ticker = None

    def _on_update(self, run: PredictionRun, update: PredictionUpdate) -> None:
        if not self._is_current(run):
            return

        self._status = update.status
        if update.output is not None:
            run.output = list(update.output)
        if update.error:
            run.error = update.error

        self._estimator.apply_status(update.status)
        if not self._estimator.timer_running:
            self._stop_ticker()
        self._publish(run)

    # ============================================
    # Drive
    # ============================================

    async def _drive(self, run: PredictionRun) -> None:
        try:
            result = await self._execute(run)
        except asyncio.CancelledError:
            raise
        except PredictionError as e:
            self._conclude(run, error=e)
        except Exception as e:
            logger.exception(f"予測ジョブで予期しないエラー: {e}")
            self._conclude(run, error=e)
        else:
            self._conclude(run, result=result)

    async def _execute(self, run: PredictionRun) -> JobResult:
        handle = await self._submit(run)
        self._ensure_current(run)
        run.handle = handle
        self._handle = handle
        self._publish(run, message=f"Prediction {handle.id} submitted")

        terminal = await self._await_terminal(run, handle)
        self._ensure_current(run)
        if self._status is not terminal:
            self._on_update(run, PredictionUpdate(status=terminal))

        if terminal is JobStatus.FAILED:
            raise JobFailedError(run.error or "Prediction failed", job_id=handle.id)
        if terminal is JobStatus.CANCELED:
            raise JobCanceledError("Prediction was canceled remotely", job_id=handle.id)
        if terminal is not JobStatus.SUCCEEDED:
            raise PollingFailedError(
                f"Polling ended with non-terminal status {terminal.value}", job_id=handle.id
            )

        self._estimator.complete()
        return await self._materialize(run, handle)

    async def _submit(self, run: PredictionRun) -> JobHandle:
        run.submission = asyncio.ensure_future(self._service.create_job(run.request))
        try:
            return await asyncio.shield(run.submission)
        except PredictionError:
            raise
        except Exception as e:
            raise SubmissionFailedError(f"Failed to create prediction: {e}") from e

    async def _await_terminal(self, run: PredictionRun, handle: JobHandle) -> JobStatus:
        poll = self._service.poll_or_stream(handle, partial(self._on_update, run))
        try:
            if self._deadline is None:
                return await poll
            remaining = max(self._deadline - self._estimator.elapsed, 0.0)
            return await asyncio.wait_for(poll, timeout=remaining)
        except asyncio.TimeoutError as e:
            if self._deadline is None:
                raise PollingFailedError(
                    f"Timed out polling prediction {handle.id}", job_id=handle.id
                ) from e
            # 打ち切ったジョブはリモートでもキャンセルする
            self._spawn(self._remote_cancel(handle))
            raise PollingFailedError(
                f"Prediction {handle.id} did not finish within {self._deadline}s",
                job_id=handle.id,
            ) from e
        except PredictionError:
            raise
        except Exception as e:
            raise PollingFailedError(
                f"Failed to poll prediction {handle.id}: {e}", job_id=handle.id
            ) from e

    async def _materialize(self, run: PredictionRun, handle: JobHandle) -> JobResult:
        references = run.output or []
        if not references:
            raise NoImagesProducedError(
                "No images were generated. Please try a different prompt.", job_id=handle.id
            )

        logger.info(f"予測 {handle.id}: {len(references)} 件の画像URLを受信")
        images: list[GeneratedImage] = []
        failures: list[ImageLoadFailedError] = []
        for reference in references:
            self._ensure_current(run)
            try:
                data = await self._loader.load(reference)
            except ImageLoadFailedError as e:
                failures.append(e)
                logger.warning(f"画像の読み込みに失敗: {reference}: {e}")
                continue
            except Exception as e:
                failures.append(ImageLoadFailedError(str(e), reference))
                logger.warning(f"画像の読み込みに失敗: {reference}: {e}")
                continue
            images.append(
                GeneratedImage(reference=reference, data=data, content_type=sniff_image_type(data))
            )

        self._ensure_current(run)
        if not images:
            raise NoImagesProducedError(
                "Could not load generated images", job_id=handle.id, failures=failures
            )

        return JobResult(
            job_id=handle.id,
            images=images,
            failures=[ImageLoadFailure(reference=f.reference, reason=str(f)) for f in failures],
        )

    def _conclude(
        self,
        run: PredictionRun,
        result: JobResult | None = None,
        error: BaseException | None = None,
    ) -> None:
        if run is not self._run or run.done:
            return

        self._stop_ticker()
        self._state = ControllerState.TERMINAL
        self._handle = None

        if result is not None:
            message = f"Generated {len(result.images)} image(s)"
            logger.info(f"予測ジョブ完了: {result.job_id} ({message})")
        elif isinstance(error, JobCanceledError):
            message = str(error)
            logger.info(f"予測ジョブキャンセル: {run.job_id}: {error}")
        else:
            message = str(error)
            logger.error(f"予測ジョブ失敗: {run.job_id}: {error}")

        run._finish(self._snapshot(run, message=message), result=result, error=error)
