"""
タスク配送ループ（tasksテーブル実行）

キューに積まれた HTTP タスクを取り出し、Worker エンドポイントへ POST する。
配送は少なくとも1回。重複配送の抑止は Worker 側の存在チェックに任せる。

主要関数:
- run_forever: 配送のメインループ（定期トリガーの tick も同じループで回す）
- process_due_tasks: 期限到達タスクの一括配送
- deliver_task: 単一タスクの配送と結果の反映
"""

from __future__ import annotations

import logging
import threading
import time

import httpx

from novelday.task_queue import ClaimedTask, TaskQueue


logger = logging.getLogger(__name__)

# RUNNING のまま放置されたタスクを戻すまでの秒数（配送タイムアウトに上乗せする）
_STALE_GRACE_SECONDS = 60


def _now_utc_ts() -> int:
    """現在時刻（UTC）をUNIX秒で返す。"""
    return int(time.time())


def _is_retryable_status(status_code: int) -> bool:
    """429 と 5xx は再試行、それ以外の 4xx は終端。"""
    return status_code == 429 or status_code >= 500


class Dispatcher:
    def __init__(
        self,
        *,
        task_queue: TaskQueue,
        http_client: httpx.Client,
        token: str,
        timeout_seconds: float,
        max_tries: int,
    ):
        self.task_queue = task_queue
        self.http_client = http_client
        self.token = token
        self.timeout_seconds = float(timeout_seconds)
        self.max_tries = int(max_tries)

    def _headers(self, task: ClaimedTask) -> dict[str, str]:
        headers = dict(task.headers)
        headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def deliver_task(self, task: ClaimedTask, *, now_ts: int) -> bool:
        """配送して成功/失敗を返す（失敗時はtries/run_after/statusを更新）。"""
        try:
            resp = self.http_client.request(
                task.http_method,
                task.url,
                headers=self._headers(task),
                content=task.body,
                timeout=self.timeout_seconds,
            )
        except httpx.HTTPError as exc:
            status = self.task_queue.mark_retry(task.id, now_ts=now_ts, error=str(exc), max_tries=self.max_tries)
            logger.error(
                "task delivery failed",
                exc_info=exc,
                extra={"task_id": task.id, "queue": task.queue_name, "next_status": status.name},
            )
            return False

        if resp.is_success:
            self.task_queue.mark_done(task.id, now_ts=now_ts)
            logger.info(
                "task delivered",
                extra={"task_id": task.id, "queue": task.queue_name, "status_code": resp.status_code},
            )
            return True

        error = f"HTTP {resp.status_code}: {resp.text[:300]}"
        if _is_retryable_status(resp.status_code):
            status = self.task_queue.mark_retry(task.id, now_ts=now_ts, error=error, max_tries=self.max_tries)
            logger.warning(
                "task delivery will be retried",
                extra={"task_id": task.id, "queue": task.queue_name, "status_code": resp.status_code, "next_status": status.name},
            )
        else:
            self.task_queue.mark_failed(task.id, now_ts=now_ts, error=error)
            logger.warning(
                "task rejected by worker",
                extra={"task_id": task.id, "queue": task.queue_name, "status_code": resp.status_code},
            )
        return False

    def process_due_tasks(self, *, max_tasks: int = 10) -> int:
        """claim→deliverを繰り返して、最大max_tasks件まで配送する。"""
        delivered = 0
        self.task_queue.reclaim_stale(
            now_ts=_now_utc_ts(),
            older_than_seconds=int(self.timeout_seconds) + _STALE_GRACE_SECONDS,
        )
        for _ in range(max_tasks):
            now_ts = _now_utc_ts()
            task = self.task_queue.claim_next(now_ts=now_ts)
            if task is None:
                break
            if self.deliver_task(task, now_ts=now_ts):
                delivered += 1
        return delivered


def run_forever(
    *,
    dispatcher: Dispatcher,
    trigger_runner=None,
    poll_interval_seconds: float = 1.0,
    max_tasks_per_tick: int = 10,
    trigger_interval_seconds: float = 60.0,
    stop_event: threading.Event | None = None,
) -> None:
    """配送のメインループ。trigger_runner があれば定期トリガーも同じループで判定する。"""
    logger.info("dispatcher start")
    last_trigger_at: float = 0.0
    while True:
        if stop_event is not None and stop_event.is_set():
            break
        if trigger_runner is not None and trigger_interval_seconds > 0:
            now_s = time.time()
            if (now_s - last_trigger_at) >= float(trigger_interval_seconds):
                last_trigger_at = now_s
                try:
                    trigger_runner.tick()
                except Exception:  # noqa: BLE001
                    logger.exception("trigger tick failed")

        try:
            processed = dispatcher.process_due_tasks(max_tasks=max_tasks_per_tick)
        except Exception:  # noqa: BLE001
            logger.exception("task dispatch failed")
            processed = 0
        if processed <= 0:
            if stop_event is not None:
                stop_event.wait(poll_interval_seconds)
            else:
                time.sleep(poll_interval_seconds)
    logger.info("dispatcher stop")

