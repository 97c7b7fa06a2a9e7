"""
まとめ章タスクのスケジューラ

定期トリガーごとに1回呼ばれ、対象ユーザー1人につき1件のタスクをキューへ積む。
- 期間は calendar_window で計算する（基準時刻は引数）
- 対象は premium かつ期間の自動生成フラグが立っているユーザー
- 重複チェックはしない（Worker の存在チェックに任せる）
- 1ユーザーの enqueue 失敗は他のユーザーに影響させない
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from novelday.calendar_window import Period, previous_period
from novelday.config import Config
from novelday.datastore import Datastore, DatastoreError
from novelday.enums import PeriodKind
from novelday.schemas import TaskPayload
from novelday.task_queue import TaskAddress, TaskQueue


logger = logging.getLogger(__name__)


@dataclass
class ScheduleResult:
    """1回のスケジュール実行の結果。"""

    kind: PeriodKind
    period: Period
    eligible: int = 0
    enqueued: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped_reason: Optional[str] = None


def build_task_payload(user_id: str, period: Period) -> TaskPayload:
    return TaskPayload(
        user_id=user_id,
        kind=period.kind.chapter_type,
        period=period.to_payload(),
        period_meta=period.meta_payload(),
    )


class TaskScheduler:
    def __init__(self, *, config: Config, datastore: Datastore, task_queue: TaskQueue):
        self.config = config
        self.datastore = datastore
        self.task_queue = task_queue

    def _enqueue_one(self, address: TaskAddress, user_id: str, period: Period) -> bool:
        try:
            payload = build_task_payload(user_id, period)
            task_id = self.task_queue.enqueue(address, payload.model_dump(mode="json", exclude_none=True))
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "enqueue failed",
                exc_info=exc,
                extra={"user_id": user_id, "queue": address.queue_name, "period_key": period.period_key},
            )
            return False
        logger.info("created task for user", extra={"user_id": user_id, "task_id": task_id, "queue": address.queue_name})
        return True

    def schedule(self, kind: PeriodKind, now: datetime) -> ScheduleResult:
        """直前の期間を計算し、対象ユーザー分のタスクを積む。"""
        period = previous_period(kind, now)
        result = ScheduleResult(kind=kind, period=period)
        logger.info(
            f"{kind.chapter_type.value} cron range",
            extra={"start_key": period.start_key, "end_key": period.end_key, "period_key": period.period_key},
        )

        url = self.config.worker_url(kind)
        if not url:
            logger.error("worker_base_url が未設定のため、スケジュールをスキップします。", extra={"kind": kind.value})
            result.skipped_reason = "missing_worker_base_url"
            return result

        try:
            user_ids = self.datastore.list_eligible_user_ids(kind)
        except DatastoreError as exc:
            logger.error("profiles fetch error", exc_info=exc, extra={"kind": kind.value})
            user_ids = []

        result.eligible = len(user_ids)
        if not user_ids:
            logger.info(f"no target users for {kind.chapter_type.value} cron")
            result.skipped_reason = "no_eligible_users"
            return result

        address = TaskAddress(queue_name=self.config.queue_name(kind), url=url)
        max_workers = max(1, int(self.config.enqueue_concurrency))
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="novelday_enqueue") as pool:
            outcomes = list(pool.map(lambda uid: self._enqueue_one(address, uid, period), user_ids))

        for user_id, ok in zip(user_ids, outcomes):
            (result.enqueued if ok else result.failed).append(user_id)

        logger.info(
            f"schedule {kind.chapter_type.value} finished",
            extra={"count": len(user_ids), "enqueued": len(result.enqueued), "failed": len(result.failed)},
        )
        return result
