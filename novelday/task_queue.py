"""
タスクキュー（tasksテーブル）

Cloud Tasks 風の HTTP タスクを DB に積む、少なくとも1回配送のキュー。
本文は JSON を base64 で保存し、Dispatcher が取り出して Worker へ POST する。

状態遷移:
- QUEUED → RUNNING (claim_next)
- RUNNING → DONE (mark_done) / FAILED (mark_failed) / QUEUED (mark_retry, reclaim_stale)
"""

from __future__ import annotations

import base64
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from novelday.db import session_scope
from novelday.enums import TaskStatus
from novelday.models import Task


logger = logging.getLogger(__name__)


class EnqueueError(RuntimeError):
    """タスクの追加に失敗した。"""


@dataclass(frozen=True)
class TaskAddress:
    """論理キュー名 + 呼び出し先URL。"""

    queue_name: str
    url: str


@dataclass(frozen=True)
class ClaimedTask:
    """claim 済みタスク（セッション外で配送に使う）。"""

    id: int
    queue_name: str
    http_method: str
    url: str
    headers: Dict[str, str]
    body: bytes
    tries: int


def _now_utc_ts() -> int:
    """現在時刻（UTC）をUNIX秒で返す。"""
    return int(time.time())


def _json_dumps(payload: Any) -> str:
    """DB保存用にJSONへダンプする（日本語保持）。"""
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def _json_loads(payload_json: str) -> Dict[str, Any]:
    """headers_json を dict として安全に読み込む（壊れていたら空dict）。"""
    try:
        obj = json.loads(payload_json)
        return obj if isinstance(obj, dict) else {}
    except (json.JSONDecodeError, ValueError):
        return {}


def encode_body(payload: Dict[str, Any]) -> str:
    return base64.b64encode(_json_dumps(payload).encode("utf-8")).decode("ascii")


def decode_body(body_b64: str) -> bytes:
    return base64.b64decode(body_b64.encode("ascii"))


def backoff_seconds(tries: int) -> int:
    """失敗回数に応じた簡易バックオフ秒を返す（最大1時間）。"""
    return min(3600, max(5, 2 ** max(0, tries)))


class TaskQueue:
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def enqueue(self, address: TaskAddress, payload: Dict[str, Any], *, now_ts: Optional[int] = None) -> int:
        """タスクを1件追加し、task_id を返す。"""
        ts = _now_utc_ts() if now_ts is None else int(now_ts)
        task = Task(
            queue_name=address.queue_name,
            http_method="POST",
            url=address.url,
            headers_json=_json_dumps({"Content-Type": "application/json"}),
            body_b64=encode_body(payload),
            status=int(TaskStatus.QUEUED),
            run_after=ts,
            tries=0,
            last_error=None,
            created_at=ts,
            updated_at=ts,
        )
        try:
            with session_scope(self.session_factory) as session:
                session.add(task)
                session.flush()
                task_id = int(task.id)
        except SQLAlchemyError as exc:
            raise EnqueueError(f"enqueue to {address.queue_name} failed: {exc}") from exc
        return task_id

    def claim_next(self, *, now_ts: int) -> Optional[ClaimedTask]:
        """実行可能な次タスクを1件RUNNINGにしてclaimする。"""
        with session_scope(self.session_factory) as session:
            task = (
                session.query(Task)
                .filter(Task.status == int(TaskStatus.QUEUED), Task.run_after <= now_ts)
                .order_by(Task.run_after.asc(), Task.id.asc())
                .first()
            )
            if task is None:
                return None
            task.status = int(TaskStatus.RUNNING)
            task.updated_at = now_ts
            session.add(task)
            return ClaimedTask(
                id=int(task.id),
                queue_name=task.queue_name,
                http_method=task.http_method,
                url=task.url,
                headers={str(k): str(v) for k, v in _json_loads(task.headers_json).items()},
                body=decode_body(task.body_b64),
                tries=int(task.tries or 0),
            )

    def mark_done(self, task_id: int, *, now_ts: int) -> None:
        with session_scope(self.session_factory) as session:
            task = session.get(Task, task_id)
            if task is None:
                return
            task.status = int(TaskStatus.DONE)
            task.updated_at = now_ts

    def mark_failed(self, task_id: int, *, now_ts: int, error: str) -> None:
        """再試行しない終端失敗。"""
        with session_scope(self.session_factory) as session:
            task = session.get(Task, task_id)
            if task is None:
                return
            task.tries = int(task.tries or 0) + 1
            task.status = int(TaskStatus.FAILED)
            task.last_error = error
            task.updated_at = now_ts

    def mark_retry(self, task_id: int, *, now_ts: int, error: str, max_tries: int) -> TaskStatus:
        """tries を進めて再投入する（上限に達したら FAILED）。"""
        with session_scope(self.session_factory) as session:
            task = session.get(Task, task_id)
            if task is None:
                return TaskStatus.FAILED
            task.tries = int(task.tries or 0) + 1
            task.last_error = error
            task.updated_at = now_ts
            if task.tries >= max_tries:
                task.status = int(TaskStatus.FAILED)
            else:
                task.status = int(TaskStatus.QUEUED)
                task.run_after = now_ts + backoff_seconds(task.tries)
            return TaskStatus(task.status)

    def reclaim_stale(self, *, now_ts: int, older_than_seconds: int) -> int:
        """
        RUNNING のまま放置されたタスクを QUEUED に戻す。

        Dispatcher が配送中に落ちた場合でも、少なくとも1回の配送を保つ。
        """
        threshold = now_ts - int(older_than_seconds)
        with session_scope(self.session_factory) as session:
            rows = (
                session.query(Task)
                .filter(Task.status == int(TaskStatus.RUNNING), Task.updated_at < threshold)
                .all()
            )
            for task in rows:
                task.status = int(TaskStatus.QUEUED)
                task.run_after = now_ts
                task.updated_at = now_ts
            if rows:
                logger.warning("stale tasks reclaimed", extra={"count": len(rows)})
            return len(rows)

    def get_status(self, task_id: int) -> Optional[TaskStatus]:
        with session_scope(self.session_factory) as session:
            task = session.get(Task, task_id)
            return None if task is None else TaskStatus(task.status)

    def count_by_status(self, status: TaskStatus) -> int:
        with session_scope(self.session_factory) as session:
            return session.query(Task).filter(Task.status == int(status)).count()
