"""
まとめ章 Worker

キューから届いた1タスクを処理する。各ステップの結果は WorkerOutcome で表し、
最初に終端したステップの結果を WorkerResult として返す（例外は外に出さない）。

1. payload 検証            → invalid (400)
2. daily 取得              → skip_no_source (200, skipped_no_daily)
3. 既存まとめ章の確認      → skip_duplicate (200, skipped_already_exists)
4. プロフィール読み取り    （失敗しても既定値で続行）
5. 巻数の決定（週のみ）
6. 章生成
7. 保存                    → ok (200)

4〜7 の内部失敗は 500 を返し、キュー側の再試行に任せる。
再試行しても 3 の存在チェックで二重生成を防ぐ。
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from novelday.datastore import Datastore, DatastoreError
from novelday.enums import ChapterType, WorkerOutcome
from novelday.generation import GenerationEngine
from novelday.records import ChapterRow, Persona
from novelday.schemas import TaskPayload


logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_SKIPPED_NO_DAILY = "skipped_no_daily"
STATUS_SKIPPED_ALREADY_EXISTS = "skipped_already_exists"

WEEKLY_STYLE = "W"
MONTHLY_STYLE = "M"


@dataclass(frozen=True)
class WorkerResult:
    outcome: WorkerOutcome
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)


def _success(outcome: WorkerOutcome, status: str) -> WorkerResult:
    return WorkerResult(outcome=outcome, status_code=200, body={"status": status})


def _error(tag: str, detail: Optional[str] = None) -> WorkerResult:
    body: Dict[str, Any] = {"error": tag}
    if detail is not None:
        body["detail"] = detail
    return WorkerResult(outcome=WorkerOutcome.ERROR, status_code=500, body=body)


def _invalid() -> WorkerResult:
    return WorkerResult(outcome=WorkerOutcome.INVALID, status_code=400, body={"error": "invalid payload"})


def weekly_memo(week_of_month: int) -> str:
    return f"第{week_of_month}週 まとめ章"


def weekly_title(week_of_month: int, volume: int) -> str:
    return f"{weekly_memo(week_of_month)} 第{volume}巻"


def monthly_memo(label: Optional[str]) -> str:
    return f"{label}の短編" if label else "今月の短編"


def parse_task_payload(raw: Union[bytes, str, Dict[str, Any], None], kind: ChapterType) -> Optional[TaskPayload]:
    """JSON本文を TaskPayload にする（不正なら None）。"""
    data: Any = raw
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        try:
            data = json.loads(raw) if raw.strip() else None
        except (json.JSONDecodeError, ValueError):
            return None
    if not isinstance(data, dict):
        return None
    data = dict(data)
    data.setdefault("kind", kind.value)
    try:
        payload = TaskPayload.model_validate(data)
    except ValidationError as exc:
        logger.warning("invalid task payload", extra={"kind": kind.value, "errors": exc.error_count()})
        return None
    if payload.kind is not kind:
        logger.warning("task kind mismatch", extra={"expected": kind.value, "actual": payload.kind.value})
        return None
    return payload


class ChapterWorker:
    def __init__(self, *, datastore: Datastore, engine: GenerationEngine):
        self.datastore = datastore
        self.engine = engine

    def handle(self, kind: ChapterType, raw: Union[bytes, str, Dict[str, Any], None]) -> WorkerResult:
        """1タスク分を処理する（どの経路でも WorkerResult を返す）。"""
        try:
            return self._handle(kind, raw)
        except Exception as exc:  # noqa: BLE001
            logger.error(f"{kind.value} worker unexpected error", exc_info=exc)
            return _error("unexpected", str(exc))

    def _load_persona(self, user_id: str) -> Persona:
        try:
            profile = self.datastore.load_profile(user_id)
        except Exception as exc:  # noqa: BLE001
            logger.error("profile fetch error", exc_info=exc, extra={"user_id": user_id})
            return Persona()
        if profile is None:
            return Persona()
        return profile.to_persona()

    def _handle(self, kind: ChapterType, raw: Union[bytes, str, Dict[str, Any], None]) -> WorkerResult:
        payload = parse_task_payload(raw, kind)
        if payload is None:
            return _invalid()

        user_id = payload.user_id
        period = payload.period
        period_kind = kind.period_kind
        logger.info(
            "worker start",
            extra={"kind": kind.value, "user_id": user_id, "start_key": period.start_key, "end_key": period.end_key},
        )

        # daily 取得
        try:
            entries = self.datastore.fetch_daily_entries(user_id, period.start_key, period.end_key)
        except DatastoreError as exc:
            logger.error("daily fetch error", exc_info=exc, extra={"user_id": user_id})
            return _error("daily fetch error", str(exc))
        if not entries:
            logger.info("no daily entries, skip", extra={"user_id": user_id, "kind": kind.value})
            return _success(WorkerOutcome.SKIP_NO_SOURCE, STATUS_SKIPPED_NO_DAILY)

        # 既存まとめ章（生成前に確認して、再配送でのLLM呼び出しを避ける）
        try:
            exists = self.datastore.chapter_exists(user_id, kind, period.period_key)
        except DatastoreError as exc:
            logger.error(f"{kind.value} exists check error", exc_info=exc, extra={"user_id": user_id})
            return _error(f"{kind.value} exists check error", str(exc))
        if exists:
            logger.info(f"{kind.value} already exists, skip", extra={"user_id": user_id, "period_key": period.period_key})
            return _success(WorkerOutcome.SKIP_DUPLICATE, STATUS_SKIPPED_ALREADY_EXISTS)

        persona = self._load_persona(user_id)

        volume: Optional[int] = None
        if kind is ChapterType.WEEKLY:
            try:
                volume = self.datastore.count_chapters(user_id, ChapterType.WEEKLY) + 1
            except DatastoreError as exc:
                logger.error("weekly list error", exc_info=exc, extra={"user_id": user_id})
                return _error("weekly list error", str(exc))

        try:
            chapter = self.engine.generate(entries, persona, period_kind)
        except Exception as exc:  # noqa: BLE001
            logger.error(f"{kind.value} generation error", exc_info=exc, extra={"user_id": user_id})
            return _error(f"{kind.value} generation error", str(exc))

        if kind is ChapterType.WEEKLY:
            week_of_month = int(payload.period_meta.week_of_month or 1)
            row = ChapterRow(
                user_id=user_id,
                chapter_type=kind,
                period_key=period.period_key,
                title=weekly_title(week_of_month, int(volume or 1)),
                body=chapter.body,
                style=WEEKLY_STYLE,
                memo=weekly_memo(week_of_month),
                volume=volume,
            )
        else:
            row = ChapterRow(
                user_id=user_id,
                chapter_type=kind,
                period_key=period.period_key,
                title=chapter.title,
                body=chapter.body,
                style=MONTHLY_STYLE,
                memo=monthly_memo(payload.period_meta.label),
            )

        try:
            inserted = self.datastore.insert_chapter(row)
        except DatastoreError as exc:
            logger.error(f"insert {kind.value} error", exc_info=exc, extra={"user_id": user_id})
            return _error(f"insert {kind.value} error", str(exc))
        if not inserted:
            return _success(WorkerOutcome.SKIP_DUPLICATE, STATUS_SKIPPED_ALREADY_EXISTS)

        logger.info(f"{kind.value} generated", extra={"user_id": user_id, "period_key": period.period_key})
        return _success(WorkerOutcome.OK, STATUS_OK)
