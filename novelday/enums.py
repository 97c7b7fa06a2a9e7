"""章生成まわりのEnum定義。"""

from __future__ import annotations

from enum import Enum, IntEnum


class PeriodKind(str, Enum):
    """まとめ章の期間種別。"""
    WEEK = "week"
    MONTH = "month"

    @property
    def chapter_type(self) -> "ChapterType":
        return ChapterType.WEEKLY if self is PeriodKind.WEEK else ChapterType.MONTHLY


class ChapterType(str, Enum):
    """entries.chapter_type の値。"""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @property
    def period_kind(self) -> PeriodKind:
        if self is ChapterType.WEEKLY:
            return PeriodKind.WEEK
        if self is ChapterType.MONTHLY:
            return PeriodKind.MONTH
        raise ValueError("daily entries have no period kind")


class TaskStatus(IntEnum):
    """tasksテーブルの配送状態。"""
    QUEUED = 0
    RUNNING = 1
    DONE = 2
    FAILED = 3


class WorkerOutcome(str, Enum):
    """Workerの終端状態。"""
    OK = "ok"
    SKIP_NO_SOURCE = "skip_no_source"
    SKIP_DUPLICATE = "skip_duplicate"
    INVALID = "invalid"
    ERROR = "error"
