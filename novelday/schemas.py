"""API リクエスト/レスポンスの Pydantic モデル。"""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from novelday.enums import ChapterType, PeriodKind
from novelday.records import Persona, SourceEntry


def _validate_date_key(v: str) -> str:
    s = (v or "").strip()
    try:
        parsed = date.fromisoformat(s)
    except ValueError as exc:
        raise ValueError(f"invalid date key: {v!r} (expected YYYY-MM-DD)") from exc
    if parsed.isoformat() != s:
        raise ValueError(f"invalid date key: {v!r} (expected YYYY-MM-DD)")
    return s


class PeriodPayload(BaseModel):
    """半開区間 [start_key, end_key) と重複排除キー。"""
    start_key: str
    end_key: str
    period_key: str

    @field_validator("start_key", "end_key", "period_key")
    @classmethod
    def _validate_keys(cls, v: str) -> str:
        return _validate_date_key(v)

    @model_validator(mode="after")
    def _validate_range(self) -> "PeriodPayload":
        if self.start_key >= self.end_key:
            raise ValueError("start_key must be before end_key")
        return self


class PeriodMeta(BaseModel):
    """表示用の付加情報。"""
    label: Optional[str] = None
    week_of_month: Optional[int] = Field(default=None, ge=1, le=6)


class TaskPayload(BaseModel):
    """キュー経由で Worker に渡すタスク本文。"""
    user_id: str = Field(min_length=1)
    kind: ChapterType
    period: PeriodPayload
    period_meta: PeriodMeta = Field(default_factory=PeriodMeta)

    @field_validator("user_id")
    @classmethod
    def _validate_user_id(cls, v: str) -> str:
        s = v.strip()
        if not s:
            raise ValueError("user_id is required")
        return s

    @field_validator("kind")
    @classmethod
    def _validate_kind(cls, v: ChapterType) -> ChapterType:
        if v is ChapterType.DAILY:
            raise ValueError("kind must be weekly or monthly")
        return v

    @model_validator(mode="after")
    def _validate_weekly_meta(self) -> "TaskPayload":
        if self.kind is ChapterType.WEEKLY and self.period_meta.week_of_month is None:
            raise ValueError("period_meta.week_of_month is required for weekly tasks")
        return self


class TaskStatusResponse(BaseModel):
    """Worker の成功応答（ok / skipped_no_daily / skipped_already_exists）。"""
    status: str


class TaskErrorResponse(BaseModel):
    """Worker の失敗応答。"""
    error: str
    detail: Optional[str] = None


class PreviewEntry(BaseModel):
    date_key: Optional[str] = None
    created_at: Optional[datetime] = None
    memo: Optional[str] = None
    body: Optional[str] = None
    style: Optional[str] = None

    def to_source_entry(self) -> SourceEntry:
        return SourceEntry(
            created_at=self.created_at,
            memo=self.memo,
            body=self.body,
            style=self.style,
            date_key=self.date_key,
        )


class PreviewPersona(BaseModel):
    first_person: Optional[str] = None
    name: Optional[str] = None
    occupation: Optional[str] = None
    free_context: Optional[str] = None

    def to_persona(self) -> Persona:
        return Persona.from_values(
            first_person=self.first_person,
            display_name=self.name,
            occupation=self.occupation,
            free_context=self.free_context,
        )


class ChapterPreviewRequest(BaseModel):
    """/chapters/preview 用リクエスト（保存しない同期生成）。"""
    kind: PeriodKind
    entries: List[PreviewEntry] = Field(default_factory=list)
    persona: PreviewPersona = Field(default_factory=PreviewPersona)


class ChapterPreviewResponse(BaseModel):
    title: str
    body: str
