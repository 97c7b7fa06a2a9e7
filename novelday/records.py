"""パイプライン内で受け渡すレコード型。"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from novelday.enums import ChapterType


DEFAULT_FIRST_PERSON = "僕"


@dataclass(frozen=True)
class SourceEntry:
    """日記の断片（daily entry）。読み取り専用。"""

    created_at: Optional[datetime]
    memo: Optional[str] = None
    body: Optional[str] = None
    style: Optional[str] = None
    date_key: Optional[str] = None

    def display_date(self) -> str:
        if self.date_key:
            return self.date_key
        if self.created_at is not None:
            return self.created_at.isoformat()
        return ""


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


@dataclass(frozen=True)
class Persona:
    """語り手の設定。一人称以外は任意。"""

    first_person: str = DEFAULT_FIRST_PERSON
    display_name: Optional[str] = None
    occupation: Optional[str] = None
    free_context: Optional[str] = None

    @classmethod
    def from_values(
        cls,
        *,
        first_person: Optional[str] = None,
        display_name: Optional[str] = None,
        occupation: Optional[str] = None,
        free_context: Optional[str] = None,
    ) -> "Persona":
        """空文字や空白だけの値は未指定として扱う。"""
        return cls(
            first_person=_clean(first_person) or DEFAULT_FIRST_PERSON,
            display_name=_clean(display_name),
            occupation=_clean(occupation),
            free_context=_clean(free_context),
        )


@dataclass(frozen=True)
class GeneratedChapter:
    """生成結果。"""

    title: str
    body: str


@dataclass(frozen=True)
class ChapterRow:
    """保存する週/月まとめ章。"""

    user_id: str
    chapter_type: ChapterType
    period_key: str
    title: str
    body: str
    style: str
    memo: Optional[str] = None
    volume: Optional[int] = None
    created_at: Optional[datetime] = None
