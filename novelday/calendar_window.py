"""
集計期間（先週・先月）の計算ロジック

このモジュールは「DB/HTTP/LLM」に依存しない純粋ロジックとして扱う。
基準時刻は必ず引数で受け取り、実行環境のローカルタイムゾーンには依存しない。
日付はすべて固定オフセット UTC+9 で解釈する。
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Optional

from novelday.enums import PeriodKind


JST = timezone(timedelta(hours=9), "JST")


@dataclass(frozen=True)
class Period:
    """
    半開区間 [start_key, end_key) の集計期間。

    period_key は重複排除のキー（週なら月曜日、月なら1日）。
    """

    kind: PeriodKind
    start_key: str
    end_key: str
    period_key: str
    label: str
    week_of_month: Optional[int] = None

    @property
    def last_day_key(self) -> str:
        """期間の最終日（閉区間の終端）。"""
        return format_date_key(date.fromisoformat(self.end_key) - timedelta(days=1))

    def to_payload(self) -> Dict[str, Any]:
        return {"start_key": self.start_key, "end_key": self.end_key, "period_key": self.period_key}

    def meta_payload(self) -> Dict[str, Any]:
        meta: Dict[str, Any] = {"label": self.label}
        if self.week_of_month is not None:
            meta["week_of_month"] = int(self.week_of_month)
        return meta


def to_jst(instant: datetime) -> datetime:
    """基準時刻を UTC+9 に変換する（naive は UTC とみなす）。"""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(JST)


def format_date_key(d: date) -> str:
    """YYYY-MM-DD 形式のキーにする。"""
    return f"{d.year:04d}-{d.month:02d}-{d.day:02d}"


def week_start(d: date) -> date:
    """d を含む週の月曜日。"""
    return d - timedelta(days=d.weekday())


def week_of_month(d: date) -> int:
    """
    月曜始まりで数えた「その月の第何週か」（1始まり）。

    1日が前の月曜日から何日ずれているかを日付に足して7で割る。
    """
    offset = d.replace(day=1).weekday()
    return (d.day + offset - 1) // 7 + 1


def last_week_range(now: datetime) -> Period:
    """基準時刻から見て直近に完了した週（月曜〜日曜）を返す。"""
    today = to_jst(now).date()
    this_monday = week_start(today)
    last_monday = this_monday - timedelta(days=7)
    n = week_of_month(last_monday)
    key = format_date_key(last_monday)
    return Period(
        kind=PeriodKind.WEEK,
        start_key=key,
        end_key=format_date_key(this_monday),
        period_key=key,
        label=f"{last_monday.year}年{last_monday.month}月 第{n}週",
        week_of_month=n,
    )


def last_month_range(now: datetime) -> Period:
    """基準時刻から見て直近に完了した月を返す。"""
    today = to_jst(now).date()
    this_month_start = today.replace(day=1)
    last_month_start = (this_month_start - timedelta(days=1)).replace(day=1)
    key = format_date_key(last_month_start)
    return Period(
        kind=PeriodKind.MONTH,
        start_key=key,
        end_key=format_date_key(this_month_start),
        period_key=key,
        label=f"{last_month_start.year}年{last_month_start.month}月",
    )


def previous_period(kind: PeriodKind, now: datetime) -> Period:
    if kind is PeriodKind.WEEK:
        return last_week_range(now)
    return last_month_range(now)
