"""
定期トリガー

"mon 01:00"（毎週月曜 01:00）や "1 03:00"（毎月1日 03:00）のような指定を
名前付きタイムゾーンで解釈し、発火枠ごとに1回だけ TaskScheduler を呼ぶ。

- 停止中に過ぎた枠を回数分消化しない（直近の1枠だけを見る）
- 起動時点で既に過ぎている枠は発火済みとして扱う
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from novelday.config import Config
from novelday.enums import PeriodKind


logger = logging.getLogger(__name__)

_HHMM_RE = re.compile(r"^\d{2}:\d{2}$")

WEEKDAYS_MON_FIRST: list[str] = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]


def validate_time_zone(tz_name: str) -> ZoneInfo:
    """IANA time zone を検証して ZoneInfo を返す。"""
    name = str(tz_name or "").strip()
    if not name:
        raise ValueError("time_zone is required")
    try:
        return ZoneInfo(name)
    except Exception as exc:  # noqa: BLE001
        raise ValueError(f"invalid time_zone: {name}") from exc


def parse_hhmm(value: str) -> tuple[int, int]:
    """HH:MM を (hour, minute) にパースする。"""
    s = str(value or "").strip()
    if not _HHMM_RE.match(s):
        raise ValueError("schedule time must be in HH:MM format")
    hour = int(s[0:2])
    minute = int(s[3:5])
    if not (0 <= hour <= 23):
        raise ValueError("schedule hour must be 00..23")
    if not (0 <= minute <= 59):
        raise ValueError("schedule minute must be 00..59")
    return hour, minute


@dataclass(frozen=True)
class CronTrigger:
    """週1回（weekday）または月1回（day_of_month）の発火指定。"""

    name: str
    kind: PeriodKind
    time_zone: ZoneInfo
    hour: int
    minute: int
    weekday: Optional[int] = None
    day_of_month: Optional[int] = None

    @classmethod
    def parse(cls, name: str, kind: PeriodKind, spec: str, time_zone: str) -> "CronTrigger":
        """
        "<曜日> HH:MM" または "<日> HH:MM" を解釈する。

        日は 1..28 のみ（すべての月に存在する日に限る）。
        """
        tz = validate_time_zone(time_zone)
        parts = str(spec or "").split()
        if len(parts) != 2:
            raise ValueError(f"invalid schedule: {spec!r}")
        day_part, time_part = parts[0].strip().lower(), parts[1]
        hour, minute = parse_hhmm(time_part)

        if kind is PeriodKind.WEEK:
            if day_part not in WEEKDAYS_MON_FIRST:
                raise ValueError(f"invalid weekday: {day_part} (expected one of {WEEKDAYS_MON_FIRST})")
            return cls(name, kind, tz, hour, minute, weekday=WEEKDAYS_MON_FIRST.index(day_part))

        if not day_part.isdigit() or not (1 <= int(day_part) <= 28):
            raise ValueError(f"invalid day of month: {day_part} (expected 1..28)")
        return cls(name, kind, tz, hour, minute, day_of_month=int(day_part))

    def latest_slot(self, now: datetime) -> datetime:
        """now 以前で最も新しい発火時刻（タイムゾーン付き）。"""
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        now_local = now.astimezone(self.time_zone)
        d = now_local.date()

        if self.weekday is not None:
            d = d - timedelta(days=(d.weekday() - self.weekday) % 7)
            cand = datetime(d.year, d.month, d.day, self.hour, self.minute, tzinfo=self.time_zone)
            if cand > now_local:
                d = d - timedelta(days=7)
                cand = datetime(d.year, d.month, d.day, self.hour, self.minute, tzinfo=self.time_zone)
            return cand

        day = int(self.day_of_month or 1)
        cand = datetime(d.year, d.month, day, self.hour, self.minute, tzinfo=self.time_zone)
        if cand > now_local:
            prev = d.replace(day=1) - timedelta(days=1)
            cand = datetime(prev.year, prev.month, day, self.hour, self.minute, tzinfo=self.time_zone)
        return cand


def build_triggers(config: Config) -> list[CronTrigger]:
    return [
        CronTrigger.parse("weekly", PeriodKind.WEEK, config.weekly_schedule, config.schedule_time_zone),
        CronTrigger.parse("monthly", PeriodKind.MONTH, config.monthly_schedule, config.schedule_time_zone),
    ]


class TriggerRunner:
    """tick() のたびに各トリガーの直近枠を確認し、未発火なら scheduler を呼ぶ。"""

    def __init__(self, triggers: list[CronTrigger], scheduler, *, now: Optional[datetime] = None):
        self.triggers = list(triggers)
        self.scheduler = scheduler
        self._lock = threading.Lock()
        start = now or datetime.now(timezone.utc)
        self._last_fired: dict[str, datetime] = {t.name: t.latest_slot(start) for t in self.triggers}

    def tick(self, now: Optional[datetime] = None) -> list:
        """発火した分の ScheduleResult を返す。"""
        now = now or datetime.now(timezone.utc)
        results = []
        with self._lock:
            for trigger in self.triggers:
                slot = trigger.latest_slot(now)
                last = self._last_fired.get(trigger.name)
                if last is not None and slot <= last:
                    continue
                self._last_fired[trigger.name] = slot
                logger.info("trigger fired", extra={"trigger": trigger.name, "slot": slot.isoformat()})
                try:
                    results.append(self.scheduler.schedule(trigger.kind, slot))
                except Exception:  # noqa: BLE001
                    logger.exception("scheduled run failed", extra={"trigger": trigger.name})
        return results
