"""Tests for cron-like trigger slots and the trigger runner."""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from novelday.enums import PeriodKind
from novelday.triggers import CronTrigger, TriggerRunner, build_triggers


TOKYO = ZoneInfo("Asia/Tokyo")


class _RecordingScheduler:
    def __init__(self):
        self.calls = []

    def schedule(self, kind, now):
        self.calls.append((kind, now))
        return (kind, now)


class TestCronTrigger:
    def test_parse_weekly_and_monthly(self):
        weekly = CronTrigger.parse("weekly", PeriodKind.WEEK, "mon 01:00", "Asia/Tokyo")
        assert (weekly.weekday, weekly.hour, weekly.minute) == (0, 1, 0)

        monthly = CronTrigger.parse("monthly", PeriodKind.MONTH, "1 03:00", "Asia/Tokyo")
        assert (monthly.day_of_month, monthly.hour, monthly.minute) == (1, 3, 0)

    @pytest.mark.parametrize(
        "kind, spec, tz",
        [
            (PeriodKind.WEEK, "monday 01:00", "Asia/Tokyo"),
            (PeriodKind.WEEK, "mon 1:00", "Asia/Tokyo"),
            (PeriodKind.WEEK, "mon 24:00", "Asia/Tokyo"),
            (PeriodKind.MONTH, "31 03:00", "Asia/Tokyo"),
            (PeriodKind.MONTH, "1 03:00", "Nowhere/Invalid"),
            (PeriodKind.MONTH, "03:00", "Asia/Tokyo"),
        ],
    )
    def test_invalid_specs(self, kind, spec, tz):
        with pytest.raises(ValueError):
            CronTrigger.parse("t", kind, spec, tz)

    def test_weekly_latest_slot(self):
        trigger = CronTrigger.parse("weekly", PeriodKind.WEEK, "mon 01:00", "Asia/Tokyo")

        # 月曜 01:00 ちょうどはその枠
        assert trigger.latest_slot(datetime(2024, 5, 13, 1, 0, tzinfo=TOKYO)) == datetime(2024, 5, 13, 1, 0, tzinfo=TOKYO)
        # 月曜 00:59 は前週の枠
        assert trigger.latest_slot(datetime(2024, 5, 13, 0, 59, tzinfo=TOKYO)) == datetime(2024, 5, 6, 1, 0, tzinfo=TOKYO)
        # UTC で日曜の夕方 = 東京の月曜早朝
        assert trigger.latest_slot(datetime(2024, 5, 12, 16, 30, tzinfo=timezone.utc)) == datetime(
            2024, 5, 13, 1, 0, tzinfo=TOKYO
        )

    def test_monthly_latest_slot_rolls_back_over_year(self):
        trigger = CronTrigger.parse("monthly", PeriodKind.MONTH, "1 03:00", "Asia/Tokyo")
        assert trigger.latest_slot(datetime(2024, 1, 1, 2, 0, tzinfo=TOKYO)) == datetime(2023, 12, 1, 3, 0, tzinfo=TOKYO)
        assert trigger.latest_slot(datetime(2024, 1, 20, tzinfo=TOKYO)) == datetime(2024, 1, 1, 3, 0, tzinfo=TOKYO)


class TestTriggerRunner:
    def test_slots_seen_at_startup_do_not_fire(self, config):
        scheduler = _RecordingScheduler()
        runner = TriggerRunner(build_triggers(config), scheduler, now=datetime(2024, 5, 13, 2, 0, tzinfo=TOKYO))

        assert runner.tick(datetime(2024, 5, 13, 2, 1, tzinfo=TOKYO)) == []
        assert scheduler.calls == []

    def test_fires_once_per_slot(self, config):
        scheduler = _RecordingScheduler()
        runner = TriggerRunner(build_triggers(config), scheduler, now=datetime(2024, 5, 12, 23, 0, tzinfo=TOKYO))

        runner.tick(datetime(2024, 5, 13, 1, 0, 30, tzinfo=TOKYO))
        runner.tick(datetime(2024, 5, 13, 1, 1, tzinfo=TOKYO))

        assert scheduler.calls == [(PeriodKind.WEEK, datetime(2024, 5, 13, 1, 0, tzinfo=TOKYO))]

    def test_monthly_fires_on_first_day(self, config):
        scheduler = _RecordingScheduler()
        runner = TriggerRunner(build_triggers(config), scheduler, now=datetime(2024, 5, 31, 12, 0, tzinfo=TOKYO))

        runner.tick(datetime(2024, 6, 1, 3, 5, tzinfo=TOKYO))

        assert scheduler.calls == [(PeriodKind.MONTH, datetime(2024, 6, 1, 3, 0, tzinfo=TOKYO))]

    def test_scheduler_error_does_not_stop_other_triggers(self, config):
        class _Failing(_RecordingScheduler):
            def schedule(self, kind, now):
                super().schedule(kind, now)
                if kind is PeriodKind.WEEK:
                    raise RuntimeError("boom")
                return kind

        scheduler = _Failing()
        # 2024-07-01 は月曜日かつ1日
        runner = TriggerRunner(build_triggers(config), scheduler, now=datetime(2024, 6, 30, 12, 0, tzinfo=TOKYO))

        results = runner.tick(datetime(2024, 7, 1, 4, 0, tzinfo=TOKYO))

        assert [kind for kind, _ in scheduler.calls] == [PeriodKind.WEEK, PeriodKind.MONTH]
        assert results == [PeriodKind.MONTH]
