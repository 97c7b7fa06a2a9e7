"""Tests for the task scheduler (one queued task per eligible user)."""

import json
from datetime import datetime

from novelday.calendar_window import JST
from novelday.datastore import Datastore
from novelday.db import init_db
from novelday.enums import PeriodKind, TaskStatus
from novelday.scheduler import TaskScheduler
from novelday.task_queue import EnqueueError, TaskQueue


NOW = datetime(2024, 5, 13, 1, 0, tzinfo=JST)


def _build(config):
    session_factory = init_db(config.db_url)
    datastore = Datastore(session_factory)
    task_queue = TaskQueue(session_factory)
    return datastore, task_queue, TaskScheduler(config=config, datastore=datastore, task_queue=task_queue)


def _claim_all(task_queue):
    claimed = []
    while True:
        task = task_queue.claim_next(now_ts=2**31 - 1)
        if task is None:
            return claimed
        claimed.append(task)


def test_enqueues_one_weekly_task_per_eligible_user(config):
    datastore, task_queue, scheduler = _build(config)
    datastore.add_profile("u-1", is_premium=True, auto_weekly_novel=True)
    datastore.add_profile("u-2", is_premium=True, auto_weekly_novel=True)
    datastore.add_profile("u-3", is_premium=False, auto_weekly_novel=True)

    result = scheduler.schedule(PeriodKind.WEEK, NOW)

    assert result.eligible == 2
    assert sorted(result.enqueued) == ["u-1", "u-2"]
    assert result.failed == []

    tasks = _claim_all(task_queue)
    assert len(tasks) == 2
    assert {t.url for t in tasks} == {"http://testserver/api/tasks/weekly"}
    assert {t.queue_name for t in tasks} == {"novelday-weekly-novel"}
    body = json.loads(tasks[0].body)
    assert body["kind"] == "weekly"
    assert body["period"] == {"start_key": "2024-05-06", "end_key": "2024-05-13", "period_key": "2024-05-06"}
    assert body["period_meta"] == {"label": "2024年5月 第2週", "week_of_month": 2}


def test_monthly_payload_has_no_week_of_month(config):
    datastore, task_queue, scheduler = _build(config)
    datastore.add_profile("u-1", is_premium=True, auto_monthly_novel=True)

    scheduler.schedule(PeriodKind.MONTH, datetime(2024, 6, 1, 3, 0, tzinfo=JST))

    (task,) = _claim_all(task_queue)
    body = json.loads(task.body)
    assert task.url == "http://testserver/api/tasks/monthly"
    assert body["kind"] == "monthly"
    assert body["period"]["period_key"] == "2024-05-01"
    assert body["period_meta"] == {"label": "2024年5月"}


def test_no_eligible_users_enqueues_nothing(config):
    _, task_queue, scheduler = _build(config)
    result = scheduler.schedule(PeriodKind.WEEK, NOW)
    assert result.skipped_reason == "no_eligible_users"
    assert task_queue.count_by_status(TaskStatus.QUEUED) == 0


def test_missing_worker_base_url_enqueues_nothing(make_config):
    config = make_config(worker_base_url="")
    datastore, task_queue, scheduler = _build(config)
    datastore.add_profile("u-1", is_premium=True, auto_weekly_novel=True)

    result = scheduler.schedule(PeriodKind.WEEK, NOW)

    assert result.skipped_reason == "missing_worker_base_url"
    assert task_queue.count_by_status(TaskStatus.QUEUED) == 0


def test_running_twice_enqueues_twice(config):
    datastore, task_queue, scheduler = _build(config)
    datastore.add_profile("u-1", is_premium=True, auto_weekly_novel=True)

    scheduler.schedule(PeriodKind.WEEK, NOW)
    scheduler.schedule(PeriodKind.WEEK, NOW)

    assert task_queue.count_by_status(TaskStatus.QUEUED) == 2


class _FlakyQueue(TaskQueue):
    def enqueue(self, address, payload, *, now_ts=None):
        if payload["user_id"] == "u-bad":
            raise EnqueueError("queue unavailable")
        return super().enqueue(address, payload, now_ts=now_ts)


def test_enqueue_failure_is_isolated_per_user(config):
    session_factory = init_db(config.db_url)
    datastore = Datastore(session_factory)
    task_queue = _FlakyQueue(session_factory)
    scheduler = TaskScheduler(config=config, datastore=datastore, task_queue=task_queue)
    for uid in ("u-a", "u-bad", "u-z"):
        datastore.add_profile(uid, is_premium=True, auto_weekly_novel=True)

    result = scheduler.schedule(PeriodKind.WEEK, NOW)

    assert sorted(result.enqueued) == ["u-a", "u-z"]
    assert result.failed == ["u-bad"]
    assert task_queue.count_by_status(TaskStatus.QUEUED) == 2
