"""Tests for the durable task queue and the HTTP dispatcher."""

import json

import httpx
import pytest

from novelday.db import init_db
from novelday.dispatcher import Dispatcher
from novelday.enums import TaskStatus
from novelday.task_queue import TaskAddress, TaskQueue, backoff_seconds


ADDRESS = TaskAddress(queue_name="novelday-weekly-novel", url="http://worker.local/api/tasks/weekly")
PAYLOAD = {"user_id": "u-1", "kind": "weekly", "period": {"start_key": "2024-05-06"}}


@pytest.fixture
def task_queue(tmp_path):
    return TaskQueue(init_db(f"sqlite:///{tmp_path / 'queue.db'}"))


def _dispatcher(task_queue, handler, max_tries=3):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return Dispatcher(task_queue=task_queue, http_client=client, token="tok", timeout_seconds=30, max_tries=max_tries)


class TestTaskQueue:
    def test_enqueue_and_claim_decodes_body(self, task_queue):
        task_id = task_queue.enqueue(ADDRESS, PAYLOAD, now_ts=1000)

        claimed = task_queue.claim_next(now_ts=1000)
        assert claimed.id == task_id
        assert claimed.http_method == "POST"
        assert claimed.url == ADDRESS.url
        assert claimed.headers["Content-Type"] == "application/json"
        assert json.loads(claimed.body) == PAYLOAD
        assert task_queue.get_status(task_id) is TaskStatus.RUNNING

        # RUNNING は再度 claim されない
        assert task_queue.claim_next(now_ts=1000) is None

    def test_not_claimed_before_run_after(self, task_queue):
        task_queue.enqueue(ADDRESS, PAYLOAD, now_ts=1000)
        assert task_queue.claim_next(now_ts=999) is None

    def test_retry_backoff_then_failed(self, task_queue):
        task_id = task_queue.enqueue(ADDRESS, PAYLOAD, now_ts=1000)
        task_queue.claim_next(now_ts=1000)

        assert task_queue.mark_retry(task_id, now_ts=1000, error="boom", max_tries=2) is TaskStatus.QUEUED
        assert task_queue.claim_next(now_ts=1000 + backoff_seconds(1) - 1) is None
        assert task_queue.claim_next(now_ts=1000 + backoff_seconds(1)) is not None

        assert task_queue.mark_retry(task_id, now_ts=2000, error="boom", max_tries=2) is TaskStatus.FAILED

    def test_reclaim_stale_running_tasks(self, task_queue):
        task_id = task_queue.enqueue(ADDRESS, PAYLOAD, now_ts=1000)
        task_queue.claim_next(now_ts=1000)

        assert task_queue.reclaim_stale(now_ts=1100, older_than_seconds=300) == 0
        assert task_queue.reclaim_stale(now_ts=1400, older_than_seconds=300) == 1
        assert task_queue.get_status(task_id) is TaskStatus.QUEUED

    def test_backoff_bounds(self):
        assert backoff_seconds(0) == 5
        assert backoff_seconds(3) == 8
        assert backoff_seconds(20) == 3600


class TestDispatcher:
    def test_success_marks_done_and_sends_bearer_token(self, task_queue):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"status": "ok"})

        task_id = task_queue.enqueue(ADDRESS, PAYLOAD)
        assert _dispatcher(task_queue, handler).process_due_tasks() == 1
        assert task_queue.get_status(task_id) is TaskStatus.DONE
        assert seen == {"auth": "Bearer tok", "body": PAYLOAD}

    def test_client_error_is_terminal(self, task_queue):
        task_id = task_queue.enqueue(ADDRESS, PAYLOAD)
        _dispatcher(task_queue, lambda request: httpx.Response(400, json={"error": "invalid payload"})).process_due_tasks()
        assert task_queue.get_status(task_id) is TaskStatus.FAILED

    @pytest.mark.parametrize("status_code", [429, 500, 503])
    def test_server_error_is_retried(self, task_queue, status_code):
        task_id = task_queue.enqueue(ADDRESS, PAYLOAD)
        _dispatcher(task_queue, lambda request: httpx.Response(status_code)).process_due_tasks()
        assert task_queue.get_status(task_id) is TaskStatus.QUEUED

    def test_transport_error_is_retried(self, task_queue):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        task_id = task_queue.enqueue(ADDRESS, PAYLOAD)
        assert _dispatcher(task_queue, handler).process_due_tasks() == 0
        assert task_queue.get_status(task_id) is TaskStatus.QUEUED
