"""
API プロセス内で tasks テーブルを配送する常駐スレッド

run_worker.py を別に立てない構成向け。
定期トリガーは main.py の repeat_every 側で判定するので、このスレッドは配送のみ。
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Optional

from novelday.dispatcher import Dispatcher, run_forever


logger = logging.getLogger(__name__)

THREAD_NAME = "novelday_internal_dispatcher"


@dataclass
class _Runner:
    thread: threading.Thread
    stop_event: threading.Event = field(default_factory=threading.Event)


_guard = threading.Lock()
_runner: Optional[_Runner] = None


def is_alive() -> bool:
    runner = _runner
    return runner is not None and runner.thread.is_alive()


def start(*, dispatcher: Dispatcher, max_tasks_per_tick: int = 10) -> None:
    """配送スレッドを起動する（動作中なら何もしない）。"""
    global _runner
    with _guard:
        if is_alive():
            return
        stop_event = threading.Event()
        thread = threading.Thread(
            target=run_forever,
            name=THREAD_NAME,
            daemon=True,
            kwargs=dict(
                dispatcher=dispatcher,
                trigger_runner=None,
                max_tasks_per_tick=max_tasks_per_tick,
                stop_event=stop_event,
            ),
        )
        _runner = _Runner(thread=thread, stop_event=stop_event)
        thread.start()
    logger.debug("internal dispatcher thread started", extra={"thread_name": THREAD_NAME})


def stop(*, timeout_seconds: float = 5.0) -> None:
    """停止を要求し、timeout_seconds まで終了を待つ。"""
    global _runner
    with _guard:
        runner, _runner = _runner, None
    if runner is None:
        return
    runner.stop_event.set()
    runner.thread.join(timeout_seconds)
    if runner.thread.is_alive():
        logger.warning("internal dispatcher did not stop in time", extra={"timeout_seconds": timeout_seconds})
