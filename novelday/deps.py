"""依存オブジェクトの生成。"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import Request
from sqlalchemy.orm import sessionmaker

from novelday.config import Config
from novelday.datastore import Datastore
from novelday.db import init_db
from novelday.dispatcher import Dispatcher
from novelday.enums import PeriodKind
from novelday.generation import GenerationEngine
from novelday.llm_client import LlmClient
from novelday.scheduler import TaskScheduler
from novelday.task_queue import TaskQueue
from novelday.task_worker import ChapterWorker
from novelday.triggers import TriggerRunner, build_triggers


@dataclass
class Services:
    """起動時に組み立てる依存オブジェクト一式（プロセス全体で共有する読み取り専用ハンドル）。"""

    config: Config
    session_factory: sessionmaker
    datastore: Datastore
    task_queue: TaskQueue
    engine: GenerationEngine
    scheduler: TaskScheduler
    worker: ChapterWorker
    trigger_runner: TriggerRunner
    dispatcher: Dispatcher


def build_llm_client(config: Config) -> LlmClient:
    """ConfigからLlmClientを生成。"""
    return LlmClient(
        api_key=config.llm_api_key,
        base_url=config.llm_base_url,
        timeout_seconds=config.llm_timeout_seconds,
        llm_log_level=config.llm_log_level,
    )


def build_engine(config: Config, llm_client: LlmClient) -> GenerationEngine:
    return GenerationEngine(
        llm_client,
        {kind: config.model_settings(kind) for kind in PeriodKind},
    )


def build_services(
    config: Config,
    *,
    llm_client: Optional[LlmClient] = None,
    http_client: Optional[httpx.Client] = None,
) -> Services:
    """Configから依存オブジェクトを組み立てる（llm_client / http_client は差し替え可能）。"""
    session_factory = init_db(config.db_url)
    datastore = Datastore(session_factory)
    task_queue = TaskQueue(session_factory)
    engine = build_engine(config, llm_client or build_llm_client(config))
    scheduler = TaskScheduler(config=config, datastore=datastore, task_queue=task_queue)
    worker = ChapterWorker(datastore=datastore, engine=engine)
    trigger_runner = TriggerRunner(build_triggers(config), scheduler)

    dispatcher = Dispatcher(
        task_queue=task_queue,
        http_client=http_client or httpx.Client(timeout=float(config.dispatch_timeout_seconds)),
        token=config.token,
        timeout_seconds=float(config.dispatch_timeout_seconds),
        max_tries=int(config.dispatch_max_tries),
    )

    return Services(
        config=config,
        session_factory=session_factory,
        datastore=datastore,
        task_queue=task_queue,
        engine=engine,
        scheduler=scheduler,
        worker=worker,
        trigger_runner=trigger_runner,
        dispatcher=dispatcher,
    )


def get_services(request: Request) -> Services:
    """FastAPI依存性注入用。"""
    return request.app.state.services
