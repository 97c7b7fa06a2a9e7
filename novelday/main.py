"""FastAPI エントリポイント。"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from fastapi_utils.tasks import repeat_every

from novelday.api import chapters, tasks
from novelday.config import Config, load_config
from novelday.deps import Services, build_services
from novelday.logging_config import setup_logging, suppress_uvicorn_access_log_paths


security = HTTPBearer()
logger = logging.getLogger(__name__)

TRIGGER_TICK_SECONDS = 60


def verify_token(request: Request, credentials: HTTPAuthorizationCredentials = Depends(security)) -> str:
    """Bearerトークンを検証し、OKならトークン文字列を返す。"""
    token = request.app.state.services.config.token
    if credentials.credentials != token:
        logger.warning("Authentication failed: invalid token")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid authentication token")
    return credentials.credentials


def create_app(config: Optional[Config] = None, services: Optional[Services] = None) -> FastAPI:
    """アプリ生成と初期化（設定→ログ→依存オブジェクト→ルータ登録）をまとめて行う。"""
    # 1. TOML設定読み込み
    if config is None:
        config = services.config if services is not None else load_config()
    setup_logging(
        config.log_level,
        log_file_enabled=config.log_file_enabled,
        log_file_path=config.log_file_path,
    )
    suppress_uvicorn_access_log_paths("/api/health")

    # 2. DB・LLM・キューなどの依存オブジェクト
    if services is None:
        services = build_services(config)

    # 3. FastAPIアプリ作成
    app = FastAPI(title="novelday API")
    app.state.services = services

    app.include_router(tasks.router, dependencies=[Depends(verify_token)], prefix="/api")
    app.include_router(chapters.router, dependencies=[Depends(verify_token)], prefix="/api")

    @app.get("/api/health")
    async def health():
        """稼働確認用のヘルスチェック。"""
        return {"status": "healthy"}

    if config.triggers_enabled:

        @app.on_event("startup")
        @repeat_every(seconds=TRIGGER_TICK_SECONDS, wait_first=True)
        async def tick_triggers() -> None:
            """定期トリガーの判定（発火枠に入っていればタスクを積む）。"""
            try:
                await asyncio.to_thread(services.trigger_runner.tick)
            except Exception:  # noqa: BLE001
                logger.exception("trigger tick failed")

    if config.internal_dispatcher_enabled:

        @app.on_event("startup")
        async def start_internal_dispatcher() -> None:
            """同一プロセス内のDispatcherスレッドを起動（tasksテーブルを配送）。"""
            from novelday import internal_dispatcher

            internal_dispatcher.start(dispatcher=services.dispatcher)
            logger.info("internal dispatcher started")

        @app.on_event("shutdown")
        async def stop_internal_dispatcher() -> None:
            """同一プロセス内Dispatcherスレッドを停止。"""
            from novelday import internal_dispatcher

            await asyncio.to_thread(internal_dispatcher.stop, timeout_seconds=5.0)

    return app
