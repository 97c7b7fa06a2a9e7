"""/tasks エンドポイント（キューからの Worker 呼び出し）。"""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from novelday.deps import Services, get_services
from novelday.enums import ChapterType
from novelday.schemas import TaskErrorResponse, TaskStatusResponse


router = APIRouter()

_TASK_RESPONSES = {
    400: {"model": TaskErrorResponse, "description": "payload が不正"},
    500: {"model": TaskErrorResponse, "description": "内部失敗（キュー側で再試行）"},
}


async def _run_worker(kind: ChapterType, request: Request, services: Services) -> JSONResponse:
    raw = await request.body()
    # Worker はブロッキングI/O（DB/LLM）なのでスレッドで回す
    result = await asyncio.to_thread(services.worker.handle, kind, raw)
    model = TaskStatusResponse if result.status_code < 400 else TaskErrorResponse
    content = model.model_validate(result.body).model_dump(exclude_none=True)
    return JSONResponse(status_code=result.status_code, content=content)


@router.post("/tasks/weekly", response_model=TaskStatusResponse, responses=_TASK_RESPONSES)
async def weekly_task(request: Request, services: Services = Depends(get_services)) -> JSONResponse:
    """週まとめ章を1ユーザー分生成する。"""
    return await _run_worker(ChapterType.WEEKLY, request, services)


@router.post("/tasks/monthly", response_model=TaskStatusResponse, responses=_TASK_RESPONSES)
async def monthly_task(request: Request, services: Services = Depends(get_services)) -> JSONResponse:
    """月まとめ章を1ユーザー分生成する。"""
    return await _run_worker(ChapterType.MONTHLY, request, services)
