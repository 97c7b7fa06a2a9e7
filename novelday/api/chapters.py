"""/chapters エンドポイント。"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from novelday import schemas
from novelday.deps import Services, get_services
from novelday.generation import EmptyEntriesError


router = APIRouter()


@router.post("/chapters/preview", response_model=schemas.ChapterPreviewResponse)
def preview_chapter(
    request: schemas.ChapterPreviewRequest,
    services: Services = Depends(get_services),
) -> schemas.ChapterPreviewResponse:
    """entries から章を1回だけ生成して返す（保存しない）。"""
    entries = [e.to_source_entry() for e in request.entries]
    try:
        chapter = services.engine.generate(entries, request.persona.to_persona(), request.kind)
    except EmptyEntriesError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return schemas.ChapterPreviewResponse(title=chapter.title, body=chapter.body)
