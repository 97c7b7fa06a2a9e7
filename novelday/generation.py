"""
章生成エンジン

entries + persona から週/月まとめ章の {title, body} を生成する。
文体推定 → プロンプト組み立て → completion 1回 → 応答抽出 の順に処理する。
リトライも保存もしない（失敗はそのまま呼び出し側へ伝播する）。
"""

from __future__ import annotations

import logging
from typing import Sequence

from novelday.config import ModelSettings
from novelday.enums import PeriodKind
from novelday.extractor import extract_chapter
from novelday.llm_client import LlmClient
from novelday.prompts import compose_chapter_prompt
from novelday.records import GeneratedChapter, Persona, SourceEntry
from novelday.style import infer_dominant_style


logger = logging.getLogger(__name__)


class EmptyEntriesError(ValueError):
    """entries が空のまま生成しようとした。"""


class GenerationEngine:
    """週/月共通の章生成。期間種別でモデル設定と文面を切り替える。"""

    def __init__(self, llm_client: LlmClient, model_settings: dict[PeriodKind, ModelSettings]):
        self.llm_client = llm_client
        self.model_settings = model_settings

    def generate(self, entries: Sequence[SourceEntry], persona: Persona, kind: PeriodKind) -> GeneratedChapter:
        if not entries:
            raise EmptyEntriesError("entries is required and must be non-empty")

        style = infer_dominant_style(entries)
        prompt = compose_chapter_prompt(entries, persona, style, kind)
        settings = self.model_settings[kind]
        logger.info(
            "chapter generation start",
            extra={"kind": kind.value, "entries": len(entries), "voice": prompt.voice, "model": settings.model},
        )

        raw = self.llm_client.complete(
            system_prompt=prompt.system_prompt,
            user_text=prompt.user_prompt,
            model=settings.model,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
            json_mode=True,
        )
        return extract_chapter(raw, kind)
