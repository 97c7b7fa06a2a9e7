"""Tests for the generation engine (one completion call per chapter)."""

import json

import pytest

from novelday.config import ModelSettings
from novelday.enums import PeriodKind
from novelday.generation import EmptyEntriesError, GenerationEngine
from novelday.records import GeneratedChapter, Persona, SourceEntry

from conftest import FakeLlmClient


SETTINGS = {
    PeriodKind.WEEK: ModelSettings("weekly-model", 0.8, 2000),
    PeriodKind.MONTH: ModelSettings("monthly-model", 0.7, 4000),
}


def _entries(n=3, style="C"):
    return [SourceEntry(created_at=None, memo=f"m{i}", body=f"b{i}", style=style, date_key=f"2024-05-{i + 1:02d}") for i in range(n)]


def test_empty_entries_raise_validation_error():
    llm = FakeLlmClient()
    engine = GenerationEngine(llm, SETTINGS)
    with pytest.raises(EmptyEntriesError):
        engine.generate([], Persona(), PeriodKind.WEEK)
    assert llm.calls == []


def test_empty_entries_error_is_a_value_error():
    assert issubclass(EmptyEntriesError, ValueError)


@pytest.mark.parametrize("kind", list(PeriodKind))
def test_single_json_mode_call_with_period_settings(kind):
    llm = FakeLlmClient(response=json.dumps({"title": "t", "body": "b"}))
    engine = GenerationEngine(llm, SETTINGS)

    chapter = engine.generate(_entries(), Persona(), kind)

    assert chapter == GeneratedChapter(title="t", body="b")
    assert len(llm.calls) == 1
    call = llm.calls[0]
    assert call["model"] == SETTINGS[kind].model
    assert call["temperature"] == SETTINGS[kind].temperature
    assert call["max_tokens"] == SETTINGS[kind].max_tokens
    assert call["json_mode"] is True
    # 文体 C は dramatic
    assert "どこか切ない" in call["system_prompt"]


def test_completion_failure_propagates_without_retry():
    llm = FakeLlmClient(error=RuntimeError("upstream down"))
    engine = GenerationEngine(llm, SETTINGS)
    with pytest.raises(RuntimeError, match="upstream down"):
        engine.generate(_entries(), Persona(), PeriodKind.MONTH)
    assert len(llm.calls) == 1


def test_unparseable_output_is_recovered_by_extractor():
    llm = FakeLlmClient(response="モデルが地の文だけを返した。")
    engine = GenerationEngine(llm, SETTINGS)
    chapter = engine.generate(_entries(), Persona(), PeriodKind.MONTH)
    assert chapter.title == "今月の物語"
    assert chapter.body == "モデルが地の文だけを返した。"
