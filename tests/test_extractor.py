"""Tests for recovering {title, body} from model output."""

import json
import logging

import pytest

from novelday.enums import PeriodKind
from novelday.extractor import DEFAULT_TITLES, PREVIEW_CHARS, extract_chapter
from novelday.records import GeneratedChapter


@pytest.mark.parametrize(
    "title, body",
    [
        ("雨の週", "駅まで歩いた。\nコーヒーがあたたかかった。"),
        (" 前後に空白 ", "  本文  "),
        ("記号 {} \" \\", "改行\n\nタブ\t"),
        ("", "本文"),
        ("  ", "本文"),
    ],
)
def test_json_round_trip(title, body):
    raw = json.dumps({"title": title, "body": body}, ensure_ascii=False)
    assert extract_chapter(raw, PeriodKind.WEEK) == GeneratedChapter(title=title, body=body)


def test_embedded_object_is_recovered():
    raw = 'はい、どうぞ。\n{"title": "月の章", "body": "静かな夜だった。"}\n以上です。'
    assert extract_chapter(raw, PeriodKind.MONTH) == GeneratedChapter(title="月の章", body="静かな夜だった。")


def test_embedded_object_with_raw_newlines_is_repaired():
    raw = '```json\n{"title": "章", "body": "一行目\n二行目",}\n```'
    chapter = extract_chapter(raw, PeriodKind.WEEK)
    assert chapter.title == "章"
    assert chapter.body == "一行目\n二行目"


def test_plain_text_becomes_body_with_default_title():
    raw = "  ただの文章です。\nJSONではありません。  "
    chapter = extract_chapter(raw, PeriodKind.MONTH)
    assert chapter.title == DEFAULT_TITLES[PeriodKind.MONTH]
    assert chapter.body == "ただの文章です。\nJSONではありません。"


def test_missing_title_uses_default():
    chapter = extract_chapter('{"body": "本文"}', PeriodKind.WEEK)
    assert chapter == GeneratedChapter(title=DEFAULT_TITLES[PeriodKind.WEEK], body="本文")


def test_non_object_json_falls_back_to_text():
    chapter = extract_chapter('["a", "b"]', PeriodKind.WEEK)
    assert chapter.title == DEFAULT_TITLES[PeriodKind.WEEK]
    assert chapter.body == '["a", "b"]'


def test_none_and_empty_never_raise():
    assert extract_chapter(None, PeriodKind.WEEK) == GeneratedChapter(title=DEFAULT_TITLES[PeriodKind.WEEK], body="")
    assert extract_chapter("", PeriodKind.MONTH).body == ""


def test_deeply_nested_output_falls_back_to_text():
    raw = "[" * 200000 + "]" * 200000
    chapter = extract_chapter(raw, PeriodKind.WEEK)
    assert chapter.title == DEFAULT_TITLES[PeriodKind.WEEK]
    assert chapter.body == raw


def test_null_title_uses_default():
    chapter = extract_chapter('{"title": null, "body": "本文"}', PeriodKind.MONTH)
    assert chapter == GeneratedChapter(title=DEFAULT_TITLES[PeriodKind.MONTH], body="本文")


def test_failed_stages_log_bounded_preview(caplog):
    raw = "x" * 1000
    with caplog.at_level(logging.WARNING, logger="novelday.extractor"):
        extract_chapter(raw, PeriodKind.WEEK)
    assert caplog.records
    for record in caplog.records:
        assert "x" * (PREVIEW_CHARS + 1) not in record.getMessage()
