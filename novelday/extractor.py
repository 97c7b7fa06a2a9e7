"""
LLM応答から {title, body} を取り出す

モデルの出力は「ほぼJSON」であることが多いので、次の順で試す。
1. 全体を JSON オブジェクトとしてパース
2. 最初の { から最後の } までを抜き出してパース（失敗したら軽く修復して再パース）
3. 生テキスト全体を body とし、title は既定値

どの段階で失敗しても例外は外に出さず、必ず GeneratedChapter を返す。
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

from novelday.enums import PeriodKind
from novelday.records import GeneratedChapter


logger = logging.getLogger(__name__)

DEFAULT_TITLES: dict[PeriodKind, str] = {
    PeriodKind.WEEK: "第○週 まとめ章",
    PeriodKind.MONTH: "今月の物語",
}

# ログに残す生テキストの最大文字数
PREVIEW_CHARS = 300

_GREEDY_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def _preview(text: str) -> str:
    return text[:PREVIEW_CHARS]


def _escape_control_chars_in_json_strings(text: str) -> str:
    """
    JSON文字列内に混入した生の改行/タブ等をエスケープする。
    本文に改行を含む章では、モデルがそのまま改行を出してしまうことがある。
    """
    out: list[str] = []
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            if escaped:
                out.append(ch)
                escaped = False
                continue
            if ch == "\\":
                out.append(ch)
                escaped = True
                continue
            if ch == '"':
                out.append(ch)
                in_string = False
                continue
            if ch == "\n":
                out.append("\\n")
                continue
            if ch == "\r":
                out.append("\\r")
                continue
            if ch == "\t":
                out.append("\\t")
                continue
            out.append(ch)
            continue

        if ch == '"':
            in_string = True
        out.append(ch)
    return "".join(out)


def _repair_json_like_text(text: str) -> str:
    """制御文字のエスケープと末尾カンマの除去だけを行う。"""
    s = _escape_control_chars_in_json_strings(text.strip())
    return re.sub(r",\s*([}\]])", r"\1", s)


def _loads_object(text: str) -> Optional[dict]:
    """JSON オブジェクトとしてパースできれば dict を返す（それ以外は None）。"""
    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, ValueError, RecursionError):
        # 入れ子が深すぎる出力は RecursionError になる
        return None
    return parsed if isinstance(parsed, dict) else None


def _to_chapter(parsed: dict, default_title: str) -> GeneratedChapter:
    title: Any = parsed.get("title")
    body: Any = parsed.get("body")
    # 既定タイトルはキーが無いか null のときだけ（空文字はそのまま返す）
    if title is None:
        title = default_title
    return GeneratedChapter(
        title=title if isinstance(title, str) else str(title),
        body=body if isinstance(body, str) else ("" if body is None else str(body)),
    )


def extract_chapter(raw: Optional[str], kind: PeriodKind) -> GeneratedChapter:
    """モデルの生出力から {title, body} を復元する。"""
    default_title = DEFAULT_TITLES[kind]
    text = raw if isinstance(raw, str) else ("" if raw is None else str(raw))

    # 1. 全体をそのままパース
    parsed = _loads_object(text)
    if parsed is not None:
        return _to_chapter(parsed, default_title)
    logger.warning("chapter JSON parse failed (whole text) preview=%r", _preview(text))

    # 2. 最初の { から最後の } まで
    m = _GREEDY_OBJECT_RE.search(text)
    if m is not None:
        candidate = m.group(0)
        parsed = _loads_object(candidate)
        if parsed is None:
            parsed = _loads_object(_repair_json_like_text(candidate))
        if parsed is not None:
            return _to_chapter(parsed, default_title)
        logger.warning("chapter JSON parse failed (embedded object) preview=%r", _preview(candidate))
    else:
        logger.warning("chapter JSON-like block not found preview=%r", _preview(text))

    # 3. 生テキストを本文として扱う
    return GeneratedChapter(title=default_title, body=text.strip())
