"""
LLM送受信のデバッグ出力

llm_log_level が DEBUG のときだけ、送受信の中身を整形してログに出す。
- api_key / Authorization は出さない（Bearer を含む文字列も伏せる）
- 日記ログはプロンプトに丸ごと入るので、文字列の値は先頭と末尾だけ残す
"""

from __future__ import annotations

import json
import re
from dataclasses import asdict, is_dataclass
from typing import Any


LLM_LOG_LEVELS = ("DEBUG", "INFO", "OFF")

# ログに出さないキー
_DROP_KEYS = {"api_key", "authorization"}

# 値だけ伏せるキー
_MASK_KEYS = {"token", "access_token", "refresh_token", "x-api-key"}

_BEARER_RE = re.compile(r"\bBearer\s+\S+", re.IGNORECASE)

_MAX_DEPTH = 12


def normalize_llm_log_level(llm_log_level: str | None) -> str:
    """DEBUG / INFO / OFF のいずれかに正規化する（不明なら INFO）。"""
    level = (llm_log_level or "INFO").upper()
    return level if level in LLM_LOG_LEVELS else "INFO"


def _plain(obj: Any) -> Any:
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if is_dataclass(obj) and not isinstance(obj, type):
        return asdict(obj)
    if isinstance(obj, (bytes, bytearray)):
        return obj.decode("utf-8", errors="replace")
    return obj


def _shorten(text: str, keep: int) -> str:
    if keep <= 0 or len(text) <= keep * 2:
        return text
    return f"{text[:keep]}...(Cut, {len(text)})...{text[-keep:]}"


def redact_secrets(obj: Any, *, keep_chars: int = 0, depth: int = _MAX_DEPTH) -> Any:
    """秘匿情報を落とし/伏せ、長い文字列を短くした JSON 相当の値を返す。"""
    if depth <= 0:
        return "..."
    obj = _plain(obj)
    if isinstance(obj, dict):
        out: dict[str, Any] = {}
        for k, v in obj.items():
            key = str(k)
            lk = key.lower()
            if lk in _DROP_KEYS:
                continue
            out[key] = "***" if lk in _MASK_KEYS else redact_secrets(v, keep_chars=keep_chars, depth=depth - 1)
        return out
    if isinstance(obj, (list, tuple)):
        return [redact_secrets(v, keep_chars=keep_chars, depth=depth - 1) for v in obj]
    if isinstance(obj, str):
        if _BEARER_RE.search(obj):
            return "(authorization omitted)"
        return _shorten(obj, keep_chars)
    if obj is None or isinstance(obj, (int, float, bool)):
        return obj
    return str(obj)


def format_debug_payload(payload: Any, *, max_chars: int = 8000, keep_chars: int = 0) -> str:
    """payload を整形した文字列にする（全体も max_chars で切る）。"""
    cleaned = redact_secrets(payload, keep_chars=keep_chars)
    if isinstance(cleaned, (dict, list)):
        text = json.dumps(cleaned, ensure_ascii=False, indent=2, sort_keys=True)
    else:
        text = str(cleaned)
    if max_chars <= 0:
        return ""
    return text if len(text) <= max_chars else text[:max_chars] + "...(Cut)"


def log_llm_payload(
    logger: Any,
    label: str,
    payload: Any,
    *,
    llm_log_level: str = "INFO",
    max_chars: int = 8000,
    keep_chars: int = 0,
) -> None:
    """DEBUG のときだけ送受信 payload を出す。"""
    if logger is None or normalize_llm_log_level(llm_log_level) != "DEBUG":
        return
    logger.debug("%s: %s", label, format_debug_payload(payload, max_chars=max_chars, keep_chars=keep_chars))
