"""novelday.llm_client

LiteLLM ラッパー。

章生成に使う completion を1回だけ呼び、本文テキストを返す。
応答のパースは novelday.extractor が担当する。
リトライはしない（失敗はそのまま呼び出し側へ伝播し、キューの再試行に任せる）。
"""

from __future__ import annotations

import logging
import re
import time
from typing import Any, Dict, List, Optional, Tuple

import litellm

from novelday.llm_debug import log_llm_payload, normalize_llm_log_level
from novelday.logging_config import LLM_IO_LOGGER_NAME


# gpt-5 以降は temperature=1 しか受け付けない
_GPT_MAJOR_RE = re.compile(r"\bgpt-(\d+)(?:\.\d+)?\b")


def _get(obj: Any, name: str) -> Any:
    """属性でも dict キーでも読めるようにする（LiteLLM の応答は両方ありうる）。"""
    value = getattr(obj, name, None)
    if value is None and isinstance(obj, dict):
        value = obj.get(name)
    return value


def read_choice(resp: Any) -> Tuple[str, str]:
    """choices[0] から (本文, finish_reason) を取り出す。取れなければ空文字。"""
    choices = _get(resp, "choices") or []
    if not choices:
        return "", ""
    choice = choices[0]
    message = _get(choice, "message")
    content = _get(message, "content") if message is not None else None
    # content が parts の配列で返るプロバイダもある
    if isinstance(content, list):
        content = "".join(part.get("text", "") if isinstance(part, dict) else str(part) for part in content)
    return str(content or ""), str(_get(choice, "finish_reason") or "")


def effective_temperature(model: str, temperature: float) -> float:
    m = _GPT_MAJOR_RE.search((model or "").lower())
    if m and int(m.group(1)) >= 5:
        return 1.0
    return float(temperature)


class LlmClient:
    """
    LLM APIクライアント。

    送受信ログは llm_log_level で切り替える。
    - INFO: モデル名・文字数・所要時間などのメタ情報のみ
    - DEBUG: 内容も出す（秘匿情報を除き、長い値は切り詰める）
    - OFF: 出さない
    """

    _DEBUG_PREVIEW_CHARS = 5000
    # プロンプト内の日記ログは先頭と末尾だけ残す
    _DEBUG_KEEP_CHARS = 600

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[int] = None,
        llm_log_level: str = "INFO",
    ):
        self.io_logger = logging.getLogger(LLM_IO_LOGGER_NAME)
        self.api_key = api_key
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds
        self.llm_log_level = normalize_llm_log_level(llm_log_level)

    def _build_completion_kwargs(
        self,
        *,
        model: str,
        messages: List[Dict[str, str]],
        temperature: float,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
    ) -> Dict[str, Any]:
        """litellm.completion に渡す引数（未設定の項目は入れない）。"""
        kwargs: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": effective_temperature(model, temperature),
        }
        optional = {
            "api_key": self.api_key,
            "api_base": self.base_url,
            "max_tokens": max_tokens,
            "timeout": self.timeout_seconds,
            "response_format": {"type": "json_object"} if json_mode else None,
        }
        kwargs.update({k: v for k, v in optional.items() if v})
        return kwargs

    def _log_meta(self, level: int, msg: str, *args: Any, **kwargs: Any) -> None:
        if self.llm_log_level != "OFF":
            self.io_logger.log(level, msg, *args, **kwargs)

    def complete(
        self,
        *,
        system_prompt: str,
        user_text: str,
        model: str,
        temperature: float,
        max_tokens: Optional[int] = None,
        json_mode: bool = True,
    ) -> str:
        """system + user の2メッセージで completion を1回呼び、本文テキストを返す。"""
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_text},
        ]
        kwargs = self._build_completion_kwargs(
            model=model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
            json_mode=json_mode,
        )

        self._log_meta(
            logging.INFO,
            "LLM request sent kind=chapter model=%s json_mode=%s approx_chars=%s",
            model,
            bool(json_mode),
            len(system_prompt) + len(user_text),
        )
        log_llm_payload(
            self.io_logger,
            "LLM request (chapter)",
            kwargs,
            llm_log_level=self.llm_log_level,
            max_chars=self._DEBUG_PREVIEW_CHARS,
            keep_chars=self._DEBUG_KEEP_CHARS,
        )

        started = time.perf_counter()
        try:
            resp = litellm.completion(**kwargs)
        except Exception as exc:
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            self._log_meta(
                logging.ERROR,
                "LLM request failed kind=chapter model=%s ms=%s error=%s",
                model,
                elapsed_ms,
                exc,
                exc_info=exc,
            )
            raise

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        content, finish_reason = read_choice(resp)
        self._log_meta(
            logging.INFO,
            "LLM response received kind=chapter model=%s finish_reason=%s chars=%s ms=%s",
            model,
            finish_reason,
            len(content),
            elapsed_ms,
        )
        log_llm_payload(
            self.io_logger,
            "LLM response (chapter)",
            {"finish_reason": finish_reason, "content": content},
            llm_log_level=self.llm_log_level,
            max_chars=self._DEBUG_PREVIEW_CHARS,
        )
        return content
