"""設定読み込み。"""

from __future__ import annotations

import dataclasses
import pathlib
from dataclasses import dataclass
from typing import Any, Optional

import tomli

from novelday.enums import PeriodKind


@dataclass(frozen=True)
class ModelSettings:
    """期間ごとのLLM呼び出しパラメータ。"""

    model: str
    temperature: float
    max_tokens: int


@dataclass(frozen=True)
class Config:
    """TOML起動設定（起動時のみ読み込み、変更不可）。"""

    token: str
    log_level: str
    db_url: str

    # LLM
    llm_api_key: Optional[str] = None
    llm_base_url: Optional[str] = None
    llm_log_level: str = "INFO"
    llm_timeout_seconds: int = 240
    weekly_model: str = "gpt-4.1-mini"
    weekly_temperature: float = 0.8
    weekly_max_tokens: int = 2000
    monthly_model: str = "gpt-4.1"
    monthly_temperature: float = 0.8
    monthly_max_tokens: int = 4000

    # キュー / 配送
    worker_base_url: str = ""
    weekly_queue: str = "novelday-weekly-novel"
    monthly_queue: str = "novelday-monthly-novel"
    enqueue_concurrency: int = 4
    dispatch_timeout_seconds: int = 300
    dispatch_max_tries: int = 5

    # 定期トリガー
    schedule_time_zone: str = "Asia/Tokyo"
    weekly_schedule: str = "mon 01:00"
    monthly_schedule: str = "1 03:00"
    triggers_enabled: bool = True
    internal_dispatcher_enabled: bool = True

    # ログ
    log_file_enabled: bool = False
    log_file_path: str = "logs/novelday.log"

    def model_settings(self, kind: PeriodKind) -> ModelSettings:
        """期間種別に応じたモデル設定を返す。"""
        if kind is PeriodKind.WEEK:
            return ModelSettings(self.weekly_model, float(self.weekly_temperature), int(self.weekly_max_tokens))
        return ModelSettings(self.monthly_model, float(self.monthly_temperature), int(self.monthly_max_tokens))

    def queue_name(self, kind: PeriodKind) -> str:
        return self.weekly_queue if kind is PeriodKind.WEEK else self.monthly_queue

    def worker_url(self, kind: PeriodKind) -> str:
        """Workerの呼び出し先URL（worker_base_url未設定なら空文字）。"""
        base = (self.worker_base_url or "").strip().rstrip("/")
        if not base:
            return ""
        return f"{base}/api/tasks/{kind.chapter_type.value}"


_REQUIRED_KEYS = ("token", "log_level", "db_url")


def _require(config_dict: dict, key: str) -> Any:
    if key not in config_dict or config_dict[key] in (None, ""):
        raise ValueError(f"config key '{key}' is required")
    return config_dict[key]


def allowed_config_keys() -> set[str]:
    return {f.name for f in dataclasses.fields(Config)}


def config_from_dict(data: dict) -> Config:
    """dictからConfigを構築する（未知キーはエラー）。"""
    allowed_keys = allowed_config_keys()
    unknown_keys = sorted(set(data.keys()) - allowed_keys)
    if unknown_keys:
        keys = ", ".join(repr(k) for k in unknown_keys)
        allowed = ", ".join(repr(k) for k in sorted(allowed_keys))
        raise ValueError(f"unknown config key(s): {keys} (allowed: {allowed})")

    for key in _REQUIRED_KEYS:
        _require(data, key)

    return Config(**data)


def load_config(path: str | pathlib.Path = "config/setting.toml") -> Config:
    """TOML設定を読み込む。"""
    config_path = pathlib.Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"config file not found: {config_path}")

    with config_path.open("rb") as f:
        data = tomli.load(f)

    return config_from_dict(data)
