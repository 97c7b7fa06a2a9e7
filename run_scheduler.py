"""novelday スケジューラを1回だけ実行するスクリプト（手動実行・外部cron用）。"""

from __future__ import annotations

import argparse
import sys
from datetime import datetime, timezone
from pathlib import Path


# プロジェクトルートを PYTHONPATH に追加
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="novelday one-shot scheduler")
    parser.add_argument("kind", choices=["week", "month"], help="対象期間の種別")
    parser.add_argument("--config", dest="config_path", default="config/setting.toml", help="path to setting.toml")
    parser.add_argument(
        "--now",
        dest="now",
        default=None,
        help="基準時刻（ISO 8601。省略時は現在時刻。タイムゾーン無しはUTC扱い）",
    )
    return parser.parse_args()


def _parse_now(value: str | None) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def main() -> None:
    args = _parse_args()

    from novelday.config import load_config
    from novelday.deps import build_services
    from novelday.enums import PeriodKind
    from novelday.logging_config import setup_logging

    config = load_config(args.config_path)
    setup_logging(config.log_level, log_file_enabled=config.log_file_enabled, log_file_path=config.log_file_path)

    services = build_services(config)
    result = services.scheduler.schedule(PeriodKind(args.kind), _parse_now(args.now))
    print(
        f"period={result.period.period_key} eligible={result.eligible} "
        f"enqueued={len(result.enqueued)} failed={len(result.failed)} skipped={result.skipped_reason or '-'}"
    )


if __name__ == "__main__":
    main()
