"""novelday Dispatcher 起動スクリプト（APIとは別プロセスで配送と定期トリガーを回す）。"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path


# プロジェクトルートを PYTHONPATH に追加
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="novelday dispatcher runner")
    parser.add_argument("--config", dest="config_path", default="config/setting.toml", help="path to setting.toml")
    parser.add_argument(
        "--trigger-interval-seconds",
        dest="trigger_interval_seconds",
        type=float,
        default=60.0,
        help="定期トリガーの判定間隔（0以下で無効）",
    )
    parser.add_argument(
        "--poll-interval-seconds",
        dest="poll_interval_seconds",
        type=float,
        default=1.0,
        help="キューが空のときの待機秒数",
    )
    return parser.parse_args()


def main() -> None:
    args = _parse_args()

    from novelday.config import load_config
    from novelday.deps import build_services
    from novelday.dispatcher import run_forever
    from novelday.logging_config import setup_logging

    config = load_config(args.config_path)
    setup_logging(config.log_level, log_file_enabled=config.log_file_enabled, log_file_path=config.log_file_path)

    services = build_services(config)
    run_forever(
        dispatcher=services.dispatcher,
        trigger_runner=services.trigger_runner if config.triggers_enabled else None,
        poll_interval_seconds=float(args.poll_interval_seconds),
        trigger_interval_seconds=float(args.trigger_interval_seconds),
    )


if __name__ == "__main__":
    main()
