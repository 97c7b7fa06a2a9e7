"""
Pytest configuration for novelday tests

Provides a temporary SQLite-backed Config, a fake LLM client and
fully wired Services / FastAPI app fixtures.
"""

import json
import sys
from dataclasses import replace
from pathlib import Path

import pytest

# プロジェクトルートをPYTHONPATHに追加
sys.path.insert(0, str(Path(__file__).parent.parent))

from novelday.config import Config  # noqa: E402
from novelday.deps import build_services  # noqa: E402


TEST_TOKEN = "test-token"


class FakeLlmClient:
    """LlmClient.complete と同じ呼び出し口を持つテスト用クライアント。"""

    def __init__(self, response=None, error=None):
        self.response = response if response is not None else json.dumps(
            {"title": "雨の週", "body": "駅まで歩いた。\nコーヒーがあたたかかった。"}, ensure_ascii=False
        )
        self.error = error
        self.calls = []

    def complete(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.response


def auth_headers():
    return {"Authorization": f"Bearer {TEST_TOKEN}"}


@pytest.fixture
def config(tmp_path):
    return Config(
        token=TEST_TOKEN,
        log_level="INFO",
        db_url=f"sqlite:///{tmp_path / 'novelday.db'}",
        worker_base_url="http://testserver",
        triggers_enabled=False,
        internal_dispatcher_enabled=False,
    )


@pytest.fixture
def fake_llm():
    return FakeLlmClient()


@pytest.fixture
def services(config, fake_llm):
    return build_services(config, llm_client=fake_llm)


@pytest.fixture
def app(services):
    from novelday.main import create_app

    return create_app(services.config, services)


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient

    return TestClient(app)


@pytest.fixture
def make_config(config):
    """Config の一部だけを差し替える。"""

    def _make(**overrides):
        return replace(config, **overrides)

    return _make
