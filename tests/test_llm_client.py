"""Tests for the LiteLLM wrapper."""

from types import SimpleNamespace

import pytest

from novelday import llm_client as llm_client_module
from novelday.llm_client import LlmClient


def _response(content, finish_reason="stop"):
    message = SimpleNamespace(content=content)
    return SimpleNamespace(choices=[SimpleNamespace(message=message, finish_reason=finish_reason)])


def test_complete_sends_one_json_mode_request(monkeypatch):
    calls = []

    def fake_completion(**kwargs):
        calls.append(kwargs)
        return _response('{"title": "t", "body": "b"}')

    monkeypatch.setattr(llm_client_module.litellm, "completion", fake_completion)
    client = LlmClient(api_key="sk-test", base_url="http://llm.local", timeout_seconds=30)

    text = client.complete(system_prompt="sys", user_text="user", model="gpt-4.1", temperature=0.8, max_tokens=4000)

    assert text == '{"title": "t", "body": "b"}'
    assert len(calls) == 1
    kwargs = calls[0]
    assert kwargs["response_format"] == {"type": "json_object"}
    assert kwargs["messages"] == [{"role": "system", "content": "sys"}, {"role": "user", "content": "user"}]
    assert kwargs["api_key"] == "sk-test"
    assert kwargs["api_base"] == "http://llm.local"
    assert kwargs["timeout"] == 30
    assert kwargs["max_tokens"] == 4000
    assert kwargs["temperature"] == 0.8


def test_gpt5_models_force_temperature_one():
    client = LlmClient()
    kwargs = client._build_completion_kwargs(model="gpt-5-mini", messages=[], temperature=0.2)
    assert kwargs["temperature"] == 1.0
    assert "api_key" not in kwargs


def test_errors_propagate(monkeypatch):
    def fake_completion(**kwargs):
        raise RuntimeError("provider down")

    monkeypatch.setattr(llm_client_module.litellm, "completion", fake_completion)
    with pytest.raises(RuntimeError, match="provider down"):
        LlmClient(llm_log_level="OFF").complete(system_prompt="s", user_text="u", model="m", temperature=0.5)
