"""Tests for the application factory wiring."""

from novelday import internal_dispatcher
from novelday.main import create_app


def test_startup_and_shutdown_run_internal_dispatcher(make_config, fake_llm):
    from fastapi.testclient import TestClient

    from novelday.deps import build_services

    config = make_config(internal_dispatcher_enabled=True)
    app = create_app(config, build_services(config, llm_client=fake_llm))

    with TestClient(app) as client:
        assert client.get("/api/health").status_code == 200
        assert internal_dispatcher.is_alive()

    assert not internal_dispatcher.is_alive()


def test_routes_are_registered(app):
    paths = set(app.openapi()["paths"])
    assert {"/api/health", "/api/tasks/weekly", "/api/tasks/monthly", "/api/chapters/preview"} <= paths
