"""Tests for application wiring: health, correlation ids and lifespan."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

from starlette.testclient import TestClient

from neda.core.audit import AdminActionLog
from neda.server.app import CORRELATION_HEADER, build_app, build_services, create_app


class TestBuildServices:
    def test_services_share_one_ledger(self, store, server_settings):
        services = build_services(store, settings=server_settings)
        assert isinstance(services.audit_log, AdminActionLog)
        assert services.credentials.audit_log is services.audit_log
        assert services.trust.audit_log is services.audit_log
        assert services.queries.store is store
        assert services.database is None


class TestHealth:
    def test_without_database(self, client):
        resp = client.get("/api/v1/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "healthy"
        assert body["server"] == "neda"
        assert body["database"] == "not configured"

    def test_database_connected(self, store, session_store, server_settings):
        database = MagicMock()
        database.check_connection.return_value = True
        app = create_app(build_services(store, server_settings, database), session_store, settings=server_settings)
        assert TestClient(app).get("/api/v1/health").json()["database"] == "connected"

    def test_database_unavailable(self, store, session_store, server_settings):
        database = MagicMock()
        database.check_connection.return_value = False
        app = create_app(build_services(store, server_settings, database), session_store, settings=server_settings)
        resp = TestClient(app).get("/api/v1/health")
        assert resp.status_code == 503
        assert resp.json()["status"] == "degraded"


class TestCorrelation:
    def test_generated_when_absent(self, client):
        resp = client.get("/api/v1/health")
        assert len(resp.headers[CORRELATION_HEADER]) == 36

    def test_echoes_incoming(self, client):
        resp = client.get("/api/v1/health", headers={CORRELATION_HEADER: "req-123"})
        assert resp.headers[CORRELATION_HEADER] == "req-123"


class TestLifespan:
    def test_closes_database_on_shutdown(self, store, session_store, server_settings):
        database = MagicMock()
        app = create_app(build_services(store, server_settings, database), session_store, settings=server_settings)
        with TestClient(app) as client:
            client.get("/api/v1/health")
        database.close.assert_called_once()


class TestBuildApp:
    def test_production_wiring(self, server_settings):
        with (
            patch("neda.server.app.get_settings", return_value=server_settings),
            patch("neda.server.app.configure_logging"),
            patch("neda.server.app.Database") as database_cls,
        ):
            app = build_app()
        database_cls.assert_called_once_with(server_settings)
        assert app.state.services.database is database_cls.return_value
        assert app.state.session_store.token_file == server_settings.token_file

    def test_run_uses_factory(self, server_settings):
        from neda.server.app import run

        with patch("neda.server.app.get_settings", return_value=server_settings), patch("uvicorn.run") as uvicorn_run:
            run()
        args, kwargs = uvicorn_run.call_args
        assert args == ("neda.server.app:build_app",)
        assert kwargs["factory"] is True
        assert kwargs["port"] == 8420
