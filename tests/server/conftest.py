"""Server-specific test fixtures."""

from __future__ import annotations

import pytest
from starlette.testclient import TestClient

from neda.server.app import build_services, create_app
from neda.server.auth import ADMIN_SCOPE, USER_SCOPE, TokenStore
from neda.server.config import ServerSettings, clear_settings_cache


@pytest.fixture
def server_settings(clean_env, tmp_path) -> ServerSettings:
    clear_settings_cache()
    yield ServerSettings(_env_file=None, token_file=tmp_path / "tokens.json")
    clear_settings_cache()


@pytest.fixture
def session_store(server_settings) -> TokenStore:
    return TokenStore(server_settings.token_file)


@pytest.fixture
def services(store, server_settings):
    return build_services(store, settings=server_settings)


@pytest.fixture
def app(services, session_store, server_settings):
    return create_app(services, session_store, settings=server_settings)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def user(make_principal):
    return make_principal()


def _bearer(raw_token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {raw_token}"}


@pytest.fixture
def user_headers(session_store, user) -> dict[str, str]:
    return _bearer(session_store.create(user.id, description="test user"))


@pytest.fixture
def other_headers(session_store, make_principal) -> dict[str, str]:
    return _bearer(session_store.create(make_principal(company_name="Other Co").id))


@pytest.fixture
def admin_headers(session_store, admin_id) -> dict[str, str]:
    return _bearer(session_store.create(admin_id, scopes=[USER_SCOPE, ADMIN_SCOPE]))
