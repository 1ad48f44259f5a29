"""Tests for authenticate() and require_scope()."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

from starlette.responses import JSONResponse

from neda.server.auth import ADMIN_SCOPE, USER_SCOPE, SessionToken
from neda.server.auth_helpers import AuthenticatedClient, authenticate, require_scope


def _request(headers: dict[str, str], token: SessionToken | None = None) -> MagicMock:
    request = MagicMock()
    request.headers = headers
    request.app.state.session_store.verify.return_value = token
    return request


class TestAuthenticate:
    def test_missing_header(self):
        resp = authenticate(_request({}))
        assert isinstance(resp, JSONResponse)
        assert resp.status_code == 401
        assert json.loads(resp.body)["error"]["code"] == "AUTH_MISSING_TOKEN"

    def test_non_bearer_scheme(self):
        resp = authenticate(_request({"Authorization": "Basic dXNlcjpwYXNz"}))
        assert resp.status_code == 401

    def test_invalid_token(self):
        resp = authenticate(_request({"Authorization": "Bearer nst_x"}))
        assert json.loads(resp.body)["error"]["code"] == "AUTH_INVALID_TOKEN"

    def test_valid_token(self):
        token = SessionToken(token_hash="h", principal_id="user-1", scopes=[USER_SCOPE])
        request = _request({"Authorization": "Bearer nst_x"}, token)
        client = authenticate(request)
        assert client == AuthenticatedClient(principal_id="user-1", scopes=[USER_SCOPE])
        request.app.state.session_store.verify.assert_called_once_with("Bearer nst_x")


class TestRequireScope:
    def test_has_scope(self):
        assert require_scope(AuthenticatedClient("admin-1", [USER_SCOPE, ADMIN_SCOPE]), ADMIN_SCOPE) is None

    def test_missing_scope(self):
        resp = require_scope(AuthenticatedClient("user-1", [USER_SCOPE]), ADMIN_SCOPE)
        assert resp.status_code == 403
        assert "admin" in json.loads(resp.body)["error"]["message"]
