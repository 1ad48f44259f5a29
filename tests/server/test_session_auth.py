"""Tests for session token storage."""

from __future__ import annotations

import json
import stat
import time

from neda.server.auth import ADMIN_SCOPE, TOKEN_PREFIX, USER_SCOPE, SessionToken, TokenStore, generate_token, hash_token


class TestTokenHelpers:
    def test_generate_token_format(self):
        token = generate_token()
        assert token.startswith(TOKEN_PREFIX)
        assert len(token) == len(TOKEN_PREFIX) + 64

    def test_hash_is_stable(self):
        assert hash_token("abc") == hash_token("abc")
        assert hash_token("abc") != hash_token("abd")

    def test_session_token_round_trip(self):
        token = SessionToken(token_hash="h", principal_id="p", scopes=[ADMIN_SCOPE], description="d")
        restored = SessionToken.from_dict(token.to_dict())
        assert restored == token
        assert restored.has_scope(ADMIN_SCOPE)
        assert not restored.has_scope(USER_SCOPE)

    def test_expiry(self):
        assert SessionToken(token_hash="h", principal_id="p", expires_at=time.time() - 1).is_expired()
        assert not SessionToken(token_hash="h", principal_id="p").is_expired()


class TestTokenStore:
    def test_create_and_verify(self, tmp_path):
        store = TokenStore(tmp_path / "tokens.json")
        raw = store.create("user-1", description="laptop")
        token = store.verify(f"Bearer {raw}")
        assert token.principal_id == "user-1"
        assert token.scopes == [USER_SCOPE]
        assert store.verify(raw) is token

    def test_only_hash_persisted(self, tmp_path):
        path = tmp_path / "tokens.json"
        raw = TokenStore(path).create("user-1")
        contents = path.read_text()
        assert raw not in contents
        assert json.loads(contents)["tokens"][0]["token_hash"] == hash_token(raw)

    def test_file_permissions(self, tmp_path):
        path = tmp_path / "tokens.json"
        TokenStore(path).create("user-1")
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_reload_from_disk(self, tmp_path):
        path = tmp_path / "tokens.json"
        raw = TokenStore(path).create("user-1", scopes=[USER_SCOPE, ADMIN_SCOPE])
        assert TokenStore(path).verify(raw).scopes == [USER_SCOPE, ADMIN_SCOPE]

    def test_expired_token_rejected(self, tmp_path):
        store = TokenStore(tmp_path / "tokens.json")
        raw = store.create("user-1", expires_at=time.time() - 10)
        assert store.verify(raw) is None

    def test_unknown_and_empty(self, tmp_path):
        store = TokenStore(tmp_path / "tokens.json")
        assert store.verify("") is None
        assert store.verify("nst_unknown") is None

    def test_revoke(self, tmp_path):
        path = tmp_path / "tokens.json"
        store = TokenStore(path)
        raw = store.create("user-1")
        assert store.revoke(hash_token(raw)) is True
        assert store.revoke(hash_token(raw)) is False
        assert TokenStore(path).verify(raw) is None

    def test_corrupt_file_loads_empty(self, tmp_path):
        path = tmp_path / "tokens.json"
        path.write_text("{not json")
        assert TokenStore(path).list_tokens() == []

    def test_get_by_principal(self, tmp_path):
        store = TokenStore(tmp_path / "tokens.json")
        store.create("user-1")
        store.create("user-1")
        store.create("user-2")
        assert len(store.get_by_principal("user-1")) == 2
        assert len(store.list_tokens()) == 3
