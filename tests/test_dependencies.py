"""
tests/test_dependencies.py -- Tests for the access-token gates in auth/dependencies.py.

Covers:
  - parse_bearer: exact "Bearer <token>" shape, surrounding whitespace trimmed,
    inner double spaces and other schemes rejected
  - GET /auth/me (mandatory gate): 401 without header, 403 for malformed or
    invalid tokens, 200 with the account for a valid token
  - GET /auth/session (optional gate): never rejects, reports identity
  - /docs is behind the mandatory gate
"""

from __future__ import annotations

import uuid

import pytest

from auth.dependencies import parse_bearer

PASSWORD = "password123"


def _session(client) -> dict:
    tag = uuid.uuid4().hex[:8]
    resp = client.post(
        "/api/v1/auth/register",
        json={"username": f"gate_{tag}", "email": f"gate_{tag}@example.com", "password": PASSWORD},
    )
    assert resp.status_code == 201
    return resp.json()


class TestParseBearer:
    def test_well_formed(self) -> None:
        assert parse_bearer("Bearer abc.def.ghi") == "abc.def.ghi"

    def test_surrounding_whitespace_trimmed(self) -> None:
        assert parse_bearer("  Bearer abc  ") == "abc"

    @pytest.mark.parametrize(
        "header",
        [None, "", "Bearer", "Bearer ", "Bearer  abc", "bearer abc", "Basic abc", "Bearer abc extra", "abc"],
    )
    def test_malformed(self, header) -> None:
        assert parse_bearer(header) is None


class TestMandatoryGate:
    def test_missing_header_is_401(self, api_client) -> None:
        client, _ = api_client
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    @pytest.mark.parametrize("header", ["Basic abc", "Bearer", "Bearer  abc", "Bearer not-a-jwt"])
    def test_malformed_or_invalid_is_403(self, api_client, header: str) -> None:
        client, _ = api_client
        resp = client.get("/api/v1/auth/me", headers={"Authorization": header})
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"

    def test_refresh_token_is_not_a_bearer_credential(self, api_client) -> None:
        client, _ = api_client
        refresh = _session(client)["refreshToken"]
        resp = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {refresh}"})
        assert resp.status_code == 403

    def test_valid_token_returns_account(self, api_client) -> None:
        client, _ = api_client
        session = _session(client)
        resp = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {session['accessToken']}"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["id"] == session["id"]
        assert data["email"] == session["email"]
        assert "accessToken" not in data

    def test_token_for_unknown_account_is_404(self, api_client) -> None:
        client, _ = api_client
        token = client.app.state.token_codec.issue_access_token(999999, "ghost@example.com")
        resp = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 404

    def test_docs_require_token(self, api_client) -> None:
        client, _ = api_client
        assert client.get("/docs").status_code == 401
        token = _session(client)["accessToken"]
        assert client.get("/docs", headers={"Authorization": f"Bearer {token}"}).status_code == 200


class TestOptionalGate:
    def test_anonymous(self, api_client) -> None:
        client, _ = api_client
        resp = client.get("/api/v1/auth/session")
        assert resp.status_code == 200
        assert resp.json()["authenticated"] is False

    @pytest.mark.parametrize("header", ["Basic abc", "Bearer  abc", "Bearer not-a-jwt"])
    def test_bad_header_proceeds_anonymously(self, api_client, header: str) -> None:
        client, _ = api_client
        resp = client.get("/api/v1/auth/session", headers={"Authorization": header})
        assert resp.status_code == 200
        assert resp.json()["authenticated"] is False

    def test_valid_token_attaches_identity(self, api_client) -> None:
        client, _ = api_client
        session = _session(client)
        resp = client.get("/api/v1/auth/session", headers={"Authorization": f"Bearer {session['accessToken']}"})
        data = resp.json()
        assert data["authenticated"] is True
        assert data["accountId"] == str(session["id"])
        assert data["email"] == session["email"]
        assert data["expiresAt"]
