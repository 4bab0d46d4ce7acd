"""Unit tests for owner tokens and the owner-identity dependency."""

from __future__ import annotations

from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from mindlens.api.auth import (
    OwnerDep,
    issue_owner_token,
    verify_owner_token,
)
from tests.conftest import make_settings

_SECRET = "test-secret"
_ISSUED = 1_700_000_000


class TestTokens:
    def test_round_trip(self) -> None:
        token = issue_owner_token("owner-a", _SECRET, issued_at=_ISSUED)
        assert token.startswith(f"owner-a:{_ISSUED}:")
        assert verify_owner_token(token, _SECRET, now=_ISSUED + 10) == "owner-a"

    def test_owner_id_containing_colons(self) -> None:
        token = issue_owner_token("org:team:alice", _SECRET, issued_at=_ISSUED)
        assert verify_owner_token(token, _SECRET, now=_ISSUED) == "org:team:alice"

    def test_wrong_secret(self) -> None:
        token = issue_owner_token("owner-a", _SECRET, issued_at=_ISSUED)
        assert verify_owner_token(token, "other-secret", now=_ISSUED) is None

    def test_tampered_owner(self) -> None:
        token = issue_owner_token("owner-a", _SECRET, issued_at=_ISSUED)
        forged = "owner-b" + token[len("owner-a"):]
        assert verify_owner_token(forged, _SECRET, now=_ISSUED) is None

    def test_expired(self) -> None:
        token = issue_owner_token("owner-a", _SECRET, issued_at=_ISSUED)
        assert verify_owner_token(token, _SECRET, ttl_hours=1, now=_ISSUED + 3601) is None
        assert verify_owner_token(token, _SECRET, ttl_hours=1, now=_ISSUED + 3599) == "owner-a"

    def test_issued_in_future(self) -> None:
        token = issue_owner_token("owner-a", _SECRET, issued_at=_ISSUED + 3600)
        assert verify_owner_token(token, _SECRET, now=_ISSUED) is None

    @pytest.mark.parametrize("token", ["", "garbage", "owner-a:notanumber:abc", ":1:abc"])
    def test_malformed(self, token: str) -> None:
        assert verify_owner_token(token, _SECRET, now=_ISSUED) is None

    def test_issue_requires_owner_and_secret(self) -> None:
        with pytest.raises(ValueError):
            issue_owner_token("", _SECRET)
        with pytest.raises(ValueError):
            issue_owner_token("owner-a", "")


def _client(tmp_path: Path, **settings_overrides) -> TestClient:
    app = FastAPI()
    app.state.settings = make_settings(tmp_path, **settings_overrides)

    @app.get("/whoami")
    async def whoami(owner: OwnerDep) -> dict:
        return {"owner_id": owner.owner_id}

    return TestClient(app)


class TestOwnerDependency:
    def test_dev_header_without_secret(self, tmp_path: Path) -> None:
        client = _client(tmp_path)
        response = client.get("/whoami", headers={"X-Owner-Id": "owner-a"})
        assert response.json() == {"owner_id": "owner-a"}

    def test_missing_dev_header(self, tmp_path: Path) -> None:
        response = _client(tmp_path).get("/whoami")
        assert response.status_code == 401
        assert response.json()["detail"] == "Authentication required"

    def test_bearer_token(self, tmp_path: Path) -> None:
        client = _client(tmp_path, auth_secret=_SECRET)
        token = issue_owner_token("owner-a", _SECRET)
        response = client.get("/whoami", headers={"Authorization": f"Bearer {token}"})
        assert response.json() == {"owner_id": "owner-a"}

    def test_cookie_token(self, tmp_path: Path) -> None:
        client = _client(tmp_path, auth_secret=_SECRET)
        client.cookies.set("auth-token", issue_owner_token("owner-b", _SECRET))
        assert client.get("/whoami").json() == {"owner_id": "owner-b"}

    def test_header_ignored_when_secret_set(self, tmp_path: Path) -> None:
        client = _client(tmp_path, auth_secret=_SECRET)
        response = client.get("/whoami", headers={"X-Owner-Id": "owner-a"})
        assert response.status_code == 401

    def test_invalid_token(self, tmp_path: Path) -> None:
        client = _client(tmp_path, auth_secret=_SECRET)
        response = client.get("/whoami", headers={"Authorization": "Bearer owner-a:1:bad"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid or expired token"
