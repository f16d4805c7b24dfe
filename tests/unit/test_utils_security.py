import types
import sys
from fastapi import FastAPI, Depends
from fastapi.testclient import TestClient

from backend.utils.security import get_current_user, COOKIE_NAME

def _make_app():
    app = FastAPI()

    @app.get("/me")
    def me(user=Depends(get_current_user)):
        return user

    return app

def test_get_current_user_bearer_success(monkeypatch):
    # Fournir un service d'auth avec get_user_from_token qui renvoie un user valide
    seen = []
    fake_auth = types.SimpleNamespace(
        get_user_from_token=lambda token: seen.append(token) or {"id": "u1", "email": "a@b"}
    )
    monkeypatch.setitem(sys.modules, "backend.auth.service", fake_auth)

    client = TestClient(_make_app())
    r = client.get("/me", headers={"Authorization": "Bearer tok-123"})
    assert r.status_code == 200
    assert r.json()["id"] == "u1"
    assert seen == ["tok-123"]

def test_get_current_user_cookie_fallback(monkeypatch):
    fake_auth = types.SimpleNamespace(get_user_from_token=lambda token: {"id": f"user-of-{token}"})
    monkeypatch.setitem(sys.modules, "backend.auth.service", fake_auth)

    client = TestClient(_make_app())
    client.cookies.set(COOKIE_NAME, "cookie-tok")
    r = client.get("/me")
    assert r.status_code == 200
    assert r.json()["id"] == "user-of-cookie-tok"

def test_get_current_user_missing_token():
    client = TestClient(_make_app())
    r = client.get("/me")
    assert r.status_code == 401
    assert r.json()["detail"] == "Non authentifié"

def test_get_current_user_invalid_token(monkeypatch):
    def _raise(token):
        raise RuntimeError("invalid JWT")

    monkeypatch.setitem(sys.modules, "backend.auth.service", types.SimpleNamespace(get_user_from_token=_raise))
    client = TestClient(_make_app())
    r = client.get("/me", headers={"Authorization": "Bearer bad"})
    assert r.status_code == 401

def test_get_current_user_without_id(monkeypatch):
    fake_auth = types.SimpleNamespace(get_user_from_token=lambda token: {"id": None})
    monkeypatch.setitem(sys.modules, "backend.auth.service", fake_auth)
    client = TestClient(_make_app())
    r = client.get("/me", headers={"Authorization": "Bearer tok"})
    assert r.status_code == 401

def test_auth_service_normalizes_supabase_user(monkeypatch):
    from backend.auth import service as auth_service
    monkeypatch.setattr(
        auth_service,
        "_repo_get_user_from_token",
        lambda token: {"id": 42, "email": "a@b", "user_metadata": {"full_name": "A"}},
    )
    user = auth_service.get_user_from_token("tok")
    assert user == {"id": "42", "email": "a@b", "metadata": {"full_name": "A"}, "token": "tok"}
