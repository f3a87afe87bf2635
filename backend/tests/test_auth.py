"""Bearer-token and header authentication."""
import time

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa

from backend.core import auth
from backend.core.config import settings

HS_KEY = "test-signing-key-with-enough-length-for-hs256"


def _hs_token(sub="user_jwt", exp_offset=300, key=HS_KEY):
    return jwt.encode({"sub": sub, "exp": int(time.time()) + exp_offset}, key, algorithm="HS256")


@pytest.fixture
def hs256(monkeypatch):
    monkeypatch.setattr(settings, "CLERK_JWT_KEY", HS_KEY)


def test_valid_hs256_token(client, hs256):
    response = client.get("/api/subscriptions", headers={"Authorization": f"Bearer {_hs_token()}"})
    assert response.status_code == 200


def test_token_takes_precedence_over_header(client, hs256):
    client.post("/api/subscriptions/upgrade", json={"plan": "basic"},
                headers={"Authorization": f"Bearer {_hs_token('user_jwt')}", "X-User-Id": "user_header"})
    assert client.get("/api/subscriptions", headers={"X-User-Id": "user_jwt"}).json()["subscription"]["plan"] == "basic"
    assert client.get("/api/subscriptions", headers={"X-User-Id": "user_header"}).json()["subscription"]["plan"] == "free"


def test_expired_token_is_401(client, hs256):
    response = client.get("/api/subscriptions", headers={"Authorization": f"Bearer {_hs_token(exp_offset=-60)}"})
    assert response.status_code == 401
    assert response.json()["details"] == "Token expired"


def test_forged_token_is_401(client, hs256):
    token = _hs_token(key="some-other-key-that-is-also-long-enough")
    response = client.get("/api/subscriptions", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json()["details"] == "Invalid token"


def test_token_without_subject_is_401(client, hs256):
    token = jwt.encode({"exp": int(time.time()) + 60}, HS_KEY, algorithm="HS256")
    assert client.get("/api/subscriptions", headers={"Authorization": f"Bearer {token}"}).status_code == 401


def test_header_fallback_can_be_disabled(client, monkeypatch):
    monkeypatch.setattr(settings, "ALLOW_HEADER_AUTH", False)
    response = client.get("/api/subscriptions", headers={"X-User-Id": "user_header"})
    assert response.status_code == 401


def test_rs256_with_injected_signing_key(client, monkeypatch):
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    monkeypatch.setattr(settings, "CLERK_ISSUER", "https://clerk.example.test")
    auth.set_signing_key_resolver_for_tests(lambda token: private_key.public_key())
    try:
        token = jwt.encode(
            {"sub": "user_rs", "iss": "https://clerk.example.test", "exp": int(time.time()) + 60},
            private_key,
            algorithm="RS256",
        )
        assert auth.verify_jwt_token(token)["sub"] == "user_rs"

        wrong_issuer = jwt.encode(
            {"sub": "user_rs", "iss": "https://evil.example.test", "exp": int(time.time()) + 60},
            private_key,
            algorithm="RS256",
        )
        response = client.get("/api/subscriptions", headers={"Authorization": f"Bearer {wrong_issuer}"})
        assert response.status_code == 401
    finally:
        auth.set_signing_key_resolver_for_tests(None)


def test_jwks_url_is_derived_from_issuer(monkeypatch):
    monkeypatch.setattr(settings, "CLERK_JWKS_URL", None)
    monkeypatch.setattr(settings, "CLERK_ISSUER", "https://clerk.example.test/")
    assert auth._jwks_url() == "https://clerk.example.test/.well-known/jwks.json"
