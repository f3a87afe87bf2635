"""
Request authentication.

Validates Clerk session JWTs and extracts the caller's user id.

Verification order:
1. CLERK_JWT_KEY set: HS256 with a shared key (development/test tokens)
2. Otherwise RS256 against Clerk's JWKS (CLERK_JWKS_URL, or derived from CLERK_ISSUER)

When ALLOW_HEADER_AUTH is on, an X-User-Id header is accepted in place of a
token. Production deployments turn it off.
"""
import logging
from typing import Any, Callable, Dict, Optional

import jwt
from fastapi import Depends, Header, Request

from backend.core.config import settings
from backend.core.errors import AuthenticationError, AuthorizationError

logger = logging.getLogger("vidify")

_jwk_clients: Dict[str, jwt.PyJWKClient] = {}
_signing_key_override: Optional[Callable[[str], Any]] = None


def set_signing_key_resolver_for_tests(resolver: Optional[Callable[[str], Any]]) -> None:
    """Swap JWKS lookup for a deterministic resolver (no network). None restores it."""
    global _signing_key_override
    _signing_key_override = resolver
    _jwk_clients.clear()


def _jwks_url() -> Optional[str]:
    if settings.CLERK_JWKS_URL:
        return settings.CLERK_JWKS_URL
    if settings.CLERK_ISSUER:
        return f"{settings.CLERK_ISSUER.rstrip('/')}/.well-known/jwks.json"
    return None


def _rs256_signing_key(token: str):
    if _signing_key_override is not None:
        return _signing_key_override(token)
    url = _jwks_url()
    if not url:
        raise jwt.InvalidTokenError("CLERK_ISSUER or CLERK_JWKS_URL must be configured")
    client = _jwk_clients.get(url)
    if client is None:
        client = jwt.PyJWKClient(url, cache_keys=True)
        _jwk_clients[url] = client
    return client.get_signing_key_from_jwt(token).key


def verify_jwt_token(token: str) -> Dict[str, Any]:
    """
    Verify a Clerk session token and return its claims.

    Raises:
        jwt.PyJWTError: Invalid signature, expired, or malformed token
    """
    if settings.CLERK_JWT_KEY:
        return jwt.decode(
            token,
            settings.CLERK_JWT_KEY,
            algorithms=["HS256"],
            options={"verify_aud": False},
        )

    options = {"verify_aud": False}
    kwargs: Dict[str, Any] = {}
    if settings.CLERK_ISSUER:
        kwargs["issuer"] = settings.CLERK_ISSUER
    return jwt.decode(token, _rs256_signing_key(token), algorithms=["RS256"], options=options, **kwargs)


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        token = header[7:].strip()
        return token or None
    return None


async def get_current_user_id(
    request: Request,
    x_user_id: Optional[str] = Header(None, description="Development fallback identity"),
) -> str:
    """
    Resolve the authenticated user id for the request.

    Raises:
        AuthenticationError: No credentials, or an invalid token
    """
    token = _bearer_token(request)
    if token:
        try:
            claims = verify_jwt_token(token)
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Unauthorized", details="Token expired")
        except jwt.PyJWTError as e:
            logger.info("auth.invalid_token", extra={"error_code": "unauthorized", "event_type": type(e).__name__})
            raise AuthenticationError("Unauthorized", details="Invalid token")
        user_id = claims.get("sub")
        if not user_id:
            raise AuthenticationError("Unauthorized", details="Token has no subject")
        request.state.user_id = user_id
        return user_id

    if x_user_id and settings.ALLOW_HEADER_AUTH:
        request.state.user_id = x_user_id
        return x_user_id

    raise AuthenticationError(
        "Unauthorized",
        details="Missing Authorization (Bearer JWT) header",
    )


async def require_admin(user_id: str = Depends(get_current_user_id)) -> str:
    """Admins are users whose projection metadata carries role == "admin"."""
    from backend.features.users.service import get_user

    user = get_user(user_id)
    if user is None or not user.is_admin:
        raise AuthorizationError("Forbidden", details="Admin access required")
    return user_id
