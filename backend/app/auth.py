"""Bearer-token check for services that push event batches.

Producers sign short-lived RS256 tokens published through a JWKS endpoint.
The same token may be presented again when a batch is redelivered after a
5xx answer, so tokens are not single-use.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, FrozenSet, Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

ALGORITHM = "RS256"
REQUIRED_SCOPE = "events:write"
auth_scheme = HTTPBearer(auto_error=False)

# Checked in order; anything else from PyJWT is reported as "Invalid token".
_JWT_FAILURES = (
    (jwt.ExpiredSignatureError, "Token expired"),
    (jwt.InvalidAudienceError, "Invalid audience"),
    (jwt.InvalidIssuerError, "Invalid issuer"),
    (jwt.MissingRequiredClaimError, "Missing claim"),
)


@dataclass(frozen=True)
class ProducerTokenSettings:
    jwks_url: str
    issuer: str
    audience: str

    @classmethod
    def from_env(cls) -> "ProducerTokenSettings":
        names = {
            "jwks_url": "STATS_JWT_JWKS_URL",
            "issuer": "STATS_JWT_ISSUER",
            "audience": "STATS_JWT_AUDIENCE",
        }
        values = {field: os.environ.get(name) for field, name in names.items()}
        missing = sorted(names[field] for field, value in values.items() if not value)
        if missing:
            raise RuntimeError(f"{', '.join(missing)} must be set to accept event batches.")
        return cls(**values)


class ProducerAuthError(Exception):
    def __init__(self, detail: str, status_code: int = status.HTTP_401_UNAUTHORIZED) -> None:
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


@lru_cache(maxsize=4)
def _jwks_client(url: str) -> jwt.PyJWKClient:
    return jwt.PyJWKClient(url)


def _signing_key(token: str, settings: ProducerTokenSettings) -> Any:
    return _jwks_client(settings.jwks_url).get_signing_key_from_jwt(token).key


def granted_scopes(claims: Dict[str, Any]) -> FrozenSet[str]:
    """Scopes from a space-separated ``scope`` string or a list claim."""
    raw = claims.get("scope") or ()
    if isinstance(raw, str):
        raw = raw.split()
    return frozenset(scope for scope in raw if isinstance(scope, str))


def decode_producer_token(token: str, settings: Optional[ProducerTokenSettings] = None) -> Dict[str, Any]:
    settings = settings or ProducerTokenSettings.from_env()
    try:
        claims = jwt.decode(
            token,
            _signing_key(token, settings),
            algorithms=[ALGORITHM],
            audience=settings.audience,
            issuer=settings.issuer,
            options={"require": ["exp", "iss", "aud"]},
        )
    except jwt.PyJWTError as exc:
        detail = next(
            (message for error_type, message in _JWT_FAILURES if isinstance(exc, error_type)),
            "Invalid token",
        )
        raise ProducerAuthError(detail) from exc

    if REQUIRED_SCOPE not in granted_scopes(claims):
        raise ProducerAuthError(
            f"Token lacks the {REQUIRED_SCOPE} scope", status_code=status.HTTP_403_FORBIDDEN
        )
    return claims


def verify_producer(credentials: HTTPAuthorizationCredentials = Depends(auth_scheme)) -> Dict[str, Any]:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing token")
    try:
        return decode_producer_token(credentials.credentials)
    except ProducerAuthError as exc:
        raise HTTPException(
            status_code=exc.status_code,
            detail=exc.detail,
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc


def reset_auth_state() -> None:
    """Forget cached JWKS clients. Intended for use in tests."""
    _jwks_client.cache_clear()
