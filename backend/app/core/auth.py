"""Identity token (JWT) authentication for FastAPI."""

from dataclasses import dataclass
from functools import lru_cache

import jwt as pyjwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWKClient

from app.core.config import Settings, get_settings
from app.core.exceptions import AuthenticationError

_bearer_scheme = HTTPBearer(auto_error=False)


@lru_cache
def get_jwks_client(jwks_url: str) -> PyJWKClient:
    """Create a cached JWKS client for the identity provider's signing keys."""
    return PyJWKClient(jwks_url, cache_keys=True, lifespan=300)


@dataclass(frozen=True)
class AuthUser:
    """Authenticated caller extracted from a verified identity token."""

    user_id: str
    email: str | None
    claims: dict


def decode_identity_token(token: str, settings: Settings) -> AuthUser:
    """Verify and decode an identity token.

    Issuer and audience are only enforced when configured.

    Raises ``AuthenticationError`` on any validation failure.
    """
    try:
        client = get_jwks_client(settings.auth_jwks_url)
        signing_key = client.get_signing_key_from_jwt(token)

        payload = pyjwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            audience=settings.auth_audience or None,
            issuer=settings.auth_issuer or None,
            options={
                "verify_exp": True,
                "verify_iat": True,
                "verify_aud": bool(settings.auth_audience),
                "require": ["sub", "exp", "iat"],
            },
        )
    except pyjwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except pyjwt.MissingRequiredClaimError as exc:
        raise AuthenticationError(f"Missing required claim: {exc}")
    except pyjwt.InvalidIssuerError:
        raise AuthenticationError("Invalid issuer (iss mismatch)")
    except pyjwt.InvalidAudienceError:
        raise AuthenticationError("Unauthorized audience (aud mismatch)")
    except pyjwt.PyJWKClientError as exc:
        raise AuthenticationError(f"Unable to resolve signing key: {exc}")
    except pyjwt.InvalidTokenError as exc:
        raise AuthenticationError(f"Invalid token: {exc}")

    sub = payload.get("sub")
    if not sub:
        raise AuthenticationError("Token missing sub claim")

    return AuthUser(user_id=sub, email=payload.get("email"), claims=payload)


async def optional_auth(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> AuthUser | None:
    """Return the caller when a bearer token is supplied, ``None`` otherwise.

    A token that is present but invalid is still rejected.
    """
    if credentials is None:
        return None

    user = decode_identity_token(credentials.credentials, settings)
    # For error handlers / audit logging downstream
    request.state.user_id = user.user_id
    return user


async def require_auth(user: AuthUser | None = Depends(optional_auth)) -> AuthUser:
    """FastAPI dependency that requires a valid identity token.

    Usage::

        @router.get("/protected")
        async def protected(user: AuthUser = Depends(require_auth)):
            ...
    """
    if user is None:
        raise AuthenticationError("Missing authorization header")
    return user
