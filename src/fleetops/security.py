"""Bearer-token authentication, role checks and HSTS for FleetOps."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Optional

import jwt
import structlog
from fastapi import Request, Response

from fleetops.config import Settings, get_settings
from fleetops.exceptions import AccessDeniedError, AuthenticationError

logger = structlog.get_logger()

ROLE_ADMIN = "ADMIN"
ROLE_USER = "USER"
STRICT_TRANSPORT_SECURITY_HEADER = "Strict-Transport-Security"

CallNext = Callable[[Request], Awaitable[Response]]


@dataclass(frozen=True)
class Principal:
    """Authenticated caller resolved from a bearer token."""

    name: str
    roles: frozenset[str] = field(default_factory=frozenset)

    def has_any_role(self, *roles: str) -> bool:
        return not self.roles.isdisjoint(roles)


def _normalize_role(role: str) -> str:
    role = role.strip().upper()
    return role.removeprefix("ROLE_")


def issue_token(
    subject: str,
    roles: Iterable[str],
    settings: Optional[Settings] = None,
    expires_in: timedelta = timedelta(hours=1),
) -> str:
    """Sign an access token for ``subject`` carrying ``roles``."""
    settings = settings or get_settings()
    now = datetime.now(UTC)
    payload: dict[str, Any] = {
        "sub": subject,
        "roles": list(roles),
        "iat": now,
        "exp": now + expires_in,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Optional[Settings] = None) -> Principal:
    """
    Validate a bearer token and return its principal.

    Raises:
        AuthenticationError: if the token is expired, tampered or has no subject
    """
    settings = settings or get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError as e:
        raise AuthenticationError("Access token has expired.") from e
    except jwt.PyJWTError as e:
        raise AuthenticationError("Access token is invalid.") from e

    subject = payload.get("sub")
    if not subject:
        raise AuthenticationError("Access token has no subject.")

    roles = payload.get("roles") or []
    if isinstance(roles, str):
        roles = roles.split()
    return Principal(name=str(subject), roles=frozenset(_normalize_role(r) for r in roles))


def bearer_token(request: Request) -> Optional[str]:
    authorization = request.headers.get("Authorization", "")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def authentication_middleware(request: Request, call_next: CallNext) -> Response:
    """Resolve ``request.state.principal`` from the bearer token, if any.

    Invalid tokens leave the request anonymous; routes that need a role
    reject it later with 401.
    """
    request.state.principal = None
    token = bearer_token(request)
    if token:
        try:
            request.state.principal = decode_token(token)
        except AuthenticationError as e:
            request.state.auth_error = e.message
            logger.info("authentication_failed", reason=e.message, path=request.url.path)
    return await call_next(request)


def require_roles(*roles: str) -> Callable[[Request], Principal]:
    """Build a dependency admitting principals holding any of ``roles``."""

    def dependency(request: Request) -> Principal:
        principal: Optional[Principal] = getattr(request.state, "principal", None)
        if principal is None:
            reason = getattr(request.state, "auth_error", None)
            raise AuthenticationError(reason) if reason else AuthenticationError()
        if not principal.has_any_role(*roles):
            logger.warning("access_denied", principal=principal.name, required=list(roles))
            raise AccessDeniedError()
        return principal

    return dependency


def hsts_header_value(settings: Settings) -> str:
    value = f"max-age={settings.hsts_max_age}"
    if settings.hsts_include_subdomains:
        value += "; includeSubDomains"
    if settings.hsts_preload:
        value += "; preload"
    return value


def is_secure(request: Request) -> bool:
    forwarded_proto = request.headers.get("X-Forwarded-Proto", "")
    return request.url.scheme == "https" or forwarded_proto.split(",")[0].strip().lower() == "https"


async def hsts_middleware(request: Request, call_next: CallNext) -> Response:
    """Send HSTS only on secure requests when enabled; strip it otherwise."""
    response = await call_next(request)
    settings = get_settings()
    if settings.hsts_enabled and is_secure(request):
        response.headers[STRICT_TRANSPORT_SECURITY_HEADER] = hsts_header_value(settings)
    elif STRICT_TRANSPORT_SECURITY_HEADER in response.headers:
        del response.headers[STRICT_TRANSPORT_SECURITY_HEADER]
    return response
