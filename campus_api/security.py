from __future__ import annotations

import threading
from collections import defaultdict, deque
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from uuid import uuid4

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from passlib.exc import UnknownHashError

from campus_api.errors import ForbiddenError, RateLimitedError, UnauthorizedError
from campus_api.models import UserRole
from campus_api.settings import get_settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
bearer_scheme = HTTPBearer(auto_error=False)

_LOCK = threading.Lock()
_FAILED_ATTEMPTS: dict[str, deque[datetime]] = defaultdict(deque)
_MAX_ATTEMPTS = 10
_ATTEMPT_WINDOW = timedelta(minutes=10)


@dataclass(frozen=True)
class AuthUser:
    id: str
    roles: tuple[str, ...]
    email: str | None = None
    name: str | None = None

    @property
    def is_admin(self) -> bool:
        return UserRole.ADMIN.value in self.roles

    def has_role(self, *roles: UserRole | str) -> bool:
        wanted = {role.value if isinstance(role, UserRole) else role for role in roles}
        return bool(wanted.intersection(self.roles))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _cleanup_attempts(ip: str, now: datetime) -> None:
    queue = _FAILED_ATTEMPTS[ip]
    threshold = now - _ATTEMPT_WINDOW
    while queue and queue[0] < threshold:
        queue.popleft()
    if not queue:
        _FAILED_ATTEMPTS.pop(ip, None)


def ensure_login_attempt_allowed(ip: str) -> None:
    now = _utcnow()
    with _LOCK:
        _cleanup_attempts(ip, now)
        queue = _FAILED_ATTEMPTS.get(ip, deque())
        if len(queue) >= _MAX_ATTEMPTS:
            raise RateLimitedError("Too many failed login attempts. Please try again later.")


def register_login_failure(ip: str) -> None:
    now = _utcnow()
    with _LOCK:
        _cleanup_attempts(ip, now)
        _FAILED_ATTEMPTS[ip].append(now)


def register_login_success(ip: str) -> None:
    with _LOCK:
        _FAILED_ATTEMPTS.pop(ip, None)


def reset_login_attempts() -> None:
    with _LOCK:
        _FAILED_ATTEMPTS.clear()


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(password, password_hash)
    except (ValueError, TypeError, UnknownHashError):
        return False


def create_access_token(
    *,
    sub: str,
    roles: list[str],
    email: str | None = None,
    name: str | None = None,
) -> tuple[str, int, dict[str, Any]]:
    settings = get_settings()
    now = _utcnow()
    exp = now + timedelta(minutes=settings.access_token_minutes)
    claims = {
        "sub": sub,
        "roles": list(roles),
        "email": email,
        "name": name,
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
        "jti": str(uuid4()),
    }
    token = jwt.encode(claims, settings.jwt_secret, algorithm="HS256")
    return token, settings.access_token_minutes * 60, claims


def decode_token(token: str) -> AuthUser:
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={"require_sub": True, "require_iat": True, "require_exp": True},
        )
    except JWTError as exc:
        raise UnauthorizedError("Token is invalid.", code="INVALID_TOKEN") from exc

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        raise UnauthorizedError("Token subject is invalid.", code="INVALID_TOKEN")

    raw_roles = payload.get("roles")
    if not isinstance(raw_roles, list):
        raise UnauthorizedError("Token roles are invalid.", code="INVALID_TOKEN")

    return AuthUser(
        id=subject,
        roles=tuple(str(role) for role in raw_roles),
        email=payload.get("email"),
        name=payload.get("name"),
    )


def require_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> AuthUser:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise UnauthorizedError("Missing bearer token.", code="INVALID_TOKEN")

    user = decode_token(credentials.credentials)
    request.state.actor = "admin" if user.is_admin else "user"
    request.state.actor_id = user.id
    return user


def require_roles(*roles: UserRole) -> Callable[..., AuthUser]:
    if not roles:
        raise ValueError("require_roles needs at least one role")

    def _dependency(user: AuthUser = Depends(require_user)) -> AuthUser:
        if not user.has_role(*roles):
            raise ForbiddenError("Insufficient permissions.")
        return user

    return _dependency


require_admin = require_roles(UserRole.ADMIN)
