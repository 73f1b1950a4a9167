"""Identity gate: bearer credential verification and authorization helpers.

Identity tokens are issued by an external identity provider and verified
here with the shared signing key. A verified token resolves to a
:class:`Principal`; role checks then look the principal up in the user
directory.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from .core import get_settings
from .database import Store, get_store
from .errors import Forbidden, Unauthenticated

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class Principal:
    """Authenticated caller resolved from an identity token."""

    email: str
    claims: dict[str, Any] = field(default_factory=dict)


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Create a signed identity token the gate accepts.

    Args:
        data (dict): Claims to embed; must contain ``email``.
        expires_delta (timedelta | None): Token lifetime.

    Returns:
        str: Encoded JWT.
    """
    settings = get_settings()
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode["exp"] = expire
    if settings.TOKEN_AUDIENCE:
        to_encode.setdefault("aud", settings.TOKEN_AUDIENCE)
    if settings.TOKEN_ISSUER:
        to_encode.setdefault("iss", settings.TOKEN_ISSUER)
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def verify_id_token(token: str) -> dict[str, Any]:
    """
    Verify an identity token and return its claims.

    Raises:
        Forbidden: If the signature, expiry, audience or issuer check fails.
    """
    settings = get_settings()
    try:
        return jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            audience=settings.TOKEN_AUDIENCE,
            issuer=settings.TOKEN_ISSUER,
            options={"verify_aud": bool(settings.TOKEN_AUDIENCE)},
        )
    except JWTError:
        raise Forbidden("Forbidden access")


def get_current_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Principal:
    """Dependency that returns the caller resolved from the bearer token."""

    if credentials is None or not credentials.credentials:
        raise Unauthenticated("Unauthorized access")
    claims = verify_id_token(credentials.credentials)
    email = claims.get("email") or claims.get("sub")
    if not email:
        raise Forbidden("Forbidden access")
    return Principal(email=email.lower(), claims=claims)


def get_optional_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Principal | None:
    """Like :func:`get_current_principal`, but anonymous callers get ``None``."""

    if credentials is None or not credentials.credentials:
        return None
    return get_current_principal(credentials)


def require_role(*roles: str):
    """
    Build a dependency admitting only users whose role is in ``roles``.

    The dependency resolves the principal first, so a request without a
    credential is rejected before the store is consulted.

    Returns:
        Callable: FastAPI dependency returning the caller's user document.
    """

    def checker(
        principal: Principal = Depends(get_current_principal),
        store: Store = Depends(get_store),
    ) -> dict:
        user = store.users.find_one({"email": principal.email})
        if user is None or user.get("role") not in roles:
            raise Forbidden("Forbidden access")
        return user

    return checker


verify_admin = require_role("admin")
verify_agent = require_role("agent")
verify_agent_or_admin = require_role("agent", "admin")


def ensure_self(principal: Principal, email: str | None) -> None:
    """Reject requests naming an email other than the caller's."""
    if not email or principal.email != email.lower():
        raise Forbidden("Forbidden access")


def is_admin(store: Store, principal: Principal) -> bool:
    user = store.users.find_one({"email": principal.email}, {"role": 1})
    return bool(user) and user.get("role") == "admin"
