"""Authentication dependencies resolving the caller's id and role."""

from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from services.session_token import decode_session_token
from services.visibility import ROLE_ANONYMOUS


auth_scheme = HTTPBearer(auto_error=False)


@dataclass
class AuthContext:
    user_id: Optional[str]
    role: str = ROLE_ANONYMOUS
    email: Optional[str] = None


def _context_from_token(token: str) -> AuthContext:
    try:
        payload = decode_session_token(token)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc

    return AuthContext(
        user_id=str(payload.get("sub", "")),
        role=str(payload["role"]),
        email=str(payload.get("email", "")) or None,
    )


async def get_auth_context(
    credentials: HTTPAuthorizationCredentials = Depends(auth_scheme),
) -> AuthContext:
    """Resolve authenticated caller from Bearer session token."""
    if not credentials or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="Missing Bearer session token.")
    return _context_from_token(credentials.credentials)


async def get_optional_auth_context(
    credentials: HTTPAuthorizationCredentials = Depends(auth_scheme),
) -> AuthContext:
    """Resolve the caller when a token is sent; anonymous otherwise.

    A token that is present but invalid is still rejected.
    """
    if not credentials:
        return AuthContext(user_id=None)
    if credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="Unsupported authorization scheme.")
    return _context_from_token(credentials.credentials)


def require_roles(*roles: str) -> Callable[..., AuthContext]:
    """Return a dependency admitting only callers holding one of roles."""

    async def _dependency(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if auth.role not in roles:
            raise HTTPException(status_code=403, detail=f"Requires role: {', '.join(roles)}.")
        return auth

    return _dependency
