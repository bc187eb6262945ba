"""FastAPI dependency: get_current_user_id.

Usage in any protected router:
    from src.am_gateway.auth.dependencies import get_current_user_id

    @router.get("/protected")
    async def protected(user_id: str = Depends(get_current_user_id)):
        ...
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.am_common.errors import InvalidCredentialsError
from src.am_gateway.auth.jwt_handler import decode_token

_bearer = HTTPBearer(auto_error=False)

# Reusable 401 exception with WWW-Authenticate header (OAuth2 standard)
_CREDENTIALS_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Invalid or expired token",
    headers={"WWW-Authenticate": "Bearer"},
)


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> str:
    """Return the acting user id from the Bearer token, or raise HTTP 401."""
    if credentials is None:
        raise _CREDENTIALS_EXCEPTION
    try:
        payload = decode_token(credentials.credentials)
    except InvalidCredentialsError:
        raise _CREDENTIALS_EXCEPTION from None
    return payload["sub"]
