"""JWT access token creation and verification.

Only access tokens are issued and checked here; identity comes from the
`sub` claim. HS256 with the shared JWT_SECRET.
"""

from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from config.settings import settings
from src.am_common.errors import InvalidCredentialsError

_ALGORITHM = settings.JWT_ALGORITHM
_ACCESS_EXPIRE = timedelta(minutes=settings.JWT_EXPIRE_MINUTES)
# User ids are stored in VARCHAR(64) columns
MAX_SUBJECT_LENGTH = 64


def create_access_token(user_id: str, expires_in: timedelta | None = None) -> str:
    now = datetime.now(UTC)
    payload = {
        "sub": user_id,
        "type": "access",
        "iat": now,
        "exp": now + (expires_in if expires_in is not None else _ACCESS_EXPIRE),
    }
    return str(jwt.encode(payload, settings.JWT_SECRET, algorithm=_ALGORITHM))


def decode_token(token: str) -> dict[str, str]:
    """Decode and validate an access token.

    Raises:
        InvalidCredentialsError: bad signature, expired, wrong type, or a missing
            or over-long subject.
    """
    try:
        payload: dict[str, str] = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[_ALGORITHM],  # Explicit list prevents algorithm confusion
        )
    except JWTError:
        raise InvalidCredentialsError() from None

    if payload.get("type") != "access" or not payload.get("sub"):
        raise InvalidCredentialsError()
    if len(payload["sub"]) > MAX_SUBJECT_LENGTH:
        raise InvalidCredentialsError()
    return payload
