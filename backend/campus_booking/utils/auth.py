"""Bearer tokens carrying the account id of a signed-in campus user."""
from datetime import datetime, timedelta, timezone
from typing import Sequence

import jwt
from jwt import InvalidTokenError

DEFAULT_TOKEN_TTL = timedelta(minutes=30)
_BEARER_SCHEME = "bearer"


def create_access_token(
    *,
    user_id: str,
    secret: str,
    algorithm: str = "HS256",
    expires_delta: timedelta | None = None,
) -> str:
    issued_at = datetime.now(timezone.utc)
    claims = {
        "sub": user_id,
        "iat": issued_at,
        "exp": issued_at + (expires_delta or DEFAULT_TOKEN_TTL),
    }
    return jwt.encode(claims, secret, algorithm=algorithm)


def decode_access_token(token: str, *, secret: str, algorithms: Sequence[str]) -> str:
    """Return the account id in ``token``. Raises ValueError for any unusable token."""
    try:
        claims = jwt.decode(token, secret, algorithms=list(algorithms), options={"require": ["sub", "exp"]})
    except InvalidTokenError as exc:
        raise ValueError("invalid token") from exc

    account_id = claims["sub"]
    if not isinstance(account_id, str) or not account_id.strip():
        raise ValueError("token subject is not an account id")
    return account_id


def bearer_token(authorization: str | None) -> str | None:
    """Extract the credentials of an ``Authorization: Bearer <token>`` header."""
    scheme, _, credentials = (authorization or "").partition(" ")
    credentials = credentials.strip()
    if scheme.lower() != _BEARER_SCHEME or not credentials:
        return None
    return credentials
