from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from courseboard.core.config import settings

ALGORITHM = "HS256"


def create_access_token(subject: str | Any, expires_delta: timedelta) -> str:
    """Issue a signed token for a principal. Login flows live outside this service.

    :param subject: The user id the token stands for.
    :param expires_delta: Lifetime of the token.
    :returns: Encoded JWT.
    """
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode = {"exp": expire, "sub": str(subject)}
    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt


def decode_access_token(token: str) -> dict[str, Any]:
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
