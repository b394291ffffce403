from __future__ import annotations

import datetime as dt
from typing import Any, Dict, Optional

from jose import jwt

ALGORITHM = "HS256"


def create_access_token(
    *,
    subject: str,
    secret: str,
    email: Optional[str] = None,
    expires_hours: int = 24,
    extra_claims: Dict[str, Any] | None = None,
) -> str:
    now = dt.datetime.now(dt.timezone.utc)
    expire = now + dt.timedelta(hours=expires_hours)
    payload: Dict[str, Any] = {"sub": subject, "id": subject, "iat": now, "exp": expire}
    if email:
        payload["email"] = email
    if extra_claims:
        payload.update(extra_claims)
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def decode_access_token(token: str, secret: str) -> Dict[str, Any]:
    return jwt.decode(token, secret, algorithms=[ALGORITHM])
