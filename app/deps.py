"""Credential gate for the read path.

Tokens are issued elsewhere; this service only maps a bearer token to the
owner it was issued for.
"""

from __future__ import annotations

from fastapi import Header, HTTPException, status

from settings import get_settings


def resolve_owner(token: str) -> str | None:
    return get_settings().access_tokens.get(token)


def get_owner_id(authorization: str | None = Header(default=None)) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid Authorization header",
        )
    token = authorization.split(" ", 1)[1].strip()
    owner_id = resolve_owner(token) if token else None
    if owner_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return owner_id
