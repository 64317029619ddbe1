"""FastAPI dependencies: caller identity and upload services."""

import uuid
from dataclasses import dataclass

import jwt
from fastapi import Depends, HTTPException, Request, status

from sigp_storage.auth import decode_token
from sigp_storage.storage.coordinator import UploadCoordinator


@dataclass
class Principal:
    """Authenticated caller identity."""

    id: uuid.UUID
    role: str


def _extract_bearer_token(request: Request) -> str | None:
    auth = request.headers.get("Authorization")
    if auth and auth.startswith("Bearer "):
        return auth[7:]
    return None


async def get_current_principal(request: Request) -> Principal:
    token = _extract_bearer_token(request)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization header",
        )
    try:
        payload = decode_token(token)
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired",
        )
    except jwt.PyJWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        )
    if payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type",
        )
    try:
        user_id = uuid.UUID(payload["sub"])
    except (KeyError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token subject",
        )
    return Principal(id=user_id, role=payload.get("role", "user"))


async def require_user(
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    """Any authenticated user."""
    return principal


def get_coordinator(request: Request) -> UploadCoordinator:
    """The coordinator built at startup and kept on app state."""
    return request.app.state.coordinator
