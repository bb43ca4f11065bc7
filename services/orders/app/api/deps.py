"""Request identity and collaborator providers.

Collaborators are plain dependencies so tests can swap them through
``app.dependency_overrides``.
"""
from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, Request

from app.application.shipping_rates import StaticShippingRateTable
from app.core_settings import get_settings
from app.infrastructure.clients import CatalogClient, NotificationsClient
from shared.core import set_request_context

BEARER_PREFIX = "Bearer "


@dataclass
class Identity:
    user_id: str
    is_admin: bool = False


def decode_access_token(token: str) -> Optional[dict]:
    settings = get_settings()
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except jwt.PyJWTError:
        return None


async def get_identity(request: Request) -> Optional[Identity]:
    """Anonymous requests are guests; a bad token is still a 401."""
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None
    if not auth_header.startswith(BEARER_PREFIX):
        raise HTTPException(status_code=401, detail="Invalid token")
    token_data = decode_access_token(auth_header[len(BEARER_PREFIX):])
    if not token_data or not token_data.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid token")
    identity = Identity(user_id=str(token_data["sub"]), is_admin=bool(token_data.get("is_admin", False)))
    set_request_context(user_id=identity.user_id)
    return identity


def require_admin(identity: Optional[Identity] = Depends(get_identity)) -> Identity:
    if identity is None:
        raise HTTPException(status_code=401, detail="Missing token")
    if not identity.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return identity


def get_catalog() -> CatalogClient:
    return CatalogClient()


def get_notifications() -> NotificationsClient:
    return NotificationsClient()


def get_shipping_rates() -> StaticShippingRateTable:
    return StaticShippingRateTable.from_settings()
