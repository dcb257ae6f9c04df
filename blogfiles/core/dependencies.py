"""
Request dependencies for the file routes: database session, the uploader
identity carried by the bearer token, ownership scope and the byte store.
"""
from __future__ import annotations

import logging
import uuid
from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from blogfiles.core.exceptions import ForbiddenException, InvalidTokenException, UnauthorizedException
from blogfiles.core.security import decode_access_token
from blogfiles.crud.user import crud_user
from blogfiles.db.session import get_db
from blogfiles.models.user import User
from blogfiles.services.byte_store import ByteStore, get_byte_store

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def _token_user_id(credentials: HTTPAuthorizationCredentials | None) -> uuid.UUID:
    if credentials is None:
        raise UnauthorizedException("Missing authentication token")
    try:
        subject = decode_access_token(credentials.credentials).get("sub")
    except JWTError as exc:
        logger.debug("Rejected bearer token: %s", exc)
        raise InvalidTokenException("Invalid or expired access token") from exc
    try:
        return uuid.UUID(str(subject))
    except ValueError as exc:
        raise InvalidTokenException("Malformed token: invalid subject") from exc


async def get_current_user(
    db: Annotated[AsyncSession, Depends(get_db)],
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ] = None,
) -> User:
    """Resolve the uploader behind the access token; inactive accounts are refused."""
    user = await crud_user.get(db, _token_user_id(credentials))
    if user is None or not user.is_active:
        raise UnauthorizedException("Unknown or deactivated user")
    return user


async def require_admin(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    if not current_user.is_admin:
        raise ForbiddenException("Admin privileges required")
    return current_user


async def get_owner_scope(
    current_user: Annotated[User, Depends(get_current_user)],
) -> uuid.UUID | None:
    """Admins may act on any file (None); other users only on their own uploads."""
    return None if current_user.is_admin else current_user.id


DBSession = Annotated[AsyncSession, Depends(get_db)]
CurrentUser = Annotated[User, Depends(get_current_user)]
AdminUser = Annotated[User, Depends(require_admin)]
OwnerScope = Annotated[uuid.UUID | None, Depends(get_owner_scope)]
Storage = Annotated[ByteStore, Depends(get_byte_store)]
