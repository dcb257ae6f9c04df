"""
User CRUD operations.
The file store only reads users (for authentication); accounts are
managed by the blog application.
"""
from __future__ import annotations

from blogfiles.crud.base import CRUDBase
from blogfiles.models.user import User
from blogfiles.schemas.user import UserReadPublic


class CRUDUser(CRUDBase[User, UserReadPublic, UserReadPublic]):
    """Read access to users through the inherited get()."""


crud_user = CRUDUser(User)
