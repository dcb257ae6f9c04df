"""
User Pydantic schemas.
"""
from __future__ import annotations

import uuid

from pydantic import BaseModel


class UserReadPublic(BaseModel):
    """Minimal public profile, safe to expose as a file's uploader."""

    id: uuid.UUID
    username: str
    full_name: str | None
    avatar_url: str | None

    model_config = {"from_attributes": True}
