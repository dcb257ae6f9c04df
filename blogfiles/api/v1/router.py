"""
Aggregates all v1 API routers into a single APIRouter.
"""
from __future__ import annotations

from fastapi import APIRouter

from blogfiles.api.v1 import files

api_router = APIRouter()

api_router.include_router(files.router)
