"""
ORM model package. Import all models here so Alembic autogenerate
can discover every table through the shared Base metadata.
"""
from blogfiles.models.user import User  # noqa: F401
from blogfiles.models.uploaded_file import (  # noqa: F401
    AttachableType,
    FileStatus,
    FileType,
    UploadedFile,
)
