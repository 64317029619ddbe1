"""SQLAlchemy ORM models - import all models here for Alembic discovery."""

from sigp_storage.models.base import Base
from sigp_storage.models.enums import IntentStatus, MismatchPolicy
from sigp_storage.models.file_record import FileRecord
from sigp_storage.models.audit_log import AuditLog

__all__ = [
    "Base",
    "IntentStatus",
    "MismatchPolicy",
    "FileRecord",
    "AuditLog",
]
