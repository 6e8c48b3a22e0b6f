"""Service layer exports."""

from .directory import DirectoryService, StaffMember
from .notifications import NotificationKind, NotificationService
from .postgres import PostgresConnectionTester

__all__ = [
    "DirectoryService",
    "NotificationKind",
    "NotificationService",
    "PostgresConnectionTester",
    "StaffMember",
]
