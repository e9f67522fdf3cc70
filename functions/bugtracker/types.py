"""
Enumerations shared by the store, the API schemas and the notifier.
"""

from enum import Enum


class UserRole(str, Enum):
    DEVELOPER = "developer"
    USER = "user"


class ReportStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class NotificationEvent(str, Enum):
    NEW_REPORT = "new_report"
    STATUS_CHANGED = "status_changed"
    ASSIGNED = "assigned"
    COMMENT_ADDED = "comment_added"
