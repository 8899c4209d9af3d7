"""SQLAlchemy models."""
from activity_audit.models.user import User, UserRole
from activity_audit.models.session import UserSession, SessionStatus
from activity_audit.models.activity import ActivityEvent, ActivityType
from activity_audit.models.impersonation import ImpersonationLog, ImpersonationStatus

__all__ = [
    "User",
    "UserRole",
    "UserSession",
    "SessionStatus",
    "ActivityEvent",
    "ActivityType",
    "ImpersonationLog",
    "ImpersonationStatus",
]
