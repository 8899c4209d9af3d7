"""Activity event model."""
import enum

from sqlalchemy import JSON, Boolean, Column, Index, Integer, String, Text, event
from sqlalchemy.dialects.postgresql import JSONB

from activity_audit.database import Base, UTCDateTime, utcnow


class ActivityType(str, enum.Enum):
    """Kinds of tracked actions."""
    LOGIN = "login"
    LOGOUT = "logout"
    PAGE_VIEW = "page_view"
    API_CALL = "api_call"
    PROFILE_UPDATE = "profile_update"
    PASSWORD_CHANGE = "password_change"
    SETTINGS_UPDATE = "settings_update"
    FILE_UPLOAD = "file_upload"
    FILE_DOWNLOAD = "file_download"
    SEARCH = "search"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    VIEW = "view"
    EXPORT = "export"
    IMPORT = "import"
    ADMIN_ACTION = "admin_action"
    IMPERSONATION_START = "impersonation_start"
    IMPERSONATION_END = "impersonation_end"
    OTHER = "other"


class ActivityEvent(Base):
    """Immutable audit record of one tracked action."""

    __tablename__ = "user_activities"

    # Primary Key
    id = Column(Integer, primary_key=True, index=True)

    # Who
    user_id = Column(Integer, nullable=False)
    session_id = Column(String(500), nullable=True)  # Session token, absent for system events

    # What
    activity_type = Column(String(50), nullable=False)
    description = Column(Text, nullable=True)
    resource_type = Column(String(100), nullable=True)
    resource_id = Column(String(255), nullable=True)

    # Request Info
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)
    request_path = Column(String(500), nullable=True)
    request_method = Column(String(10), nullable=True)
    response_status = Column(Integer, nullable=True)
    duration_ms = Column(Integer, nullable=True)

    # Sanitized details ("metadata" is reserved on declarative classes)
    event_metadata = Column("metadata", JSON().with_variant(JSONB, "postgresql"), nullable=True)

    # Outcome
    is_successful = Column(Boolean, default=True, nullable=False)
    error_message = Column(Text, nullable=True)

    # Timestamp
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)

    # Indexes
    __table_args__ = (
        Index('idx_user_activities_user_id', 'user_id'),
        Index('idx_user_activities_type', 'activity_type'),
        Index('idx_user_activities_created_at', 'created_at'),
        Index('idx_user_activities_session_id', 'session_id'),
    )

    def __repr__(self):
        return f"<ActivityEvent(id={self.id}, type={self.activity_type}, user_id={self.user_id})>"


@event.listens_for(ActivityEvent, "before_update")
def _reject_activity_update(mapper, connection, target):
    """Activity events are append-only."""
    raise ValueError("ActivityEvent rows are immutable once written")
