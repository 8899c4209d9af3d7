"""Session management model."""
import enum

from sqlalchemy import JSON, Boolean, Column, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB

from activity_audit.database import Base, UTCDateTime, utcnow


class SessionStatus(str, enum.Enum):
    """Session lifecycle states."""
    ACTIVE = "active"
    EXPIRED = "expired"
    TERMINATED = "terminated"
    LOGGED_OUT = "logged_out"


class UserSession(Base):
    """One authenticated login, bound to a token pair and a fixed expiry."""

    __tablename__ = "user_sessions"

    # Primary Key
    id = Column(Integer, primary_key=True, index=True)

    # Principal reference (plain id, resolved through explicit lookups)
    user_id = Column(Integer, nullable=False)

    # Tokens
    session_token = Column(String(500), unique=True, nullable=False)
    refresh_token = Column(String(500), unique=True, nullable=True)

    # State
    status = Column(String(20), default=SessionStatus.ACTIVE.value, nullable=False)

    # Client Info
    device_type = Column(String(50), nullable=True)
    browser = Column(String(100), nullable=True)
    operating_system = Column(String(100), nullable=True)
    ip_address = Column(String(45), nullable=True)  # Supports IPv6
    user_agent = Column(Text, nullable=True)

    # Timeline
    login_at = Column(UTCDateTime, default=utcnow, nullable=False)
    last_activity_at = Column(UTCDateTime, default=utcnow, nullable=False)
    logout_at = Column(UTCDateTime, nullable=True)
    expires_at = Column(UTCDateTime, nullable=False)

    is_remember_me = Column(Boolean, default=False, nullable=False)
    session_data = Column(JSON().with_variant(JSONB, "postgresql"), nullable=True)

    created_at = Column(UTCDateTime, default=utcnow, nullable=False)

    # Indexes
    __table_args__ = (
        Index('idx_user_sessions_token', 'session_token'),
        Index('idx_user_sessions_user_id', 'user_id'),
        Index('idx_user_sessions_status_expires', 'status', 'expires_at'),
        Index('idx_user_sessions_last_activity', 'last_activity_at'),
    )

    @property
    def is_impersonation(self) -> bool:
        return bool((self.session_data or {}).get("isImpersonating"))

    def __repr__(self):
        return f"<UserSession(id={self.id}, user_id={self.user_id}, status={self.status})>"
