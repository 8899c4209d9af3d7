"""Impersonation audit log model."""
import enum

from sqlalchemy import Column, Index, Integer, String, Text, text

from activity_audit.database import Base, UTCDateTime, utcnow


class ImpersonationStatus(str, enum.Enum):
    """Impersonation lifecycle: ACTIVE, then one terminal state."""
    ACTIVE = "active"
    ENDED = "ended"
    EXPIRED = "expired"


class ImpersonationLog(Base):
    """One admin-initiated identity switch."""

    __tablename__ = "impersonation_logs"

    # Primary Key
    id = Column(Integer, primary_key=True, index=True)

    # Who impersonated whom
    admin_user_id = Column(Integer, nullable=False)
    impersonated_user_id = Column(Integer, nullable=False)

    # Timeline
    started_at = Column(UTCDateTime, default=utcnow, nullable=False)
    ended_at = Column(UTCDateTime, nullable=True)

    # Request Info
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)
    reason = Column(Text, nullable=True)  # Support ticket, debugging note, ...

    # Token minted for the impersonated identity (matches UserSession.session_token)
    session_token = Column(String(500), unique=True, nullable=False)

    status = Column(String(20), default=ImpersonationStatus.ACTIVE.value, nullable=False)

    # Indexes
    __table_args__ = (
        Index('idx_impersonation_logs_admin', 'admin_user_id'),
        Index('idx_impersonation_logs_target', 'impersonated_user_id'),
        Index('idx_impersonation_logs_status', 'status'),
        # At most one ACTIVE impersonation per admin
        Index(
            'uq_impersonation_logs_active_admin',
            'admin_user_id',
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

    def __repr__(self):
        return (
            f"<ImpersonationLog(id={self.id}, admin={self.admin_user_id}, "
            f"impersonated={self.impersonated_user_id}, status={self.status})>"
        )
