"""User (principal) model."""
import enum

from sqlalchemy import Boolean, Column, Index, Integer, String

from activity_audit.database import Base, UTCDateTime, utcnow


class UserRole(str, enum.Enum):
    """User role enumeration."""
    SUPER_ADMIN = "super_admin"  # Full access, may impersonate other users
    ADMIN = "admin"  # Admin console access
    STAFF = "staff"  # Back-office staff
    CUSTOMER = "customer"  # Storefront customer


ADMIN_ROLES = {UserRole.SUPER_ADMIN.value, UserRole.ADMIN.value}


class User(Base):
    """
    Principal record.

    Credentials live with the authentication provider; this table only keeps
    the identity and role that session and activity tracking read.
    """

    __tablename__ = "users"

    # Primary Key
    id = Column(Integer, primary_key=True, index=True)

    # Basic Information
    email = Column(String(255), unique=True, nullable=False, index=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)

    # Role and Status
    role = Column(String(20), default=UserRole.CUSTOMER.value, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    # Timestamps
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index('idx_users_role', 'role'),
    )

    @property
    def is_super_admin(self) -> bool:
        return self.role == UserRole.SUPER_ADMIN.value

    @property
    def is_admin_role(self) -> bool:
        """Admins and super admins can use the admin console."""
        return self.role in ADMIN_ROLES

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
