"""FastAPI dependencies for authentication, authorization and services."""
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from activity_audit.api.utils.request import extract_session_token
from activity_audit.config import Settings, get_settings
from activity_audit.database import get_db
from activity_audit.models.session import UserSession
from activity_audit.models.user import User
from activity_audit.services.activity_service import ActivityService
from activity_audit.services.impersonation_service import ImpersonationService
from activity_audit.services.session_service import SessionService, is_session_valid
from activity_audit.services.statistics_service import StatisticsService


async def get_session_service(db: AsyncSession = Depends(get_db)) -> SessionService:
    """Get SessionService instance."""
    return SessionService(db)


async def get_activity_service(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings)
) -> ActivityService:
    """Get ActivityService instance."""
    return ActivityService(db, settings)


async def get_impersonation_service(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings)
) -> ImpersonationService:
    """Get ImpersonationService instance."""
    return ImpersonationService(db, settings)


async def get_statistics_service(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings)
) -> StatisticsService:
    """Get StatisticsService instance."""
    return StatisticsService(db, settings)


async def get_session_token(request: Request) -> Optional[str]:
    """
    Extract session token from the request.

    Looks at the ``session_token`` cookie, then ``Authorization: Bearer``,
    then ``X-Session-Token``.
    """
    return extract_session_token(request)


async def get_current_session(
    session_token: Optional[str] = Depends(get_session_token),
    session_service: SessionService = Depends(get_session_service)
) -> UserSession:
    """
    Get the caller's valid session.

    Raises:
        HTTPException: If not authenticated or session invalid
    """
    if not session_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_session = await session_service.find_by_token(session_token)

    if not is_session_valid(user_session):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user_session


async def get_current_user(
    user_session: UserSession = Depends(get_current_session),
    db: AsyncSession = Depends(get_db)
) -> User:
    """
    Get the current authenticated user.

    Raises:
        HTTPException: If the session's user no longer exists or is inactive
    """
    user = await db.get(User, user_session.user_id)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Inactive user"
        )

    return user


async def get_current_admin_user(
    current_user: User = Depends(get_current_user)
) -> User:
    """
    Get the current admin user.

    Admins and super admins can read sessions, activity and statistics.

    Raises:
        HTTPException: If user is not an admin
    """
    if not current_user.is_admin_role:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized. Admin access required."
        )
    return current_user
