"""Pydantic schemas for admin impersonation."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from activity_audit.models.impersonation import ImpersonationStatus


class ImpersonationMeta(BaseModel):
    """Request metadata recorded with an impersonation."""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    reason: Optional[str] = Field(None, max_length=1000)


class ImpersonationStartRequest(BaseModel):
    """Start impersonation request schema."""

    target_user_id: Optional[int] = Field(None, description="User to impersonate")
    reason: Optional[str] = Field(None, max_length=1000, description="Why impersonation is needed")


class ImpersonationEndRequest(BaseModel):
    """End impersonation request schema.

    When no token is given, the caller's current session token is used.
    """

    session_token: Optional[str] = None


class ImpersonationResult(BaseModel):
    """Token pair and log reference returned when impersonation starts."""

    access_token: str
    refresh_token: str
    impersonation_log_id: int
    expires_at: datetime


class ImpersonationLogResponse(BaseModel):
    """Impersonation log entry response (token not included)."""

    id: int
    admin_user_id: int
    impersonated_user_id: int
    started_at: datetime
    ended_at: Optional[datetime]
    ip_address: Optional[str]
    user_agent: Optional[str]
    reason: Optional[str]
    status: ImpersonationStatus

    model_config = {
        "from_attributes": True
    }


class ImpersonationLogListResponse(BaseModel):
    """Response for impersonation log list with pagination."""

    items: List[ImpersonationLogResponse]
    total: int
    page: int
    page_size: int
    total_pages: int
