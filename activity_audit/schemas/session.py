"""Pydantic schemas for session tracking."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from activity_audit.models.session import SessionStatus


class SessionCreate(BaseModel):
    """Data supplied by the authentication layer when a login succeeds."""

    user_id: int
    session_token: str = Field(..., min_length=1)
    refresh_token: Optional[str] = None
    expires_at: datetime
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    device_type: Optional[str] = None
    browser: Optional[str] = None
    operating_system: Optional[str] = None
    is_remember_me: bool = False
    session_data: Optional[Dict[str, Any]] = None


class SessionResponse(BaseModel):
    """Session as exposed over the API (tokens never included)."""

    id: int
    user_id: int
    status: SessionStatus
    device_type: Optional[str]
    browser: Optional[str]
    operating_system: Optional[str]
    ip_address: Optional[str]
    user_agent: Optional[str]
    login_at: datetime
    last_activity_at: datetime
    logout_at: Optional[datetime]
    expires_at: datetime
    is_remember_me: bool
    is_current: bool = False
    is_impersonation: bool = False

    model_config = {
        "from_attributes": True
    }


class SessionListResponse(BaseModel):
    """Response for session list with pagination."""

    items: List[SessionResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class SessionTerminateResponse(BaseModel):
    """Result of a logout / revoke operation."""

    message: str
    terminated: int


class SweepResponse(BaseModel):
    """Result of a manually triggered sweep."""

    message: str
    affected: int
