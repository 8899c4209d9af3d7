"""Pydantic schemas for activity events."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from activity_audit.models.activity import ActivityType


class ActivityEventCreate(BaseModel):
    """One activity event to be written by the recorder."""

    user_id: int
    activity_type: ActivityType
    session_id: Optional[str] = None
    description: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    request_path: Optional[str] = Field(None, max_length=500)
    request_method: Optional[str] = Field(None, max_length=10)
    response_status: Optional[int] = None
    duration_ms: Optional[int] = Field(None, ge=0)
    metadata: Optional[Dict[str, Any]] = None
    is_successful: bool = True
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None  # Defaults to write time


class ActivityFilters(BaseModel):
    """Filters for the admin activity listing."""

    user_id: Optional[int] = None
    session_id: Optional[str] = None
    activity_type: Optional[ActivityType] = None
    is_successful: Optional[bool] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class ActivityEventResponse(BaseModel):
    """Activity event response."""

    id: int
    user_id: int
    session_id: Optional[str]
    activity_type: ActivityType
    description: Optional[str]
    resource_type: Optional[str]
    resource_id: Optional[str]
    ip_address: Optional[str]
    user_agent: Optional[str]
    request_path: Optional[str]
    request_method: Optional[str]
    response_status: Optional[int]
    duration_ms: Optional[int]
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="event_metadata")
    is_successful: bool
    error_message: Optional[str]
    created_at: datetime

    model_config = {
        "from_attributes": True
    }


class ActivityListResponse(BaseModel):
    """Response for activity list with pagination."""

    items: List[ActivityEventResponse]
    total: int
    page: int
    page_size: int
    total_pages: int
