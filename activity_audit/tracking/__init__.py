"""Per-request activity tracking."""
from activity_audit.tracking.classifier import Classification, classify_activity, should_track
from activity_audit.tracking.pipeline import (
    ActivityContext,
    ActivityPipeline,
    TrackedRequest,
    extract_ip_address,
)

__all__ = [
    "Classification",
    "classify_activity",
    "should_track",
    "ActivityContext",
    "ActivityPipeline",
    "TrackedRequest",
    "extract_ip_address",
]
