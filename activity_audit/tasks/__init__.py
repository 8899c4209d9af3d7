"""Background tasks and job scheduler."""
from activity_audit.tasks.scheduler import (
    create_scheduler,
    get_scheduler,
    start_scheduler,
    stop_scheduler,
    list_jobs,
)
from activity_audit.tasks.session_cleanup import session_expiry_job
from activity_audit.tasks.impersonation_cleanup import impersonation_cleanup_job
from activity_audit.tasks.retention import retention_job

__all__ = [
    "create_scheduler",
    "get_scheduler",
    "start_scheduler",
    "stop_scheduler",
    "list_jobs",
    "session_expiry_job",
    "impersonation_cleanup_job",
    "retention_job",
]
