"""Service layer."""
from activity_audit.services.session_service import SessionService, is_session_valid
from activity_audit.services.activity_service import ActivityService
from activity_audit.services.impersonation_service import ImpersonationService
from activity_audit.services.statistics_service import StatisticsService, calc_trend
from activity_audit.services.token_service import OpaqueTokenIssuer, TokenIssuer, TokenPair

__all__ = [
    "SessionService",
    "is_session_valid",
    "ActivityService",
    "ImpersonationService",
    "StatisticsService",
    "calc_trend",
    "OpaqueTokenIssuer",
    "TokenIssuer",
    "TokenPair",
]
