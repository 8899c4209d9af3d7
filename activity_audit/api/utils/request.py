"""Request utility functions."""
from typing import Optional, Tuple

from fastapi import Request

from activity_audit.tracking.pipeline import extract_ip_address

SESSION_COOKIE_NAME = "session_token"
SESSION_HEADER_NAME = "x-session-token"


def extract_client_metadata(request: Request) -> Tuple[Optional[str], Optional[str]]:
    """
    Extract IP address and user agent from request.

    Proxy headers are honoured the same way the activity pipeline reads them.

    Returns:
        Tuple of (ip_address, user_agent)
    """
    client_host = request.client.host if request.client else None
    ip_address = extract_ip_address(request.headers, client_host)
    user_agent = request.headers.get("user-agent")
    return ip_address, user_agent


def extract_session_token(request: Request) -> Optional[str]:
    """
    Session token from the cookie, a Bearer header or ``X-Session-Token``.

    Returns:
        The first token found, or None
    """
    token = request.cookies.get(SESSION_COOKIE_NAME)
    if token:
        return token

    authorization = request.headers.get("authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()

    return request.headers.get(SESSION_HEADER_NAME) or None
