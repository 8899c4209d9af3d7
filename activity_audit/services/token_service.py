"""Token issuing protocol used when minting sessions outside the login flow."""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

from activity_audit.database import utcnow
from activity_audit.models.user import User
from activity_audit.utils.security import generate_refresh_token, generate_session_token


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_at: datetime


class TokenIssuer(Protocol):
    """Protocol for minting a token pair for a principal.

    Implementations must only generate tokens. Persisting the session that
    makes a token usable is the caller's job, so a failed write never leaves
    a valid token behind.
    """

    def issue_token_pair(self, principal: User, expires_in_hours: int) -> TokenPair:
        """Mint an access/refresh token pair.

        Args:
            principal: User the tokens identify
            expires_in_hours: Lifetime of the access token

        Returns:
            TokenPair with the expiry to store on the session
        """
        ...


class OpaqueTokenIssuer:
    """Issues random opaque tokens that are only meaningful via the session store."""

    def issue_token_pair(self, principal: User, expires_in_hours: int) -> TokenPair:
        return TokenPair(
            access_token=generate_session_token(),
            refresh_token=generate_refresh_token(),
            expires_at=utcnow() + timedelta(hours=expires_in_hours),
        )
