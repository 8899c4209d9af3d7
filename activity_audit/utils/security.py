"""Security utilities for token generation."""
import secrets


def generate_secure_token(nbytes: int = 32) -> str:
    """Generate a cryptographically secure random token."""
    return secrets.token_urlsafe(nbytes)


def generate_session_token() -> str:
    """Generate a session (access) token (32 bytes)."""
    return generate_secure_token(32)


def generate_refresh_token() -> str:
    """Generate a refresh token (48 bytes)."""
    return generate_secure_token(48)
