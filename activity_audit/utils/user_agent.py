"""User agent classification for session records."""
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class DeviceInfo:
    """Coarse device/browser/OS classification."""

    device_type: str
    browser: str
    operating_system: str


UNKNOWN_DEVICE = DeviceInfo(device_type="unknown", browser="unknown", operating_system="unknown")


def parse_user_agent(user_agent: Optional[str]) -> DeviceInfo:
    """
    Classify a user agent string.

    Args:
        user_agent: Raw User-Agent header

    Returns:
        DeviceInfo with lowercase labels ("unknown" when undetectable)
    """
    if not user_agent:
        return UNKNOWN_DEVICE

    ua = user_agent.lower()

    # Tablets first: iPad and Android tablets also advertise "mobile" at times
    if "ipad" in ua or "tablet" in ua:
        device_type = "tablet"
    elif "mobile" in ua or "android" in ua or "iphone" in ua:
        device_type = "mobile"
    else:
        device_type = "desktop"

    if "edg" in ua:
        browser = "edge"
    elif "opr/" in ua or "opera" in ua:
        browser = "opera"
    elif "chrome" in ua or "crios" in ua:
        browser = "chrome"
    elif "firefox" in ua or "fxios" in ua:
        browser = "firefox"
    elif "safari" in ua:
        browser = "safari"
    else:
        browser = "unknown"

    if "windows" in ua:
        operating_system = "windows"
    elif "iphone" in ua or "ipad" in ua or "ios" in ua:
        operating_system = "ios"
    elif "android" in ua:
        operating_system = "android"
    elif "mac os" in ua or "macintosh" in ua:
        operating_system = "macos"
    elif "linux" in ua:
        operating_system = "linux"
    else:
        operating_system = "unknown"

    return DeviceInfo(device_type=device_type, browser=browser, operating_system=operating_system)
