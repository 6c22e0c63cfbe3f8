"""
User-agent classification: raw client string → device class, OS, browser.

Rules are checked in order and the first match wins. Order matters:
  - iPad strings also carry "Mobile", so tablet is tested before mobile
  - iPhone/iPad strings also carry "Mac OS X", Android strings carry "Linux"
  - Chrome strings carry "Safari", Edge strings carry both "Chrome" and "Safari"
"""

import re
from dataclasses import dataclass
from enum import Enum


class DeviceType(str, Enum):
    DESKTOP = "desktop"
    MOBILE = "mobile"
    TABLET = "tablet"


UNKNOWN = "Unknown"

_TABLET_RE = re.compile(r"ipad|tablet|playbook|silk", re.IGNORECASE)
_MOBILE_RE = re.compile(
    r"mobile|iphone|ipod|android|blackberry|opera mini|windows ce|palm|smartphone|iemobile",
    re.IGNORECASE,
)

OS_RULES: tuple[tuple[re.Pattern, str], ...] = (
    (re.compile(r"iphone|ipad|ipod|\bios\b", re.IGNORECASE), "iOS"),
    (re.compile(r"android", re.IGNORECASE), "Android"),
    (re.compile(r"windows", re.IGNORECASE), "Windows"),
    (re.compile(r"mac os|macintosh", re.IGNORECASE), "macOS"),
    (re.compile(r"linux", re.IGNORECASE), "Linux"),
)

_CHROME_RE = re.compile(r"chrome|crios", re.IGNORECASE)
_EDGE_RE = re.compile(r"edg", re.IGNORECASE)
_FIREFOX_RE = re.compile(r"firefox|fxios", re.IGNORECASE)
_SAFARI_RE = re.compile(r"safari", re.IGNORECASE)
_OPERA_RE = re.compile(r"opera|opr/", re.IGNORECASE)


@dataclass(frozen=True)
class UserAgentInfo:
    device_type: DeviceType
    operating_system: str
    browser: str


def classify_device(user_agent: str) -> DeviceType:
    if _TABLET_RE.search(user_agent):
        return DeviceType.TABLET
    if _MOBILE_RE.search(user_agent):
        return DeviceType.MOBILE
    return DeviceType.DESKTOP


def classify_os(user_agent: str) -> str:
    for pattern, name in OS_RULES:
        if pattern.search(user_agent):
            return name
    return UNKNOWN


def classify_browser(user_agent: str) -> str:
    has_chrome = bool(_CHROME_RE.search(user_agent))
    has_edge = bool(_EDGE_RE.search(user_agent))

    if has_chrome and not has_edge:
        return "Chrome"
    if _FIREFOX_RE.search(user_agent):
        return "Firefox"
    if _SAFARI_RE.search(user_agent) and not has_chrome:
        return "Safari"
    if has_edge:
        return "Edge"
    if _OPERA_RE.search(user_agent):
        return "Opera"
    return UNKNOWN


def classify_user_agent(user_agent: str | None) -> UserAgentInfo:
    """Total: an empty or unrecognised string classifies as desktop / Unknown / Unknown."""
    user_agent = user_agent or ""
    return UserAgentInfo(
        device_type=classify_device(user_agent),
        operating_system=classify_os(user_agent),
        browser=classify_browser(user_agent),
    )
