"""Coarse device/browser classification from a User-Agent header."""
from __future__ import annotations

import re

UNKNOWN = "unknown"

_BOT_RE = re.compile(r"bot|crawler|spider|slurp|facebookexternalhit|preview", re.I)
_TABLET_RE = re.compile(r"ipad|tablet|kindle|silk|playbook|(android(?!.*mobile))", re.I)
_MOBILE_RE = re.compile(r"mobi|iphone|ipod|android.*mobile|windows phone|blackberry|opera mini", re.I)

# Order matters: Edge and Opera also advertise Chrome, Chrome advertises Safari
_BROWSERS: list[tuple[str, re.Pattern]] = [
    ("Edge", re.compile(r"edg(e|a|ios)?/", re.I)),
    ("Opera", re.compile(r"opr/|opera", re.I)),
    ("Samsung Internet", re.compile(r"samsungbrowser/", re.I)),
    ("Firefox", re.compile(r"firefox/|fxios/", re.I)),
    ("Chrome", re.compile(r"chrome/|crios/", re.I)),
    ("Safari", re.compile(r"version/[\d.]+.*safari/", re.I)),
    ("Internet Explorer", re.compile(r"msie |trident/", re.I)),
]


def device_type(user_agent: str | None) -> str:
    """One of: bot, tablet, mobile, desktop, unknown."""
    if not user_agent:
        return UNKNOWN
    if _BOT_RE.search(user_agent):
        return "bot"
    if _TABLET_RE.search(user_agent):
        return "tablet"
    if _MOBILE_RE.search(user_agent):
        return "mobile"
    return "desktop"


def browser(user_agent: str | None) -> str:
    if not user_agent:
        return UNKNOWN
    for name, pattern in _BROWSERS:
        if pattern.search(user_agent):
            return name
    return UNKNOWN
