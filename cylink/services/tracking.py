"""Tracking IDs: correlate a click with later conversions.

A tracking ID is carried to the destination as ``utm_content`` and comes back
to ``POST /api/v1/conversions``. It encodes the click and link IDs plus a short
HMAC so clients cannot forge attribution for clicks they never made:

    {click_id:x}-{url_id:x}-{sig}
"""
from __future__ import annotations

import hashlib
import hmac
from typing import Optional

from config.settings import settings

_SIG_LENGTH = 8


def _sign(click_id: int, url_id: int) -> str:
    payload = f"{click_id}:{url_id}".encode()
    key = settings.TRACKING_SIGNING_KEY.encode()
    return hmac.new(key, payload, hashlib.sha256).hexdigest()[:_SIG_LENGTH]


def generate_tracking_id(click_id: int, url_id: int) -> str:
    """Deterministic, URL-safe tracking ID for a click."""
    return f"{click_id:x}-{url_id:x}-{_sign(click_id, url_id)}"


def parse_tracking_id(tracking_id: str) -> Optional[tuple[int, int]]:
    """Return (click_id, url_id), or None if malformed or tampered with."""
    parts = (tracking_id or "").split("-")
    if len(parts) != 3:
        return None
    click_hex, url_hex, sig = parts
    try:
        click_id = int(click_hex, 16)
        url_id = int(url_hex, 16)
    except ValueError:
        return None
    if not hmac.compare_digest(sig, _sign(click_id, url_id)):
        return None
    return click_id, url_id
