"""
Short link resolution, click recording, and link creation.

Redirect flow:
  GET /{short_code} →
  resolve live link (active, not deleted, not expired) →
  persist click row →
  derive tracking ID from (click_id, url_id) for UTM tagging
"""
from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import NamedTuple, Optional
from urllib.parse import urlparse

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from cylink.db.repository import LinkRepository, ClickRepository, GoalRepository, as_utc
from cylink.db.tables import ShortLinkRow
from cylink.services.tracking import generate_tracking_id
from cylink.services.user_agent import UNKNOWN

logger = logging.getLogger(__name__)

RESERVED_PREFIX = "api"
PERMANENT_REDIRECT = "301"
TEMPORARY_REDIRECT = "302"

_CODE_ALPHABET = string.ascii_letters + string.digits
_CUSTOM_CODE_CHARS = set(_CODE_ALPHABET + "-_")
_MAX_GENERATE_ATTEMPTS = 10


class InvalidUrlError(ValueError):
    """Destination is not an absolute http(s) URL."""


class ShortCodeTakenError(Exception):
    """A custom short code is already owned by another link."""


@dataclass
class VisitorInfo:
    """Per-request visitor metadata recorded with a click."""
    ip_address: str | None
    user_agent: str | None
    referrer: str | None
    country: str | None = None
    device_type: str = UNKNOWN
    browser: str = UNKNOWN
    click_id: int | None = None
    tracking_id: str | None = field(default=None)

    def set_click_id(self, click_id: int, url_id: int) -> None:
        """Attach the recorded click and derive its tracking ID."""
        self.click_id = click_id
        self.tracking_id = generate_tracking_id(click_id, url_id)


class ResolvedClick(NamedTuple):
    original_url: str
    click_id: int
    url_id: int


def is_link_eligible(link: ShortLinkRow, now: datetime | None = None) -> bool:
    """Active, not soft-deleted, and not past its expiry."""
    if not link.is_active or link.deleted_at is not None:
        return False
    expiry = as_utc(link.expiry_date)
    if expiry is None:
        return True
    return expiry > (now or datetime.now(timezone.utc))


async def get_link_by_short_code(session: AsyncSession, short_code: str) -> Optional[ShortLinkRow]:
    """Live link for a code, or None. Expiry is left to the caller."""
    return await LinkRepository(session).get_by_short_code(short_code)


async def record_click_and_resolve(
    session: AsyncSession,
    short_code: str,
    visitor: VisitorInfo,
    return_click_id: bool = False,
) -> Optional[ResolvedClick]:
    """Resolve a code and persist one click for it.

    Returns None (and writes nothing) for unknown, inactive, deleted or expired
    codes. With ``return_click_id`` the visitor gets the click ID and tracking
    ID attached. Database errors propagate.
    """
    link = await get_link_by_short_code(session, short_code)
    if link is None or not is_link_eligible(link):
        return None

    click = await ClickRepository(session).record(
        link.id,
        ip_address=visitor.ip_address,
        user_agent=(visitor.user_agent or "")[:500] or None,
        referrer=(visitor.referrer or "")[:1000] or None,
        country=visitor.country,
        device_type=visitor.device_type,
        browser=visitor.browser,
    )
    await session.commit()

    if return_click_id:
        visitor.set_click_id(click.id, link.id)

    return ResolvedClick(original_url=link.original_url, click_id=click.id, url_id=link.id)


# ── Link creation ───────────────────────────────────────────────────────────

def validate_destination(url: str) -> str:
    url = (url or "").strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidUrlError(url)
    return url


def is_valid_custom_code(code: str) -> bool:
    return (
        3 <= len(code) <= 30
        and set(code) <= _CUSTOM_CODE_CHARS
        and not code.lower().startswith(RESERVED_PREFIX)
    )


def generate_short_code(length: int | None = None) -> str:
    """Random base62 code. Never starts with the reserved API prefix."""
    length = length or settings.SHORT_CODE_LENGTH
    while True:
        code = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(length))
        if not code.lower().startswith(RESERVED_PREFIX):
            return code


def short_url_for(short_code: str) -> str:
    return settings.SHORT_URL_BASE + short_code


async def create_short_link(
    session: AsyncSession,
    original_url: str,
    custom_code: str | None = None,
    title: str | None = None,
    expiry_date: datetime | None = None,
    redirect_type: str = TEMPORARY_REDIRECT,
    goal_name: str | None = None,
    user_id: int | None = None,
) -> ShortLinkRow:
    """Create a link, optionally with a custom code and an initial conversion goal.

    Raises InvalidUrlError or ShortCodeTakenError. Commits on success.
    """
    links = LinkRepository(session)
    destination = validate_destination(original_url)

    if custom_code:
        if await links.short_code_exists(custom_code):
            raise ShortCodeTakenError(custom_code)
        code = custom_code
    else:
        for _ in range(_MAX_GENERATE_ATTEMPTS):
            code = generate_short_code()
            if not await links.short_code_exists(code):
                break
        else:
            raise RuntimeError("Could not allocate a unique short code")

    row = await links.create(
        short_code=code,
        original_url=destination,
        title=title,
        expiry_date=expiry_date,
        redirect_type=redirect_type if redirect_type == PERMANENT_REDIRECT else TEMPORARY_REDIRECT,
        user_id=user_id,
    )

    if goal_name:
        await GoalRepository(session).create(row.id, name=goal_name)

    await session.commit()
    logger.info("Created short link %s → %s", code, destination)
    return row
