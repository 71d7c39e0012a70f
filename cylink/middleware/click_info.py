"""Visitor enrichment for short-code requests.

Populates ``request.state.click_info`` with device type, browser and country so
the redirect route records richer clicks than its "unknown" defaults.
"""
from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from cylink.api.redirect import client_ip, is_short_code_candidate
from cylink.services import user_agent as ua
from cylink.services.links import VisitorInfo

# Set by CDNs / load balancers that geolocate the client
_COUNTRY_HEADERS = ("cf-ipcountry", "x-country-code", "x-appengine-country")


def _country(request: Request) -> str | None:
    for header in _COUNTRY_HEADERS:
        value = (request.headers.get(header) or "").strip().upper()
        if len(value) == 2 and value.isalpha() and value != "XX":
            return value
    return None


class ClickInfoMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method == "GET" and is_short_code_candidate(request.url.path[1:]):
            agent = request.headers.get("user-agent")
            request.state.click_info = VisitorInfo(
                ip_address=client_ip(request),
                user_agent=agent,
                referrer=request.headers.get("referer") or request.headers.get("referrer"),
                country=_country(request),
                device_type=ua.device_type(agent),
                browser=ua.browser(agent),
            )
        return await call_next(request)
