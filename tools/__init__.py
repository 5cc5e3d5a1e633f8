"""HTTP tooling for crawling.

fetch_html:
    Retrying page fetch with browser-like headers, per-attempt timeouts,
    backoff with jitter and Retry-After support.

browser_headers / create_ssl_context:
    Request headers with a rotating User-Agent; certifi-backed SSL context.

Example:
    >>> from tools import fetch_html
    >>> html = await fetch_html("https://example.com/board")
"""

from tools.fetch import fetch_html
from tools.utils import DEFAULT_REFERER, browser_headers, create_ssl_context, random_user_agent

__all__ = [
    "fetch_html",
    "browser_headers",
    "create_ssl_context",
    "random_user_agent",
    "DEFAULT_REFERER",
]
