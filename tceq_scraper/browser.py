"""
Playwright utilities used by the crawl job.

The detail pages are static HTML, so no browser is launched: Playwright's
`APIRequestContext` issues plain HTTP GETs with the same timeout and user
agent handling the rest of the job relies on.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional
from urllib.parse import quote

from playwright.sync_api import APIRequestContext, Error as PlaywrightError, sync_playwright

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


@dataclass
class FetchConfig:
    timeout_ms: int = 15_000
    user_agent: str = DEFAULT_USER_AGENT


class FetchError(RuntimeError):
    """Raised when a detail page cannot be retrieved."""

    def __init__(self, url: str, status: Optional[int], reason: str):
        super().__init__(f"{status if status is not None else 'no response'} {reason} ({url})")
        self.url = url
        self.status = status
        self.reason = reason


def build_detail_url(template: str, ws_number: str, state_code: str, is_number: str) -> str:
    """
    Substitute the seed values into the detail page URL template.

    Values are URL-quoted as-is; trailing blanks in a ws number are part of
    the published identifier and are sent as %20.
    """
    return template.format(
        ws_number=quote(ws_number, safe=""),
        state_code=quote(state_code.strip(), safe=""),
        is_number=quote(is_number.strip(), safe=""),
    )


@contextmanager
def request_session(config: FetchConfig) -> Iterator[APIRequestContext]:
    """
    Context manager yielding a Playwright HTTP request context.

    Disposes of the context and stops Playwright even if an exception
    bubbles up.
    """
    playwright = sync_playwright().start()
    context: Optional[APIRequestContext] = None
    try:
        context = playwright.request.new_context(
            user_agent=config.user_agent,
            timeout=config.timeout_ms,
        )
        yield context
    finally:
        if context is not None:
            context.dispose()
        playwright.stop()


def fetch_html(context: APIRequestContext, url: str) -> str:
    """GET `url` and return the body, raising FetchError on failure or non-2xx."""
    try:
        response = context.get(url)
    except PlaywrightError as exc:
        raise FetchError(url, None, str(exc)) from exc

    try:
        if not response.ok:
            raise FetchError(url, response.status, response.status_text)
        return response.text()
    finally:
        response.dispose()
