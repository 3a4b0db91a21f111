"""Cursor pagination over Fizzy's Link-header paged listings.

Fizzy pages its list endpoints with `Link: <...>; rel="next"` headers; the
client reads the next URL from `httpx.Response.links`. Tools hand callers an
opaque cursor instead: the URL to resume from, base64url encoded, so a later
and otherwise unrelated call can pick up where the last one stopped without
any server-side session.
"""

import base64
import binascii
import logging
import re
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable
from urllib.parse import urldefrag, urljoin

from fizzy_mcp.errors import ApiError, ErrorKind
from fizzy_mcp.result import Err, Ok, Result

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 25
MIN_LIMIT = 1
MAX_LIMIT = 100

_CURSOR_ALPHABET = re.compile(r"^[A-Za-z0-9_-]+$")
_URL_SCHEMES = ("http://", "https://")
_SKIP_FRAGMENT = re.compile(r"^skip=(\d+)$")


# ── Cursor codec ─────────────────────────────────────────────


def encode_cursor(url: str) -> str:
    return base64.urlsafe_b64encode(url.encode("utf-8")).decode("ascii").rstrip("=")


def decode_cursor(cursor: str) -> str | None:
    """Return the URL a cursor encodes, or None if it is not one of ours."""
    if not isinstance(cursor, str) or not _CURSOR_ALPHABET.match(cursor):
        return None
    padded = cursor + "=" * (-len(cursor) % 4)
    try:
        url = base64.urlsafe_b64decode(padded).decode("utf-8")
    except (binascii.Error, ValueError):
        return None
    # Reject non-canonical encodings so each URL has exactly one cursor.
    if encode_cursor(url) != cursor:
        return None
    if not url.startswith(_URL_SCHEMES):
        return None
    return url


def with_skip(url: str, skip: int) -> str:
    base, _ = urldefrag(url)
    return f"{base}#skip={skip}" if skip else base


def split_skip(url: str) -> tuple[str, int]:
    """Split a resume URL into the page URL and the number of items already consumed."""
    base, fragment = urldefrag(url)
    match = _SKIP_FRAGMENT.match(fragment)
    return base, int(match.group(1)) if match else 0


# ── Page iteration ───────────────────────────────────────────


@dataclass
class Page:
    items: list[Any]
    next_url: str | None = None


PageFetcher = Callable[[str], Awaitable["Result[Page, ApiError]"]]


class PageFetchError(Exception):
    """Raised out of a PageIterator when fetching a page fails."""

    def __init__(self, error: ApiError):
        super().__init__(error.message)
        self.error = error


class PageIterator:
    """Lazily walk a Link-paged listing, one page at a time.

    A page is only fetched once every item of the previous page has been
    handed out. `continuation()` tells where a later iteration should resume.
    A next link pointing at a page already fetched raises PageFetchError.
    """

    def __init__(self, url: str, fetch: PageFetcher, skip: int = 0):
        self._url = url
        self._fetch = fetch
        self._skip = skip
        self._buffer: deque[Any] = deque()
        self._position = 0
        self._next_url: str | None = None
        self._started = False
        self._seen: set[str] = set()

    def __aiter__(self) -> "PageIterator":
        return self

    async def __anext__(self) -> Any:
        while not self._buffer:
            if self._started:
                if self._next_url is None:
                    raise StopAsyncIteration
                self._url = self._next_url
            await self._load()
        self._position += 1
        return self._buffer.popleft()

    async def _load(self) -> None:
        if self._url in self._seen:
            logger.warning("Next link repeats %s; stopping", self._url)
            raise PageFetchError(
                ApiError(ErrorKind.GENERIC, 0, f"Pagination loop: {self._url} was already fetched")
            )
        self._seen.add(self._url)

        logger.debug("Fetching page %s", self._url)
        result = await self._fetch(self._url)
        if isinstance(result, Err):
            raise PageFetchError(result.error)
        page = result.value
        self._started = True
        skip, self._skip = self._skip, 0
        self._buffer = deque(page.items[skip:])
        self._position = min(skip, len(page.items))
        self._next_url = urljoin(self._url, page.next_url) if page.next_url else None

    def continuation(self) -> str | None:
        """URL to resume from, or None when the listing is exhausted."""
        if not self._started:
            return with_skip(self._url, self._skip)
        if self._buffer:
            return with_skip(self._url, self._position)
        return self._next_url


async def collect_all(pages: PageIterator) -> list[Any]:
    return [item async for item in pages]


async def take(pages: PageIterator, count: int) -> list[Any]:
    """Pull at most `count` items without fetching past the page that supplies the last one."""
    items: list[Any] = []
    while len(items) < count:
        try:
            items.append(await pages.__anext__())
        except StopAsyncIteration:
            break
    return items


# ── Tool-facing page shape ───────────────────────────────────


@dataclass(frozen=True)
class PaginationMetadata:
    returned: int
    has_more: bool
    next_cursor: str | None = None

    def __post_init__(self) -> None:
        if self.has_more != (self.next_cursor is not None):
            raise ValueError("next_cursor must be set exactly when has_more is true")

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"returned": self.returned, "has_more": self.has_more}
        if self.next_cursor is not None:
            data["next_cursor"] = self.next_cursor
        return data


@dataclass(frozen=True)
class PaginatedResult:
    items: list[Any] = field(default_factory=list)
    pagination: PaginationMetadata = field(default_factory=lambda: PaginationMetadata(0, False))

    @classmethod
    def from_items(cls, items: list[Any], resume_url: str | None) -> "PaginatedResult":
        cursor = encode_cursor(resume_url) if resume_url else None
        return cls(items, PaginationMetadata(len(items), cursor is not None, cursor))

    def as_dict(self) -> dict[str, Any]:
        return {"items": self.items, "pagination": self.pagination.as_dict()}


def validate_limit(limit: int) -> "Result[int, ApiError]":
    if isinstance(limit, bool) or not isinstance(limit, int) or not MIN_LIMIT <= limit <= MAX_LIMIT:
        return Err(ApiError.validation("limit", f"must be between {MIN_LIMIT} and {MAX_LIMIT}"))
    return Ok(limit)
