"""Async HTTP client for the Fizzy REST API.

No method raises for HTTP or transport failures: each returns a Result whose
Err branch carries a classified ApiError.
"""

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from fizzy_mcp.config import REQUEST_TIMEOUT, get_base_url, get_token
from fizzy_mcp.errors import ApiError, ErrorKind
from fizzy_mcp.models import Identity
from fizzy_mcp.pagination import (
    Page,
    PageFetchError,
    PageIterator,
    PaginatedResult,
    collect_all,
    decode_cursor,
    split_skip,
    take,
    validate_limit,
)
from fizzy_mcp.result import Err, Ok, Result

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApiResponse:
    data: Any
    status: int = 200
    next_url: str | None = None


@dataclass(frozen=True)
class CardFilters:
    board_ids: tuple[str, ...] = ()
    tag_ids: tuple[str, ...] = ()
    assignee_ids: tuple[str, ...] = ()
    terms: tuple[str, ...] = ()
    indexed_by: str | None = None
    sorted_by: str | None = None

    def to_params(self) -> list[tuple[str, str]]:
        params: list[tuple[str, str]] = []
        params.extend(("board_ids[]", board_id) for board_id in self.board_ids)
        if self.indexed_by:
            params.append(("indexed_by", self.indexed_by))
        params.extend(("tag_ids[]", tag_id) for tag_id in self.tag_ids)
        params.extend(("assignee_ids[]", user_id) for user_id in self.assignee_ids)
        if self.sorted_by:
            params.append(("sorted_by", self.sorted_by))
        params.extend(("terms[]", term) for term in self.terms)
        return params


def _error_body(r: httpx.Response) -> Any:
    try:
        return r.json()
    except ValueError:
        return None


class FizzyClient:
    def __init__(
        self,
        token: str | None = None,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = REQUEST_TIMEOUT,
    ):
        self.base_url = (base_url or get_base_url()).rstrip("/")
        self._token = token if token is not None else get_token()
        self._transport = transport
        self._timeout = timeout

    # ── HTTP helpers ─────────────────────────────────────────

    def _headers(self, with_body: bool = False) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {self._token}", "Accept": "application/json"}
        if with_body:
            headers["Content-Type"] = "application/json"
        return headers

    def _url(self, path_or_url: str) -> str:
        if path_or_url.startswith(("http://", "https://")):
            return path_or_url
        return f"{self.base_url}{path_or_url}"

    async def request(
        self,
        method: str,
        path: str,
        params: Any = None,
        body: Any = None,
    ) -> Result[ApiResponse, ApiError]:
        if not self._token:
            logger.warning("No API token configured; refusing %s %s", method, path)
            return Err(ApiError.from_status(401))

        url = self._url(path)
        logger.debug("%s %s", method, url)
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as c:
                r = await c.request(
                    method,
                    url,
                    params=params,
                    json=body,
                    headers=self._headers(with_body=body is not None),
                )
                if not r.is_success:
                    return Err(ApiError.from_status(r.status_code, _error_body(r)))

                if r.status_code == 201 and not r.content and r.headers.get("Location"):
                    location = str(r.url.join(r.headers["Location"]))
                    r = await c.get(location, headers=self._headers())
                    if not r.is_success:
                        return Err(ApiError.from_status(r.status_code, _error_body(r)))
        except httpx.HTTPError as exc:
            logger.debug("%s %s failed: %s", method, url, exc)
            return Err(ApiError.transport(exc))

        data = None
        if r.status_code != 204 and r.content:
            try:
                data = r.json()
            except ValueError:
                return Err(ApiError(ErrorKind.GENERIC, r.status_code, "API returned a non-JSON response"))
        next_url = r.links.get("next", {}).get("url")
        return Ok(ApiResponse(data, r.status_code, next_url))

    async def _data(self, method: str, path: str, body: Any = None) -> Result[Any, ApiError]:
        result = await self.request(method, path, body=body)
        if isinstance(result, Err):
            return result
        return Ok(result.value.data)

    async def _fetch_page(self, url: str) -> Result[Page, ApiError]:
        result = await self.request("GET", url)
        if isinstance(result, Err):
            return result
        response = result.value
        # No content is an empty page; any other non-list body is not a listing.
        items = [] if response.data is None else response.data
        if not isinstance(items, list):
            logger.warning("Expected a list from %s, got %s", url, type(items).__name__)
            return Err(ApiError(ErrorKind.GENERIC, response.status, "Expected a list response"))
        return Ok(Page(items, response.next_url))

    def _start_url(self, path: str, cursor: str | None, params: Any = None) -> Result[str, ApiError]:
        """Resolve the first page URL, from a cursor when one was given."""
        if cursor is not None:
            url = decode_cursor(cursor)
            if url is None or not url.startswith(f"{self.base_url}/"):
                logger.warning("Rejected pagination cursor")
                return Err(ApiError.validation("cursor", "Invalid pagination cursor"))
            return Ok(url)
        request = httpx.Request("GET", self._url(path), params=params)
        return Ok(str(request.url))

    async def _list(
        self,
        path: str,
        limit: int,
        cursor: str | None = None,
        params: Any = None,
    ) -> Result[PaginatedResult, ApiError]:
        checked = validate_limit(limit)
        if isinstance(checked, Err):
            return checked
        start = self._start_url(path, cursor, params)
        if isinstance(start, Err):
            return start

        url, skip = split_skip(start.value)
        pages = PageIterator(url, self._fetch_page, skip=skip)
        try:
            items = await take(pages, limit)
        except PageFetchError as exc:
            return Err(exc.error)
        return Ok(PaginatedResult.from_items(items, pages.continuation()))

    async def _list_all(self, path: str, params: Any = None) -> Result[list[Any], ApiError]:
        start = self._start_url(path, None, params)
        try:
            return Ok(await collect_all(PageIterator(start.value, self._fetch_page)))
        except PageFetchError as exc:
            return Err(exc.error)

    # ── Identity ─────────────────────────────────────────────

    async def whoami(self) -> Result[Identity, ApiError]:
        result = await self._data("GET", "/my/identity")
        if isinstance(result, Err):
            return result
        return Ok(Identity.from_json(result.value))

    # ── Boards ───────────────────────────────────────────────

    async def list_boards(self, account: str, limit: int, cursor: str | None = None) -> Result[PaginatedResult, ApiError]:
        return await self._list(f"/{account}/boards", limit, cursor)

    async def get_board(self, account: str, board_id: str) -> Result[Any, ApiError]:
        return await self._data("GET", f"/{account}/boards/{board_id}")

    async def create_board(self, account: str, name: str, description: str | None = None) -> Result[Any, ApiError]:
        board: dict[str, Any] = {"name": name}
        if description:
            board["description"] = description
        return await self._data("POST", f"/{account}/boards", {"board": board})

    async def update_board(
        self, account: str, board_id: str, name: str | None = None, description: str | None = None
    ) -> Result[Any, ApiError]:
        board: dict[str, Any] = {}
        if name is not None:
            board["name"] = name
        if description is not None:
            board["description"] = description
        return await self._data("PUT", f"/{account}/boards/{board_id}", {"board": board})

    # ── Cards ────────────────────────────────────────────────

    async def list_cards(
        self,
        account: str,
        limit: int,
        cursor: str | None = None,
        filters: CardFilters | None = None,
    ) -> Result[PaginatedResult, ApiError]:
        # A cursor already encodes the filtered URL.
        params = (filters or CardFilters()).to_params() if cursor is None else None
        return await self._list(f"/{account}/cards", limit, cursor, params or None)

    async def list_all_cards(self, account: str, filters: CardFilters | None = None) -> Result[list[Any], ApiError]:
        params = (filters or CardFilters()).to_params()
        return await self._list_all(f"/{account}/cards", params or None)

    async def get_card(self, account: str, number: int) -> Result[Any, ApiError]:
        return await self._data("GET", f"/{account}/cards/{number}")

    async def create_card(self, account: str, board_id: str, title: str, description: str | None = None) -> Result[Any, ApiError]:
        card: dict[str, Any] = {"title": title}
        if description:
            card["description"] = description
        return await self._data("POST", f"/{account}/boards/{board_id}/cards", {"card": card})

    async def update_card(
        self, account: str, number: int, title: str | None = None, description: str | None = None
    ) -> Result[Any, ApiError]:
        card: dict[str, Any] = {}
        if title is not None:
            card["title"] = title
        if description is not None:
            card["description"] = description
        return await self._data("PUT", f"/{account}/cards/{number}", {"card": card})

    async def delete_card(self, account: str, number: int) -> Result[Any, ApiError]:
        return await self._data("DELETE", f"/{account}/cards/{number}")

    async def close_card(self, account: str, number: int) -> Result[Any, ApiError]:
        return await self._data("POST", f"/{account}/cards/{number}/closure")

    async def reopen_card(self, account: str, number: int) -> Result[Any, ApiError]:
        return await self._data("DELETE", f"/{account}/cards/{number}/closure")

    async def not_now_card(self, account: str, number: int) -> Result[Any, ApiError]:
        return await self._data("POST", f"/{account}/cards/{number}/not_now")

    async def triage_card(self, account: str, number: int, column_id: str, position: str | None = None) -> Result[Any, ApiError]:
        body: dict[str, Any] = {"column_id": column_id}
        if position:
            body["position"] = position
        return await self._data("POST", f"/{account}/cards/{number}/triage", body)

    async def untriage_card(self, account: str, number: int) -> Result[Any, ApiError]:
        return await self._data("DELETE", f"/{account}/cards/{number}/triage")

    async def toggle_tag(self, account: str, number: int, tag_title: str) -> Result[Any, ApiError]:
        return await self._data("POST", f"/{account}/cards/{number}/taggings", {"tag_title": tag_title})

    async def toggle_assignee(self, account: str, number: int, user_id: str) -> Result[Any, ApiError]:
        return await self._data("POST", f"/{account}/cards/{number}/assignees", {"user_id": user_id})

    # ── Tags ─────────────────────────────────────────────────

    async def list_tags(self, account: str, limit: int, cursor: str | None = None) -> Result[PaginatedResult, ApiError]:
        return await self._list(f"/{account}/tags", limit, cursor)

    async def list_all_tags(self, account: str) -> Result[list[Any], ApiError]:
        return await self._list_all(f"/{account}/tags")

    # ── Columns ──────────────────────────────────────────────

    async def list_columns(self, account: str, board_id: str) -> Result[list[Any], ApiError]:
        """All columns of a board; boards hold few enough that one call drains them."""
        return await self._list_all(f"/{account}/boards/{board_id}/columns")

    async def get_column(self, account: str, board_id: str, column_id: str) -> Result[Any, ApiError]:
        return await self._data("GET", f"/{account}/boards/{board_id}/columns/{column_id}")

    async def create_column(self, account: str, board_id: str, name: str, color: str | None = None) -> Result[Any, ApiError]:
        column: dict[str, Any] = {"name": name}
        if color:
            column["color"] = color
        return await self._data("POST", f"/{account}/boards/{board_id}/columns", {"column": column})

    async def update_column(
        self, account: str, board_id: str, column_id: str, name: str | None = None, color: str | None = None
    ) -> Result[Any, ApiError]:
        column: dict[str, Any] = {}
        if name is not None:
            column["name"] = name
        if color is not None:
            column["color"] = color
        return await self._data(
            "PUT", f"/{account}/boards/{board_id}/columns/{column_id}", {"column": column}
        )

    async def delete_column(self, account: str, board_id: str, column_id: str) -> Result[Any, ApiError]:
        return await self._data("DELETE", f"/{account}/boards/{board_id}/columns/{column_id}")

    # ── Comments ─────────────────────────────────────────────

    async def list_comments(self, account: str, number: int, limit: int, cursor: str | None = None) -> Result[PaginatedResult, ApiError]:
        return await self._list(f"/{account}/cards/{number}/comments", limit, cursor)

    async def create_comment(self, account: str, number: int, body: str) -> Result[Any, ApiError]:
        return await self._data(
            "POST", f"/{account}/cards/{number}/comments", {"comment": {"body": body}}
        )

    async def update_comment(self, account: str, number: int, comment_id: str, body: str) -> Result[Any, ApiError]:
        return await self._data(
            "PUT", f"/{account}/cards/{number}/comments/{comment_id}", {"comment": {"body": body}}
        )

    async def delete_comment(self, account: str, number: int, comment_id: str) -> Result[Any, ApiError]:
        return await self._data("DELETE", f"/{account}/cards/{number}/comments/{comment_id}")

    # ── Steps ────────────────────────────────────────────────

    async def create_step(self, account: str, number: int, content: str, completed: bool | None = None) -> Result[Any, ApiError]:
        step: dict[str, Any] = {"content": content}
        if completed is not None:
            step["completed"] = completed
        return await self._data("POST", f"/{account}/cards/{number}/steps", {"step": step})

    async def update_step(
        self,
        account: str,
        number: int,
        step_id: str,
        content: str | None = None,
        completed: bool | None = None,
    ) -> Result[Any, ApiError]:
        step: dict[str, Any] = {}
        if content is not None:
            step["content"] = content
        if completed is not None:
            step["completed"] = completed
        return await self._data("PUT", f"/{account}/cards/{number}/steps/{step_id}", {"step": step})

    async def delete_step(self, account: str, number: int, step_id: str) -> Result[Any, ApiError]:
        return await self._data("DELETE", f"/{account}/cards/{number}/steps/{step_id}")


_client: FizzyClient | None = None


def get_client() -> FizzyClient:
    global _client
    if _client is None:
        _client = FizzyClient()
    return _client


def set_client(client: FizzyClient) -> None:
    global _client
    _client = client


def reset_client() -> None:
    global _client
    _client = None
