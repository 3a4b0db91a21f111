import json

import httpx
import pytest

from fizzy_mcp.client import CardFilters, FizzyClient
from fizzy_mcp.errors import ErrorKind
from fizzy_mcp.models import Identity
from fizzy_mcp.pagination import decode_cursor, encode_cursor
from fizzy_mcp.result import Err, Ok
from tests.helpers import BASE_URL, Recorder, identity_payload, make_client


def paged_handler(pages: dict[str, tuple[list, str | None]]):
    """Serve `pages` keyed by full URL; the value is (items, next_url)."""

    def handler(request: httpx.Request) -> httpx.Response:
        items, next_url = pages[str(request.url)]
        headers = {"Link": f'<{next_url}>; rel="next"'} if next_url else {}
        return httpx.Response(200, json=items, headers=headers)

    return handler


BOARDS = f"{BASE_URL}/acme/boards"


def boards_pages() -> dict[str, tuple[list, str | None]]:
    return {
        BOARDS: ([{"id": "b1"}, {"id": "b2"}, {"id": "b3"}], f"{BOARDS}?page=2"),
        f"{BOARDS}?page=2": ([{"id": "b4"}, {"id": "b5"}], None),
    }


# ── request ──────────────────────────────────────────────────


async def test_request_sends_auth_headers():
    recorder = Recorder(lambda request: httpx.Response(200, json={"id": "b1"}))
    result = await make_client(recorder).get_board("acme", "b1")
    assert result == Ok({"id": "b1"})
    request = recorder.requests[0]
    assert str(request.url) == f"{BASE_URL}/acme/boards/b1"
    assert request.headers["Authorization"] == "Bearer test-token"
    assert request.headers["Accept"] == "application/json"


@pytest.mark.parametrize(
    "status,kind",
    [
        (401, ErrorKind.AUTHENTICATION),
        (403, ErrorKind.FORBIDDEN),
        (404, ErrorKind.NOT_FOUND),
        (422, ErrorKind.VALIDATION),
        (429, ErrorKind.RATE_LIMIT),
        (500, ErrorKind.GENERIC),
    ],
)
async def test_error_statuses_become_typed_errors(status, kind):
    client = make_client(lambda request: httpx.Response(status, json={}))
    result = await client.get_card("acme", 42)
    assert isinstance(result, Err)
    assert result.error.kind is kind
    assert result.error.status == status


async def test_validation_details_are_kept():
    body = {"title": ["can't be blank"]}
    client = make_client(lambda request: httpx.Response(422, json=body))
    result = await client.create_card("acme", "b1", "")
    assert result.error.details == {"title": ["can't be blank"]}


async def test_error_without_json_body():
    client = make_client(lambda request: httpx.Response(502, text="<html>Bad gateway</html>"))
    result = await client.get_board("acme", "b1")
    assert result.error.kind is ErrorKind.GENERIC
    assert result.error.message == "API error: 502"


async def test_transport_failure_is_returned_not_raised():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    result = await make_client(handler).get_board("acme", "b1")
    assert isinstance(result, Err)
    assert result.error.kind is ErrorKind.GENERIC
    assert result.error.status == 0


async def test_missing_token_fails_without_network():
    recorder = Recorder(lambda request: httpx.Response(200, json={}))
    result = await make_client(recorder, token="").whoami()
    assert result.error.kind is ErrorKind.AUTHENTICATION
    assert recorder.requests == []


async def test_token_read_from_environment(monkeypatch):
    monkeypatch.setenv("FIZZY_ACCESS_TOKEN", "legacy-token")
    recorder = Recorder(lambda request: httpx.Response(200, json={"accounts": []}))
    client = FizzyClient(base_url=BASE_URL, transport=httpx.MockTransport(recorder))
    await client.whoami()
    assert recorder.requests[0].headers["Authorization"] == "Bearer legacy-token"


async def test_no_content_response():
    recorder = Recorder(lambda request: httpx.Response(204))
    result = await make_client(recorder).close_card("acme", 42)
    assert result == Ok(None)
    assert recorder.requests[0].method == "POST"
    assert str(recorder.requests[0].url) == f"{BASE_URL}/acme/cards/42/closure"


async def test_created_with_location_is_followed():
    def handler(request):
        if request.method == "POST":
            return httpx.Response(201, headers={"Location": "/acme/cards/7"})
        return httpx.Response(200, json={"id": "c7", "number": 7})

    recorder = Recorder(handler)
    result = await make_client(recorder).create_card("acme", "b1", "New card", "Body")
    assert result == Ok({"id": "c7", "number": 7})
    post, get = recorder.requests
    assert json.loads(post.content) == {"card": {"title": "New card", "description": "Body"}}
    assert str(get.url) == f"{BASE_URL}/acme/cards/7"


async def test_update_sends_only_given_fields():
    recorder = Recorder(lambda request: httpx.Response(200, json={"id": "b1"}))
    await make_client(recorder).update_board("acme", "b1", name="Renamed")
    request = recorder.requests[0]
    assert request.method == "PUT"
    assert json.loads(request.content) == {"board": {"name": "Renamed"}}


async def test_whoami_parses_identity():
    client = make_client(lambda request: httpx.Response(200, json=identity_payload("/897362094")))
    result = await client.whoami()
    account = result.value.accounts[0]
    assert account.slug == "/897362094"
    assert account.normalized_slug == "897362094"
    assert account.user.role == "owner"


# ── listings ─────────────────────────────────────────────────


async def test_list_follows_link_headers_until_exhausted():
    recorder = Recorder(paged_handler(boards_pages()))
    result = await make_client(recorder).list_boards("acme", 25)
    page = result.value
    assert [b["id"] for b in page.items] == ["b1", "b2", "b3", "b4", "b5"]
    assert page.pagination.has_more is False
    assert page.pagination.next_cursor is None
    assert len(recorder.requests) == 2


async def test_list_limit_ends_on_page_boundary():
    recorder = Recorder(paged_handler(boards_pages()))
    result = await make_client(recorder).list_boards("acme", 3)
    page = result.value
    assert page.pagination.returned == 3
    assert decode_cursor(page.pagination.next_cursor) == f"{BOARDS}?page=2"
    assert len(recorder.requests) == 1


async def test_list_limit_mid_page_resumes_without_loss():
    client = make_client(paged_handler(boards_pages()))
    first = (await client.list_boards("acme", 2)).value
    assert [b["id"] for b in first.items] == ["b1", "b2"]
    assert first.pagination.has_more is True

    second = (await client.list_boards("acme", 25, first.pagination.next_cursor)).value
    assert [b["id"] for b in second.items] == ["b3", "b4", "b5"]
    assert second.pagination.has_more is False


async def test_skip_fragment_is_never_sent_upstream():
    recorder = Recorder(paged_handler(boards_pages()))
    cursor = encode_cursor(f"{BOARDS}#skip=1")
    result = await make_client(recorder).list_boards("acme", 1, cursor)
    assert [b["id"] for b in result.value.items] == ["b2"]
    assert str(recorder.requests[0].url) == BOARDS


@pytest.mark.parametrize("limit", [0, 101])
async def test_out_of_range_limit_rejected_before_network(limit):
    recorder = Recorder(paged_handler(boards_pages()))
    result = await make_client(recorder).list_boards("acme", limit)
    assert result.error.kind is ErrorKind.VALIDATION
    assert "limit" in result.error.details
    assert recorder.requests == []


@pytest.mark.parametrize(
    "cursor",
    ["garbage!", encode_cursor("not a url"), encode_cursor("https://evil.example.com/acme/boards")],
)
async def test_bad_cursor_rejected_before_network(cursor):
    recorder = Recorder(paged_handler(boards_pages()))
    result = await make_client(recorder).list_boards("acme", 25, cursor)
    assert result.error.kind is ErrorKind.VALIDATION
    assert result.error.details == {"cursor": ["Invalid pagination cursor"]}
    assert recorder.requests == []


async def test_list_page_failure_is_returned():
    def handler(request):
        if "page=2" in str(request.url):
            return httpx.Response(429)
        return paged_handler(boards_pages())(request)

    result = await make_client(handler).list_boards("acme", 25)
    assert isinstance(result, Err)
    assert result.error.kind is ErrorKind.RATE_LIMIT


async def test_list_cards_encodes_filters():
    recorder = Recorder(lambda request: httpx.Response(200, json=[]))
    filters = CardFilters(board_ids=("b1", "b2"), tag_ids=("t1",), indexed_by="closed", sorted_by="newest")
    await make_client(recorder).list_cards("acme", 25, filters=filters)
    params = recorder.requests[0].url.params
    assert params.get_list("board_ids[]") == ["b1", "b2"]
    assert params.get_list("tag_ids[]") == ["t1"]
    assert params["indexed_by"] == "closed"
    assert params["sorted_by"] == "newest"


async def test_list_cards_cursor_carries_filters():
    cards = f"{BASE_URL}/acme/cards"

    def handler(request):
        if request.url.params.get("page") == "2":
            return httpx.Response(200, json=[{"number": 2}])
        return httpx.Response(
            200, json=[{"number": 1}], headers={"Link": f'<{cards}?terms%5B%5D=bug&page=2>; rel="next"'}
        )

    recorder = Recorder(handler)
    client = make_client(recorder)
    first = (await client.list_cards("acme", 1, filters=CardFilters(terms=("bug",)))).value
    await client.list_cards("acme", 1, first.pagination.next_cursor, CardFilters(terms=("other",)))
    assert recorder.requests[1].url.params.get_list("terms[]") == ["bug"]


async def test_list_columns_drains_every_page():
    columns = f"{BASE_URL}/acme/boards/b1/columns"
    pages = {
        columns: ([{"id": "c1"}], f"{columns}?page=2"),
        f"{columns}?page=2": ([{"id": "c2"}], None),
    }
    result = await make_client(paged_handler(pages)).list_columns("acme", "b1")
    assert [c["id"] for c in result.value] == ["c1", "c2"]


async def test_next_link_ignores_rel_inside_other_params():
    link = f'<{BOARDS}?page=1>; title="see, rel=next", <{BOARDS}?page=3>; rel="next"'

    def handler(request):
        if request.url.params.get("page") == "3":
            return httpx.Response(200, json=[{"id": "b3"}])
        return httpx.Response(200, json=[{"id": "b1"}], headers={"Link": link})

    recorder = Recorder(handler)
    result = await make_client(recorder).list_boards("acme", 25)
    assert [b["id"] for b in result.value.items] == ["b1", "b3"]
    assert str(recorder.requests[1].url) == f"{BOARDS}?page=3"


async def test_relative_next_link_is_resolved():
    def handler(request):
        if request.url.params.get("page") == "2":
            return httpx.Response(200, json=[{"id": "b2"}])
        return httpx.Response(200, json=[{"id": "b1"}], headers={"Link": '</acme/boards?page=2>; rel="next"'})

    result = await make_client(handler).list_boards("acme", 25)
    assert [b["id"] for b in result.value.items] == ["b1", "b2"]


async def test_list_with_non_list_body_is_an_error():
    client = make_client(lambda request: httpx.Response(200, json={"boards": [{"id": "b1"}]}))
    result = await client.list_boards("acme", 25)
    assert isinstance(result, Err)
    assert result.error.kind is ErrorKind.GENERIC
    assert result.error.status == 200
    assert result.error.message == "Expected a list response"


async def test_list_with_no_content_is_empty():
    result = await make_client(lambda request: httpx.Response(204)).list_tags("acme", 25)
    assert result.value.items == []
    assert result.value.pagination.has_more is False


async def test_get_column():
    recorder = Recorder(lambda request: httpx.Response(200, json={"id": "col_1", "name": "Doing"}))
    result = await make_client(recorder).get_column("acme", "b1", "col_1")
    assert result == Ok({"id": "col_1", "name": "Doing"})
    assert recorder.requests[0].url.path == "/acme/boards/b1/columns/col_1"


async def test_list_all_cards_drains_with_filters():
    cards = f"{BASE_URL}/acme/cards"

    def handler(request):
        if request.url.params.get("page") == "2":
            return httpx.Response(200, json=[{"number": 2}])
        return httpx.Response(
            200, json=[{"number": 1}], headers={"Link": f'<{cards}?tag_ids%5B%5D=t1&page=2>; rel="next"'}
        )

    recorder = Recorder(handler)
    result = await make_client(recorder).list_all_cards("acme", CardFilters(tag_ids=("t1",)))
    assert [c["number"] for c in result.value] == [1, 2]
    assert recorder.requests[0].url.params.get_list("tag_ids[]") == ["t1"]


@pytest.mark.parametrize(
    "payload",
    [{"accounts": None}, {"accounts": ["junk", None]}, {}, [], None],
    ids=["null", "non-dict-entries", "missing", "list-body", "no-body"],
)
async def test_whoami_tolerates_malformed_identity(payload):
    if payload is None:
        response = httpx.Response(204)
    else:
        response = httpx.Response(200, json=payload)
    result = await make_client(lambda request: response).whoami()
    assert result == Ok(Identity(accounts=()))


async def test_whoami_entry_without_user():
    body = {"accounts": [{"id": "acc_1", "name": "Acme", "slug": "/1", "user": None}]}
    result = await make_client(lambda request: httpx.Response(200, json=body)).whoami()
    assert result.value.accounts[0].user.role == "member"
