from typing import Any, Callable

import httpx

from fizzy_mcp.client import FizzyClient

BASE_URL = "https://app.fizzy.do"


def identity_payload(*slugs: str) -> dict[str, Any]:
    accounts = []
    for i, slug in enumerate(slugs, start=1):
        accounts.append(
            {
                "id": f"acc_{i}",
                "name": f"Account {i}",
                "slug": slug,
                "created_at": "2024-01-01T00:00:00Z",
                "user": {
                    "id": "user_123",
                    "name": "Test User",
                    "role": "owner",
                    "active": True,
                    "email_address": "test@example.com",
                    "created_at": "2024-01-01T00:00:00Z",
                    "url": f"{BASE_URL}/users/user_123",
                },
            }
        )
    return {"accounts": accounts}


class Recorder:
    """Wraps a MockTransport handler and keeps every request it saw."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.handler = handler
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)


def make_client(handler: Callable[[httpx.Request], httpx.Response], token: str = "test-token") -> FizzyClient:
    return FizzyClient(token=token, base_url=BASE_URL, transport=httpx.MockTransport(handler))
