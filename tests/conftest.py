import pytest

from fizzy_mcp.client import reset_client
from fizzy_mcp.config import ENV_ACCOUNT, ENV_BASE_URL, ENV_TOKEN, ENV_TOKEN_LEGACY
from fizzy_mcp.resolver import clear_resolver_cache
from fizzy_mcp.session import clear_session


@pytest.fixture(autouse=True)
def clean_state(monkeypatch):
    for name in (ENV_ACCOUNT, ENV_BASE_URL, ENV_TOKEN, ENV_TOKEN_LEGACY):
        monkeypatch.delenv(name, raising=False)
    clear_session()
    clear_resolver_cache()
    reset_client()
    yield
    clear_session()
    clear_resolver_cache()
    reset_client()
