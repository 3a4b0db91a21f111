"""Decide which Fizzy account a tool call targets.

Precedence, first match wins: explicit slug, session default, FIZZY_ACCOUNT,
then auto-detection from the caller's identity when it belongs to exactly one
account. Auto-detection is memoized; a failed or ambiguous attempt is not
retried until the cache is cleared.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from mcp.server.fastmcp.exceptions import ToolError

from fizzy_mcp.config import get_account_from_env, normalize_slug
from fizzy_mcp.errors import ApiError
from fizzy_mcp.models import Identity
from fizzy_mcp.result import Result, is_err
from fizzy_mcp.session import AccountRef, SessionContext, SessionStore, UserRef, default_store

logger = logging.getLogger(__name__)

NO_ACCOUNT_ERROR = (
    "[ERROR] No account specified. Set FIZZY_ACCOUNT env var, "
    "use fizzy_account tool, or pass account_slug."
)

IdentityLookup = Callable[[], Awaitable["Result[Identity, ApiError]"]]


class AccountResolutionError(ToolError):
    def __init__(self) -> None:
        super().__init__(NO_ACCOUNT_ERROR)


class CacheState(enum.Enum):
    UNTRIED = "untried"
    NEGATIVE = "negative"
    RESOLVED = "resolved"


@dataclass
class AutoDetectCache:
    state: CacheState = CacheState.UNTRIED
    slug: str | None = None

    def mark_negative(self) -> None:
        self.state, self.slug = CacheState.NEGATIVE, None

    def mark_resolved(self, slug: str) -> None:
        self.state, self.slug = CacheState.RESOLVED, slug

    def reset(self) -> None:
        self.state, self.slug = CacheState.UNTRIED, None


class AccountResolver:
    def __init__(self, session: SessionStore, identity_lookup: IdentityLookup):
        self.session = session
        self.cache = AutoDetectCache()
        self._identity_lookup = identity_lookup
        self._lock = asyncio.Lock()

    def clear_cache(self) -> None:
        self.cache.reset()

    async def resolve(self, explicit_slug: str | None = None) -> str:
        """Return the account slug for this call or raise AccountResolutionError."""
        if explicit_slug:
            slug = normalize_slug(explicit_slug)
            if slug:
                return slug

        from_session = self.session.default_account()
        if from_session:
            return from_session

        from_env = get_account_from_env()
        if from_env:
            return from_env

        detected = await self._auto_detect()
        if detected:
            return detected
        raise AccountResolutionError()

    async def _auto_detect(self) -> str | None:
        async with self._lock:
            if self.cache.state is not CacheState.UNTRIED:
                return self.cache.slug

            result = await self._identity_lookup()
            if is_err(result):
                logger.warning("Account auto-detect failed: %s", result.error.message)
                self.cache.mark_negative()
                raise AccountResolutionError()

            accounts = result.value.accounts
            if not accounts:
                logger.warning("Account auto-detect found no accounts")
                self.cache.mark_negative()
                raise AccountResolutionError()
            if len(accounts) > 1:
                logger.info("Identity has %d accounts; not auto-selecting", len(accounts))
                self.cache.mark_negative()
                return None

            account = accounts[0]
            slug = account.normalized_slug
            self.session.set(
                SessionContext(
                    account=AccountRef(slug=slug, name=account.name, id=account.id),
                    user=UserRef(id=account.user.id, name=account.user.name, role=account.user.role),
                    source="auto-detect",
                )
            )
            self.cache.mark_resolved(slug)
            logger.info("Auto-selected account %s (%s)", slug, account.name)
            return slug


async def _lookup_with_shared_client() -> "Result[Identity, ApiError]":
    from fizzy_mcp.client import get_client

    return await get_client().whoami()


_default_resolver = AccountResolver(default_store(), _lookup_with_shared_client)


async def resolve_account(account_slug: str | None = None) -> str:
    return await _default_resolver.resolve(account_slug)


def clear_resolver_cache() -> None:
    _default_resolver.clear_cache()
