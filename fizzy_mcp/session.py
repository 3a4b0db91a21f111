"""The currently selected Fizzy account and user."""

import threading
from dataclasses import dataclass
from typing import Literal

SessionSource = Literal["explicit", "auto-detect"]


@dataclass(frozen=True)
class AccountRef:
    slug: str
    name: str | None = None
    id: str | None = None


@dataclass(frozen=True)
class UserRef:
    id: str
    name: str
    role: str


@dataclass(frozen=True)
class SessionContext:
    account: AccountRef
    user: UserRef | None = None
    source: SessionSource = "explicit"


class SessionStore:
    """Holds at most one SessionContext. Writes are serialized."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._context: SessionContext | None = None

    def get(self) -> SessionContext | None:
        return self._context

    def set(self, context: SessionContext) -> None:
        with self._lock:
            self._context = context

    def clear(self) -> None:
        with self._lock:
            self._context = None

    def default_account(self) -> str | None:
        context = self._context
        return context.account.slug if context else None


_default_store = SessionStore()


def default_store() -> SessionStore:
    return _default_store


def get_session() -> SessionContext | None:
    return _default_store.get()


def set_session(context: SessionContext) -> None:
    _default_store.set(context)


def clear_session() -> None:
    _default_store.clear()


def get_default_account() -> str | None:
    return _default_store.default_account()
