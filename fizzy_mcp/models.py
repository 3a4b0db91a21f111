from dataclasses import dataclass
from typing import Any

from fizzy_mcp.config import normalize_slug


@dataclass(frozen=True)
class IdentityUser:
    id: str
    name: str
    role: str
    email_address: str = ""


@dataclass(frozen=True)
class IdentityAccount:
    id: str
    name: str
    slug: str
    user: IdentityUser

    @property
    def normalized_slug(self) -> str:
        return normalize_slug(self.slug)


@dataclass(frozen=True)
class Identity:
    accounts: tuple[IdentityAccount, ...]

    @staticmethod
    def from_json(data: Any) -> "Identity":
        accounts = []
        raw_accounts = (data.get("accounts") if isinstance(data, dict) else None) or []
        for raw in raw_accounts:
            if not isinstance(raw, dict):
                continue
            user = raw.get("user")
            if not isinstance(user, dict):
                user = {}
            accounts.append(
                IdentityAccount(
                    id=str(raw.get("id", "")),
                    name=str(raw.get("name", "")),
                    slug=str(raw.get("slug", "")),
                    user=IdentityUser(
                        id=str(user.get("id", "")),
                        name=str(user.get("name", "")),
                        role=str(user.get("role", "member")),
                        email_address=str(user.get("email_address", "")),
                    ),
                )
            )
        return Identity(accounts=tuple(accounts))

    def find(self, slug: str) -> IdentityAccount | None:
        wanted = normalize_slug(slug)
        for account in self.accounts:
            if account.normalized_slug == wanted:
                return account
        return None
