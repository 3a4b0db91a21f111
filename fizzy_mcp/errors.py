"""Classify Fizzy API failures and render them as actionable tool messages.

Every rendered message starts with a stable bracketed tag so a calling agent
can branch on it: [UNAUTHORIZED] [FORBIDDEN] [NOT_FOUND] [VALIDATION]
[RATE_LIMITED] [ERROR].
"""

import enum
from dataclasses import dataclass
from typing import Any

import httpx
from mcp.server.fastmcp.exceptions import ToolError

from fizzy_mcp.config import ENV_TOKEN


class ErrorKind(enum.Enum):
    AUTHENTICATION = "authentication"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    RATE_LIMIT = "rate_limit"
    GENERIC = "generic"


_STATUS_KINDS = {
    401: ErrorKind.AUTHENTICATION,
    403: ErrorKind.FORBIDDEN,
    404: ErrorKind.NOT_FOUND,
    422: ErrorKind.VALIDATION,
    429: ErrorKind.RATE_LIMIT,
}

_DEFAULT_MESSAGES = {
    ErrorKind.AUTHENTICATION: f"Authentication failed. Check your {ENV_TOKEN}.",
    ErrorKind.FORBIDDEN: "You don't have permission to perform this action.",
    ErrorKind.NOT_FOUND: "Resource not found.",
    ErrorKind.VALIDATION: "Validation failed.",
    ErrorKind.RATE_LIMIT: "Rate limit exceeded. Please wait before making more requests.",
}

# Tool that lists each resource type. Steps have no listing of their own.
RESOURCE_LIST_TOOLS = {
    "Board": "fizzy_list_boards",
    "Card": "fizzy_list_cards",
    "Column": "fizzy_list_columns",
    "Tag": "fizzy_list_tags",
    "Comment": "fizzy_list_comments",
    "Step": "fizzy_get_card",
    "Account": "fizzy_whoami",
}
FALLBACK_LIST_TOOL = "fizzy_list_boards"


@dataclass(frozen=True)
class ApiError:
    """A failed Fizzy API call. `details` maps field name -> violation messages (422 only)."""

    kind: ErrorKind
    status: int
    message: str
    details: dict[str, list[str]] | None = None

    @classmethod
    def from_status(cls, status: int, body: Any = None) -> "ApiError":
        kind = _STATUS_KINDS.get(status, ErrorKind.GENERIC)
        if kind is ErrorKind.VALIDATION:
            details = _field_details(body)
            message = _DEFAULT_MESSAGES[kind]
            if details:
                message = f"Validation failed: {format_field_errors(details)}"
            return cls(kind, status, message, details)
        if kind is ErrorKind.GENERIC:
            message = f"API error: {status}"
            detail = _body_detail(body)
            if detail:
                message = f"{message} {detail}"
            return cls(kind, status, message)
        return cls(kind, status, _DEFAULT_MESSAGES[kind])

    @classmethod
    def validation(cls, field: str, *messages: str) -> "ApiError":
        """Build a client-side validation failure, shaped like a 422 from the API."""
        return cls.from_status(422, {field: list(messages)})

    @classmethod
    def transport(cls, exc: httpx.HTTPError) -> "ApiError":
        return cls(ErrorKind.GENERIC, 0, f"Request failed: {type(exc).__name__}: {exc}")


@dataclass(frozen=True)
class ErrorContext:
    """Optional hint about what a failing call was touching, e.g. ("Card", "#42", 'account "acme"')."""

    resource_type: str | None = None
    resource_id: str | None = None
    container: str | None = None


def _field_details(body: Any) -> dict[str, list[str]] | None:
    if not isinstance(body, dict):
        return None
    details: dict[str, list[str]] = {}
    for field, messages in body.items():
        if isinstance(messages, str):
            details[str(field)] = [messages]
        elif isinstance(messages, list):
            strings = [m for m in messages if isinstance(m, str)]
            if strings:
                details[str(field)] = strings
    return details or None


def _body_detail(body: Any) -> str:
    if isinstance(body, dict):
        detail = body.get("error", body.get("detail"))
        if isinstance(detail, str):
            return detail
    return ""


def format_field_errors(details: dict[str, list[str]]) -> str:
    return "; ".join(f"{field}: {', '.join(msgs)}" for field, msgs in details.items())


def render_error(error: ApiError, context: ErrorContext | None = None) -> str:
    """Render an ApiError as a single tagged line with a recovery hint."""
    context = context or ErrorContext()
    resource = context.resource_type or "Resource"
    ident = f" {context.resource_id}" if context.resource_id else ""
    container = f" in {context.container}" if context.container else ""
    list_tool = RESOURCE_LIST_TOOLS.get(resource, FALLBACK_LIST_TOOL)

    match error.kind:
        case ErrorKind.AUTHENTICATION:
            return (
                f"[UNAUTHORIZED] Authentication failed. "
                f"Set {ENV_TOKEN} environment variable with valid API token."
            )
        case ErrorKind.FORBIDDEN:
            return (
                f"[FORBIDDEN] {resource}{ident}: Access denied. "
                f"Use {list_tool} to verify accessible resources."
            )
        case ErrorKind.NOT_FOUND:
            return (
                f"[NOT_FOUND] {resource}{ident}: Not found{container}. "
                f"Try {list_tool} to see available items."
            )
        case ErrorKind.VALIDATION:
            if error.details:
                return f"[VALIDATION] {format_field_errors(error.details)}."
            return "[VALIDATION] Invalid input."
        case ErrorKind.RATE_LIMIT:
            return "[RATE_LIMITED] Too many requests. Wait before retrying."
        case ErrorKind.GENERIC:
            return f"[ERROR] {error.message}"


def to_tool_error(error: ApiError, context: ErrorContext | None = None) -> ToolError:
    """Wrap a rendered ApiError so FastMCP reports it back to the caller."""
    return ToolError(render_error(error, context))
