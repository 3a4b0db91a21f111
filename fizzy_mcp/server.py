"""Fizzy — MCP server for the Fizzy project-tracking service.

Exposes boards, cards, columns, tags, comments and steps as MCP tools so an
agent can read and manage a Fizzy account. Every tool resolves the target
account first, then calls the API and turns failures into tagged messages.
"""

import datetime as _dt
import json
import logging
from typing import Any, Literal

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError

from fizzy_mcp.client import CardFilters, get_client
from fizzy_mcp.config import normalize_slug
from fizzy_mcp.errors import ErrorContext, render_error, to_tool_error
from fizzy_mcp.pagination import DEFAULT_LIMIT, PaginatedResult
from fizzy_mcp.resolver import clear_resolver_cache, resolve_account
from fizzy_mcp.result import Err, Result, is_ok
from fizzy_mcp.session import (
    AccountRef,
    SessionContext,
    UserRef,
    clear_session,
    get_session,
    set_session,
)

logger = logging.getLogger(__name__)

mcp = FastMCP("fizzy")


# ── Helpers ──────────────────────────────────────────────────


def _unwrap(result: Result[Any, Any], context: ErrorContext | None = None) -> Any:
    """Return the success value or raise the rendered diagnostic."""
    if isinstance(result, Err):
        logger.debug("API call failed: %s", result.error)
        raise to_tool_error(result.error, context)
    return result.value


def _in_account(slug: str) -> str:
    return f'account "{slug}"'


def _fmt(data: Any) -> str:
    """Format API response as readable JSON."""
    return json.dumps(data, indent=2, default=str)


def _fmt_page(page: PaginatedResult) -> str:
    return _fmt(page.as_dict())


def _format_board(board: dict[str, Any]) -> str:
    lines = [f"# {board.get('name', '')}", f"id: {board.get('id', '')}"]
    if board.get("description"):
        lines.append(f"\n{board['description']}")
    columns = board.get("columns") or []
    if columns:
        lines.append("\nColumns:")
        for col in columns:
            color = col.get("color")
            color_name = color.get("name") if isinstance(color, dict) else color
            color_str = f" ({color_name})" if color_name else ""
            lines.append(f"  - {col.get('name', '')}{color_str} — id: {col.get('id', '')}")
    if board.get("url"):
        lines.append(f"\nURL: {board['url']}")
    return "\n".join(lines)


def _format_card(card: dict[str, Any]) -> str:
    state = "closed" if card.get("closed") else card.get("status", "open")
    lines = [
        f"# #{card.get('number', '?')} {card.get('title', '')}",
        f"Status: {state} | Board: {card.get('board_id', '')} | Column: {card.get('column_id') or 'none'}",
    ]
    if card.get("tags"):
        lines.append(f"Tags: {', '.join(card['tags'])}")
    assignees = card.get("assignees") or []
    if assignees:
        lines.append(f"Assignees: {', '.join(a.get('name', '') for a in assignees)}")
    if card.get("steps_count"):
        lines.append(f"Steps: {card.get('completed_steps_count', 0)}/{card['steps_count']} done")
    if card.get("comments_count"):
        lines.append(f"Comments: {card['comments_count']}")
    description = card.get("description") or card.get("description_html")
    if description:
        lines.append(f"\n{description}")
    steps = card.get("steps") or []
    if steps:
        lines.append("\nSteps:")
        for step in steps:
            check = "x" if step.get("completed") else " "
            lines.append(f"  [{check}] {step.get('content', '')} (id: {step.get('id', '')})")
    if card.get("url"):
        lines.append(f"\nURL: {card['url']}")
    return "\n".join(lines)


def _card_context(slug: str, card_number: int) -> ErrorContext:
    return ErrorContext("Card", f"#{card_number}", _in_account(slug))


def _attempt(failures: list[dict[str, str]], operation: str, result: Result[Any, Any]) -> bool:
    """Record a failed best-effort sub-operation; True when it succeeded."""
    if isinstance(result, Err):
        logger.info("%s failed: %s", operation, result.error.message)
        failures.append({"operation": operation, "error": render_error(result.error)})
        return False
    return True


def _card_summary(card: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": card.get("id"),
        "number": card.get("number"),
        "title": card.get("title"),
        "url": card.get("url"),
        "closed": bool(card.get("closed")),
    }


def _updated_before(card: dict[str, Any], cutoff: _dt.datetime) -> bool:
    raw = card.get("updated_at")
    if not isinstance(raw, str):
        return False
    try:
        updated = _dt.datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return False
    if updated.tzinfo is None:
        updated = updated.replace(tzinfo=_dt.timezone.utc)
    return updated < cutoff


# ── Account Tools ────────────────────────────────────────────


@mcp.tool()
async def fizzy_whoami() -> str:
    """List the accounts the configured token can access, and the current default account."""
    identity = _unwrap(await get_client().whoami(), ErrorContext("Account"))
    if not identity.accounts:
        return "No accounts found for this token."
    session = get_session()
    current = session.account.slug if session else None
    lines = []
    for account in identity.accounts:
        slug = account.normalized_slug
        marker = " [DEFAULT]" if slug == current else ""
        lines.append(
            f"- {account.name} (slug: {slug}){marker} — you are {account.user.name} [{account.user.role}]"
        )
    return "\n".join(lines)


@mcp.tool()
async def fizzy_account(action: Literal["get", "set", "clear"], account_slug: str = "") -> str:
    """Get, set or clear the default account used when account_slug is omitted.

    Args:
        action: get | set | clear. 'clear' also forgets the auto-detected account.
        account_slug: Account slug (required for set), e.g. "897362094"
    """
    if action == "set":
        if not account_slug:
            raise ToolError(
                "[VALIDATION] account_slug: is required for action 'set'. "
                "Use fizzy_whoami to discover available accounts."
            )
        slug = normalize_slug(account_slug)
        if not slug:
            raise ToolError("[VALIDATION] account_slug: must not be empty.")
        context = SessionContext(account=AccountRef(slug=slug))
        identity = await get_client().whoami()
        if is_ok(identity):
            account = identity.value.find(slug)
            if account:
                context = SessionContext(
                    account=AccountRef(slug=slug, name=account.name, id=account.id),
                    user=UserRef(id=account.user.id, name=account.user.name, role=account.user.role),
                )
        set_session(context)
        logger.info("Default account set to %s", slug)
        return _fmt({"action": "set", "account_slug": slug, "account_name": context.account.name})

    if action == "clear":
        clear_session()
        clear_resolver_cache()
        return _fmt({"action": "clear", "account_slug": None})

    session = get_session()
    if not session:
        return _fmt({"action": "get", "account_slug": None})
    return _fmt(
        {
            "action": "get",
            "account_slug": session.account.slug,
            "account_name": session.account.name,
            "source": session.source,
        }
    )


# ── Board Tools ──────────────────────────────────────────────


@mcp.tool()
async def fizzy_list_boards(account_slug: str = "", limit: int = DEFAULT_LIMIT, cursor: str = "") -> str:
    """List boards in the account.

    Args:
        account_slug: Account slug. Uses the default account if omitted
        limit: Max items to return (1-100, default 25)
        cursor: Continuation cursor from a previous response. Omit to start fresh
    """
    slug = await resolve_account(account_slug)
    page = _unwrap(
        await get_client().list_boards(slug, limit, cursor or None),
        ErrorContext("Board", container=_in_account(slug)),
    )
    return _fmt_page(page)


@mcp.tool()
async def fizzy_get_board(board_id: str, account_slug: str = "") -> str:
    """Get a board with its columns.

    Args:
        board_id: Board ID
        account_slug: Account slug. Uses the default account if omitted
    """
    slug = await resolve_account(account_slug)
    board = _unwrap(
        await get_client().get_board(slug, board_id),
        ErrorContext("Board", board_id, _in_account(slug)),
    )
    return _format_board(board)


@mcp.tool()
async def fizzy_create_board(name: str, description: str = "", account_slug: str = "") -> str:
    """Create a new board.

    Args:
        name: Board name
        description: Optional board description (HTML or plain text)
        account_slug: Account slug. Uses the default account if omitted
    """
    slug = await resolve_account(account_slug)
    board = _unwrap(
        await get_client().create_board(slug, name, description or None),
        ErrorContext("Board", container=_in_account(slug)),
    )
    return f"Created board: {board.get('name', name)} (id: {board.get('id', '?')})"


@mcp.tool()
async def fizzy_update_board(
    board_id: str,
    name: str | None = None,
    description: str | None = None,
    account_slug: str = "",
) -> str:
    """Rename a board or change its description.

    Args:
        board_id: Board ID
        name: New board name
        description: New board description
        account_slug: Account slug. Uses the default account if omitted
    """
    slug = await resolve_account(account_slug)
    board = _unwrap(
        await get_client().update_board(slug, board_id, name, description),
        ErrorContext("Board", board_id, _in_account(slug)),
    )
    return _format_board(board) if board else f"Updated board {board_id}"


# ── Card Tools ───────────────────────────────────────────────


@mcp.tool()
async def fizzy_list_cards(
    account_slug: str = "",
    board_ids: list[str] | None = None,
    tag_ids: list[str] | None = None,
    assignee_ids: list[str] | None = None,
    terms: list[str] | None = None,
    indexed_by: Literal["all", "closed", "not_now", "stalled", "postponing_soon", "golden"] | None = None,
    sorted_by: Literal["newest", "oldest", "recently_active"] | None = None,
    limit: int = DEFAULT_LIMIT,
    cursor: str = "",
) -> str:
    """Search cards with filters. Filters are ignored when a cursor is given.

    Args:
        account_slug: Account slug. Uses the default account if omitted
        board_ids: Only cards on these boards
        tag_ids: Only cards with these tag IDs (see fizzy_list_tags)
        assignee_ids: Only cards assigned to these user IDs
        terms: Full-text search terms
        indexed_by: all, closed, not_now, stalled, postponing_soon, golden
        sorted_by: newest, oldest, recently_active
        limit: Max items to return (1-100, default 25)
        cursor: Continuation cursor from a previous response. Omit to start fresh
    """
    slug = await resolve_account(account_slug)
    filters = CardFilters(
        board_ids=tuple(board_ids or ()),
        tag_ids=tuple(tag_ids or ()),
        assignee_ids=tuple(assignee_ids or ()),
        terms=tuple(terms or ()),
        indexed_by=indexed_by,
        sorted_by=sorted_by,
    )
    page = _unwrap(
        await get_client().list_cards(slug, limit, cursor or None, filters),
        ErrorContext("Card", container=_in_account(slug)),
    )
    return _fmt_page(page)


@mcp.tool()
async def fizzy_get_card(card_number: int, account_slug: str = "") -> str:
    """Get full details of a card, including its steps.

    Args:
        card_number: Card number (the # from URLs and lists, e.g. 42)
        account_slug: Account slug. Uses the default account if omitted
    """
    slug = await resolve_account(account_slug)
    card = _unwrap(await get_client().get_card(slug, card_number), _card_context(slug, card_number))
    return _format_card(card)


@mcp.tool()
async def fizzy_create_card(board_id: str, title: str, description: str = "", account_slug: str = "") -> str:
    """Create a card on a board.

    Args:
        board_id: Board ID to create the card on
        title: Card title
        description: Optional card description
        account_slug: Account slug. Uses the default account if omitted
    """
    slug = await resolve_account(account_slug)
    card = _unwrap(
        await get_client().create_card(slug, board_id, title, description or None),
        ErrorContext("Board", board_id, _in_account(slug)),
    )
    return f"Created card #{card.get('number', '?')}: {card.get('title', title)} (id: {card.get('id', '?')})"


@mcp.tool()
async def fizzy_update_card(
    card_number: int,
    title: str | None = None,
    description: str | None = None,
    account_slug: str = "",
) -> str:
    """Change a card's title or description.

    Args:
        card_number: Card number
        title: New title
        description: New description
        account_slug: Account slug. Uses the default account if omitted
    """
    slug = await resolve_account(account_slug)
    card = _unwrap(
        await get_client().update_card(slug, card_number, title, description),
        _card_context(slug, card_number),
    )
    return _format_card(card) if card else f"Updated card #{card_number}"


@mcp.tool()
async def fizzy_delete_card(card_number: int, account_slug: str = "") -> str:
    """Permanently delete a card.

    Args:
        card_number: Card number
        account_slug: Account slug. Uses the default account if omitted
    """
    slug = await resolve_account(account_slug)
    _unwrap(await get_client().delete_card(slug, card_number), _card_context(slug, card_number))
    return f"Deleted card #{card_number}"


@mcp.tool()
async def fizzy_change_card_state(
    card_number: int,
    action: Literal["close", "reopen", "not_now", "triage", "untriage"],
    column_id: str = "",
    position: Literal["top", "bottom"] | None = None,
    account_slug: str = "",
) -> str:
    """Close, reopen, postpone, or move a card into/out of a column.

    Args:
        card_number: Card number
        action: close | reopen | not_now | triage | untriage
        column_id: Target column (required for triage, see fizzy_list_columns)
        position: top or bottom of the column (triage only)
        account_slug: Account slug. Uses the default account if omitted
    """
    slug = await resolve_account(account_slug)
    client = get_client()
    if action == "close":
        result = await client.close_card(slug, card_number)
    elif action == "reopen":
        result = await client.reopen_card(slug, card_number)
    elif action == "not_now":
        result = await client.not_now_card(slug, card_number)
    elif action == "untriage":
        result = await client.untriage_card(slug, card_number)
    else:
        if not column_id:
            raise ToolError("[VALIDATION] column_id: is required for action 'triage'.")
        result = await client.triage_card(slug, card_number, column_id, position)
    _unwrap(result, _card_context(slug, card_number))
    return f"Card #{card_number}: {action} done"


@mcp.tool()
async def fizzy_toggle_tag(card_number: int, tag_title: str, account_slug: str = "") -> str:
    """Add a tag to a card, or remove it if already present.

    Args:
        card_number: Card number
        tag_title: Tag title (not ID), e.g. "bug"
        account_slug: Account slug. Uses the default account if omitted
    """
    slug = await resolve_account(account_slug)
    _unwrap(await get_client().toggle_tag(slug, card_number, tag_title), _card_context(slug, card_number))
    return f"Toggled tag '{tag_title}' on card #{card_number}"


@mcp.tool()
async def fizzy_toggle_assignee(card_number: int, user_id: str, account_slug: str = "") -> str:
    """Assign a user to a card, or unassign them if already assigned.

    Args:
        card_number: Card number
        user_id: User ID
        account_slug: Account slug. Uses the default account if omitted
    """
    slug = await resolve_account(account_slug)
    _unwrap(await get_client().toggle_assignee(slug, card_number, user_id), _card_context(slug, card_number))
    return f"Toggled assignee {user_id} on card #{card_number}"


# ── Tag & Column Tools ───────────────────────────────────────


@mcp.tool()
async def fizzy_list_tags(account_slug: str = "", limit: int = DEFAULT_LIMIT, cursor: str = "") -> str:
    """List tags in the account. Tags are shared by every board of an account.

    Args:
        account_slug: Account slug. Uses the default account if omitted
        limit: Max items to return (1-100, default 25)
        cursor: Continuation cursor from a previous response. Omit to start fresh
    """
    slug = await resolve_account(account_slug)
    page = _unwrap(
        await get_client().list_tags(slug, limit, cursor or None),
        ErrorContext("Tag", container=_in_account(slug)),
    )
    return _fmt_page(page)


@mcp.tool()
async def fizzy_list_columns(board_id: str, account_slug: str = "") -> str:
    """List every column of a board.

    Args:
        board_id: Board ID
        account_slug: Account slug. Uses the default account if omitted
    """
    slug = await resolve_account(account_slug)
    columns = _unwrap(
        await get_client().list_columns(slug, board_id),
        ErrorContext("Board", board_id, _in_account(slug)),
    )
    lines = []
    for col in columns:
        color = col.get("color")
        color_name = color.get("name") if isinstance(color, dict) else color
        color_str = f" ({color_name})" if color_name else ""
        lines.append(f"- {col.get('name', '')}{color_str} — id: {col.get('id', '')}")
    return "\n".join(lines) if lines else "No columns found."


@mcp.tool()
async def fizzy_get_column(board_id: str, column_id: str, account_slug: str = "") -> str:
    """Get one column of a board.

    Args:
        board_id: Board ID containing the column
        column_id: Column ID
        account_slug: Account slug. Uses the default account if omitted
    """
    slug = await resolve_account(account_slug)
    column = _unwrap(
        await get_client().get_column(slug, board_id, column_id),
        ErrorContext("Column", column_id, f'board "{board_id}"'),
    )
    return _fmt(column)


@mcp.tool()
async def fizzy_create_column(board_id: str, name: str, color: str = "", account_slug: str = "") -> str:
    """Add a column to a board.

    Args:
        board_id: Board ID
        name: Column name
        color: Optional color value
        account_slug: Account slug. Uses the default account if omitted
    """
    slug = await resolve_account(account_slug)
    column = _unwrap(
        await get_client().create_column(slug, board_id, name, color or None),
        ErrorContext("Board", board_id, _in_account(slug)),
    )
    return f"Created column: {column.get('name', name)} (id: {column.get('id', '?')})"


@mcp.tool()
async def fizzy_update_column(
    board_id: str,
    column_id: str,
    name: str | None = None,
    color: str | None = None,
    account_slug: str = "",
) -> str:
    """Rename or recolor a column.

    Args:
        board_id: Board ID
        column_id: Column ID
        name: New column name
        color: New color value
        account_slug: Account slug. Uses the default account if omitted
    """
    slug = await resolve_account(account_slug)
    _unwrap(
        await get_client().update_column(slug, board_id, column_id, name, color),
        ErrorContext("Column", column_id, f"board {board_id}"),
    )
    return f"Updated column {column_id}"


@mcp.tool()
async def fizzy_delete_column(board_id: str, column_id: str, account_slug: str = "") -> str:
    """Delete a column. Its cards return to the board's inbox.

    Args:
        board_id: Board ID
        column_id: Column ID
        account_slug: Account slug. Uses the default account if omitted
    """
    slug = await resolve_account(account_slug)
    _unwrap(
        await get_client().delete_column(slug, board_id, column_id),
        ErrorContext("Column", column_id, f"board {board_id}"),
    )
    return f"Deleted column {column_id}"


# ── Comment Tools ────────────────────────────────────────────


@mcp.tool()
async def fizzy_list_comments(
    card_number: int, account_slug: str = "", limit: int = DEFAULT_LIMIT, cursor: str = ""
) -> str:
    """List comments on a card.

    Args:
        card_number: Card number
        account_slug: Account slug. Uses the default account if omitted
        limit: Max items to return (1-100, default 25)
        cursor: Continuation cursor from a previous response. Omit to start fresh
    """
    slug = await resolve_account(account_slug)
    page = _unwrap(
        await get_client().list_comments(slug, card_number, limit, cursor or None),
        ErrorContext("Comment", container=f"card #{card_number}"),
    )
    return _fmt_page(page)


@mcp.tool()
async def fizzy_create_comment(card_number: int, body: str, account_slug: str = "") -> str:
    """Add a comment to a card.

    Args:
        card_number: Card number
        body: Comment text
        account_slug: Account slug. Uses the default account if omitted
    """
    slug = await resolve_account(account_slug)
    comment = _unwrap(
        await get_client().create_comment(slug, card_number, body),
        _card_context(slug, card_number),
    )
    return f"Added comment to card #{card_number} (id: {(comment or {}).get('id', '?')})"


@mcp.tool()
async def fizzy_update_comment(card_number: int, comment_id: str, body: str, account_slug: str = "") -> str:
    """Edit a comment.

    Args:
        card_number: Card number
        comment_id: Comment ID (see fizzy_list_comments)
        body: New comment text
        account_slug: Account slug. Uses the default account if omitted
    """
    slug = await resolve_account(account_slug)
    _unwrap(
        await get_client().update_comment(slug, card_number, comment_id, body),
        ErrorContext("Comment", comment_id, f"card #{card_number}"),
    )
    return f"Updated comment {comment_id}"


@mcp.tool()
async def fizzy_delete_comment(card_number: int, comment_id: str, account_slug: str = "") -> str:
    """Delete a comment.

    Args:
        card_number: Card number
        comment_id: Comment ID
        account_slug: Account slug. Uses the default account if omitted
    """
    slug = await resolve_account(account_slug)
    _unwrap(
        await get_client().delete_comment(slug, card_number, comment_id),
        ErrorContext("Comment", comment_id, f"card #{card_number}"),
    )
    return f"Deleted comment {comment_id}"


# ── Step Tools ───────────────────────────────────────────────


@mcp.tool()
async def fizzy_create_step(
    card_number: int, content: str, completed: bool = False, account_slug: str = ""
) -> str:
    """Add a checklist step to a card.

    Args:
        card_number: Card number
        content: Step text
        completed: Create the step already checked
        account_slug: Account slug. Uses the default account if omitted
    """
    slug = await resolve_account(account_slug)
    step = _unwrap(
        await get_client().create_step(slug, card_number, content, completed or None),
        _card_context(slug, card_number),
    )
    return f"Added step to card #{card_number} (id: {(step or {}).get('id', '?')})"


@mcp.tool()
async def fizzy_update_step(
    card_number: int,
    step_id: str,
    content: str | None = None,
    completed: bool | None = None,
    account_slug: str = "",
) -> str:
    """Edit a step or check/uncheck it.

    Args:
        card_number: Card number
        step_id: Step ID (see fizzy_get_card)
        content: New step text
        completed: True to check, False to uncheck
        account_slug: Account slug. Uses the default account if omitted
    """
    slug = await resolve_account(account_slug)
    _unwrap(
        await get_client().update_step(slug, card_number, step_id, content, completed),
        ErrorContext("Step", step_id, f"card #{card_number}"),
    )
    return f"Updated step {step_id}"


@mcp.tool()
async def fizzy_delete_step(card_number: int, step_id: str, account_slug: str = "") -> str:
    """Delete a step from a card.

    Args:
        card_number: Card number
        step_id: Step ID
        account_slug: Account slug. Uses the default account if omitted
    """
    slug = await resolve_account(account_slug)
    _unwrap(
        await get_client().delete_step(slug, card_number, step_id),
        ErrorContext("Step", step_id, f"card #{card_number}"),
    )
    return f"Deleted step {step_id}"


# ── Composite Tools ──────────────────────────────────────────


@mcp.tool()
async def fizzy_create_card_full(
    board_id: str,
    title: str,
    description: str = "",
    steps: list[str] | None = None,
    tags: list[str] | None = None,
    assignees: list[str] | None = None,
    column_id: str = "",
    account_slug: str = "",
) -> str:
    """Create a card with steps, tags, assignees and a column in one call.

    The card itself must be created; everything after that is best-effort and
    reported under "failures".

    Args:
        board_id: Board ID to create the card on
        title: Card title
        description: Optional card description
        steps: Checklist items to add
        tags: Tag titles to add
        assignees: User IDs to assign
        column_id: Column to triage the card into
        account_slug: Account slug. Uses the default account if omitted
    """
    slug = await resolve_account(account_slug)
    client = get_client()
    card = _unwrap(
        await client.create_card(slug, board_id, title, description or None),
        ErrorContext("Board", board_id, _in_account(slug)),
    )
    number = card["number"]
    failures: list[dict[str, str]] = []

    steps_created = 0
    for content in steps or []:
        if _attempt(failures, f"add_step:{content}", await client.create_step(slug, number, content)):
            steps_created += 1

    tags_added = [
        tag for tag in tags or []
        if _attempt(failures, f"toggle_tag:{tag}", await client.toggle_tag(slug, number, tag))
    ]
    assignees_added = [
        user_id for user_id in assignees or []
        if _attempt(failures, f"toggle_assignee:{user_id}", await client.toggle_assignee(slug, number, user_id))
    ]

    triaged_to = None
    if column_id and _attempt(failures, f"triage:{column_id}", await client.triage_card(slug, number, column_id)):
        triaged_to = column_id

    return _fmt(
        {
            "card": _card_summary(card),
            "steps_created": steps_created,
            "tags_added": tags_added,
            "assignees_added": assignees_added,
            "triaged_to": triaged_to,
            "failures": failures,
        }
    )


@mcp.tool()
async def fizzy_bulk_close_cards(
    force: bool,
    card_numbers: list[int] | None = None,
    column_id: str = "",
    tag_title: str = "",
    older_than_days: int | None = None,
    account_slug: str = "",
) -> str:
    """Close several cards at once.

    Give explicit card_numbers, or filters (column_id, tag_title,
    older_than_days) that AND together over the open cards.

    Args:
        force: Must be true; guards against accidental bulk closes
        card_numbers: Explicit card numbers to close
        column_id: Only cards in this column
        tag_title: Only cards with this tag title
        older_than_days: Only cards not updated in this many days
        account_slug: Account slug. Uses the default account if omitted
    """
    if force is not True:
        raise ToolError("[VALIDATION] force: must be true to close cards in bulk.")
    slug = await resolve_account(account_slug)
    client = get_client()

    if card_numbers:
        targets = list(card_numbers)
    else:
        if not (column_id or tag_title or older_than_days is not None):
            raise ToolError(
                "[VALIDATION] card_numbers: give card numbers or at least one filter "
                "(column_id, tag_title, older_than_days)."
            )
        filters = CardFilters()
        if tag_title:
            all_tags = _unwrap(await client.list_all_tags(slug), ErrorContext("Tag", container=_in_account(slug)))
            tag = next((t for t in all_tags if str(t.get("title", "")).lower() == tag_title.lower()), None)
            if tag is None:
                raise ToolError(
                    f'[NOT_FOUND] Tag "{tag_title}": Not found in {_in_account(slug)}. '
                    "Try fizzy_list_tags to see available items."
                )
            filters = CardFilters(tag_ids=(tag["id"],))

        cards = _unwrap(
            await client.list_all_cards(slug, filters),
            ErrorContext("Card", container=_in_account(slug)),
        )
        cards = [c for c in cards if not c.get("closed")]
        if column_id:
            cards = [c for c in cards if c.get("column_id") == column_id]
        if older_than_days is not None:
            cutoff = _dt.datetime.now(_dt.timezone.utc) - _dt.timedelta(days=older_than_days)
            cards = [c for c in cards if _updated_before(c, cutoff)]
        targets = [c["number"] for c in cards]

    closed: list[int] = []
    failed: list[dict[str, Any]] = []
    for number in targets:
        result = await client.close_card(slug, number)
        if isinstance(result, Err):
            failed.append({"card_number": number, "error": render_error(result.error, _card_context(slug, number))})
        else:
            closed.append(number)

    logger.info("Bulk close in %s: %d of %d closed", slug, len(closed), len(targets))
    return _fmt({"closed": closed, "failed": failed, "total": len(targets), "success_count": len(closed)})


@mcp.tool()
async def fizzy_task(
    card_number: int | None = None,
    board_id: str = "",
    title: str | None = None,
    description: str | None = None,
    status: Literal["open", "closed", "not_now"] | None = None,
    column_id: str = "",
    position: Literal["top", "bottom"] = "bottom",
    add_tags: list[str] | None = None,
    remove_tags: list[str] | None = None,
    steps: list[str] | None = None,
    account_slug: str = "",
) -> str:
    """Create or update a card, with status, tags, steps and column placement.

    Without card_number a card is created on board_id (title required); steps,
    tags and column are then applied best-effort. With card_number the card is
    updated: title/description, status, tag add/remove (already-present tags
    are left alone) and a move to column_id. Failed sub-operations are listed
    under "failures".

    Args:
        card_number: Card to update. Omit to create a new card
        board_id: Board ID (create only)
        title: Card title (required to create)
        description: Card description
        status: open | closed | not_now (update only)
        column_id: Column to move the card into
        position: top or bottom of the column (default bottom)
        add_tags: Tag titles to add
        remove_tags: Tag titles to remove (update only)
        steps: Checklist items to create (create only)
        account_slug: Account slug. Uses the default account if omitted
    """
    slug = await resolve_account(account_slug)
    client = get_client()
    failures: list[dict[str, str]] = []
    operations: dict[str, Any] = {}

    if card_number is None:
        if not board_id:
            raise ToolError("[VALIDATION] board_id: is required to create a card.")
        if not title:
            raise ToolError("[VALIDATION] title: is required to create a card.")
        card = _unwrap(
            await client.create_card(slug, board_id, title, description or None),
            ErrorContext("Board", board_id, _in_account(slug)),
        )
        number = card["number"]

        if steps:
            created = 0
            for content in steps:
                if _attempt(failures, f"create_step:{content}", await client.create_step(slug, number, content)):
                    created += 1
            operations["steps_created"] = created
        tags_added = [
            tag for tag in add_tags or []
            if _attempt(failures, f"add_tag:{tag}", await client.toggle_tag(slug, number, tag))
        ]
        if tags_added:
            operations["tags_added"] = tags_added
        if column_id and _attempt(
            failures, f"triage:{column_id}", await client.triage_card(slug, number, column_id, position)
        ):
            operations["triaged_to"] = column_id
        return _fmt({"mode": "create", "card": _card_summary(card), "operations": operations, "failures": failures})

    number = card_number
    card = _unwrap(await client.get_card(slug, number), _card_context(slug, number))

    if title is not None or description is not None:
        updated = await client.update_card(slug, number, title, description)
        if _attempt(failures, "update_card", updated):
            if updated.value:
                card = updated.value
            elif title is not None:
                card = {**card, "title": title}
            if title is not None:
                operations["title_updated"] = True
            if description is not None:
                operations["description_updated"] = True

    if status == "closed" and not card.get("closed"):
        if _attempt(failures, "status:closed", await client.close_card(slug, number)):
            card = {**card, "closed": True}
            operations["status_changed"] = "closed"
    elif status == "open" and card.get("closed"):
        if _attempt(failures, "status:open", await client.reopen_card(slug, number)):
            card = {**card, "closed": False}
            operations["status_changed"] = "open"
    elif status == "not_now":
        if _attempt(failures, "status:not_now", await client.not_now_card(slug, number)):
            operations["status_changed"] = "not_now"

    current_tags = set(card.get("tags") or [])
    tags_added = [
        tag for tag in add_tags or []
        if tag not in current_tags
        and _attempt(failures, f"add_tag:{tag}", await client.toggle_tag(slug, number, tag))
    ]
    if tags_added:
        operations["tags_added"] = tags_added
    tags_removed = [
        tag for tag in remove_tags or []
        if tag in current_tags
        and _attempt(failures, f"remove_tag:{tag}", await client.toggle_tag(slug, number, tag))
    ]
    if tags_removed:
        operations["tags_removed"] = tags_removed

    if column_id and column_id != card.get("column_id"):
        # A card already in a column has to leave it before triage.
        left = True
        if card.get("column_id"):
            left = _attempt(failures, "untriage", await client.untriage_card(slug, number))
        if left and _attempt(
            failures, f"triage:{column_id}", await client.triage_card(slug, number, column_id, position)
        ):
            card = {**card, "column_id": column_id}
            operations["triaged_to"] = column_id

    return _fmt({"mode": "update", "card": _card_summary(card), "operations": operations, "failures": failures})
