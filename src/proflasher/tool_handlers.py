"""Tool handler registry for the flashcard assistant.

Each handler is registered with @handler("tool_name") and receives:
    anki: AnkiClient instance
    tool_input: dict of tool parameters
    **ctx: template, tool_call_id, search_limit

Handlers return the history entry recording the call's outcome. Store
failures are recorded on the entry; malformed arguments raise
ToolArgumentError.
"""

from __future__ import annotations

import json
import logging
from typing import Callable, TYPE_CHECKING

from .client import AnkiConnectError, note_key_query, quote_search
from .history import AnkiSearchMessage, CardProposalMessage, GetNotesMessage, ToolMessage
from .models import RowOrientedCard
from .table_card import row_to_column
from .tools import GET_NOTES_TOOL, PROPOSE_CARDS_TOOL, SEARCH_TOOL
from .validation import check_card_structure, fill_missing_fields, validate_note

if TYPE_CHECKING:
    from .client import AnkiClient
    from .models import Template

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 50

HANDLERS: dict[str, Callable] = {}


class ToolArgumentError(Exception):
    """The model called a tool with unusable arguments, or an unknown tool."""
    pass


def handler(name: str):
    """Decorator to register a tool handler."""
    def decorator(fn: Callable) -> Callable:
        HANDLERS[name] = fn
        return fn
    return decorator


def scoped_query(query: str, note_type: str) -> str:
    """Restrict a search to the language's note type unless it already filters by note."""
    if "note:" in query:
        return query
    return f'note:"{quote_search(note_type)}" {query}'.rstrip()


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------

@handler(SEARCH_TOOL)
def handle_search(
    anki: AnkiClient,
    tool_input: dict,
    *,
    template: Template,
    tool_call_id: str = "",
    search_limit: int = DEFAULT_SEARCH_LIMIT,
    **ctx,
) -> AnkiSearchMessage:
    query = tool_input.get("query")
    if not isinstance(query, str):
        raise ToolArgumentError("'query' must be a string")

    full_query = scoped_query(query, template.note_type)
    try:
        note_ids = anki.find_notes(full_query)
        notes = anki.notes_info(note_ids[:search_limit])
    except AnkiConnectError as e:
        logger.warning("Anki search failed", extra={"query": full_query, "error": str(e)})
        return AnkiSearchMessage(query=query, error=str(e), tool_call_id=tool_call_id)

    results = [{"id": note.note_id, "key": note.key} for note in notes]
    return AnkiSearchMessage(query=query, results=results, tool_call_id=tool_call_id)


@handler(GET_NOTES_TOOL)
def handle_get_notes(
    anki: AnkiClient,
    tool_input: dict,
    *,
    template: Template,
    tool_call_id: str = "",
    **ctx,
) -> GetNotesMessage:
    keys = tool_input.get("keys")
    if not isinstance(keys, list) or not all(isinstance(k, str) for k in keys):
        raise ToolArgumentError("'keys' must be a list of strings")

    note_infos = []
    for key in keys:
        query = note_key_query(template.note_type, key)
        try:
            notes = anki.notes_info(anki.find_notes(query))
        except AnkiConnectError as e:
            note_infos.append({"key": key, "error": str(e)})
            continue
        if not notes:
            note_infos.append({"key": key, "error": f"No note found for key '{key}'"})
            continue
        note = notes[0]
        note_infos.append({
            "key": key,
            "noteId": note.note_id,
            "fields": note.fields,
            "tags": note.tags,
        })

    return GetNotesMessage(keys=keys, note_infos=note_infos, tool_call_id=tool_call_id)


# ---------------------------------------------------------------------------
# Proposals
# ---------------------------------------------------------------------------

@handler(PROPOSE_CARDS_TOOL)
def handle_propose_cards(
    anki: AnkiClient,
    tool_input: dict,
    *,
    template: Template,
    tool_call_id: str = "",
    **ctx,
) -> CardProposalMessage:
    raw_cards = tool_input.get("cards")
    if not isinstance(raw_cards, list):
        raise ToolArgumentError("'cards' must be a list")
    message = tool_input.get("message")
    if message is not None and not isinstance(message, str):
        raise ToolArgumentError("'message' must be a string")
    message = message or None

    try:
        cards = [RowOrientedCard.from_dict(raw) for raw in raw_cards]
    except ValueError as e:
        raise ToolArgumentError(f"invalid card: {e}") from e

    problems = check_card_structure(cards, template)
    if not problems:
        cards = [fill_missing_fields(card, template) for card in cards]
        templates = {template.language: template}
        for index, card in enumerate(cards, 1):
            result = validate_note(
                template.note_type,
                row_to_column(card, template.table_definitions),
                templates,
            )
            if not result.is_valid:
                problems.append(f"Card #{index} has invalid fields: {result.error}")

    if problems:
        logger.info("Rejected card proposal", extra={"problems": len(problems)})
        return CardProposalMessage(
            cards=cards,
            tool_call_id=tool_call_id,
            error="Invalid cards detected:\n" + "\n".join(problems),
            message=message,
        )

    return CardProposalMessage(cards=cards, tool_call_id=tool_call_id, message=message)


def dispatch(anki: AnkiClient, name: str, arguments: str | dict, **ctx) -> ToolMessage:
    """Run one tool call by name.

    ``arguments`` is the raw JSON text the model produced, or an already
    decoded dict.

    Raises:
        ToolArgumentError: unknown tool, undecodable or invalid arguments
    """
    fn = HANDLERS.get(name)
    if fn is None:
        raise ToolArgumentError(f"Unknown tool: {name}")

    if isinstance(arguments, str):
        try:
            tool_input = json.loads(arguments) if arguments.strip() else {}
        except json.JSONDecodeError as e:
            raise ToolArgumentError(f"arguments are not valid JSON: {e}") from e
    else:
        tool_input = arguments
    if not isinstance(tool_input, dict):
        raise ToolArgumentError("arguments must be a JSON object")

    return fn(anki, tool_input, **ctx)
