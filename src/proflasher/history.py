"""Conversation history: message types, JSON form, and transcript replay.

History is an append-only log owned by the caller. Tool calls are stored
as their recorded outcome (query plus results, proposed cards plus
validation error, ...) and replayed to the model as a tool_use/tool_result
pair carrying the original call id. Tools are never re-executed on replay.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, ClassVar, Union

from .models import RowOrientedCard
from .tools import GET_NOTES_TOOL, PROPOSE_CARDS_TOOL, SEARCH_TOOL

PROPOSAL_ACCEPTED = "Cards valid. The assistant may now add a follow-up comment if needed."


class HistoryError(Exception):
    """Conversation history could not be decoded."""
    pass


@dataclass(frozen=True)
class UserMessage:
    type: ClassVar[str] = "user"
    content: str


@dataclass(frozen=True)
class LLMMessage:
    type: ClassVar[str] = "llm"
    content: str


@dataclass(frozen=True)
class ErrorMessage:
    type: ClassVar[str] = "error"
    content: str


@dataclass(frozen=True)
class AnkiSearchMessage:
    type: ClassVar[str] = "anki_search"
    query: str
    results: list[dict] = field(default_factory=list)
    tool_call_id: str = ""
    error: str | None = None


@dataclass(frozen=True)
class GetNotesMessage:
    type: ClassVar[str] = "get_notes"
    keys: list[str] = field(default_factory=list)
    note_infos: list[dict] | None = None
    tool_call_id: str = ""
    error: str | None = None


@dataclass(frozen=True)
class CardProposalMessage:
    type: ClassVar[str] = "card_proposal"
    cards: list[RowOrientedCard] = field(default_factory=list)
    tool_call_id: str = ""
    error: str | None = None
    message: str | None = None


ConversationMessage = Union[
    UserMessage,
    LLMMessage,
    ErrorMessage,
    AnkiSearchMessage,
    GetNotesMessage,
    CardProposalMessage,
]

ToolMessage = Union[AnkiSearchMessage, GetNotesMessage, CardProposalMessage]


# ---------------------------------------------------------------------------
# JSON wire form
# ---------------------------------------------------------------------------

def _without_none(data: dict) -> dict:
    return {k: v for k, v in data.items() if v is not None}


def message_to_dict(message: ConversationMessage) -> dict:
    """Serialize a message to its JSON-compatible wire form."""
    if isinstance(message, (UserMessage, LLMMessage, ErrorMessage)):
        return {"type": message.type, "content": message.content}
    if isinstance(message, AnkiSearchMessage):
        return _without_none({
            "type": message.type,
            "query": message.query,
            "results": message.results,
            "error": message.error,
            "toolCallId": message.tool_call_id,
        })
    if isinstance(message, GetNotesMessage):
        return _without_none({
            "type": message.type,
            "keys": message.keys,
            "noteInfos": message.note_infos,
            "error": message.error,
            "toolCallId": message.tool_call_id,
        })
    if isinstance(message, CardProposalMessage):
        return _without_none({
            "type": message.type,
            "cards": [card.to_dict() for card in message.cards],
            "error": message.error,
            "message": message.message,
            "toolCallId": message.tool_call_id,
        })
    raise TypeError(f"Not a conversation message: {message!r}")


def message_from_dict(data: Any) -> ConversationMessage:
    """Decode one message from its wire form.

    Raises:
        HistoryError: on an unknown type tag or malformed payload
    """
    if not isinstance(data, dict):
        raise HistoryError(f"History entry must be an object, got {type(data).__name__}")
    kind = data.get("type")
    try:
        if kind == "user":
            return UserMessage(content=str(data.get("content", "")))
        if kind == "llm":
            return LLMMessage(content=str(data.get("content", "")))
        if kind == "error":
            return ErrorMessage(content=str(data.get("content", "")))
        if kind == "anki_search":
            return AnkiSearchMessage(
                query=data["query"],
                results=list(data.get("results") or []),
                tool_call_id=data.get("toolCallId", ""),
                error=data.get("error"),
            )
        if kind == "get_notes":
            return GetNotesMessage(
                keys=list(data.get("keys") or []),
                note_infos=data.get("noteInfos"),
                tool_call_id=data.get("toolCallId", ""),
                error=data.get("error"),
            )
        if kind == "card_proposal":
            return CardProposalMessage(
                cards=[RowOrientedCard.from_dict(c) for c in data.get("cards") or []],
                tool_call_id=data.get("toolCallId", ""),
                error=data.get("error"),
                message=data.get("message"),
            )
    except (KeyError, ValueError) as e:
        raise HistoryError(f"Malformed '{kind}' history entry: {e}") from e
    raise HistoryError(f"Unknown history entry type: {kind!r}")


def history_from_json(data: Any) -> list[ConversationMessage]:
    """Decode a whole history list (e.g. a request body's conversationHistory)."""
    if data is None:
        return []
    if not isinstance(data, list):
        raise HistoryError("Conversation history must be a list")
    return [message_from_dict(entry) for entry in data]


def history_to_json(history: list[ConversationMessage]) -> list[dict]:
    return [message_to_dict(m) for m in history]


# ---------------------------------------------------------------------------
# Transcript replay
# ---------------------------------------------------------------------------

def tool_call_arguments(message: ToolMessage) -> tuple[str, dict]:
    """Tool name and re-serialized arguments for a recorded tool call."""
    if isinstance(message, AnkiSearchMessage):
        return SEARCH_TOOL, {"query": message.query}
    if isinstance(message, GetNotesMessage):
        return GET_NOTES_TOOL, {"keys": list(message.keys)}
    if isinstance(message, CardProposalMessage):
        arguments: dict = {"cards": [card.to_dict() for card in message.cards]}
        if message.message:
            arguments["message"] = message.message
        return PROPOSE_CARDS_TOOL, arguments
    raise TypeError(f"Not a tool message: {message!r}")


def tool_result_payload(message: ToolMessage) -> dict:
    """The JSON payload the model sees as the tool's result."""
    if message.error:
        return {"error": message.error}
    if isinstance(message, AnkiSearchMessage):
        return {"results": message.results}
    if isinstance(message, GetNotesMessage):
        return {"noteInfos": message.note_infos or []}
    if isinstance(message, CardProposalMessage):
        return {"result": PROPOSAL_ACCEPTED}
    raise TypeError(f"Not a tool message: {message!r}")


def to_transcript(history: list[ConversationMessage]) -> list[dict]:
    """Project history onto Anthropic Messages API entries.

    Errors are replayed as user input ("Previous error: ..."), never as
    assistant output. Each tool entry becomes an assistant ``tool_use``
    block followed by a user ``tool_result`` block with the same id.
    """
    transcript: list[dict] = []
    for index, message in enumerate(history):
        if isinstance(message, UserMessage):
            transcript.append({"role": "user", "content": message.content})
        elif isinstance(message, LLMMessage):
            transcript.append({"role": "assistant", "content": message.content})
        elif isinstance(message, ErrorMessage):
            transcript.append({"role": "user", "content": f"Previous error: {message.content}"})
        elif isinstance(message, (AnkiSearchMessage, GetNotesMessage, CardProposalMessage)):
            name, arguments = tool_call_arguments(message)
            # Entries recorded without an id still need a non-empty, matching pair
            call_id = message.tool_call_id or f"toolu_replay_{index}"
            transcript.append({
                "role": "assistant",
                "content": [{
                    "type": "tool_use",
                    "id": call_id,
                    "name": name,
                    "input": arguments,
                }],
            })
            result: dict = {
                "type": "tool_result",
                "tool_use_id": call_id,
                "content": json.dumps(tool_result_payload(message), ensure_ascii=False),
            }
            if message.error:
                result["is_error"] = True
            transcript.append({"role": "user", "content": [result]})
        else:
            raise TypeError(f"Not a conversation message: {message!r}")
    return transcript


def _block_ids(content: Any, block_type: str, id_key: str) -> set:
    ids = set()
    if isinstance(content, list):
        for block in content:
            if isinstance(block, dict) and block.get("type") == block_type:
                ids.add(block.get(id_key))
    return ids


def find_unpaired_tool_calls(transcript: list[dict]) -> list[str]:
    """Ids of tool_use blocks without a tool_result in the next message, and vice versa.

    An empty list means every tool call in the transcript is answered by
    the immediately following message.
    """
    unpaired: list[str] = []
    for i, msg in enumerate(transcript):
        content = msg.get("content")
        if msg["role"] == "assistant":
            use_ids = _block_ids(content, "tool_use", "id")
            if not use_ids:
                continue
            following = transcript[i + 1] if i + 1 < len(transcript) else None
            result_ids = (
                _block_ids(following.get("content"), "tool_result", "tool_use_id")
                if following and following["role"] == "user"
                else set()
            )
            unpaired.extend(sorted(use_ids - result_ids))
        elif msg["role"] == "user":
            result_ids = _block_ids(content, "tool_result", "tool_use_id")
            if not result_ids:
                continue
            previous = transcript[i - 1] if i > 0 else None
            use_ids = (
                _block_ids(previous.get("content"), "tool_use", "id")
                if previous and previous["role"] == "assistant"
                else set()
            )
            unpaired.extend(sorted(result_ids - use_ids))
    return unpaired
