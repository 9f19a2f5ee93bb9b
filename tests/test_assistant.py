"""Tests for assistant module - the conversation loop and its retry budget."""

import json
from unittest.mock import MagicMock

import pytest

from proflasher.assistant import FlashcardAssistant, RetryBudget, TurnRequest
from proflasher.config import Config
from proflasher.history import (
    AnkiSearchMessage,
    CardProposalMessage,
    ErrorMessage,
    LLMMessage,
    UserMessage,
    find_unpaired_tool_calls,
    to_transcript,
)
from proflasher.llm import LLMError, LLMResponse, ToolCall
from proflasher.templates import TemplateError, TemplateSource


def _text(content):
    return LLMResponse(text=content)


def _tools(*calls, text=None):
    return LLMResponse(text=text, tool_calls=[
        ToolCall(id=f"call_{i}", name=name, arguments=json.dumps(args) if isinstance(args, dict) else args)
        for i, (name, args) in enumerate(calls)
    ])


@pytest.fixture
def provider():
    return MagicMock()


@pytest.fixture
def anki():
    mock = MagicMock()
    mock.find_notes.return_value = []
    mock.notes_info.return_value = []
    return mock


@pytest.fixture
def assistant(provider, anki, templates_dir):
    return FlashcardAssistant(provider, anki, TemplateSource(templates_dir), Config())


def _run(assistant, prompt="make a card for hello", history=None):
    return assistant.run_turn(TurnRequest("jp", "claude-opus-4-6", prompt, history or []))


class TestRetryBudget:
    """Tests for the immutable retry counter."""

    def test_spend_returns_new_budget(self):
        budget = RetryBudget(limit=3)
        spent = budget.spend()
        assert budget.used == 0
        assert spent.used == 1

    def test_exhausted(self):
        budget = RetryBudget(limit=2)
        assert not budget.exhausted
        assert budget.spend().spend().exhausted


class TestTextResponses:
    """Tests for plain text replies."""

    def test_text_terminates(self, assistant, provider):
        provider.complete.return_value = _text("Which word?")

        history = _run(assistant)

        assert history == [UserMessage("make a card for hello"), LLMMessage("Which word?")]
        assert provider.complete.call_count == 1

    def test_caller_history_not_modified(self, assistant, provider):
        provider.complete.return_value = _text("ok")
        previous = [UserMessage("earlier"), LLMMessage("reply")]

        history = _run(assistant, history=previous)

        assert len(previous) == 2
        assert history[:2] == previous
        assert len(history) == 4

    def test_request_carries_system_prompt_and_tools(self, assistant, provider):
        provider.complete.return_value = _text("ok")

        _run(assistant)

        kwargs = provider.complete.call_args.kwargs
        assert kwargs["model"] == "claude-opus-4-6"
        assert "## Required Fields" in kwargs["system"]
        assert kwargs["max_tokens"] == 32_000
        assert {t["name"] for t in kwargs["tools"]} == {"search", "getNotes", "proposeCards"}
        assert kwargs["messages"] == [{"role": "user", "content": "make a card for hello"}]


class TestProviderFailures:
    """Tests for retrying failed LLM calls."""

    def test_four_attempts_then_one_error(self, assistant, provider):
        provider.complete.side_effect = LLMError("overloaded")

        history = _run(assistant)

        assert provider.complete.call_count == 4
        assert history == [
            UserMessage("make a card for hello"),
            ErrorMessage("Error calling LLM: overloaded"),
        ]

    def test_recovers_after_failure(self, assistant, provider):
        provider.complete.side_effect = [LLMError("overloaded"), _text("done")]

        history = _run(assistant)

        assert history[-1] == LLMMessage("done")
        assert not any(isinstance(m, ErrorMessage) for m in history)

    def test_limit_from_config(self, provider, anki, templates_dir):
        assistant = FlashcardAssistant(provider, anki, TemplateSource(templates_dir), Config(max_retries=1))
        provider.complete.side_effect = LLMError("down")

        _run(assistant)

        assert provider.complete.call_count == 2


class TestToolCalls:
    """Tests for tool execution and when a turn is done."""

    def test_search_continues(self, assistant, provider, anki):
        anki.find_notes.return_value = [1]
        anki.notes_info.return_value = []
        provider.complete.side_effect = [
            _tools(("search", {"query": "hello"})),
            _text("No existing card, shall I make one?"),
        ]

        history = _run(assistant)

        assert isinstance(history[1], AnkiSearchMessage)
        assert history[1].tool_call_id == "call_0"
        assert history[2] == LLMMessage("No existing card, shall I make one?")
        assert provider.complete.call_count == 2
        second_transcript = provider.complete.call_args_list[1].kwargs["messages"]
        assert find_unpaired_tool_calls(second_transcript) == []

    def test_valid_proposal_without_message_is_done(self, assistant, provider, valid_card_input):
        provider.complete.return_value = _tools(("proposeCards", {"cards": [valid_card_input]}))

        history = _run(assistant)

        assert provider.complete.call_count == 1
        assert isinstance(history[-1], CardProposalMessage)
        assert history[-1].error is None

    def test_proposal_with_message_continues(self, assistant, provider, valid_card_input):
        provider.complete.side_effect = [
            _tools(("proposeCards", {"cards": [valid_card_input], "message": "Here you go"})),
            _text("Let me know if you want changes."),
        ]

        history = _run(assistant)

        assert provider.complete.call_count == 2
        assert history[-1] == LLMMessage("Let me know if you want changes.")

    def test_invalid_proposal_retries_then_succeeds(self, assistant, provider, valid_card_input):
        bad = {"fields": {"Key": "k"}, "tables": {}}
        provider.complete.side_effect = [
            _tools(("proposeCards", {"cards": [bad]})),
            _tools(("proposeCards", {"cards": [valid_card_input]})),
        ]

        history = _run(assistant)

        proposals = [m for m in history if isinstance(m, CardProposalMessage)]
        assert proposals[0].error.startswith("Invalid cards detected:")
        assert proposals[1].error is None
        assert provider.complete.call_count == 2

    def test_invalid_proposals_stop_when_budget_exhausted(self, assistant, provider):
        bad = {"fields": {"Key": "k"}, "tables": {}}
        provider.complete.return_value = _tools(("proposeCards", {"cards": [bad]}))

        history = _run(assistant)

        assert provider.complete.call_count == 4
        assert len([m for m in history if isinstance(m, CardProposalMessage)]) == 4

    def test_mixed_text_and_tool_call(self, assistant, provider, valid_card_input):
        provider.complete.return_value = _tools(
            ("proposeCards", {"cards": [valid_card_input]}), text="Here is a card."
        )

        history = _run(assistant)

        assert history[1] == LLMMessage("Here is a card.")
        assert isinstance(history[2], CardProposalMessage)

    def test_unknown_tool_recorded_as_error(self, assistant, provider):
        provider.complete.side_effect = [
            _tools(("deleteDeck", {"name": "x"})),
            _text("Sorry."),
        ]

        history = _run(assistant)

        assert history[1] == ErrorMessage("Error processing deleteDeck tool call: Unknown tool: deleteDeck")
        assert history[2] == LLMMessage("Sorry.")

    def test_malformed_arguments_recorded_as_error(self, assistant, provider):
        provider.complete.side_effect = [
            _tools(("search", '{"query": ')),
            _text("Retrying later."),
        ]

        history = _run(assistant)

        assert isinstance(history[1], ErrorMessage)
        assert history[1].content.startswith("Error processing search tool call:")

    def test_tool_errors_share_budget_with_provider_errors(self, assistant, provider):
        provider.complete.side_effect = [
            LLMError("overloaded"),
            LLMError("overloaded"),
            _tools(("nope", {})),
            _tools(("nope", {})),
        ]

        history = _run(assistant)

        assert provider.complete.call_count == 4
        errors = [m for m in history if isinstance(m, ErrorMessage)]
        assert len(errors) == 2

    def test_history_replays_cleanly(self, assistant, provider, valid_card_input):
        provider.complete.side_effect = [
            _tools(("search", {"query": "hello"}), ("getNotes", {"keys": ["hello"]})),
            _tools(("proposeCards", {"cards": [valid_card_input]})),
        ]

        history = _run(assistant)

        assert find_unpaired_tool_calls(to_transcript(history)) == []


class TestTemplates:
    """Tests for template lookup at the start of a turn."""

    def test_unknown_language_raises(self, assistant, provider):
        with pytest.raises(TemplateError):
            assistant.run_turn(TurnRequest("de", "claude-opus-4-6", "hi", []))
        provider.complete.assert_not_called()
