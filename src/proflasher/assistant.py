"""Conversation engine: drives the LLM through tool calls to a card proposal."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field, replace

from .client import AnkiClient, AnkiConnectError
from .config import Config, get_model_specs
from .history import (
    CardProposalMessage,
    ConversationMessage,
    ErrorMessage,
    LLMMessage,
    UserMessage,
    find_unpaired_tool_calls,
    to_transcript,
)
from .llm import AnthropicProvider, LLMError
from .models import Template
from .prompts import build_system_prompt
from .templates import TemplateSource
from .tool_handlers import ToolArgumentError, dispatch
from .tools import FLASHCARD_TOOLS, GET_NOTES_TOOL, PROPOSE_CARDS_TOOL, SEARCH_TOOL

logger = logging.getLogger(__name__)

# Calls whose result the model must see before it can finish
_LOOKUP_TOOLS = {SEARCH_TOOL, GET_NOTES_TOOL}


@dataclass
class TurnRequest:
    language: str
    model_name: str
    user_prompt: str
    conversation_history: list[ConversationMessage] = field(default_factory=list)


@dataclass(frozen=True)
class RetryBudget:
    """Failures allowed in one turn, shared by provider and tool errors."""

    used: int = 0
    limit: int = 3

    @property
    def exhausted(self) -> bool:
        return self.used >= self.limit

    def spend(self) -> RetryBudget:
        return replace(self, used=self.used + 1)


class TurnState(enum.Enum):
    CONTINUE = "continue"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class StepResult:
    state: TurnState
    history: list[ConversationMessage]
    budget: RetryBudget


class FlashcardAssistant:
    """Runs conversation turns for one card store.

    Args:
        provider: LLM provider (defaults to AnthropicProvider)
        anki: AnkiConnect client used by the tools
        templates: Source of per-language templates
        config: Retry limit, search cap and default model
    """

    def __init__(
        self,
        provider: AnthropicProvider | None = None,
        anki: AnkiClient | None = None,
        templates: TemplateSource | None = None,
        config: Config | None = None,
    ):
        self.config = config or Config()
        self.provider = provider or AnthropicProvider()
        self.anki = anki or AnkiClient(self.config.anki_connect_url)
        self.templates = templates or TemplateSource(
            self.config.templates_path, cache=self.config.cache_templates
        )

    def run_turn(self, request: TurnRequest) -> list[ConversationMessage]:
        """Append the user's prompt and run the loop to a terminal state.

        Returns:
            The updated history. The caller's list is not modified.

        Raises:
            TemplateError: if the language has no template
        """
        history: list[ConversationMessage] = [
            *request.conversation_history,
            UserMessage(content=request.user_prompt),
        ]
        budget = RetryBudget(limit=self.config.max_retries)
        state = TurnState.CONTINUE

        while state is TurnState.CONTINUE:
            template = self.templates.get(request.language)
            result = self._step(request, template, history, budget)
            state, history, budget = result.state, result.history, result.budget

        logger.info(
            "Turn finished",
            extra={"state": state.value, "retries": budget.used, "entries": len(history)},
        )
        return history

    def _step(
        self,
        request: TurnRequest,
        template: Template,
        history: list[ConversationMessage],
        budget: RetryBudget,
    ) -> StepResult:
        model = request.model_name or self.config.main_model
        system = build_system_prompt(template, self.templates.language_prompt(request.language))
        transcript = to_transcript(history)
        unpaired = find_unpaired_tool_calls(transcript)
        if unpaired:
            logger.warning("Transcript has unpaired tool calls", extra={"ids": ",".join(unpaired)})

        try:
            response = self.provider.complete(
                model=model,
                system=system,
                messages=transcript,
                tools=FLASHCARD_TOOLS,
                max_tokens=get_model_specs(model)["max_output_tokens"],
            )
        except LLMError as e:
            if budget.exhausted:
                logger.error("LLM call failed, giving up", extra={"error": str(e)})
                failed = [*history, ErrorMessage(content=f"Error calling LLM: {e}")]
                return StepResult(TurnState.FAILED, failed, budget)
            logger.warning("LLM call failed, retrying", extra={"attempt": budget.used + 1, "error": str(e)})
            return StepResult(TurnState.CONTINUE, history, budget.spend())

        logger.info(
            "LLM call",
            extra={
                "model": model,
                "input_tokens": response.input_tokens,
                "output_tokens": response.output_tokens,
                "tool_calls": len(response.tool_calls),
            },
        )

        history = list(history)
        if response.text:
            history.append(LLMMessage(content=response.text))
        if not response.tool_calls:
            return StepResult(TurnState.DONE, history, budget)

        state = TurnState.CONTINUE
        for call in response.tool_calls:
            logger.info("Tool call", extra={"tool": call.name, "id": call.id})
            try:
                entry = dispatch(
                    self.anki,
                    call.name,
                    call.arguments,
                    template=template,
                    tool_call_id=call.id,
                    search_limit=self.config.search_limit,
                )
            except (ToolArgumentError, AnkiConnectError) as e:
                history.append(ErrorMessage(content=f"Error processing {call.name} tool call: {e}"))
                state, budget = self._after_failure(budget)
                continue
            except Exception as e:
                logger.exception("Tool handler crashed", extra={"tool": call.name})
                history.append(ErrorMessage(content=f"Error processing {call.name} tool call: {e}"))
                state, budget = self._after_failure(budget)
                continue

            history.append(entry)
            if call.name in _LOOKUP_TOOLS:
                state = TurnState.CONTINUE
            elif isinstance(entry, CardProposalMessage) and entry.error:
                state, budget = self._after_failure(budget)
            elif call.name == PROPOSE_CARDS_TOOL:
                state = TurnState.CONTINUE if entry.message else TurnState.DONE

        return StepResult(state, history, budget)

    @staticmethod
    def _after_failure(budget: RetryBudget) -> tuple[TurnState, RetryBudget]:
        if budget.exhausted:
            return TurnState.FAILED, budget
        logger.warning("Tool call failed, retrying", extra={"attempt": budget.used + 1})
        return TurnState.CONTINUE, budget.spend()
