"""Terminal chat UI for the flashcard assistant."""

import sys

from prompt_toolkit import PromptSession
from prompt_toolkit.history import FileHistory
from prompt_toolkit.styles import Style
from rich import box
from rich.console import Console, RenderableType
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Confirm
from rich.table import Table
from rich.text import Text

from .assistant import FlashcardAssistant, TurnRequest
from .card_store import CardAdditionSummary, add_cards
from .client import AnkiClient
from .config import Config, get_model_specs, load_config
from .history import (
    AnkiSearchMessage,
    CardProposalMessage,
    ConversationMessage,
    ErrorMessage,
    GetNotesMessage,
    LLMMessage,
    UserMessage,
)
from .llm import AnthropicProvider
from .models import RowOrientedCard, Template
from .paths import HISTORY_FILE, ensure_data_dir
from .templates import TemplateError, TemplateSource

# Style for prompt_toolkit
PROMPT_STYLE = Style.from_dict({
    "prompt": "cyan bold",
})


def create_search_panel(message: AnkiSearchMessage) -> Panel:
    content = Text()
    content.append("search ", style="bold yellow")
    content.append(f"{message.query}\n", style="white")
    if message.error:
        content.append(f"  {message.error}", style="red")
    else:
        keys = [r.get("key") or str(r.get("id")) for r in message.results]
        content.append(f"  {len(keys)} result(s)", style="dim")
        if keys:
            shown = ", ".join(keys[:10])
            content.append(f": {shown}{'...' if len(keys) > 10 else ''}", style="white")
    return Panel(content, title="[bold blue]Tool Call[/bold blue]", border_style="blue")


def create_get_notes_panel(message: GetNotesMessage) -> Panel:
    content = Text()
    content.append("getNotes ", style="bold yellow")
    content.append(", ".join(message.keys) + "\n", style="white")
    for info in message.note_infos or []:
        if info.get("error"):
            content.append(f"  ✗ {info['error']}\n", style="red")
        else:
            content.append(f"  ✓ {info['key']} ", style="green")
            content.append(f"(note {info.get('noteId')})\n", style="dim")
    if message.error:
        content.append(f"  {message.error}", style="red")
    return Panel(content, title="[bold blue]Tool Call[/bold blue]", border_style="blue")


def create_card_table(card: RowOrientedCard, index: int) -> Table:
    """One proposed card: plain fields, then one row per table row."""
    table = Table(title=f"Card #{index}", box=box.SIMPLE_HEAVY, show_lines=False)
    table.add_column("", style="cyan")
    columns = sorted({col for rows in card.tables.values() for values in rows.values() for col in values})
    for column in columns or ["Value"]:
        table.add_column(column)

    for name, value in card.fields.items():
        if value:
            table.add_row(name, value, *[""] * (max(len(columns), 1) - 1))
    for table_name, rows in card.tables.items():
        for row_name, values in rows.items():
            label = row_name if table_name == "main" else f"{table_name}/{row_name}"
            table.add_row(label, *[values.get(col, "") for col in columns])
    return table


def create_proposal_panel(message: CardProposalMessage) -> Panel:
    if message.error:
        return Panel(
            Text(message.error, style="red"),
            title="[bold red]Rejected proposal[/bold red]",
            border_style="red",
        )
    body = Table.grid(padding=(0, 0))
    for index, card in enumerate(message.cards, 1):
        body.add_row(create_card_table(card, index))
    if message.message:
        body.add_row(Markdown(message.message))
    return Panel(body, title="[bold green]Proposed cards[/bold green]", border_style="green")


def render_message(message: ConversationMessage) -> RenderableType | None:
    """Rich renderable for a history entry, or None for the user's own input."""
    if isinstance(message, UserMessage):
        return None
    if isinstance(message, LLMMessage):
        return Markdown(message.content)
    if isinstance(message, ErrorMessage):
        return Text(f"✗ {message.content}", style="red")
    if isinstance(message, AnkiSearchMessage):
        return create_search_panel(message)
    if isinstance(message, GetNotesMessage):
        return create_get_notes_panel(message)
    if isinstance(message, CardProposalMessage):
        return create_proposal_panel(message)
    return None


def accepted_proposal(new_entries: list[ConversationMessage]) -> CardProposalMessage | None:
    """The last valid proposal in a turn's new entries, if any."""
    for message in reversed(new_entries):
        if isinstance(message, CardProposalMessage) and not message.error and message.cards:
            return message
    return None


def create_summary_panel(summary: CardAdditionSummary) -> Panel:
    content = Text()
    for item in summary.successes:
        content.append(f"✓ Added {item['key']}", style="green")
        content.append(f" (note {item['noteId']})\n", style="dim")
    for item in summary.updates:
        content.append(f"✓ Updated {item['key']}", style="green")
        content.append(f" (note {item['noteId']})\n", style="dim")
    for item in summary.duplicates:
        content.append(f"= {item['key']} already exists", style="yellow")
        content.append(f" (note {item['noteId']})\n", style="dim")
    for item in summary.errors:
        content.append(f"✗ {item['key'] or '(no key)'}: {item['error']}\n", style="red")
    return Panel(content, title="[bold]Anki[/bold]", border_style="dim")


def offer_updates(
    anki: AnkiClient,
    template: Template,
    cards: list[RowOrientedCard],
    summary: CardAdditionSummary,
    confirm=Confirm.ask,
) -> CardAdditionSummary | None:
    """Ask per duplicate whether to overwrite the existing note with the proposed card.

    Returns:
        Summary of the updates, or None if the user declined them all
    """
    update_note_ids = {}
    for item in summary.duplicates:
        if confirm(f"Update existing note for {item['key']}?", default=False):
            update_note_ids[item["key"]] = item["noteId"]
    if not update_note_ids:
        return None

    to_update = [card for card in cards if card.fields.get("Key", "") in update_note_ids]
    return add_cards(anki, template, to_update, update_note_ids=update_note_ids)


def _welcome(console: Console, template: Template, model: str) -> None:
    specs = get_model_specs(model)
    welcome_text = Text()
    welcome_text.append("PROFLASHER\n", style="bold cyan")
    welcome_text.append(f"{template.language.upper()} · {template.note_type} → {template.deck_name}\n", style="bold")
    welcome_text.append(f"Model: {specs['name']}", style="green")
    welcome_text.append(f"  ({model})", style="dim")
    welcome_text.justify = "center"
    console.print(Panel(welcome_text, border_style="cyan", box=box.DOUBLE))

    cmd_table = Table(show_header=False, box=None, padding=(0, 2))
    cmd_table.add_column(style="cyan", min_width=10)
    cmd_table.add_column(style="dim")
    cmd_table.add_row("undo", "Drop the last exchange")
    cmd_table.add_row("clear/new", "Reset conversation")
    cmd_table.add_row("exit", "Quit")
    console.print(Panel(cmd_table, title="[bold dim]Commands[/bold dim]", border_style="dim", box=box.ROUNDED))
    console.print()


def drop_last_exchange(history: list[ConversationMessage]) -> list[ConversationMessage]:
    """History truncated before the most recent user message."""
    for i in range(len(history) - 1, -1, -1):
        if isinstance(history[i], UserMessage):
            return history[:i]
    return []


def run_chat(language: str, model: str | None = None, config: Config | None = None):
    """Run the interactive chat interface."""
    console = Console()
    config = config or load_config()
    model = model or config.main_model

    templates = TemplateSource(config.templates_path, cache=config.cache_templates)
    try:
        template = templates.get(language)
    except TemplateError as e:
        console.print(f"[red]✗ {e}[/red]")
        sys.exit(1)

    anki = AnkiClient(config.anki_connect_url)
    if not anki.ping():
        console.print(
            "[red]✗ Cannot connect to Anki[/red]\n"
            "[dim]Make sure Anki is running with AnkiConnect installed.[/dim]"
        )
        sys.exit(1)

    try:
        assistant = FlashcardAssistant(AnthropicProvider(), anki, templates, config)
    except ValueError as e:
        console.print(f"[red]✗ {e}[/red]")
        sys.exit(1)

    console.print()
    _welcome(console, template, model)

    try:
        ensure_data_dir()
        session: PromptSession = PromptSession(
            history=FileHistory(str(HISTORY_FILE)),
            style=PROMPT_STYLE,
        )
    except OSError:
        session = PromptSession(style=PROMPT_STYLE)

    history: list[ConversationMessage] = []
    while True:
        try:
            user_input = session.prompt([("class:prompt", "You: ")]).strip()
            if not user_input:
                continue

            command = user_input.lower()
            if command in ("exit", "quit", "q"):
                console.print("[dim]Goodbye![/dim]")
                break
            if command in ("clear", "new"):
                history = []
                console.print("[dim]Conversation cleared. Starting fresh.[/dim]\n")
                continue
            if command == "undo":
                history = drop_last_exchange(history)
                console.print(f"[dim]Dropped last exchange ({len(history)} entries left).[/dim]\n")
                continue

            before = len(history)
            try:
                with console.status("[cyan]Thinking...[/cyan]", spinner="dots"):
                    history = assistant.run_turn(
                        TurnRequest(language, model, user_input, history)
                    )
            except TemplateError as e:
                console.print(f"\n[red]Error: {e}[/red]\n")
                continue

            new_entries = history[before:]
            for message in new_entries:
                renderable = render_message(message)
                if renderable is not None:
                    console.print(renderable)

            proposal = accepted_proposal(new_entries)
            if proposal and Confirm.ask(f"Add {len(proposal.cards)} card(s) to Anki?", default=True):
                template = templates.get(language)
                summary = add_cards(anki, template, proposal.cards)
                console.print(create_summary_panel(summary))
                updated = offer_updates(anki, template, proposal.cards, summary)
                if updated is not None:
                    console.print(create_summary_panel(updated))

            console.print()

        except KeyboardInterrupt:
            console.print("\n[dim]Use 'exit' to quit[/dim]")
            continue
        except EOFError:
            console.print("\n[dim]Goodbye![/dim]")
            break
