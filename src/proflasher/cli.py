"""CLI commands for proflasher."""

import json
import sys

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .client import AnkiClient
from .config import CLAUDE_MODELS, Config, get_model_specs, load_config, save_config
from .logging_config import setup_logging
from .models import RowOrientedCard
from .table_card import row_to_column
from .templates import TemplateError, TemplateSource
from .validation import check_card_structure, fill_missing_fields, validate_note

console = Console()


def _switch_model(config: Config, model_id: str) -> None:
    config.main_model = model_id
    save_config(config)
    specs = get_model_specs(model_id)
    console.print(
        f"[green]Switched to {specs['name']}[/green] [dim]({model_id})[/dim]\n"
        f"  Context: {specs['context_window']:,} | Max output: {specs['max_output_tokens']:,}"
    )


@click.group()
@click.version_option(version=__version__)
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to stderr")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Proflasher - chat with Claude to write language flashcards into Anki.

    Requires Anki desktop running with AnkiConnect plugin installed.
    """
    config = load_config()
    setup_logging("DEBUG" if verbose else config.log_level)
    ctx.obj = config


@cli.command()
@click.option("-l", "--language", required=True, help="Template language, e.g. jp")
@click.option("--model", "model_id", default=None, help="Claude model ID for this session")
@click.pass_obj
def chat(config: Config, language: str, model_id: str | None) -> None:
    """Start an interactive flashcard chat for one language.

    Requires ANTHROPIC_API_KEY environment variable.
    """
    from .chat import run_chat
    run_chat(language, model_id, config=config)


@cli.command()
@click.pass_obj
def languages(config: Config) -> None:
    """List available language templates."""
    templates = TemplateSource(config.templates_path).load()
    if not templates:
        console.print(f"[yellow]No templates found in {config.templates_path}[/yellow]")
        return

    table = Table(title="Templates")
    table.add_column("Language", style="cyan")
    table.add_column("Note type", style="bold")
    table.add_column("Deck")
    table.add_column("Tables", style="dim")
    for language, template in templates.items():
        table.add_row(
            language,
            template.note_type,
            template.deck_name,
            ", ".join(t.name for t in template.table_definitions),
        )
    console.print(table)


@cli.command()
@click.pass_obj
def status(config: Config) -> None:
    """Check connection to Anki."""
    client = AnkiClient(config.anki_connect_url)
    if client.ping():
        console.print("[green]✓ Connected to Anki[/green]")
    else:
        console.print(
            "[red]✗ Cannot connect to Anki[/red]\n"
            "[dim]Make sure Anki is running with AnkiConnect installed.[/dim]"
        )
        sys.exit(1)


@cli.command()
@click.argument("model_id", required=False)
@click.pass_obj
def model(config: Config, model_id: str | None) -> None:
    """Show or change the Claude model.

    Without arguments, shows the current model and available options.
    With a model ID, switches to that model.
    """
    specs = get_model_specs(config.main_model)

    if model_id is None:
        console.print(f"\n[bold]Current model:[/bold] [green]{specs['name']}[/green] [dim]({config.main_model})[/dim]")
        console.print(f"  Max output: {specs['max_output_tokens']:,} tokens\n")

        table = Table()
        table.add_column("Model", style="bold")
        table.add_column("ID", style="dim")
        table.add_column("Max Output", justify="right")
        table.add_column("", style="green")
        for mid, info in CLAUDE_MODELS.items():
            table.add_row(
                info["name"],
                mid,
                f"{info['max_output_tokens'] // 1000}K",
                "current" if mid == config.main_model else "",
            )
        console.print(table)
        console.print("\n[dim]Usage: proflasher model <model-id>[/dim]")
        return

    if model_id in CLAUDE_MODELS:
        _switch_model(config, model_id)
        return

    matches = [m for m in CLAUDE_MODELS if model_id.lower() in m.lower()]
    if len(matches) == 1:
        _switch_model(config, matches[0])
    elif len(matches) > 1:
        console.print(f"[yellow]Ambiguous match: {', '.join(matches)}[/yellow]")
    else:
        console.print(f"[red]Unknown model '{model_id}'.[/red]")
        console.print("[dim]Run 'proflasher model' to see available models.[/dim]")
        sys.exit(1)


@cli.command()
@click.argument("language")
@click.argument("card_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
def validate(config: Config, language: str, card_file: str) -> None:
    """Validate row-oriented card JSON against a language template.

    CARD_FILE holds one card object or a list of them. Prints the Anki
    field values each card would be stored with.
    """
    try:
        template = TemplateSource(config.templates_path).get(language)
    except TemplateError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    try:
        with open(card_file, encoding="utf-8") as f:
            data = json.load(f)
        raw_cards = data if isinstance(data, list) else [data]
        cards = [RowOrientedCard.from_dict(raw) for raw in raw_cards]
    except (json.JSONDecodeError, ValueError) as e:
        console.print(f"[red]Cannot read cards from {card_file}: {e}[/red]")
        sys.exit(1)

    problems = check_card_structure(cards, template)
    if problems:
        for problem in problems:
            console.print(f"[red]✗ {problem}[/red]")
        sys.exit(1)

    all_valid = True
    templates = {template.language: template}
    for index, card in enumerate(cards, 1):
        fields = row_to_column(fill_missing_fields(card, template), template.table_definitions)
        result = validate_note(template.note_type, fields, templates)

        table = Table(title=f"Card #{index}", show_header=True)
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        for name, value in fields.items():
            table.add_row(name, value)
        console.print(table)

        if result.is_valid:
            console.print("[green]✓ Valid[/green]")
        else:
            all_valid = False
            console.print(f"[red]✗ {result.error}[/red]")

    if not all_valid:
        sys.exit(1)


def main() -> None:
    """Entry point for the CLI."""
    cli()
