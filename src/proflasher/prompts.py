"""System prompt assembly from a note template."""

from __future__ import annotations

import json

from .models import TableDefinition, Template


def _table_title(table: TableDefinition) -> str:
    if table.name == "main":
        return "Main Table"
    return f"{table.name[:1].upper()}{table.name[1:]} Table"


def _describe_table(table: TableDefinition, row_heading: str) -> list[str]:
    lines = [f"**Purpose**: {table.description}", "", "**Columns**:"]
    for column in table.columns:
        description = table.column_descriptions.get(column) or f"{column} language content"
        lines.append(f"- **{column}**: {description}")
    lines.append("")
    if table.row_descriptions:
        lines.append(f"**{row_heading}**:")
        for row_name, description in table.row_descriptions.items():
            lines.append(f"- **{row_name}**: {description}")
        lines.append("")
    return lines


def table_structure_section(table_definitions: list[TableDefinition]) -> str:
    lines = ["## Card Structure", ""]
    if len(table_definitions) == 1:
        lines += ["Cards contain a table with the following structure:", ""]
        lines += _describe_table(table_definitions[0], "Row types and their purposes")
    else:
        lines += ["Cards contain multiple tables:", ""]
        for table in table_definitions:
            lines.append(f"### {_table_title(table)}")
            lines += _describe_table(table, "Row types")
    return "\n".join(lines)


def card_format_example(template: Template) -> str:
    """A sample proposeCards card using the template's own names."""
    example: dict = {}
    non_table = template.non_table_fields
    if non_table:
        example["fields"] = {name: "..." for name in non_table}
    # First two declared row types per table are enough to show the shape
    example["tables"] = {
        table.name: {
            row_name: {column: "..." for column in table.columns}
            for row_name in list(table.row_descriptions)[:2]
        }
        for table in template.table_definitions
    }
    return (
        "## Card Format Example\n\n"
        "This example uses JSON for demonstration, but you should use the tool call. "
        "Never send JSON to the user directly.\n"
        f"```json\n{json.dumps(example, indent=2, ensure_ascii=False)}\n```\n"
    )


IMPORTANT_NOTES = """## Important Notes

- Each table row should be self-contained and meaningful
- Don't leave empty rows - only include rows with actual content
- Only use the fields and tables described above
- If creating cards, call `proposeCards` immediately. Don't speak before calling it."""


def build_system_prompt(template: Template, language_prompt: str | None = None) -> str:
    """Build the system prompt for one language.

    Args:
        template: The language's note template
        language_prompt: Contents of the language's ``prompt.md``, if any
    """
    intro = language_prompt or (
        "You are a language learning assistant helping create flashcards for "
        f"{template.language.upper()} language learning."
    )
    sections = [
        intro.strip(),
        table_structure_section(template.table_definitions) if template.table_definitions else "",
        card_format_example(template),
        IMPORTANT_NOTES,
    ]

    non_table = [(f, template.field_descriptions[f]) for f in template.non_table_fields]
    if non_table:
        sections.append(
            "## Non-Table Fields\n\n" + "\n".join(f"- **{f}**: {d}" for f, d in non_table)
        )

    sections.append(
        "## Required Fields\n\nThe following fields are required: "
        + ", ".join(template.required_fields)
    )

    if template.card_descriptions:
        sections.append(
            "## Available Card Types\n\n"
            + "\n".join(f"- **{t}**: {d}" for t, d in template.card_descriptions.items())
        )

    sections.append("End of system prompt. User's request will follow.")
    return "\n\n".join(s for s in sections if s)
