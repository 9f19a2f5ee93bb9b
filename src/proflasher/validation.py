"""Validation of cards against their note template.

Validation never stops at the first problem: every violation is collected
and reported together, so the LLM can fix all of them in one retry.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass

from .models import ColumnOrientedCard, RowOrientedCard, Template, Templates
from .table_card import SEPARATOR


@dataclass
class ValidationResult:
    """Outcome of validating one card."""

    is_valid: bool
    error: str | None = None


def find_template_by_note_type(note_type: str, templates: Templates) -> Template | None:
    """Find the template whose store-facing note type matches."""
    for template in templates.values():
        if template.note_type == note_type:
            return template
    return None


def _has_value_in_some_row(note: ColumnOrientedCard, column: str, row_order_field: str) -> bool:
    """True if at least one named row carries a non-empty value for ``column``."""
    row_names = (note.get(row_order_field) or "").split(SEPARATOR)
    values = (note.get(column) or "").split(SEPARATOR)
    return any(
        row_name.strip() and i < len(values) and values[i].strip()
        for i, row_name in enumerate(row_names)
    )


def validate_note(note_type: str, note: ColumnOrientedCard, templates: Templates) -> ValidationResult:
    """Validate a column-oriented card.

    Checks, in order:
        1. the note type has a template
        2. required fields are filled (table columns need a populated row)
        3. no unrecognized fields
        4. every column of a table has as many entries as its row order

    Returns:
        ValidationResult with all problems joined by newlines
    """
    template = find_template_by_note_type(note_type, templates)
    if template is None:
        return ValidationResult(False, f'Note type "{note_type}" not found.')

    errors: list[str] = []

    # Required fields, split by kind for clearer messages
    missing_table_fields = []
    missing_plain_fields = []
    for required in template.required_fields:
        table_def = template.table_for_column(required)
        if table_def is not None:
            if not _has_value_in_some_row(note, required, table_def.row_order_field):
                missing_table_fields.append(required)
        elif not (note.get(required) or "").strip():
            missing_plain_fields.append(required)

    if missing_plain_fields:
        errors.append(f"Missing required non-table fields: {', '.join(missing_plain_fields)}.")
    if missing_table_fields:
        errors.append(
            f"Missing required table data for columns: {', '.join(missing_table_fields)}. "
            "Make sure your tables contain at least one row with data for these columns."
        )

    valid_fields = set(template.field_descriptions) | template.table_columns | template.row_order_fields
    extra_fields = [name for name in note if name not in valid_fields]
    if extra_fields:
        errors.append(f"Unrecognized fields: {', '.join(extra_fields)}.")

    for table_def in template.table_definitions:
        order_field = table_def.row_order_field
        table_fields = [*table_def.columns, order_field]
        if not any(name in note for name in table_fields):
            continue

        first_column = table_def.columns[0]
        expected = len((note.get(first_column) or "").split(SEPARATOR))
        for column in table_def.columns[1:]:
            actual = len((note.get(column) or "").split(SEPARATOR))
            if actual != expected:
                errors.append(
                    f"Table data inconsistency in '{table_def.name}': column {column} has {actual} rows "
                    f"but {first_column} has {expected} rows. All columns in a table must have the same number of rows."
                )

        if note.get(order_field):
            order_length = len(note[order_field].split(SEPARATOR))
            if order_length != expected:
                errors.append(
                    f"Table structure error in '{table_def.name}': {order_field} has {order_length} entries "
                    f"but column {first_column} has {expected} rows."
                )

    if errors:
        return ValidationResult(False, "\n".join(errors))
    return ValidationResult(True)


def check_card_structure(cards: list[RowOrientedCard], template: Template) -> list[str]:
    """Structural pre-check for proposed row-oriented cards.

    Every table holding a required column must be present with at least one
    row, and every required non-table field must be filled. Tables and
    columns the template does not declare are reported, since the codec
    would drop them.

    Returns:
        One message per problem, prefixed with the 1-based card number
    """
    columns = template.table_columns
    required_tables = [
        table.name
        for table in template.table_definitions
        if any(col in template.required_fields for col in table.columns)
    ]

    problems = []
    for index, card in enumerate(cards, 1):
        for table_name in required_tables:
            if not card.tables.get(table_name):
                problems.append(f"Card #{index}: Missing required table '{table_name}'")
        for table_name, rows in card.tables.items():
            table_def = template.get_table(table_name)
            if table_def is None:
                problems.append(f"Card #{index}: Unknown table '{table_name}'")
                continue
            unknown = []
            for values in rows.values():
                unknown.extend(c for c in values if c not in table_def.columns and c not in unknown)
            for column in unknown:
                problems.append(f"Card #{index}: Unknown column '{column}' in table '{table_name}'")
        for required in template.required_fields:
            if required not in columns and not (card.fields.get(required) or "").strip():
                problems.append(f"Card #{index}: Missing required field '{required}'")
    return problems


def fill_missing_fields(card: RowOrientedCard, template: Template) -> RowOrientedCard:
    """Return a copy of ``card`` with every declared non-table field present."""
    fields = dict(card.fields)
    for name in template.non_table_fields:
        fields.setdefault(name, "")
    return RowOrientedCard(tables=copy.deepcopy(card.tables), fields=fields)
