"""Row-oriented card format and conversion to/from Anki's flat fields.

Anki stores a card table as one field per column, each a semicolon-joined
list, plus a row-order field naming the rows in the same order::

    EN       = "hello;hi"
    JP       = "こんにちは;やあ"
    RowOrder = "Word;Sentence1"

The row-oriented form groups the same data as ``tables[table][row][column]``.
"""

from __future__ import annotations

import copy

from .models import (
    ColumnOrientedCard,
    RowOrientedCard,
    RowValue,
    TableDefinition,
)

SEPARATOR = ";"


def sort_row_names(row_names: list[str], row_descriptions: dict[str, str]) -> list[str]:
    """Order rows canonically.

    Rows named in ``row_descriptions`` come first, in that mapping's order;
    unrecognized rows follow in their original order.
    """
    canonical = list(row_descriptions)
    position = {name: i for i, name in enumerate(canonical)}
    recognized = sorted((r for r in row_names if r in position), key=position.__getitem__)
    unrecognized = [r for r in row_names if r not in position]
    return recognized + unrecognized


def row_to_column(card: RowOrientedCard, table_definitions: list[TableDefinition]) -> ColumnOrientedCard:
    """Flatten a row-oriented card into Anki fields."""
    result: ColumnOrientedCard = dict(card.fields)

    for table_def in table_definitions:
        table_data = card.tables.get(table_def.name)
        if table_data is None:
            continue

        row_names = sort_row_names(list(table_data), table_def.row_descriptions)
        for column in table_def.columns:
            result[column] = SEPARATOR.join(
                table_data[row].get(column) or "" for row in row_names
            )
        result[table_def.row_order_field] = SEPARATOR.join(row_names)

    return result


def _split_row_names(value: str) -> list[str]:
    names = value.split(SEPARATOR)
    while names and not names[-1].strip():
        names.pop()
    return names


def column_to_row(card: ColumnOrientedCard, table_definitions: list[TableDefinition]) -> RowOrientedCard:
    """Rebuild the row-oriented form of an Anki note's fields."""
    table_fields: set[str] = set()
    for table_def in table_definitions:
        table_fields.update(table_def.columns)
        table_fields.add(table_def.row_order_field)

    result = RowOrientedCard(
        fields={name: value for name, value in card.items() if name not in table_fields}
    )

    for table_def in table_definitions:
        row_order = card.get(table_def.row_order_field)
        if not row_order:
            continue

        row_names = _split_row_names(row_order)
        if not row_names:
            continue

        table_data: dict[str, RowValue] = {name: {} for name in row_names}
        for column in table_def.columns:
            # No trimming here: an empty element is a legitimate empty cell
            values = (card.get(column) or "").split(SEPARATOR)
            for i, row_name in enumerate(row_names):
                table_data[row_name][column] = values[i] if i < len(values) else ""

        result.tables[table_def.name] = table_data

    return result


def get_row_names(card: RowOrientedCard, table_definitions: list[TableDefinition]) -> dict[str, list[str]]:
    """Row names per table, canonically sorted where a definition exists."""
    definitions = {t.name: t for t in table_definitions}
    result: dict[str, list[str]] = {}
    for table_name, table_data in card.tables.items():
        table_def = definitions.get(table_name)
        if table_def is not None:
            result[table_name] = sort_row_names(list(table_data), table_def.row_descriptions)
        else:
            result[table_name] = list(table_data)
    return result


# ---------------------------------------------------------------------------
# Row editing helpers. Each returns a new card and leaves its input untouched.
# ---------------------------------------------------------------------------

def add_row(card: RowOrientedCard, table_name: str, row_name: str, row_data: RowValue) -> RowOrientedCard:
    """Add (or replace) a row in a table, creating the table if needed."""
    updated = copy.deepcopy(card)
    updated.tables.setdefault(table_name, {})[row_name] = dict(row_data)
    return updated


def remove_row(card: RowOrientedCard, table_name: str, row_name: str) -> RowOrientedCard:
    """Remove a row; a table left with no rows is removed too."""
    updated = copy.deepcopy(card)
    table = updated.tables.get(table_name)
    if table is not None:
        table.pop(row_name, None)
        if not table:
            del updated.tables[table_name]
    return updated


def update_cell(
    card: RowOrientedCard,
    table_name: str,
    row_name: str,
    column: str,
    value: str,
) -> RowOrientedCard:
    """Set a single cell, creating the table and row if needed."""
    updated = copy.deepcopy(card)
    updated.tables.setdefault(table_name, {}).setdefault(row_name, {})[column] = value
    return updated


def rename_row(card: RowOrientedCard, table_name: str, old_name: str, new_name: str) -> RowOrientedCard:
    """Rename a row, keeping its position among the table's rows.

    Raises:
        KeyError: if the row does not exist
        ValueError: if ``new_name`` is already taken by another row
    """
    table = card.tables.get(table_name, {})
    if old_name not in table:
        raise KeyError(f"Row '{old_name}' not found in table '{table_name}'")
    if new_name != old_name and new_name in table:
        raise ValueError(f"Row '{new_name}' already exists in table '{table_name}'")

    updated = copy.deepcopy(card)
    updated.tables[table_name] = {
        (new_name if name == old_name else name): values
        for name, values in updated.tables[table_name].items()
    }
    return updated


def normalize_rows(card: RowOrientedCard, table_definitions: list[TableDefinition]) -> RowOrientedCard:
    """Give every row of a defined table exactly that table's columns.

    Missing cells become ``""``; cells for undeclared columns are dropped.
    Tables without a definition are left as they are.
    """
    updated = copy.deepcopy(card)
    for table_def in table_definitions:
        table = updated.tables.get(table_def.name)
        if table is None:
            continue
        for row_name, values in table.items():
            table[row_name] = {col: values.get(col) or "" for col in table_def.columns}
    return updated

