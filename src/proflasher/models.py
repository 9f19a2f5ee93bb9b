"""Data models for proflasher templates and cards.

Row and table maps are plain dicts: their insertion order is the order
rows were written in, which is what the codec falls back to for row names
a table definition does not recognize.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# {"EN": "word", "JP": "言葉"}
RowValue = dict[str, str]

# Flat Anki field map; table columns hold semicolon-joined lists
ColumnOrientedCard = dict[str, str]


def row_order_field_name(table_name: str) -> str:
    """Name of the synthetic field recording a table's row order.

    ``main`` -> ``RowOrder``, ``examples`` -> ``ExamplesRowOrder``.
    """
    if table_name == "main":
        return "RowOrder"
    return f"{table_name[:1].upper()}{table_name[1:]}RowOrder"


@dataclass
class TableDefinition:
    """One named table within a note template."""

    name: str
    columns: list[str]
    description: str = ""
    row_descriptions: dict[str, str] = field(default_factory=dict)
    column_descriptions: dict[str, str] = field(default_factory=dict)

    @property
    def row_order_field(self) -> str:
        return row_order_field_name(self.name)


@dataclass
class Template:
    """A per-language note template as loaded from ``note.yaml``."""

    note_type: str
    language: str
    deck_name: str
    field_descriptions: dict[str, str] = field(default_factory=dict)
    required_fields: list[str] = field(default_factory=list)
    card_descriptions: dict[str, str] = field(default_factory=dict)
    table_definitions: list[TableDefinition] = field(default_factory=list)

    @property
    def table_columns(self) -> set[str]:
        """Every column of every table."""
        return {col for table in self.table_definitions for col in table.columns}

    @property
    def row_order_fields(self) -> set[str]:
        return {table.row_order_field for table in self.table_definitions}

    @property
    def non_table_fields(self) -> list[str]:
        """Declared fields that are not table columns, in declaration order."""
        columns = self.table_columns
        return [f for f in self.field_descriptions if f not in columns]

    def get_table(self, name: str) -> TableDefinition | None:
        for table in self.table_definitions:
            if table.name == name:
                return table
        return None

    def table_for_column(self, column: str) -> TableDefinition | None:
        for table in self.table_definitions:
            if column in table.columns:
                return table
        return None


# Templates keyed by language code
Templates = dict[str, Template]


@dataclass
class RowOrientedCard:
    """Editing-friendly card: values grouped by table and row."""

    tables: dict[str, dict[str, RowValue]] = field(default_factory=dict)
    fields: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "tables": {
                table: {row: dict(values) for row, values in rows.items()}
                for table, rows in self.tables.items()
            },
            "fields": dict(self.fields),
        }

    @classmethod
    def from_dict(cls, data: Any) -> RowOrientedCard:
        """Build a card from decoded JSON, as sent by the LLM or a caller.

        Scalar values are coerced to strings. Raises ValueError when the
        structure is not a mapping of mappings.
        """
        if not isinstance(data, dict):
            raise ValueError(f"card must be an object, got {type(data).__name__}")

        raw_tables = data.get("tables") or {}
        raw_fields = data.get("fields") or {}
        if not isinstance(raw_tables, dict):
            raise ValueError("'tables' must be an object")
        if not isinstance(raw_fields, dict):
            raise ValueError("'fields' must be an object")

        tables: dict[str, dict[str, RowValue]] = {}
        for table_name, rows in raw_tables.items():
            if not isinstance(rows, dict):
                raise ValueError(f"table '{table_name}' must be an object of rows")
            tables[table_name] = {}
            for row_name, values in rows.items():
                if not isinstance(values, dict):
                    raise ValueError(
                        f"row '{row_name}' in table '{table_name}' must be an object of column values"
                    )
                tables[table_name][row_name] = {
                    col: _as_str(value) for col, value in values.items()
                }

        return cls(
            tables=tables,
            fields={name: _as_str(value) for name, value in raw_fields.items()},
        )


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        raise ValueError(f"expected a string value, got {type(value).__name__}")
    return str(value)


@dataclass
class NoteInfo:
    """A note as returned by AnkiConnect's notesInfo."""

    note_id: int
    model_name: str
    fields: dict[str, str] = field(default_factory=dict)
    tags: list[str] = field(default_factory=list)

    @property
    def key(self) -> str:
        return self.fields.get("Key", "")

    @classmethod
    def from_anki(cls, raw: dict) -> NoteInfo:
        return cls(
            note_id=raw.get("noteId", 0),
            model_name=raw.get("modelName", ""),
            fields={
                name: (value.get("value", "") if isinstance(value, dict) else str(value))
                for name, value in raw.get("fields", {}).items()
            },
            tags=raw.get("tags", []),
        )
