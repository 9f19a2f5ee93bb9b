"""Loading per-language note templates from YAML.

Layout of the templates directory::

    <templates_dir>/
        jp/
            note.yaml     # noteType, deckName, fields, tables...
            prompt.md     # optional language-specific system prompt
        de/
            note.yaml

Templates are user-editable while the app is running, so
``TemplateSource`` reloads from disk on every call unless caching is
switched on explicitly.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from .models import TableDefinition, Template, Templates

logger = logging.getLogger(__name__)

NOTE_FILE = "note.yaml"
PROMPT_FILE = "prompt.md"


class TemplateError(Exception):
    """A template is missing or malformed."""
    pass


def _string_map(value: Any, what: str) -> dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise TemplateError(f"{what} must be a mapping")
    return {str(k): "" if v is None else str(v) for k, v in value.items()}


def _parse_table(raw: Any) -> TableDefinition:
    if not isinstance(raw, dict):
        raise TemplateError("each table definition must be a mapping")
    name = raw.get("name")
    if not name:
        raise TemplateError("table definition is missing 'name'")
    columns = raw.get("columns") or []
    if not isinstance(columns, list) or not columns:
        raise TemplateError(f"table '{name}' must declare at least one column")
    return TableDefinition(
        name=str(name),
        columns=[str(c) for c in columns],
        description=str(raw.get("description") or ""),
        row_descriptions=_string_map(raw.get("rowDescriptions"), f"rowDescriptions of table '{name}'"),
        column_descriptions=_string_map(raw.get("columnDescriptions"), f"columnDescriptions of table '{name}'"),
    )


def parse_template(data: Any, language: str) -> Template:
    """Build a Template from the decoded contents of a ``note.yaml``.

    Row-order fields listed under ``fieldDescriptions`` are dropped; they
    are generated by the codec and never filled in by hand.

    Raises:
        TemplateError: on missing keys, empty tables or duplicate table names
    """
    if not isinstance(data, dict):
        raise TemplateError(f"{language}/{NOTE_FILE} must contain a mapping")
    if not data.get("noteType"):
        raise TemplateError(f"{language}/{NOTE_FILE} is missing 'noteType'")

    tables = [_parse_table(t) for t in data.get("tableDefinitions") or []]
    seen: set[str] = set()
    for table in tables:
        if table.name in seen:
            raise TemplateError(f"{language}/{NOTE_FILE} defines table '{table.name}' twice")
        seen.add(table.name)

    field_descriptions = _string_map(data.get("fieldDescriptions"), "fieldDescriptions")
    for table in tables:
        field_descriptions.pop(table.row_order_field, None)

    return Template(
        note_type=str(data["noteType"]),
        language=str(data.get("language") or language),
        deck_name=str(data.get("deckName") or ""),
        field_descriptions=field_descriptions,
        required_fields=[str(f) for f in data.get("requiredFields") or []],
        card_descriptions=_string_map(data.get("cardDescriptions"), "cardDescriptions"),
        table_definitions=tables,
    )


def load_templates(templates_dir: Path) -> Templates:
    """Load every ``<language>/note.yaml`` under ``templates_dir``.

    A language whose template fails to load is logged and skipped.
    """
    templates: Templates = {}
    templates_dir = Path(templates_dir)
    if not templates_dir.is_dir():
        logger.warning("Templates directory not found", extra={"path": str(templates_dir)})
        return templates

    for entry in sorted(templates_dir.iterdir()):
        if not entry.is_dir() or entry.name.startswith("."):
            continue
        note_path = entry / NOTE_FILE
        if not note_path.exists():
            continue
        try:
            with open(note_path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
            templates[entry.name] = parse_template(data, entry.name)
        except (yaml.YAMLError, TemplateError, OSError) as e:
            logger.error("Failed to load template", extra={"language": entry.name, "error": str(e)})

    return templates


class TemplateSource:
    """Supplies templates to the conversation engine.

    Args:
        templates_dir: Directory holding one sub-directory per language
        cache: Keep the first load for the lifetime of this object. Off by
            default; call ``invalidate()`` after editing templates if on.
    """

    def __init__(self, templates_dir: Path, cache: bool = False):
        self.templates_dir = Path(templates_dir)
        self.cache = cache
        self._cached: Templates | None = None

    def load(self) -> Templates:
        if not self.cache:
            return load_templates(self.templates_dir)
        if self._cached is None:
            self._cached = load_templates(self.templates_dir)
        return self._cached

    def invalidate(self) -> None:
        self._cached = None

    def get(self, language: str) -> Template:
        """Template for one language.

        Raises:
            TemplateError: if no template exists for ``language``
        """
        template = self.load().get(language)
        if template is None:
            raise TemplateError(f"Template for language '{language}' not found")
        return template

    def language_prompt(self, language: str) -> str | None:
        """Contents of ``<language>/prompt.md``, or None if there is none."""
        path = self.templates_dir / language / PROMPT_FILE
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
