"""Writing accepted card proposals to Anki."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .client import AnkiClient, AnkiConnectError, DuplicateNoteError, note_key_query
from .models import RowOrientedCard, Template
from .table_card import normalize_rows, row_to_column
from .validation import validate_note

logger = logging.getLogger(__name__)


@dataclass
class CardAdditionSummary:
    successes: list[dict] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)
    duplicates: list[dict] = field(default_factory=list)
    updates: list[dict] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.successes) + len(self.errors) + len(self.duplicates) + len(self.updates)


def _find_existing(anki: AnkiClient, template: Template, key: str) -> dict | None:
    notes = anki.notes_info(anki.find_notes(note_key_query(template.note_type, key)))
    if not notes:
        return None
    return {"noteId": notes[0].note_id, "key": key, "fields": notes[0].fields}


def add_cards(
    anki: AnkiClient,
    template: Template,
    row_cards: list[RowOrientedCard],
    update_note_ids: dict[str, int] | None = None,
) -> CardAdditionSummary:
    """Add (or update) each card as an Anki note.

    Args:
        anki: AnkiConnect client
        template: Template the cards were proposed against
        row_cards: Cards accepted by the user
        update_note_ids: Key -> note id for cards that should overwrite an existing note

    Returns:
        CardAdditionSummary; one card failing never stops the others
    """
    update_note_ids = update_note_ids or {}
    templates = {template.language: template}
    summary = CardAdditionSummary()

    for card in row_cards:
        fields = row_to_column(normalize_rows(card, template.table_definitions), template.table_definitions)
        key = fields.get("Key", "")

        result = validate_note(template.note_type, fields, templates)
        if not result.is_valid:
            summary.errors.append({"key": key, "error": result.error})
            continue

        try:
            if key and key in update_note_ids:
                note_id = update_note_ids[key]
                anki.update_note_fields(note_id, fields)
                summary.updates.append({"noteId": note_id, "key": key})
                continue

            note_id = anki.add_note(template.deck_name, template.note_type, fields)
            summary.successes.append({"noteId": note_id, "key": key})
        except DuplicateNoteError as e:
            try:
                existing = _find_existing(anki, template, key) if key else None
            except AnkiConnectError:
                existing = None
            if existing is None:
                summary.errors.append({"key": key, "error": str(e)})
            else:
                summary.duplicates.append(existing)
        except AnkiConnectError as e:
            logger.warning("Failed to write note", extra={"key": key, "error": str(e)})
            summary.errors.append({"key": key, "error": str(e)})

    logger.info(
        "Added cards",
        extra={
            "added": len(summary.successes),
            "updated": len(summary.updates),
            "duplicates": len(summary.duplicates),
            "errors": len(summary.errors),
        },
    )
    return summary
