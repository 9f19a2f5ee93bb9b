"""Shared fixtures: a Japanese template with one table and a plain Key field."""

import pytest

from proflasher.models import TableDefinition, Template

JP_NOTE_YAML = """\
noteType: "JP<->EN"
deckName: "Lang::JP"
fieldDescriptions:
  Key: Unique identifier
  EN: English
  JP: Japanese
  Mnemonic: Memory aid
  RowOrder: generated
requiredFields: [Key, EN, JP]
cardDescriptions:
  Recognition: JP to EN
tableDefinitions:
  - name: main
    description: Word and examples
    columns: [EN, JP]
    rowDescriptions:
      Word: The word
      Sentence1: First example
"""


@pytest.fixture
def jp_template():
    return Template(
        note_type="JP<->EN",
        language="jp",
        deck_name="Lang::JP",
        field_descriptions={
            "Key": "Unique identifier",
            "EN": "English",
            "JP": "Japanese",
            "Mnemonic": "Memory aid",
        },
        required_fields=["Key", "EN", "JP"],
        card_descriptions={"Recognition": "JP to EN"},
        table_definitions=[
            TableDefinition(
                name="main",
                columns=["EN", "JP"],
                description="Word and examples",
                row_descriptions={"Word": "The word", "Sentence1": "First example"},
            )
        ],
    )


@pytest.fixture
def templates_dir(tmp_path):
    """A templates directory holding jp/note.yaml."""
    (tmp_path / "jp").mkdir()
    (tmp_path / "jp" / "note.yaml").write_text(JP_NOTE_YAML, encoding="utf-8")
    return tmp_path


@pytest.fixture
def valid_card_input():
    """proposeCards arguments for one valid card."""
    return {
        "fields": {"Key": "こんにちは"},
        "tables": {
            "main": {
                "Sentence1": {"EN": "hi", "JP": "やあ"},
                "Word": {"EN": "hello", "JP": "こんにちは"},
            }
        },
    }
