"""Tests for models module."""

import pytest

from proflasher.models import NoteInfo, RowOrientedCard, row_order_field_name


class TestRowOrderFieldName:
    """Tests for row-order field naming."""

    def test_main_table(self):
        assert row_order_field_name("main") == "RowOrder"

    def test_named_table(self):
        assert row_order_field_name("examples") == "ExamplesRowOrder"


class TestTemplate:
    """Tests for Template helpers."""

    def test_columns_and_fields(self, jp_template):
        assert jp_template.table_columns == {"EN", "JP"}
        assert jp_template.row_order_fields == {"RowOrder"}
        assert jp_template.non_table_fields == ["Key", "Mnemonic"]

    def test_table_lookup(self, jp_template):
        assert jp_template.get_table("main").columns == ["EN", "JP"]
        assert jp_template.get_table("other") is None
        assert jp_template.table_for_column("JP").name == "main"
        assert jp_template.table_for_column("Key") is None


class TestRowOrientedCard:
    """Tests for decoding cards sent by the LLM."""

    def test_from_dict_coerces_scalars(self):
        card = RowOrientedCard.from_dict({
            "fields": {"Key": 5, "Mnemonic": None},
            "tables": {"main": {"Word": {"EN": "a", "JP": 1}}},
        })
        assert card.fields == {"Key": "5", "Mnemonic": ""}
        assert card.tables["main"]["Word"] == {"EN": "a", "JP": "1"}

    def test_fields_optional(self):
        assert RowOrientedCard.from_dict({"tables": {}}).fields == {}

    def test_to_dict(self):
        card = RowOrientedCard(tables={"main": {"Word": {"EN": "a"}}}, fields={"Key": "k"})
        assert RowOrientedCard.from_dict(card.to_dict()) == card

    @pytest.mark.parametrize("data", [
        "card",
        {"tables": ["main"]},
        {"fields": "x"},
        {"tables": {"main": {"Word": "a"}}},
        {"tables": {"main": {"Word": {"EN": ["a"]}}}},
    ])
    def test_from_dict_rejects_bad_shapes(self, data):
        with pytest.raises(ValueError):
            RowOrientedCard.from_dict(data)


class TestNoteInfo:
    """Tests for NoteInfo.from_anki."""

    def test_unwraps_field_values(self):
        note = NoteInfo.from_anki({
            "noteId": 1,
            "modelName": "JP<->EN",
            "fields": {"Key": {"value": "k", "order": 0}},
            "tags": [],
        })
        assert note.fields == {"Key": "k"}
        assert note.key == "k"

    def test_missing_key(self):
        assert NoteInfo.from_anki({"noteId": 1}).key == ""
