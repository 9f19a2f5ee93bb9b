"""Tests for client module - AnkiConnect requests over HTTP."""

import json
import urllib.error
from unittest.mock import MagicMock, patch

import pytest

from proflasher.client import (
    AnkiClient,
    AnkiConnectError,
    ConnectionError,
    DuplicateNoteError,
    _request,
    note_key_query,
    quote_search,
)


def _response(result=None, error=None):
    response = MagicMock()
    response.read.return_value = json.dumps({"result": result, "error": error}).encode("utf-8")
    return response


def _sent_payload(urlopen):
    request = urlopen.call_args.args[0]
    return json.loads(request.data.decode("utf-8"))


class TestRequest:
    """Tests for the low-level _request helper."""

    @patch("proflasher.client.urllib.request.urlopen")
    def test_payload_and_result(self, urlopen):
        urlopen.return_value = _response([1, 2])

        result = _request("http://localhost:8765", "findNotes", query="deck:x")

        assert result == [1, 2]
        assert _sent_payload(urlopen) == {"action": "findNotes", "version": 6, "params": {"query": "deck:x"}}
        assert urlopen.call_args.kwargs["timeout"] == 10

    @patch("proflasher.client.urllib.request.urlopen")
    def test_error_field_raises(self, urlopen):
        urlopen.return_value = _response(error="model was not found")
        with pytest.raises(AnkiConnectError, match="model was not found"):
            _request("http://localhost:8765", "addNote")

    @patch("proflasher.client.urllib.request.urlopen")
    def test_duplicate_error(self, urlopen):
        urlopen.return_value = _response(error="cannot create note because it is a duplicate")
        with pytest.raises(DuplicateNoteError):
            _request("http://localhost:8765", "addNote")

    @patch("proflasher.client.urllib.request.urlopen")
    def test_connection_refused(self, urlopen):
        urlopen.side_effect = urllib.error.URLError("refused")
        with pytest.raises(ConnectionError, match="Cannot connect to Anki"):
            _request("http://localhost:8765", "version")

    @patch("proflasher.client.urllib.request.urlopen")
    def test_malformed_response(self, urlopen):
        response = MagicMock()
        response.read.return_value = b'{"result": 1}'
        urlopen.return_value = response
        with pytest.raises(AnkiConnectError, match="malformed"):
            _request("http://localhost:8765", "version")

    def test_connection_error_is_anki_error(self):
        assert issubclass(ConnectionError, AnkiConnectError)
        assert issubclass(DuplicateNoteError, AnkiConnectError)


class TestAnkiClient:
    """Tests for AnkiClient methods."""

    @patch("proflasher.client.urllib.request.urlopen")
    def test_uses_configured_url(self, urlopen):
        urlopen.return_value = _response(6)
        AnkiClient("http://anki:9999").ping()
        assert urlopen.call_args.args[0].full_url == "http://anki:9999"

    @patch("proflasher.client.urllib.request.urlopen")
    def test_ping_false_when_unreachable(self, urlopen):
        urlopen.side_effect = urllib.error.URLError("refused")
        assert AnkiClient().ping() is False

    @patch("proflasher.client.urllib.request.urlopen")
    def test_notes_info(self, urlopen):
        urlopen.return_value = _response([
            {
                "noteId": 7,
                "modelName": "JP<->EN",
                "fields": {"Key": {"value": "猫", "order": 0}, "EN": {"value": "cat", "order": 1}},
                "tags": ["animal"],
            },
            {},
        ])

        notes = AnkiClient().notes_info([7, 8])

        assert len(notes) == 1
        assert notes[0].note_id == 7
        assert notes[0].key == "猫"
        assert notes[0].fields == {"Key": "猫", "EN": "cat"}
        assert notes[0].tags == ["animal"]

    @patch("proflasher.client.urllib.request.urlopen")
    def test_notes_info_empty_skips_request(self, urlopen):
        assert AnkiClient().notes_info([]) == []
        urlopen.assert_not_called()

    @patch("proflasher.client.urllib.request.urlopen")
    def test_add_note(self, urlopen):
        urlopen.return_value = _response(123)

        note_id = AnkiClient().add_note("Lang::JP", "JP<->EN", {"Key": "猫"})

        assert note_id == 123
        assert _sent_payload(urlopen)["params"]["note"] == {
            "deckName": "Lang::JP",
            "modelName": "JP<->EN",
            "fields": {"Key": "猫"},
            "tags": [],
            "options": {"allowDuplicate": False},
        }

    @patch("proflasher.client.urllib.request.urlopen")
    def test_update_note_fields(self, urlopen):
        urlopen.return_value = _response(None)

        AnkiClient().update_note_fields(5, {"EN": "cat"})

        payload = _sent_payload(urlopen)
        assert payload["action"] == "updateNoteFields"
        assert payload["params"] == {"note": {"id": 5, "fields": {"EN": "cat"}}}


class TestSearchQuoting:
    """Tests for building quoted Anki search terms."""

    def test_plain_key(self):
        assert note_key_query("JP<->EN", "猫") == 'note:"JP<->EN" "Key:猫"'

    def test_quotes_and_backslashes_escaped(self):
        assert quote_search('a\\b"c') == 'a\\\\b\\"c'
        assert note_key_query("JP<->EN", 'say "hi"') == 'note:"JP<->EN" "Key:say \\"hi\\""'
