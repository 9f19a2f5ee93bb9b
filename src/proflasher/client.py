"""AnkiConnect client for interacting with Anki desktop.

Docs: https://github.com/FooSoft/anki-connect
"""

import json
import logging
import threading
import urllib.error
import urllib.request
from typing import Any

from .config import DEFAULT_ANKI_CONNECT_URL
from .models import NoteInfo

logger = logging.getLogger(__name__)

ANKI_CONNECT_VERSION = 6
REQUEST_TIMEOUT = 10

# AnkiConnect has a single local endpoint; one request at a time
_request_lock = threading.Lock()


class AnkiConnectError(Exception):
    """Base exception for AnkiConnect errors."""
    pass


class ConnectionError(AnkiConnectError):
    """Could not connect to AnkiConnect."""
    pass


class DuplicateNoteError(AnkiConnectError):
    """addNote refused a note because an identical one exists."""
    pass


def quote_search(value: str) -> str:
    """Escape a value for use inside a double-quoted Anki search term."""
    return value.replace("\\", "\\\\").replace('"', '\\"')


def note_key_query(note_type: str, key: str) -> str:
    """Search query matching notes of one type by their Key field."""
    return f'note:"{quote_search(note_type)}" "Key:{quote_search(key)}"'


def _request(url: str, action: str, **params) -> Any:
    """Make a request to AnkiConnect."""
    payload = json.dumps({
        "action": action,
        "version": ANKI_CONNECT_VERSION,
        "params": params
    }).encode("utf-8")

    logger.debug("Calling AnkiConnect", extra={"action": action})
    try:
        with _request_lock:
            req = urllib.request.Request(url, payload)
            req.add_header("Content-Type", "application/json")
            response = urllib.request.urlopen(req, timeout=REQUEST_TIMEOUT)
            raw = response.read().decode("utf-8")
    except urllib.error.URLError as e:
        raise ConnectionError(
            "Cannot connect to Anki. Make sure Anki is running with AnkiConnect installed."
        ) from e
    except TimeoutError as e:
        raise ConnectionError(
            f"Anki is not responding (timed out after {REQUEST_TIMEOUT}s). "
            "Check if Anki is frozen or busy syncing."
        ) from e

    try:
        result = json.loads(raw)
    except json.JSONDecodeError as e:
        raise AnkiConnectError(
            f"Invalid response from AnkiConnect for action '{action}': {raw[:200]}"
        ) from e

    if not isinstance(result, dict) or "error" not in result or "result" not in result:
        raise AnkiConnectError(f"AnkiConnect malformed response for action '{action}': {raw[:200]}")

    error = result["error"]
    if error:
        if "duplicate" in str(error).lower():
            raise DuplicateNoteError(error)
        raise AnkiConnectError(error)

    return result["result"]


class AnkiClient:
    """Client for interacting with Anki via AnkiConnect."""

    def __init__(self, url: str = DEFAULT_ANKI_CONNECT_URL):
        self.url = url

    def _call(self, action: str, **params) -> Any:
        return _request(self.url, action, **params)

    def ping(self) -> bool:
        """Check if AnkiConnect is available."""
        try:
            result = self._call("version")
            return result is not None
        except AnkiConnectError:
            return False

    def find_notes(self, query: str) -> list[int]:
        """
        Search for notes using Anki's search syntax.

        Args:
            query: Search query (e.g., 'note:"JP<->EN" tag:marked')
        """
        return self._call("findNotes", query=query) or []

    def notes_info(self, note_ids: list[int]) -> list[NoteInfo]:
        """Fetch full note data (fields, tags, model) for note ids."""
        if not note_ids:
            return []
        notes = self._call("notesInfo", notes=note_ids) or []
        # notesInfo returns an empty object for ids that no longer exist
        return [NoteInfo.from_anki(n) for n in notes if n and n.get("noteId")]

    def add_note(
        self,
        deck_name: str,
        model_name: str,
        fields: dict[str, str],
        tags: list[str] | None = None,
        allow_duplicate: bool = False,
    ) -> int:
        """
        Add a new note.

        Returns:
            The note ID of the created note

        Raises:
            DuplicateNoteError: if Anki considers the note a duplicate
        """
        note = {
            "deckName": deck_name,
            "modelName": model_name,
            "fields": fields,
            "tags": tags or [],
            "options": {
                "allowDuplicate": allow_duplicate,
            },
        }
        return self._call("addNote", note=note)

    def update_note_fields(self, note_id: int, fields: dict[str, str]) -> None:
        """Overwrite some or all fields of an existing note."""
        self._call("updateNoteFields", note={"id": note_id, "fields": fields})
