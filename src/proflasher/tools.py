"""Tool definitions for Claude API."""

SEARCH_TOOL = "search"
GET_NOTES_TOOL = "getNotes"
PROPOSE_CARDS_TOOL = "proposeCards"

_STRING_MAP = {
    "type": "object",
    "additionalProperties": {"type": "string"},
}

FLASHCARD_TOOLS = [
    {
        "name": SEARCH_TOOL,
        "description": (
            "Search for existing notes in Anki. Only use this if you need to check existing cards. "
            "The query uses Anki's search syntax (free text plus filters such as 'tag:marked' or "
            "'prop:reps>15'). It is automatically restricted to the current language's note type. "
            "Returns the id and Key of each matching note."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "An Anki search query",
                },
            },
            "required": ["query"],
        },
    },
    {
        "name": GET_NOTES_TOOL,
        "description": (
            "Fetch the full contents of existing notes by their Key field. "
            "Use this to look at a card before proposing an updated or related one."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "keys": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Key field values of the notes to fetch",
                },
            },
            "required": ["keys"],
        },
    },
    {
        "name": PROPOSE_CARDS_TOOL,
        "description": (
            "Propose new flashcards. The user will have the option to confirm or reject the cards, "
            "so don't ask before calling this."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "cards": {
                    "type": "array",
                    "description": "Array of card objects",
                    "items": {
                        "type": "object",
                        "properties": {
                            "fields": {
                                **_STRING_MAP,
                                "description": "Non-table fields like Key, Mnemonic, Related",
                            },
                            "tables": {
                                "type": "object",
                                "description": "Table data organized by table name",
                                "additionalProperties": {
                                    "type": "object",
                                    "description": "Rows in this table, keyed by row name",
                                    "additionalProperties": {
                                        **_STRING_MAP,
                                        "description": "Column values for this row",
                                    },
                                },
                            },
                        },
                        "required": ["tables"],
                    },
                },
                "message": {
                    "type": "string",
                    "description": (
                        "Optional message to show the user alongside the cards. "
                        "Only set this if you intend to keep talking after the proposal."
                    ),
                },
            },
            "required": ["cards"],
        },
    },
]
