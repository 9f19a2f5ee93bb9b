"""Converse with an LLM to generate table-structured flashcards for Anki."""

__version__ = "0.1.0"
