"""Database package for flashdeck.

This package provides the DuckDB-backed record store.
Only DeckDatabase is exported as the public API.
"""

from .database import DeckDatabase

__all__ = ["DeckDatabase"]
