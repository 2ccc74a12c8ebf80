"""
DuckDB schema for flashdeck.

Cards carry no foreign key to decks: the cascade on deck deletion is
performed explicitly by `DeckDatabase.delete_deck` inside one transaction.
"""

DB_SCHEMA_SQL = """
CREATE SEQUENCE IF NOT EXISTS deck_id_seq START 1;
CREATE SEQUENCE IF NOT EXISTS card_id_seq START 1;

CREATE TABLE IF NOT EXISTS decks (
    id INTEGER PRIMARY KEY DEFAULT nextval('deck_id_seq'),
    owner_id VARCHAR NOT NULL,
    title VARCHAR NOT NULL,
    description VARCHAR,
    created_at TIMESTAMPTZ NOT NULL DEFAULT current_timestamp,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT current_timestamp
);

CREATE TABLE IF NOT EXISTS cards (
    id INTEGER PRIMARY KEY DEFAULT nextval('card_id_seq'),
    deck_id INTEGER NOT NULL,
    front VARCHAR NOT NULL,
    back VARCHAR NOT NULL,
    sort_order INTEGER,
    created_at TIMESTAMPTZ NOT NULL DEFAULT current_timestamp,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT current_timestamp
);

CREATE INDEX IF NOT EXISTS idx_decks_owner_id ON decks (owner_id);
CREATE INDEX IF NOT EXISTS idx_cards_deck_id ON cards (deck_id);
"""
