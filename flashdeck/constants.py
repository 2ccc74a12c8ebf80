"""
Static limits shared by the models, the deck service and the CLI.

No runtime configuration lives here - pure constants only.
"""

# Write-path validation limits for decks and cards.
DECK_TITLE_MAX_LENGTH: int = 255
DECK_DESCRIPTION_MAX_LENGTH: int = 2000
CARD_TEXT_MAX_LENGTH: int = 2000

# Number of decks an owner may keep on a plan carrying the deck limit.
FREE_PLAN_DECK_LIMIT: int = 3

# How many cards a single AI generation request asks for.
AI_GENERATED_CARD_COUNT: int = 20

# Generic message for both "deck not found" and "deck not yours".
OWNERSHIP_ERROR_MESSAGE: str = (
    "Deck not found or you do not have access to it."
)

# Card fields the bulk reconciler is allowed to edit.
EDITABLE_CARD_FIELDS = frozenset({"front", "back"})
