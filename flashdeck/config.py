"""
Centralized configuration for flashdeck, plus the identity and entitlement
lookups the application treats as external collaborators.
"""

from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_default_db_path() -> Path:
    """Returns the default path for the database file."""
    return Path.home() / ".flashdeck" / "flashdeck.db"


class Plan(str, Enum):
    Free = "free"
    Pro = "pro"


class Entitlements(BaseModel):
    """
    Boolean capability grants for the acting identity.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    three_deck_limit: bool = True
    unlimited_decks: bool = False
    ai_flashcard_generation: bool = False

    @property
    def is_deck_limited(self) -> bool:
        return self.three_deck_limit and not self.unlimited_decks

    @classmethod
    def for_plan(cls, plan: Plan) -> "Entitlements":
        if plan is Plan.Pro:
            return cls(
                three_deck_limit=False,
                unlimited_decks=True,
                ai_flashcard_generation=True,
            )
        return cls()


class Settings(BaseSettings):
    """
    Application settings, loaded from FLASHDECK_* environment variables or a .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="FLASHDECK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Overridden by FLASHDECK_DB_PATH or the --db option.
    db_path: Path = get_default_db_path()

    # Acting identity. Unset means unauthenticated.
    user_id: Optional[str] = None

    plan: Plan = Plan.Free

    log_level: str = "WARNING"

    # When True, disables safety checks that prevent data loss during tests.
    testing_mode: bool = False


def get_settings() -> Settings:
    return Settings()


def resolve_identity(
    settings: Settings, override: Optional[str] = None
) -> Optional[str]:
    """Return the acting identity, or None when unauthenticated."""
    identity = override if override is not None else settings.user_id
    if identity is None or identity.strip() == "":
        return None
    return identity.strip()


def resolve_entitlements(settings: Settings) -> Entitlements:
    return Entitlements.for_plan(settings.plan)
