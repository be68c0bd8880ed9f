"""Core domain models.

The turn controller, the narrator gateway and the persistence layer all
operate on these types. Pydantic is used for validation and serialisation
at every data boundary: the oracle's JSON response is validated into
OracleResponse, and the whole Session is what gets written to the blob store.
"""

from __future__ import annotations

import time
import uuid
from typing import Literal, get_args

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

Language = Literal["en", "zh"]

StoryPhase = Literal["origin", "convergence", "main"]

# Fixed ordering; a phase may only move to a later index.
PHASE_ORDER: tuple[StoryPhase, ...] = ("origin", "convergence", "main")

ActionType = Literal[
    "explore",
    "meditate",
    "combat",
    "talk",
    "travel",
    "story",
    "continue",
]

ACTION_TYPES: frozenset[str] = frozenset(get_args(ActionType))

LogRole = Literal["user", "narrator", "system"]

UNASSIGNED_SPIRIT_ROOT = "???"

KARMA_MIN = -100
KARMA_MAX = 100


def new_id() -> str:
    return uuid.uuid4().hex


def _strip(value):
    return value.strip() if isinstance(value, str) else value


class Identity(BaseModel):
    """A starting archetype offered at setup. Static catalog data."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: dict[str, str]
    description: dict[str, str]

    def display_name(self, language: str) -> str:
        return self.name.get(language) or self.name["en"]

    def display_description(self, language: str) -> str:
        return self.description.get(language) or self.description["en"]


class PlayerState(BaseModel):
    """The player's stat sheet. Only player.apply_update() produces new ones."""

    name: str
    identity: str
    spirit_root: str = UNASSIGNED_SPIRIT_ROOT
    realm: str
    hp: int = Field(default=100, ge=0)
    max_hp: int = Field(default=100, ge=0)
    qi: int = Field(default=0, ge=0)
    max_qi: int = Field(default=100, ge=0)
    gold: int = Field(default=0, ge=0)
    karma: int = Field(default=0, ge=KARMA_MIN, le=KARMA_MAX)
    inventory: list[str] = Field(default_factory=list)
    location: str
    story_phase: StoryPhase = "origin"

    @model_validator(mode="after")
    def check_maximums(self) -> PlayerState:
        if self.hp > self.max_hp:
            raise ValueError(f"hp {self.hp} exceeds max_hp {self.max_hp}")
        if self.qi > self.max_qi:
            raise ValueError(f"qi {self.qi} exceeds max_qi {self.max_qi}")
        return self


class LogEntry(BaseModel):
    """A single entry in the session's append-only transcript."""

    id: str = Field(default_factory=new_id)
    role: LogRole
    text: str
    timestamp: float = Field(default_factory=time.time)


class Choice(BaseModel):
    """An option offered to the player for the next turn."""

    id: str = Field(default_factory=new_id)
    text: str
    action_type: ActionType


class Session(BaseModel):
    """The complete resumable game: the unit of persistence."""

    player: PlayerState
    turn: int = Field(default=0, ge=0)
    is_game_over: bool = False
    history: list[LogEntry] = Field(default_factory=list)
    current_choices: list[Choice] = Field(default_factory=list)
    language: Language = "zh"
    is_busy: bool = False
    identity_id: str | None = None  # kept so a failed opening turn can be retried


# ---------------------------------------------------------------------------
# Oracle wire format: camelCase on the wire, snake_case in Python
# ---------------------------------------------------------------------------

class StatDelta(BaseModel):
    """Partial update proposed by the oracle. Every field is optional."""

    model_config = ConfigDict(populate_by_name=True)

    hp_change: int | None = Field(default=None, alias="hpChange")
    qi_change: int | None = Field(default=None, alias="qiChange")
    gold_change: int | None = Field(default=None, alias="goldChange")
    karma_change: int | None = Field(default=None, alias="karmaChange")
    new_realm: str | None = Field(default=None, alias="newRealm")
    new_location: str | None = Field(default=None, alias="newLocation")
    set_spirit_root: str | None = Field(default=None, alias="setSpiritRoot")
    set_story_phase: StoryPhase | None = Field(default=None, alias="setStoryPhase")
    inventory_add: list[str] | None = Field(default=None, alias="inventoryAdd")
    inventory_remove: list[str] | None = Field(default=None, alias="inventoryRemove")


class OracleChoice(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str = Field(min_length=1)
    action_type: str = Field(alias="actionType")

    @field_validator("text", mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip(value)


class OracleResponse(BaseModel):
    """The fixed response schema the narrator model must honour."""

    model_config = ConfigDict(populate_by_name=True)

    narrative: str = Field(min_length=1)
    stat_updates: StatDelta | None = Field(default=None, alias="statUpdates")
    choices: list[OracleChoice] = Field(min_length=1)
    is_game_over: bool | None = Field(default=None, alias="isGameOver")

    @field_validator("narrative", mode="before")
    @classmethod
    def strip_narrative(cls, value):
        # Whitespace-only narration counts as empty
        return _strip(value)


class TurnResult(BaseModel):
    """What the narrator gateway hands back to the turn controller."""

    narrative: str
    delta: StatDelta = Field(default_factory=StatDelta)
    choices: list[Choice]
    is_game_over: bool = False
    is_fallback: bool = False
