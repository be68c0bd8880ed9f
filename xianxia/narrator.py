"""Narrator gateway — one oracle call per turn, always a renderable result.

request_turn() builds the system instruction and the prompt, makes exactly
one LLM call, and validates the reply against OracleResponse. Any failure
(transport, prompt, JSON, schema) is logged and replaced by a localized
fallback carrying a single "continue" choice, so the turn controller always
has something to render. There are no automatic retries and no state is
kept between calls.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import BaseModel, Field

from xianxia.i18n import t
from xianxia.llm import LLM
from xianxia.models import (
    ACTION_TYPES,
    Choice,
    Identity,
    LogEntry,
    OracleResponse,
    PlayerState,
    StatDelta,
    TurnResult,
)
from xianxia.prompts import (
    build_opening_prompt,
    build_system_instruction,
    build_turn_prompt,
)

logger = logging.getLogger(__name__)

HISTORY_WINDOW = 6
MAX_CHOICES = 4
UNKNOWN_ACTION_TYPE = "story"


class TurnContext(BaseModel):
    """Everything the oracle is told about one turn."""

    history: list[LogEntry] = Field(default_factory=list)
    player: PlayerState
    action: str = ""
    language: str
    identity: Identity | None = None  # opening turn only

    @property
    def is_opening(self) -> bool:
        return self.identity is not None


def fallback_result(language: str) -> TurnResult:
    """In-fiction apology plus one retry-style continue choice."""
    return TurnResult(
        narrative=t("fallback.narrative", language),
        delta=StatDelta(),
        choices=[Choice(text=t("fallback.choice", language), action_type="continue")],
        is_game_over=False,
        is_fallback=True,
    )


def _parse_json_output(text: str) -> Any:
    """Parse JSON from LLM output, stripping markdown fences."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        lines = [l for l in lines[1:] if not l.strip().startswith("```")]
        cleaned = "\n".join(lines)
    return json.loads(cleaned)


def _normalize_action_type(raw: str) -> str:
    tag = raw.strip().lower()
    if tag not in ACTION_TYPES:
        logger.debug("Unknown action type %r normalized to %r", raw, UNKNOWN_ACTION_TYPE)
        return UNKNOWN_ACTION_TYPE
    return tag


def to_turn_result(response: OracleResponse) -> TurnResult:
    """Convert a validated oracle response into fresh choices and a delta."""
    choices = [
        Choice(text=c.text, action_type=_normalize_action_type(c.action_type))
        for c in response.choices[:MAX_CHOICES]
    ]
    return TurnResult(
        narrative=response.narrative,
        delta=response.stat_updates or StatDelta(),
        choices=choices,
        is_game_over=bool(response.is_game_over),
    )


class NarratorGateway:
    """Talks to the narrator oracle through an injected LLM callable."""

    def __init__(self, llm: LLM, history_window: int = HISTORY_WINDOW) -> None:
        self._llm = llm
        self._history_window = history_window

    def _build_call(self, context: TurnContext) -> tuple[str, str, str]:
        """Return (stage, prompt, system) for this context."""
        system = build_system_instruction(context.language, context.player.story_phase)
        if context.is_opening:
            return "opening", build_opening_prompt(context), system
        window = context.history[-self._history_window:] if self._history_window else []
        return "turn", build_turn_prompt(context, window), system

    async def request_turn(self, context: TurnContext) -> TurnResult:
        try:
            stage, prompt, system = self._build_call(context)
            output = await self._llm(stage, prompt, system)
            data = _parse_json_output(output)
            response = OracleResponse.model_validate(data)
        except Exception as e:
            logger.warning("Narrator call failed, using fallback: %s", e)
            return fallback_result(context.language)
        return to_turn_result(response)
