"""Turn controller — the game's state machine.

States:

    awaiting_setup ──start_session──▶ in_progress ──(hp 0 / oracle)──▶ game_over
          ▲                              │                                │
          └────────── restart ───────────┘◀──────── reincarnate ──────────┘

Turn flow (submit_choice):
  1. Guard: only in progress, not busy, not game over, and only for a choice
     that is currently offered. Anything else is a silent no-op.
  2. Append the player's entry to the transcript, clear the offered choices,
     mark the session busy, drop any save still waiting on the debounce.
  3. Ask the narrator gateway for the next beat (the only suspension point).
  4. Merge the delta into the player, append the narration, install the new
     choices, advance the turn counter unless the gateway fell back.
  5. Clear busy, derive game over. A live session gets a debounced save; a
     dead one has its save slot wiped.

The controller owns the only authoritative Session. Callers get deep copies.
"""

from __future__ import annotations

import logging
from enum import Enum

from xianxia.catalog import get_identity
from xianxia.i18n import t
from xianxia.models import Choice, Identity, LogEntry, Session
from xianxia.narrator import NarratorGateway, TurnContext
from xianxia.persistence import SessionPersistence
from xianxia.player import apply_update, is_terminal, new_player

logger = logging.getLogger(__name__)


class GameStatus(str, Enum):
    AWAITING_SETUP = "awaiting_setup"
    IN_PROGRESS = "in_progress"
    GAME_OVER = "game_over"


class TurnController:
    def __init__(self, gateway: NarratorGateway, persistence: SessionPersistence) -> None:
        self._gateway = gateway
        self._persistence = persistence
        self._session: Session | None = None

    # ------------------------------------------------------------------
    # Read-only accessors
    # ------------------------------------------------------------------

    @property
    def session(self) -> Session | None:
        if self._session is None:
            return None
        return self._session.model_copy(deep=True)

    @property
    def status(self) -> GameStatus:
        if self._session is None:
            return GameStatus.AWAITING_SETUP
        if self._session.is_game_over:
            return GameStatus.GAME_OVER
        return GameStatus.IN_PROGRESS

    @property
    def is_busy(self) -> bool:
        return self._session is not None and self._session.is_busy

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def start_session(self, name: str, identity: Identity, language: str) -> Session | None:
        """Begin a new game. Ignored unless awaiting setup."""
        if self.status is not GameStatus.AWAITING_SETUP:
            logger.debug("start_session ignored in state %s", self.status.value)
            return self.session

        self._persistence.clear()
        player = new_player(name, identity, language)
        self._session = Session(
            player=player,
            language=language,
            identity_id=identity.id,
            is_busy=True,
        )

        context = TurnContext(player=player, language=language, identity=identity)
        result = await self._gateway.request_turn(context)

        session = self._session
        merged = apply_update(session.player, result.delta)
        self._session = session.model_copy(update={
            "player": merged,
            "history": [LogEntry(role="narrator", text=result.narrative)],
            "current_choices": result.choices,
            "turn": session.turn if result.is_fallback else session.turn + 1,
            "is_game_over": is_terminal(merged, result.is_game_over),
            "is_busy": False,
        })
        logger.info("session started identity=%s fallback=%s", identity.id, result.is_fallback)
        self._persist()
        return self.session

    async def submit_choice(self, choice_id: str) -> Session | None:
        """Resolve one turn. Ignored while busy, after game over, or for stale choices."""
        session = self._session
        if session is None or session.is_busy or session.is_game_over:
            logger.debug("submit_choice ignored in state %s", self.status.value)
            return self.session

        choice = _find_choice(session.current_choices, choice_id)
        if choice is None:
            logger.debug("submit_choice ignored for unknown choice %s", choice_id)
            return self.session

        if choice.action_type == "continue":
            user_text = t("action.continue", session.language)
        else:
            user_text = choice.text

        context = TurnContext(
            history=list(session.history),
            player=session.player,
            action=choice.text,
            language=session.language,
            identity=self._opening_identity(session),
        )
        self._persistence.cancel()
        self._session = session.model_copy(update={
            "history": [*session.history, LogEntry(role="user", text=user_text)],
            "current_choices": [],
            "is_busy": True,
        })

        result = await self._gateway.request_turn(context)

        session = self._session
        merged = apply_update(session.player, result.delta)
        self._session = session.model_copy(update={
            "player": merged,
            "history": [*session.history, LogEntry(role="narrator", text=result.narrative)],
            "current_choices": result.choices,
            "turn": session.turn if result.is_fallback else session.turn + 1,
            "is_game_over": is_terminal(merged, result.is_game_over),
            "is_busy": False,
        })
        if self._session.is_game_over:
            logger.info("game over at turn %d hp=%d", self._session.turn, merged.hp)
        self._persist()
        return self.session

    def reincarnate(self) -> None:
        """Acknowledge a game over: wipe the slot and go back to setup."""
        if self.status is not GameStatus.GAME_OVER:
            logger.debug("reincarnate ignored in state %s", self.status.value)
            return
        self._persistence.clear()
        self._session = None

    def restart(self) -> None:
        """Abandon the running game. Not allowed mid-turn."""
        if self.status is not GameStatus.IN_PROGRESS or self.is_busy:
            logger.debug("restart ignored in state %s", self.status.value)
            return
        self._persistence.clear()
        self._session = None

    def load_persisted_session(self) -> Session | None:
        """Resume the saved game, if a valid one exists. Only before setup."""
        if self.status is not GameStatus.AWAITING_SETUP:
            return self.session
        loaded = self._persistence.load()
        if loaded is None:
            return None
        self._session = loaded
        logger.info("session resumed turn=%d", loaded.turn)
        return self.session

    async def close(self) -> None:
        """Write any pending save, then stop the debounce timer."""
        await self._persistence.flush()
        self._persistence.close()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _persist(self) -> None:
        # A dead character must not be resumable from an earlier save
        if self._session.is_game_over:
            self._persistence.clear()
        else:
            self._persistence.schedule_save(self._session)

    def _opening_identity(self, session: Session) -> Identity | None:
        # Turn 0 means the opening never succeeded; retry it with the identity
        if session.turn > 0 or session.identity_id is None:
            return None
        return get_identity(session.identity_id)


def _find_choice(choices: list[Choice], choice_id: str) -> Choice | None:
    for choice in choices:
        if choice.id == choice_id:
            return choice
    return None
