"""Turn controller flow tests with a stub oracle.

Each test drives the state machine through start_session / submit_choice /
reincarnate with canned oracle replies and checks the resulting Session:
stats, transcript, choices, turn counter, busy and game-over flags, and
what ended up in the save slot.
"""

import asyncio
import json

import pytest

from xianxia.catalog import get_identity
from xianxia.controller import GameStatus, TurnController
from xianxia.llm import LLMError
from xianxia.narrator import NarratorGateway
from xianxia.persistence import SAVE_SLOT_KEY, SessionPersistence
from xianxia.storage import MemoryBlobStore

DELAY = 0.01


# ── Helpers ──────────────────────────────────────────────


def _reply(narrative="Mist curls over the village.", choices=None, **extra) -> str:
    body = {
        "narrative": narrative,
        "choices": choices or [{"text": "Continue", "actionType": "continue"}],
    }
    body.update(extra)
    return json.dumps(body)


THREE_CHOICES = [
    {"text": "Enter the cave", "actionType": "explore"},
    {"text": "Meditate", "actionType": "meditate"},
    {"text": "Challenge the elder", "actionType": "combat"},
]


class GatedLLM:
    """Blocks every call until release() so tests can act mid-turn."""

    def __init__(self, response: str):
        self.response = response
        self.calls = 0
        self._gate = asyncio.Event()

    def release(self):
        self._gate.set()

    async def __call__(self, stage, prompt, system=""):
        self.calls += 1
        await self._gate.wait()
        return self.response


@pytest.fixture
def store() -> MemoryBlobStore:
    return MemoryBlobStore()


def _controller(llm, store) -> TurnController:
    return TurnController(NarratorGateway(llm), SessionPersistence(store, delay=DELAY))


async def _started(make_llm, store, *later_replies, opening=None):
    llm = make_llm([opening or _reply(choices=THREE_CHOICES), *later_replies])
    controller = _controller(llm, store)
    await controller.start_session("Wei", get_identity("orphan"), "en")
    return controller, llm


# ── start_session ────────────────────────────────────────


async def test_initial_state(make_llm, store):
    controller = _controller(make_llm([_reply()]), store)
    assert controller.status is GameStatus.AWAITING_SETUP
    assert controller.session is None


async def test_start_session_scenario(make_llm, store):
    llm = make_llm([_reply(narrative="...", statUpdates={"setSpiritRoot": "Fire"})])
    controller = _controller(llm, store)
    session = await controller.start_session("Wei", get_identity("orphan"), "en")

    assert session.player.name == "Wei"
    assert session.player.spirit_root == "Fire"
    assert session.turn == 1
    assert len(session.current_choices) == 1
    assert session.current_choices[0].action_type == "continue"
    assert session.is_game_over is False
    assert session.is_busy is False
    assert controller.status is GameStatus.IN_PROGRESS


async def test_start_session_transcript(make_llm, store):
    controller, _ = await _started(make_llm, store)
    session = controller.session
    assert [e.role for e in session.history] == ["narrator"]
    assert session.history[0].text == "Mist curls over the village."
    assert session.identity_id == "orphan"


async def test_start_session_merges_location(make_llm, store):
    controller, _ = await _started(
        make_llm, store, opening=_reply(statUpdates={"newLocation": "Stone Village"}),
    )
    assert controller.session.player.location == "Stone Village"


async def test_start_session_clears_stale_save(make_llm, store):
    store.set(SAVE_SLOT_KEY, "stale")
    gated = GatedLLM(_reply())
    controller = _controller(gated, store)
    task = asyncio.create_task(controller.start_session("Wei", get_identity("orphan"), "en"))
    await asyncio.sleep(0)
    assert store.get(SAVE_SLOT_KEY) is None
    gated.release()
    await task


async def test_start_session_busy_while_opening(make_llm, store):
    gated = GatedLLM(_reply())
    controller = _controller(gated, store)
    task = asyncio.create_task(controller.start_session("Wei", get_identity("orphan"), "en"))
    await asyncio.sleep(0)
    assert controller.is_busy is True
    assert controller.session.current_choices == []
    # A second start while the first is in flight is ignored
    await controller.start_session("Li", get_identity("noble"), "en")
    assert gated.calls == 1
    gated.release()
    session = await task
    assert session.player.name == "Wei"
    assert controller.is_busy is False


async def test_start_session_ignored_when_in_progress(make_llm, store):
    controller, llm = await _started(make_llm, store)
    before = controller.session
    await controller.start_session("Li", get_identity("noble"), "en")
    assert llm.call_count == 1
    assert controller.session == before


async def test_start_session_terminal_opening(make_llm, store):
    controller, _ = await _started(make_llm, store, opening=_reply(statUpdates={"hpChange": -100}))
    assert controller.status is GameStatus.GAME_OVER


async def test_failed_opening_keeps_turn_zero_and_retries_opening(make_llm, store):
    llm = make_llm([LLMError("down"), _reply(statUpdates={"setSpiritRoot": "Wood"})])
    controller = _controller(llm, store)
    session = await controller.start_session("Wei", get_identity("disciple"), "en")
    assert session.turn == 0
    assert [c.action_type for c in session.current_choices] == ["continue"]

    session = await controller.submit_choice(session.current_choices[0].id)
    assert llm.calls[1][0] == "opening"
    assert "Outer Disciple" in llm.prompt(1)
    assert session.turn == 1
    assert session.player.spirit_root == "Wood"


# ── submit_choice ────────────────────────────────────────


async def test_submit_choice_resolves_turn(make_llm, store):
    controller, llm = await _started(
        make_llm, store,
        _reply(narrative="The cave glows.", choices=THREE_CHOICES,
               statUpdates={"qiChange": 10, "inventoryAdd": ["Glowing Stone"]}),
    )
    choice = controller.session.current_choices[0]
    session = await controller.submit_choice(choice.id)

    assert session.turn == 2
    assert session.player.qi == 10
    assert session.player.inventory == ["Glowing Stone"]
    assert [e.role for e in session.history] == ["narrator", "user", "narrator"]
    assert session.history[1].text == "Enter the cave"
    assert session.history[2].text == "The cave glows."
    assert len(session.current_choices) == 3
    assert choice.id not in {c.id for c in session.current_choices}
    assert "**Player Action:** Enter the cave" in llm.prompt(1)


async def test_continue_choice_logs_placeholder(make_llm, store):
    controller, llm = await _started(make_llm, store, _reply(), opening=_reply())
    choice = controller.session.current_choices[0]
    session = await controller.submit_choice(choice.id)
    assert session.history[1].role == "user"
    assert session.history[1].text == "Continue..."


async def test_hp_zero_is_game_over_even_if_oracle_disagrees(make_llm, store):
    controller, _ = await _started(
        make_llm, store,
        _reply(statUpdates={"hpChange": -90}, choices=THREE_CHOICES),
        _reply(statUpdates={"hpChange": -50}, isGameOver=False),
    )
    await controller.submit_choice(controller.session.current_choices[0].id)
    assert controller.session.player.hp == 10
    session = await controller.submit_choice(controller.session.current_choices[0].id)
    assert session.player.hp == 0
    assert session.is_game_over is True
    assert controller.status is GameStatus.GAME_OVER


async def test_oracle_game_over_flag(make_llm, store):
    controller, _ = await _started(make_llm, store, _reply(isGameOver=True))
    session = await controller.submit_choice(controller.session.current_choices[0].id)
    assert session.is_game_over is True
    assert session.player.hp == 100


async def test_phase_can_jump_forward(make_llm, store):
    controller, _ = await _started(make_llm, store, _reply(statUpdates={"setStoryPhase": "main"}))
    session = await controller.submit_choice(controller.session.current_choices[0].id)
    assert session.player.story_phase == "main"


async def test_gateway_failure_mid_game(make_llm, store):
    controller, _ = await _started(make_llm, store, LLMError("Cannot connect"))
    before = controller.session
    session = await controller.submit_choice(before.current_choices[1].id)

    assert session.is_busy is False
    assert session.turn == before.turn
    assert session.is_game_over is False
    assert session.player == before.player
    assert [e.role for e in session.history] == ["narrator", "user", "narrator"]
    assert "Dao is turbulent" in session.history[-1].text
    assert len(session.current_choices) == 1
    assert session.current_choices[0].action_type == "continue"


async def test_many_origin_continue_turns(make_llm, store):
    controller, llm = await _started(make_llm, store, _reply(), opening=_reply())
    for _ in range(25):
        session = await controller.submit_choice(controller.session.current_choices[0].id)
    assert session.turn == 26
    assert session.player.story_phase == "origin"
    assert len(session.history) == 51
    assert llm.call_count == 26


async def test_submit_while_busy_is_noop(make_llm, store):
    controller, _ = await _started(make_llm, store)
    gated = GatedLLM(_reply(choices=THREE_CHOICES))
    controller._gateway = NarratorGateway(gated)
    first, second = controller.session.current_choices[:2]

    task = asyncio.create_task(controller.submit_choice(first.id))
    await asyncio.sleep(0)
    assert controller.is_busy is True
    assert controller.session.current_choices == []
    snapshot = controller.session

    await controller.submit_choice(second.id)
    assert gated.calls == 1
    assert controller.session == snapshot

    gated.release()
    session = await task
    assert session.is_busy is False
    assert session.turn == 2


async def test_submit_after_game_over_is_noop(make_llm, store):
    controller, llm = await _started(make_llm, store, _reply(isGameOver=True))
    await controller.submit_choice(controller.session.current_choices[0].id)
    snapshot = controller.session
    for choice in snapshot.current_choices:
        await controller.submit_choice(choice.id)
    assert llm.call_count == 2
    assert controller.session == snapshot


async def test_submit_stale_choice_is_noop(make_llm, store):
    controller, llm = await _started(make_llm, store, _reply(choices=THREE_CHOICES))
    stale = controller.session.current_choices[0]
    await controller.submit_choice(stale.id)
    snapshot = controller.session
    await controller.submit_choice(stale.id)
    assert llm.call_count == 2
    assert controller.session == snapshot


async def test_submit_before_setup_is_noop(make_llm, store):
    llm = make_llm([_reply()])
    controller = _controller(llm, store)
    assert await controller.submit_choice("anything") is None
    assert llm.call_count == 0


async def test_session_accessor_is_a_copy(make_llm, store):
    controller, _ = await _started(make_llm, store)
    leaked = controller.session
    leaked.player.hp = -5
    leaked.history.clear()
    assert controller.session.player.hp == 100
    assert len(controller.session.history) == 1


# ── Persistence integration ──────────────────────────────


async def test_turn_is_saved_after_debounce(make_llm, store):
    controller, _ = await _started(make_llm, store, _reply(choices=THREE_CHOICES))
    await controller.submit_choice(controller.session.current_choices[0].id)
    await asyncio.sleep(DELAY * 5)
    saved = SessionPersistence(store).load()
    assert saved == controller.session


async def test_fatal_turn_wipes_earlier_save(make_llm, store):
    controller, _ = await _started(make_llm, store, _reply(statUpdates={"hpChange": -200}))
    await asyncio.sleep(DELAY * 5)
    assert store.get(SAVE_SLOT_KEY) is not None

    await controller.submit_choice(controller.session.current_choices[0].id)
    assert controller.status is GameStatus.GAME_OVER
    assert store.get(SAVE_SLOT_KEY) is None

    await asyncio.sleep(DELAY * 5)
    revived = _controller(make_llm([_reply()]), store)
    assert revived.load_persisted_session() is None
    assert revived.status is GameStatus.AWAITING_SETUP


async def test_fatal_turn_drops_pending_save(make_llm, store):
    controller, _ = await _started(make_llm, store, _reply(isGameOver=True))
    await controller.submit_choice(controller.session.current_choices[0].id)
    await asyncio.sleep(DELAY * 5)
    assert store.get(SAVE_SLOT_KEY) is None


async def test_terminal_opening_leaves_no_save(make_llm, store):
    controller, _ = await _started(make_llm, store, opening=_reply(statUpdates={"hpChange": -100}))
    await asyncio.sleep(DELAY * 5)
    assert controller.status is GameStatus.GAME_OVER
    assert store.get(SAVE_SLOT_KEY) is None


async def test_new_turn_cancels_pending_save(make_llm, store):
    persistence = SessionPersistence(store, delay=DELAY)
    llm = make_llm([_reply(choices=THREE_CHOICES)])
    controller = TurnController(NarratorGateway(llm), persistence)
    await controller.start_session("Wei", get_identity("orphan"), "en")
    assert persistence.has_pending is True

    gated = GatedLLM(_reply(choices=THREE_CHOICES))
    controller._gateway = NarratorGateway(gated)
    task = asyncio.create_task(controller.submit_choice(controller.session.current_choices[0].id))
    await asyncio.sleep(0)
    assert controller.is_busy is True
    assert persistence.has_pending is False

    await asyncio.sleep(DELAY * 5)
    assert store.get(SAVE_SLOT_KEY) is None

    gated.release()
    session = await task
    assert persistence.has_pending is True
    await controller.close()
    assert persistence.load() == session


async def test_resume_from_save(make_llm, store):
    controller, _ = await _started(make_llm, store)
    await controller.close()
    expected = controller.session

    resumed = _controller(make_llm([_reply()]), store)
    session = resumed.load_persisted_session()
    assert session == expected
    assert resumed.status is GameStatus.IN_PROGRESS


async def test_resume_without_save(make_llm, store):
    controller = _controller(make_llm([_reply()]), store)
    assert controller.load_persisted_session() is None
    assert controller.status is GameStatus.AWAITING_SETUP


async def test_resume_ignored_when_in_progress(make_llm, store):
    controller, _ = await _started(make_llm, store)
    store.set(SAVE_SLOT_KEY, "garbage")
    assert controller.load_persisted_session() == controller.session
    assert store.get(SAVE_SLOT_KEY) == "garbage"


# ── reincarnate / restart ────────────────────────────────


async def test_reincarnate_after_game_over(make_llm, store):
    controller, _ = await _started(make_llm, store, opening=_reply(isGameOver=True))
    assert controller.status is GameStatus.GAME_OVER
    controller.reincarnate()
    assert controller.status is GameStatus.AWAITING_SETUP
    assert controller.session is None
    assert store.get(SAVE_SLOT_KEY) is None


async def test_reincarnate_ignored_while_alive(make_llm, store):
    controller, _ = await _started(make_llm, store)
    controller.reincarnate()
    assert controller.status is GameStatus.IN_PROGRESS


async def test_restart_clears_save(make_llm, store):
    controller, _ = await _started(make_llm, store)
    await controller.close()
    assert store.get(SAVE_SLOT_KEY) is not None
    controller.restart()
    assert controller.status is GameStatus.AWAITING_SETUP
    assert store.get(SAVE_SLOT_KEY) is None


async def test_new_game_after_reincarnate(make_llm, store):
    controller, llm = await _started(
        make_llm, store, _reply(narrative="Reborn.", statUpdates={"setSpiritRoot": "Metal"}),
        opening=_reply(isGameOver=True),
    )
    controller.reincarnate()
    session = await controller.start_session("Li", get_identity("rogue"), "en")
    assert session.player.name == "Li"
    assert session.player.identity == "Rogue Cultivator"
    assert session.turn == 1
    assert session.history[0].text == "Reborn."
