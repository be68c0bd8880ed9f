"""Player state construction and the oracle-delta merge rules.

Everything here is pure: no I/O, no logging, no mutation of the inputs.
apply_update() applies one StatDelta in a fixed order:

    1. hp     — clamped to [0, max_hp]
    2. qi     — clamped to [0, max_qi]
    3. gold   — floored at 0
    4. karma  — clamped to [KARMA_MIN, KARMA_MAX]
    5. realm, location — replaced verbatim when present
    6. spirit root     — replaced only while still unassigned
    7. story phase     — replaced only when strictly later in the ordering
    8. inventory add   — appended in the order given
    9. inventory remove — one occurrence per listed label; absent is a no-op
"""

from __future__ import annotations

from collections.abc import Sequence

from xianxia.i18n import t
from xianxia.models import (
    KARMA_MAX,
    KARMA_MIN,
    PHASE_ORDER,
    UNASSIGNED_SPIRIT_ROOT,
    Identity,
    PlayerState,
    StatDelta,
    StoryPhase,
)

STARTING_HP = 100
STARTING_QI = 0
STARTING_MAX_QI = 100

# How many matching items a single inventoryRemove label takes away.
REMOVALS_PER_LABEL = 1


def new_player(name: str, identity: Identity, language: str) -> PlayerState:
    """Fresh, identity-seeded state for turn 0."""
    return PlayerState(
        name=name,
        identity=identity.display_name(language),
        spirit_root=UNASSIGNED_SPIRIT_ROOT,
        realm=t("player.realm", language),
        hp=STARTING_HP,
        max_hp=STARTING_HP,
        qi=STARTING_QI,
        max_qi=STARTING_MAX_QI,
        gold=0,
        karma=0,
        inventory=[],
        location=t("player.location", language),
        story_phase="origin",
    )


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def _present(label: str | None) -> bool:
    return label is not None and label.strip() != ""


def phase_index(phase: StoryPhase, phase_order: Sequence[StoryPhase] = PHASE_ORDER) -> int:
    return list(phase_order).index(phase)


def remove_items(inventory: list[str], labels: list[str]) -> list[str]:
    """Remove up to REMOVALS_PER_LABEL exact matches for each label."""
    result = list(inventory)
    for label in labels:
        for _ in range(REMOVALS_PER_LABEL):
            if label not in result:
                break
            result.remove(label)
    return result


def apply_update(
    current: PlayerState,
    delta: StatDelta,
    phase_order: Sequence[StoryPhase] = PHASE_ORDER,
) -> PlayerState:
    """Return a new PlayerState with the delta merged in."""
    updates: dict = {}

    if delta.hp_change is not None:
        updates["hp"] = _clamp(current.hp + delta.hp_change, 0, current.max_hp)
    if delta.qi_change is not None:
        updates["qi"] = _clamp(current.qi + delta.qi_change, 0, current.max_qi)
    if delta.gold_change is not None:
        updates["gold"] = max(0, current.gold + delta.gold_change)
    if delta.karma_change is not None:
        updates["karma"] = _clamp(current.karma + delta.karma_change, KARMA_MIN, KARMA_MAX)

    # The oracle is authoritative for narrative labels
    if _present(delta.new_realm):
        updates["realm"] = delta.new_realm
    if _present(delta.new_location):
        updates["location"] = delta.new_location

    if _present(delta.set_spirit_root) and current.spirit_root == UNASSIGNED_SPIRIT_ROOT:
        updates["spirit_root"] = delta.set_spirit_root

    if delta.set_story_phase is not None and (
        phase_index(delta.set_story_phase, phase_order)
        > phase_index(current.story_phase, phase_order)
    ):
        updates["story_phase"] = delta.set_story_phase

    inventory = list(current.inventory)
    if delta.inventory_add:
        inventory.extend(item for item in delta.inventory_add if _present(item))
    if delta.inventory_remove:
        inventory = remove_items(inventory, delta.inventory_remove)
    updates["inventory"] = inventory

    return current.model_copy(update=updates)


def is_terminal(player: PlayerState, oracle_game_over: bool = False) -> bool:
    """Game over if the oracle says so, or unconditionally once hp hits 0."""
    return oracle_game_over or player.hp <= 0
