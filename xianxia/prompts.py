"""Handlebars prompt rendering for the narrator oracle.

Three templates drive every call:

    SYSTEM_TEMPLATE   — persona, language, style and phase pacing rules
    OPENING_TEMPLATE  — the first turn, built from the chosen identity
    TURN_TEMPLATE     — every later turn: status, recent story, action

Every value handed to a template is pre-formatted as a string, so the
templates never depend on Handlebars truthiness (a 0 hp must still print).
Player-derived text uses triple-stash so it is not HTML-escaped.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import pybars

from xianxia.models import PHASE_ORDER, LogEntry, PlayerState, StoryPhase

if TYPE_CHECKING:
    from xianxia.narrator import TurnContext

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


# ── Templates ────────────────────────────────────────────

SYSTEM_TEMPLATE = """\
You are a master novelist of Xianxia (Cultivation) literature, acting as the Game Master.

LANGUAGE: Output STRICTLY in {{language_name}}.

CORE PHILOSOPHY:
1. **Story First:** This is not just a stat manager. It is a text adventure novel. Focus on plot, atmosphere, and character.
2. **Cause and Effect (Karma):** Every event must have a reason. Explain the background. Why is the player here? Who are their enemies?
3. **Detailed World:** The world is "The Great Desolate Nine Provinces" (洪荒九洲). It is cruel, vast, and ancient.
4. **Show, Don't Tell:** Don't say "You are sad." Describe the rain masking the tears on the face.

WRITING STYLE:
{{{style}}}

STORY PHASE: {{phase}}
{{{pacing}}}

MECHANICS:
- If 'hp' <= 0, isGameOver = true.
- Determine the player's Spirit Root (affinity) from their identity and luck if it is not yet assigned; set it once via statUpdates.setSpiritRoot and never change it afterwards.
- Karma ranges from -100 to 100. Use statUpdates.karmaChange for virtuous or wicked deeds.
- statUpdates.setStoryPhase may only move the story forward: origin -> convergence -> main.
- Every choice needs an actionType from: {{action_types}}.
- Reply with a single JSON object that matches the response schema. No other text.
"""

OPENING_TEMPLATE = """\
BEGIN NEW NOVEL / GAME.

**Character Profile:**
- Name: {{{name}}}
- Identity/Background: {{{identity_name}}}
- Identity Description: {{{identity_description}}}

**Instruction for the Opening (Chapter 1):**
1. **World Intro:** Briefly introduce the "Nine Provinces" or the specific region (Sect/Village/Ruins) they are in.
2. **The Predicament:** Start *in media res*. The character is facing a crisis, a turning point, or a moment of awakening related to their Identity.
3. **The Awakening:** They realize they can cultivate, or find an item, or make a decision that changes their fate.
4. **Status:** Determine their Spirit Root based on the story (don't ask, just assign it via statUpdates.setSpiritRoot).

Output the narrative and offer choices following the pacing rules of the current story phase.
"""

TURN_TEMPLATE = """\
**Current Status:**
Name: {{{name}}} (Identity: {{{identity}}})
Story Phase: {{phase}}
Realm: {{{realm}}}
Spirit Root: {{{spirit_root}}}
HP: {{hp}} | Qi: {{qi}}
Karma: {{karma}}
Location: {{{location}}}
Inventory: {{{inventory}}}

**Recent Story:**
{{#each history}}
{{role}}: {{{text}}}
{{/each}}

**Player Action:** {{{action}}}

**Instructions:**
- Continue the story naturally.
- If exploring, describe the environment vividly.
- If fighting, make it thrilling.
- If interacting, give NPCs personality.
- Update stats logically based on the narrative.
"""

_LANGUAGE_NAMES = {
    "en": "English",
    "zh": "Simplified Chinese (简体中文)",
}

_STYLES = {
    "en": (
        "- Style: High Fantasy, archaic, mystical. Use terms like 'Daoist', 'Cultivator', 'Qi', 'Meridians'.\n"
        "- Combat: Visceral and flashy. Describe the techniques."
    ),
    "zh": (
        "- 风格：正统修仙网文风格。用词苍凉、大气。多用成语。描述要细腻（环境、心理、动作）。\n"
        "- 战斗：不要只说“你攻击了”。要描述功法名称、灵气光芒、空气震荡。\n"
        "- 剧情：要有起承转合。开局必须交代前因后果。"
    ),
}

PHASE_PACING: dict[StoryPhase, str] = {
    "origin": (
        "The story is in its ORIGIN phase. Tell the character's backstory as a linear novel, "
        'one beat per reply. Offer exactly ONE choice, with actionType "continue". '
        'When the origin story reaches its turning point, set statUpdates.setStoryPhase to "convergence".'
    ),
    "convergence": (
        "The story is in its CONVERGENCE phase. The character's fate converges with the wider world. "
        "Offer 3 to 4 distinct choices. When the character sets out on their own path, "
        'set statUpdates.setStoryPhase to "main".'
    ),
    "main": (
        "The story is in its MAIN phase: the open journey. "
        "Offer 3 to 4 distinct choices driving the plot forward."
    ),
}

ACTION_TYPE_LIST = "explore, meditate, combat, talk, travel, story, continue"

# Gemini-style schema describing OracleResponse
RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "narrative": {
            "type": "STRING",
            "description": "The story segment. MUST be detailed, descriptive, and literary.",
        },
        "statUpdates": {
            "type": "OBJECT",
            "description": "Changes to the player's status.",
            "properties": {
                "hpChange": {"type": "INTEGER", "description": "Change in Health."},
                "qiChange": {"type": "INTEGER", "description": "Change in Qi."},
                "goldChange": {"type": "INTEGER", "description": "Change in Spirit Stones."},
                "karmaChange": {"type": "INTEGER", "description": "Change in Karma."},
                "newRealm": {"type": "STRING", "description": "New cultivation rank."},
                "newLocation": {"type": "STRING", "description": "New location name."},
                "setSpiritRoot": {"type": "STRING", "description": "Set the player's spirit root (only if not set)."},
                "setStoryPhase": {
                    "type": "STRING",
                    "enum": list(PHASE_ORDER),
                    "description": "Advance the story phase.",
                },
                "inventoryAdd": {"type": "ARRAY", "items": {"type": "STRING"}, "description": "Items gained."},
                "inventoryRemove": {"type": "ARRAY", "items": {"type": "STRING"}, "description": "Items lost."},
            },
        },
        "choices": {
            "type": "ARRAY",
            "description": "One continue choice, or 3 to 4 distinct choices driving the plot forward.",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "text": {"type": "STRING", "description": "The choice text."},
                    "actionType": {"type": "STRING", "description": "Action category."},
                },
                "required": ["text", "actionType"],
            },
        },
        "isGameOver": {"type": "BOOLEAN", "description": "True if the player dies."},
    },
    "required": ["narrative", "choices"],
}


# ── Builders ─────────────────────────────────────────────


def build_system_instruction(language: str, phase: StoryPhase) -> str:
    return render_prompt(SYSTEM_TEMPLATE, {
        "language_name": _LANGUAGE_NAMES.get(language, _LANGUAGE_NAMES["en"]),
        "style": _STYLES.get(language, _STYLES["en"]),
        "phase": phase,
        "pacing": PHASE_PACING[phase],
        "action_types": ACTION_TYPE_LIST,
    })


def build_opening_prompt(context: TurnContext) -> str:
    identity = context.identity
    if identity is None:
        raise PromptError("Opening prompt requires an identity")
    return render_prompt(OPENING_TEMPLATE, {
        "name": context.player.name,
        "identity_name": identity.display_name(context.language),
        "identity_description": identity.display_description(context.language),
    })


def _history_lines(history: list[LogEntry]) -> list[dict[str, str]]:
    return [{"role": entry.role.upper(), "text": entry.text} for entry in history]


def _status_context(player: PlayerState) -> dict[str, str]:
    return {
        "name": player.name,
        "identity": player.identity,
        "phase": player.story_phase,
        "realm": player.realm,
        "spirit_root": player.spirit_root,
        "hp": f"{player.hp}/{player.max_hp}",
        "qi": f"{player.qi}/{player.max_qi}",
        "karma": str(player.karma),
        "location": player.location,
        "inventory": ", ".join(player.inventory) or "-",
    }


def build_turn_prompt(context: TurnContext, history: list[LogEntry]) -> str:
    """Status + the given transcript window + the player's action."""
    ctx: dict[str, Any] = _status_context(context.player)
    ctx["history"] = _history_lines(history)
    ctx["action"] = context.action
    return render_prompt(TURN_TEMPLATE, ctx)
