"""Localized UI and narrative strings.

Usage:
    from xianxia.i18n import t, LANGUAGES
    label = t("ui.hp", "en")           # → "Vitality"
    table = strings_for("zh")          # whole table, for the front end

Simplified Chinese is the default language; English is the fallback for
keys missing from a table.
"""

LANGUAGES: tuple[str, ...] = ("en", "zh")
DEFAULT_LANG = "zh"
FALLBACK_LANG = "en"

_STRINGS: dict[str, dict[str, str]] = {
    "en": {
        # Setup
        "ui.title": "XIANXIA",
        "ui.subtitle": "Path to Immortality",
        "ui.enter_name": "Daoist Name",
        "ui.placeholder": "Enter your name...",
        "ui.select_identity": "Choose your Origin",
        "ui.start": "Enter the Cycle of Reincarnation",
        "ui.resume": "Continue your Path",
        # Status panel
        "ui.hp": "Vitality",
        "ui.qi": "Spiritual Energy",
        "ui.karma": "Karma",
        "ui.location": "Location",
        "ui.wealth": "Spirit Stones",
        "ui.bag": "Inventory",
        "ui.empty": "Empty",
        "ui.thinking": "Weaving destiny...",
        "ui.choose": "Your Choice",
        # Game over
        "ui.game_over": "Karmic End",
        "ui.game_over_desc": "Your thread of fate has been severed.",
        "ui.reincarnate": "Reincarnate",
        # Phases
        "phase.origin": "Origin",
        "phase.convergence": "Convergence",
        "phase.main": "The Great Path",
        # Initial player
        "player.realm": "Mortal",
        "player.location": "Unknown Realm",
        # Turn text
        "action.continue": "Continue...",
        "fallback.narrative": "The Dao is turbulent. Ripples disturb the river of fate... (Please try again)",
        "fallback.choice": "Focus Qi (Retry)",
    },
    "zh": {
        "ui.title": "修仙录",
        "ui.subtitle": "逆天改命 · 证道长生",
        "ui.enter_name": "道号 / 姓名",
        "ui.placeholder": "输入你的名字...",
        "ui.select_identity": "选择出身背景",
        "ui.start": "开启轮回",
        "ui.resume": "继续修行",
        "ui.hp": "气血 (HP)",
        "ui.qi": "灵力 (Qi)",
        "ui.karma": "因果",
        "ui.location": "所在",
        "ui.wealth": "灵石",
        "ui.bag": "储物袋",
        "ui.empty": "空空如也",
        "ui.thinking": "推演天机中...",
        "ui.choose": "抉择",
        "ui.game_over": "身死道消",
        "ui.game_over_desc": "仙路漫漫，终是一场空。",
        "ui.reincarnate": "转世重修",
        "phase.origin": "缘起",
        "phase.convergence": "交汇",
        "phase.main": "大道",
        "player.realm": "凡人",
        "player.location": "未知之地",
        "action.continue": "继续……",
        "fallback.narrative": "天道紊乱，命运的长河出现了一丝波澜……（请重试）",
        "fallback.choice": "凝神静气 (重试)",
    },
}


def t(key: str, lang: str = DEFAULT_LANG) -> str:
    """Look up a translated string. Falls back to English if the key is missing."""
    text = _STRINGS.get(lang, {}).get(key)
    if text is None:
        text = _STRINGS[FALLBACK_LANG].get(key, f"[{key}]")
    return text


def strings_for(lang: str) -> dict[str, str]:
    """Full string table for a language, with fallback keys filled in."""
    table = dict(_STRINGS[FALLBACK_LANG])
    table.update(_STRINGS.get(lang, {}))
    return table
