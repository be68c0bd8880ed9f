"""Static content: the origin archetypes offered at setup."""

from xianxia.models import Identity

IDENTITIES: tuple[Identity, ...] = (
    Identity(
        id="orphan",
        name={"en": "Village Orphan", "zh": "山村孤儿"},
        description={
            "en": "You found a mysterious ring in the mud. You have no background, but fate is on your side.",
            "zh": "你在泥潭中捡到一枚神秘古戒。虽出身卑微，无依无靠，却似乎背负着某种上古因果。",
        },
    ),
    Identity(
        id="noble",
        name={"en": "Fallen Noble", "zh": "落魄世家"},
        description={
            "en": "Your clan was wiped out by a rival sect. You survived with a family heirloom and a heart full of vengeance.",
            "zh": "昔日辉煌的家族一夜之间被仇敌灭门。你带着家传信物苟活于世，心中只有复仇的怒火。",
        },
    ),
    Identity(
        id="disciple",
        name={"en": "Outer Disciple", "zh": "宗门杂役"},
        description={
            "en": "You are the lowest rank in the Azure Cloud Sect. Bullied by seniors, you work hard hoping for a breakthrough.",
            "zh": "身在青云门，命如蝼蚁。每日负责挑水砍柴，受尽白眼，却在后山禁地意外窥见一丝天机。",
        },
    ),
    Identity(
        id="rogue",
        name={"en": "Rogue Cultivator", "zh": "江湖散修"},
        description={
            "en": "You trust no one. You fight for every scrap of resource in the wild. Your survival instincts are unmatched.",
            "zh": "以天为盖地为庐。不入宗门，不拜神佛。在刀尖上舔血，只为争夺那天地间的一线生机。",
        },
    ),
)

_BY_ID = {identity.id: identity for identity in IDENTITIES}


def get_identity(identity_id: str) -> Identity | None:
    return _BY_ID.get(identity_id)


def list_identities(language: str) -> list[dict[str, str]]:
    """Identities flattened to one language, for the setup screen."""
    return [
        {
            "id": identity.id,
            "name": identity.display_name(language),
            "description": identity.display_description(language),
        }
        for identity in IDENTITIES
    ]
