"""FastAPI endpoints under /api.

Endpoint groups: health, content (identities, string tables), settings,
and the single-slot game session. Session endpoints always answer with the
current state; an action that is not allowed right now (a second click
while the narrator is thinking, a choice after death) is a no-op, not an
error.
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field, ValidationError

from xianxia import config
from xianxia.catalog import get_identity, list_identities
from xianxia.controller import TurnController
from xianxia.i18n import LANGUAGES, strings_for
from xianxia.models import Language

router = APIRouter()


class StartBody(BaseModel):
    name: str = Field(min_length=1, max_length=12)
    identity_id: str
    language: Language = "zh"


def get_controller(request: Request) -> TurnController:
    return request.app.state.controller


def _state(controller: TurnController) -> dict[str, Any]:
    session = controller.session
    return {
        "status": controller.status.value,
        "session": session.model_dump() if session else None,
    }


def _check_language(lang: str) -> str:
    if lang not in LANGUAGES:
        raise HTTPException(422, f"Unsupported language {lang!r}")
    return lang


# ── Health / content ─────────────────────────────────────


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/identities")
async def identities(lang: str = "zh"):
    """Origin archetypes, localized."""
    return list_identities(_check_language(lang))


@router.get("/text/{lang}")
async def text_table(lang: str):
    """Full UI string table for a language."""
    return strings_for(_check_language(lang))


# ── Settings ─────────────────────────────────────────────


@router.get("/settings")
async def get_settings(request: Request):
    """Current settings, API key masked."""
    settings = request.app.state.settings
    return settings.model_dump(mode="json", exclude={"api_key"}) | {"has_api_key": bool(settings.api_key)}


@router.patch("/settings")
async def update_settings(request: Request, body: dict):
    """Persist settings to config.json (partial merge). Applies on next start."""
    try:
        updated = config.update_config(request.app.state.settings.data_dir, body)
    except ValidationError as e:
        raise HTTPException(422, str(e))
    return updated.model_dump(mode="json", exclude={"api_key"}) | {"has_api_key": bool(updated.api_key)}


# ── Session ──────────────────────────────────────────────


@router.get("/session")
async def get_session(controller: TurnController = Depends(get_controller)):
    """Current session and state-machine status."""
    return _state(controller)


@router.post("/session")
async def start_session(body: StartBody, controller: TurnController = Depends(get_controller)):
    """Create a character and play the opening turn."""
    identity = get_identity(body.identity_id)
    if identity is None:
        raise HTTPException(404, "Identity not found")
    name = body.name.strip()
    if not name:
        raise HTTPException(422, "Name must not be blank")
    await controller.start_session(name, identity, body.language)
    return _state(controller)


@router.post("/session/choices/{choice_id}")
async def submit_choice(choice_id: str, controller: TurnController = Depends(get_controller)):
    """Pick one of the offered choices and resolve the turn."""
    await controller.submit_choice(choice_id)
    return _state(controller)


@router.post("/session/resume")
async def resume_session(controller: TurnController = Depends(get_controller)):
    """Load the saved game, if any."""
    controller.load_persisted_session()
    return _state(controller)


@router.post("/session/reincarnate")
async def reincarnate(controller: TurnController = Depends(get_controller)):
    """Acknowledge game over and return to setup."""
    controller.reincarnate()
    return _state(controller)


@router.post("/session/restart")
async def restart(controller: TurnController = Depends(get_controller)):
    """Abandon the running game and return to setup."""
    controller.restart()
    return _state(controller)
