from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from xianxia.config import Settings, load_settings
from xianxia.controller import TurnController
from xianxia.llm import LLM, HttpLLM
from xianxia.narrator import NarratorGateway
from xianxia.persistence import SessionPersistence
from xianxia.routes import router
from xianxia.storage import BlobStore, FileBlobStore


def build_llm(settings: Settings) -> HttpLLM:
    return HttpLLM(
        provider_url=settings.provider_url,
        api_key=settings.api_key,
        provider_format=settings.provider_format,
        model=settings.model,
        temperature=settings.temperature,
        timeout=settings.timeout,
    )


def create_app(
    data_dir: Path | None = None,
    *,
    settings: Settings | None = None,
    llm: LLM | None = None,
    store: BlobStore | None = None,
) -> FastAPI:
    settings = settings or load_settings(data_dir)
    persistence = SessionPersistence(
        store or FileBlobStore(settings.data_dir),
        key=settings.save_slot,
        delay=settings.save_debounce_seconds,
    )
    controller = TurnController(NarratorGateway(llm or build_llm(settings)), persistence)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await controller.close()

    app = FastAPI(title="Xianxia", lifespan=lifespan)
    app.state.settings = settings
    app.state.controller = controller
    app.include_router(router, prefix="/api")
    return app
