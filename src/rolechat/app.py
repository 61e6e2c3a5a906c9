"""Application factory for the role chat service."""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager, suppress
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings, get_settings
from .letta import LettaClient
from .repository import RoleRepository
from .routers.messages import router as messages_router
from .routers.roles import router as roles_router
from .routers.tts import router as tts_router
from .services.audio_store import AudioFileStore
from .services.chat_stream import ChatStreamService
from .services.roles import RoleService
from .services.speech import SpeechService

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _configure_logging() -> None:
    """Configure logging based on LOG_LEVEL environment variable."""
    # Load .env file first to ensure LOG_FILE is available
    load_dotenv()

    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_str, logging.INFO)

    formatter = logging.Formatter(_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    handlers: list[logging.Handler] = []

    log_file = os.getenv("LOG_FILE")
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    logging.getLogger("rolechat").setLevel(log_level)
    for name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
        logging.getLogger(name).setLevel(log_level)

    # httpx/httpcore stay quiet above DEBUG
    quiet_level = log_level if log_level <= logging.DEBUG else logging.WARNING
    logging.getLogger("httpx").setLevel(quiet_level)
    logging.getLogger("httpcore").setLevel(quiet_level)


def _resolve_under(base: Path, p: Path) -> Path:
    # Absolute paths are used as-is (tests, external mounts)
    if p.is_absolute():
        return p.resolve()
    resolved = (base / p).resolve()
    if not resolved.is_relative_to(base):
        raise ValueError(f"Configured path {resolved} escapes project root {base}")
    return resolved


def create_app(settings: Settings | None = None) -> FastAPI:
    _configure_logging()

    settings = settings or get_settings()
    project_root = Path(__file__).resolve().parent.parent.parent

    repository = RoleRepository(_resolve_under(project_root, settings.chat_database_path))
    letta = LettaClient(settings)
    audio_store = AudioFileStore(
        _resolve_under(project_root, settings.tts_audio_dir),
        ttl_seconds=settings.tts_audio_ttl_seconds,
        max_files=settings.tts_audio_max_files,
    )
    speech_service = SpeechService(settings, audio_store)
    role_service = RoleService(repository, letta)
    chat_stream_service = ChatStreamService(repository, letta)

    cleanup_interval_seconds = settings.tts_audio_cleanup_interval_seconds
    cleanup_task: asyncio.Task | None = None

    async def _audio_cleanup_loop() -> None:
        while True:
            await asyncio.sleep(cleanup_interval_seconds)
            try:
                audio_store.cleanup()
            except Exception as exc:
                logging.warning("Audio cleanup run failed: %s", exc)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        nonlocal cleanup_task
        await repository.initialize()
        audio_store.ensure_directory()
        try:
            audio_store.cleanup()
        except Exception as exc:
            logging.warning("Initial audio cleanup failed: %s", exc)
        cleanup_task = asyncio.create_task(_audio_cleanup_loop())
        try:
            yield
        finally:
            if cleanup_task is not None:
                cleanup_task.cancel()
                with suppress(asyncio.CancelledError):
                    await cleanup_task
            try:
                await asyncio.wait_for(
                    asyncio.gather(
                        LettaClient.close_http_clients(),
                        SpeechService.close_http_client(),
                    ),
                    timeout=10.0,
                )
            except asyncio.TimeoutError:
                logging.warning("HTTP client shutdown timed out after 10s")
            await repository.close()

    app = FastAPI(
        title="Role Chat Backend",
        version="0.1.0",
        description="Role-playing chat over Letta agents with speech synthesis.",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.repository = repository
    app.state.role_service = role_service
    app.state.chat_stream_service = chat_stream_service
    app.state.speech_service = speech_service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(roles_router)
    app.include_router(messages_router)
    app.include_router(tts_router)

    @app.get("/health", tags=["health"])
    async def healthcheck() -> dict[str, str | None]:
        return {
            "status": "ok",
            "tts_provider": settings.tts_provider,
            "letta_model": settings.letta_model,
        }

    return app


__all__ = ["create_app"]
