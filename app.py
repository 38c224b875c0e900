# app.py
"""
midijson service main entry (FastAPI)

- App Factory pattern for testing & packaging
- Lifespan startup: ensure dirs + report the music library
- Dev CORS: allow localhost any port (supports credentials)
- Prod CORS: MUST specify explicit origins (no wildcard with credentials)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import get_settings
from core.music_library import list_music_files
from routers.health import router as health_router
from routers.midi import router as midi_router

logger = logging.getLogger("midijson")


def _is_dev(app_env: str) -> bool:
    v = (app_env or "").strip().lower()
    return v in {"dev", "development", "local"}


def _parse_origins(raw: Optional[str]) -> List[str]:
    """
    Parse comma-separated origins string into list.
    Example: "https://a.com,https://b.com"
    """
    if not raw:
        return []
    parts = [p.strip() for p in raw.split(",")]
    return [p for p in parts if p]


@asynccontextmanager
async def lifespan(_: FastAPI):
    s = get_settings()

    try:
        s.output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.critical("Failed to create runtime dirs: %s", e)
        raise

    if s.music_dir.is_dir():
        logger.info("Music library: %s (%d files)", s.music_dir, len(list_music_files(s.music_dir)))
    else:
        logger.warning("Music library not found: %s", s.music_dir)

    yield
    logger.info("Service shutting down...")


def create_app() -> FastAPI:
    s = get_settings()

    # logging once (avoid duplicated handlers in reload/test)
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=getattr(logging, s.log_level, logging.INFO),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )

    app = FastAPI(
        title="midijson",
        version="0.1.0",
        description="MIDI-like JSON: validation, nested/flat conversion, tick timing",
        lifespan=lifespan,
    )

    # expose settings for debugging
    app.state.settings = s

    # ---- CORS ----
    if _is_dev(s.app_env):
        allow_origins: List[str] = []
        allow_origin_regex = r"http://(?:localhost|127\.0\.0\.1)(?::\d+)?"
        allow_credentials = True
    else:
        allow_origins = _parse_origins(s.cors_allow_origins)
        allow_origin_regex = None
        # no explicit origins -> no credentials
        allow_credentials = bool(allow_origins)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_origin_regex=allow_origin_regex,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ---- Routers ----
    app.include_router(health_router)
    app.include_router(midi_router)

    @app.get("/", include_in_schema=False)
    def root():
        return {"service": "midijson", "docs_url": "/docs"}

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    s = get_settings()
    uvicorn.run("app:app", host=s.host, port=s.port, reload=_is_dev(s.app_env))
