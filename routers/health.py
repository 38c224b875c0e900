"""
Health check route
Liveness for deploy platforms / monitoring, plus a few config diagnostics.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

from fastapi import APIRouter

from core.config import get_settings
from core.music_library import list_music_files

router = APIRouter(prefix="/api/v1", tags=["Health"])


@router.get("/health")
def health() -> Dict[str, Any]:
    """
    - always returns ok=True if API is alive
    - extra diagnostics: dirs, library size
    """
    s = get_settings()

    music = Path(s.music_dir)
    outputs = Path(s.output_dir)

    return {
        "ok": True,
        "env": s.app_env,
        "paths": {
            "music_dir": str(music),
            "output_dir": str(outputs),
        },
        "checks": {
            "music_dir_exists": music.is_dir(),
            "output_dir_exists": outputs.exists(),
            "music_files": len(list_music_files(music)),
        },
    }
