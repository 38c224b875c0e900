from __future__ import annotations

import logging
from typing import Any, Dict, Literal

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse

from core.config import get_settings
from core.midi_convert import flat_to_nested, nested_to_flat
from core.midi_models import MidiDocument, MidiSpec, SimpleMidiSpec, dump_document
from core.midi_timing import TimedMidi, hydrate
from core.music_library import list_music_files, load_song
from core.validation import (
    DocumentFormat,
    MidiJsonParseError,
    SchemaValidationError,
    describe_schema,
    load_document,
    parse_json,
)

logger = logging.getLogger(__name__)

FormatParam = Literal["nested", "flat", "auto"]

router = APIRouter(prefix="/api/v1", tags=["MIDI"])


def _format_name(doc: MidiDocument) -> DocumentFormat:
    return "flat" if isinstance(doc, SimpleMidiSpec) else "nested"


async def _read_document(request: Request, fmt: FormatParam) -> MidiDocument:
    """
    Raw body -> validated document.
    400: not JSON at all; 422: JSON that does not match the schema.
    """
    raw = await request.body()
    try:
        data = parse_json(raw)
    except MidiJsonParseError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        return load_document(data, None if fmt == "auto" else fmt)
    except SchemaValidationError as e:
        logger.debug("rejected document: %s", e)
        raise HTTPException(status_code=422, detail=e.to_dict())


@router.post("/midi/validate")
async def validate_document(request: Request, format: FormatParam = Query("auto")) -> Dict[str, Any]:
    """Validate and slice: the returned document holds only declared fields."""
    doc = await _read_document(request, format)
    return {"ok": True, "format": _format_name(doc), "document": dump_document(doc)}


@router.post("/midi/flat")
async def to_flat(request: Request) -> Dict[str, Any]:
    doc = await _read_document(request, "nested")
    return dump_document(nested_to_flat(doc))


@router.post("/midi/nested")
async def to_nested(request: Request) -> Dict[str, Any]:
    doc = await _read_document(request, "flat")
    return dump_document(flat_to_nested(doc))


@router.post("/midi/timing", response_model=TimedMidi)
async def timing(request: Request, format: FormatParam = Query("auto")) -> TimedMidi:
    doc = await _read_document(request, format)
    try:
        return hydrate(doc)
    except ValueError as e:
        # e.g. a tempo entry with bpm <= 0
        raise HTTPException(status_code=422, detail=str(e))


@router.get("/midi/spec", response_class=PlainTextResponse)
def schema_text(format: Literal["nested", "flat"] = Query("flat")) -> str:
    model = SimpleMidiSpec if format == "flat" else MidiSpec
    return describe_schema(model)


# -----------------------------
# Music library
# -----------------------------
@router.get("/music")
def list_music() -> Dict[str, Any]:
    s = get_settings()
    return {"music_dir": str(s.music_dir), "files": list_music_files(s.music_dir)}


@router.get("/music/{file_name}")
def get_music(file_name: str, format: FormatParam = Query("auto")) -> Dict[str, Any]:
    s = get_settings()
    try:
        doc = load_song(s.music_dir, file_name, None if format == "auto" else format)
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="Music file not found")
    except MidiJsonParseError as e:
        raise HTTPException(status_code=500, detail=f"Stored file is not JSON: {e}")
    except SchemaValidationError as e:
        raise HTTPException(status_code=422, detail=e.to_dict())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"file": file_name, "format": _format_name(doc), "document": dump_document(doc)}
