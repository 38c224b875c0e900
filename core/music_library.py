"""
core.music_library

A directory of MIDI JSON documents (``*.json``), addressed by file name.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Tuple, Union

from core.midi_models import MidiDocument
from core.validation import DocumentFormat, MidiJsonParseError, SchemaValidationError, read_document

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def list_music_files(music_dir: PathLike) -> List[str]:
    """Sorted ``*.json`` file names in the directory (empty if it does not exist)."""
    d = Path(music_dir)
    if not d.is_dir():
        return []
    return sorted(p.name for p in d.iterdir() if p.is_file() and p.suffix == ".json")


def song_id(file_name: str) -> str:
    """'dkc2-bonus.json' -> 'dkc2-bonus'"""
    return file_name[: -len(".json")] if file_name.endswith(".json") else file_name


def resolve_music_file(music_dir: PathLike, file_name: str) -> Path:
    """
    Path of a library file. Only bare ``*.json`` names are accepted, so a
    request can never leave the library directory.
    """
    if not file_name or Path(file_name).name != file_name or file_name in {".", ".."}:
        raise ValueError(f"Invalid music file name: {file_name!r}")
    if not file_name.endswith(".json"):
        raise ValueError(f"Music files must be .json: {file_name!r}")

    path = Path(music_dir) / file_name
    if not path.is_file():
        raise FileNotFoundError(f"music file not found: {file_name}")
    return path


def load_song(music_dir: PathLike, file_name: str, fmt: Optional[DocumentFormat] = None) -> MidiDocument:
    return read_document(resolve_music_file(music_dir, file_name), fmt)


def iter_songs(
    music_dir: PathLike,
    *,
    exclude: Iterable[str] = (),
    fmt: Optional[DocumentFormat] = None,
) -> Iterator[Tuple[str, MidiDocument]]:
    """
    Yield ``(file_name, document)`` for every loadable file.
    Files that are not MIDI JSON are skipped with a warning.
    """
    skip = set(exclude)
    for name in list_music_files(music_dir):
        if name in skip:
            continue
        try:
            doc = load_song(music_dir, name, fmt)
        except (MidiJsonParseError, SchemaValidationError) as e:
            logger.warning("Skipping %s: %s", name, e)
            continue
        yield name, doc
