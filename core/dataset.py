"""
core.dataset

Chat-style training examples from a library of MIDI JSON songs.

Each song yields four conversations (all songs are shown in flat form):
- song from description: "Write a N second song ..." -> song
- describe song: song -> "Slow intro, quest, nostalgic."
- finish song: header + first half of the stream -> whole song
- song length: song -> "N seconds"

Output is JSON Lines, one ``{"conversations": [{"from", "value"}, ...]}``
object per line, plus a system prompt holding the flat schema and one
example song (that song is kept out of the training lines).
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from core.midi_convert import nested_to_flat
from core.midi_models import MidiDocument, SimpleMidiSpec, dump_document
from core.midi_timing import round_seconds, total_duration_seconds
from core.music_library import iter_songs, list_music_files, load_song, song_id
from core.validation import describe_schema, parse_json, validate

logger = logging.getLogger(__name__)

DATASET_FILE = "dataset.jsonl"
SYSTEM_PROMPT_FILE = "system-prompt.txt"

Descriptions = Dict[str, List[str]]


class Message(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    role: Literal["human", "gpt"] = Field(..., alias="from")
    value: str


class Conversation(BaseModel):
    file: str
    messages: List[Message]

    def to_line(self) -> str:
        return to_json({"conversations": [m.model_dump(by_alias=True) for m in self.messages]})


class DatasetResult(BaseModel):
    lines: List[str] = Field(default_factory=list)
    system_prompt: str
    example_file: str
    # songs without a description; files with lines over the size limit
    skipped_songs: List[str] = Field(default_factory=list)
    filtered: List[str] = Field(default_factory=list)


def to_json(data: Any) -> str:
    """Compact JSON, non-ASCII kept as is."""
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


def _flat(doc: MidiDocument) -> SimpleMidiSpec:
    if isinstance(doc, SimpleMidiSpec):
        return doc
    return nested_to_flat(doc)


def _song_json(doc: MidiDocument) -> str:
    return to_json(dump_document(_flat(doc)))


def _capitalize(words: Sequence[str]) -> List[str]:
    out = list(words)
    if out:
        out[0] = out[0][:1].upper() + out[0][1:]
    return out


# -----------------------------
# Conversations
# -----------------------------
def song_from_description(file: str, doc: MidiDocument, description: Sequence[str]) -> Conversation:
    seconds = round_seconds(total_duration_seconds(doc))
    return Conversation(
        file=file,
        messages=[
            Message(role="human", value=f"Write a {seconds} second song with these characteristics: {', '.join(description)}"),
            Message(role="gpt", value=_song_json(doc)),
        ],
    )


def describe_song(file: str, doc: MidiDocument, description: Sequence[str]) -> Conversation:
    return Conversation(
        file=file,
        messages=[
            Message(role="human", value=f"Describe this song in a few words:\n{_song_json(doc)}"),
            Message(role="gpt", value=", ".join(_capitalize(description)) + "."),
        ],
    )


def finish_song(file: str, doc: MidiDocument) -> Conversation:
    flat = _flat(doc)
    full = dump_document(flat)
    # the prompt carries no track definitions
    partial = {
        "header": full["header"],
        "stream": full["stream"][: len(full["stream"]) // 2],
    }
    return Conversation(
        file=file,
        messages=[
            Message(role="human", value=f"Here's part of a song; finish it for me:\n{to_json(partial)}"),
            Message(role="gpt", value=to_json(full)),
        ],
    )


def song_length(file: str, doc: MidiDocument) -> Conversation:
    seconds = round_seconds(total_duration_seconds(doc))
    return Conversation(
        file=file,
        messages=[
            Message(role="human", value=f"How long is this song, in seconds?\n{_song_json(doc)}"),
            Message(role="gpt", value=f"{seconds} seconds"),
        ],
    )


def conversations_for(file: str, doc: MidiDocument, description: Sequence[str]) -> List[Conversation]:
    return [
        song_from_description(file, doc, description),
        describe_song(file, doc, description),
        finish_song(file, doc),
        song_length(file, doc),
    ]


# -----------------------------
# System prompt
# -----------------------------
def system_prompt(example: MidiDocument) -> str:
    return (
        "You're an excellent composer of MIDI-style music. "
        "Here is the TypeScript spec for MIDI-like JSON:\n\n"
        f"{describe_schema(SimpleMidiSpec)}\n\n"
        f"For example: {_song_json(example)}\n"
    )


# -----------------------------
# Whole library
# -----------------------------
def load_descriptions(path: Union[str, Path]) -> Descriptions:
    """``{"song-id": ["word", ...]}`` from a JSON file."""
    path = Path(path)
    if not path.exists() or not path.is_file():
        raise FileNotFoundError(f"descriptions not found: {path}")
    return validate(Dict[str, List[str]], parse_json(path.read_text(encoding="utf-8")))


def filter_lines(conversations: Sequence[Conversation], max_chars: int) -> Tuple[List[str], List[str]]:
    """Serialize; lines longer than ``max_chars`` are dropped. Returns (lines, dropped files)."""
    lines: List[str] = []
    dropped: List[str] = []
    for convo in conversations:
        line = convo.to_line()
        if len(line) > max_chars:
            logger.info("Filtering %s (%d chars > %d)", convo.file, len(line), max_chars)
            dropped.append(convo.file)
            continue
        lines.append(line)
    return lines, dropped


def build_dataset(
    music_dir: Union[str, Path],
    descriptions: Mapping[str, Sequence[str]],
    *,
    example_file: Optional[str] = None,
    max_chars: int,
) -> DatasetResult:
    files = list_music_files(music_dir)
    if not files:
        raise ValueError(f"No .json songs in {music_dir}")

    if example_file:
        example_name, example = example_file, load_song(music_dir, example_file)
    else:
        # first loadable song
        example_name, example = next(iter_songs(music_dir), (None, None))
        if example is None:
            raise ValueError(f"No loadable songs in {music_dir}")

    conversations: List[Conversation] = []
    skipped: List[str] = []
    for name, doc in iter_songs(music_dir, exclude=[example_name]):
        description = descriptions.get(song_id(name))
        if not description:
            logger.warning("No description for %s; skipped", name)
            skipped.append(name)
            continue
        conversations.extend(conversations_for(name, doc, description))

    lines, filtered = filter_lines(conversations, max_chars)
    logger.info(
        "dataset: %d conversations, %d lines kept, %d filtered, example=%s",
        len(conversations),
        len(lines),
        len(filtered),
        example_name,
    )
    return DatasetResult(
        lines=lines,
        system_prompt=system_prompt(example),
        example_file=example_name,
        skipped_songs=skipped,
        filtered=filtered,
    )


def write_dataset(result: DatasetResult, out_dir: Union[str, Path]) -> Tuple[Path, Path]:
    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)
    dataset_path = out / DATASET_FILE
    prompt_path = out / SYSTEM_PROMPT_FILE
    dataset_path.write_text("\n".join(result.lines), encoding="utf-8")
    prompt_path.write_text(result.system_prompt, encoding="utf-8")
    return dataset_path, prompt_path
