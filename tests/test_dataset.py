from __future__ import annotations

import json

import pytest

from core.dataset import (
    DATASET_FILE,
    SYSTEM_PROMPT_FILE,
    build_dataset,
    conversations_for,
    filter_lines,
    load_descriptions,
    system_prompt,
    write_dataset,
)
from core.midi_models import MidiSpec
from core.music_library import iter_songs, list_music_files, resolve_music_file, song_id


@pytest.fixture
def library(tmp_path, nested_data):
    d = tmp_path / "music"
    d.mkdir()
    for name in ("example.json", "song-a.json", "song-b.json"):
        (d / name).write_text(json.dumps(nested_data), encoding="utf-8")
    (d / "broken.json").write_text("[", encoding="utf-8")
    return d


DESCRIPTIONS = {"song-a": ["slow intro", "quest"], "example": ["demo"]}


def _messages(line: str):
    return json.loads(line)["conversations"]


def test_four_conversations_per_song(nested_data):
    doc = MidiSpec.model_validate(nested_data)
    convos = conversations_for("song-a.json", doc, ["slow intro", "quest"])
    assert len(convos) == 4

    from_description, describe, finish, length = convos
    assert from_description.messages[0].value == "Write a 2 second song with these characteristics: slow intro, quest"
    assert json.loads(from_description.messages[1].value)["trackDefinitions"][0]["id"] == 0

    assert describe.messages[0].value.startswith("Describe this song in a few words:\n{")
    assert describe.messages[1].value == "Slow intro, quest."

    prompt = finish.messages[0].value
    assert prompt.startswith("Here's part of a song; finish it for me:\n")
    partial = json.loads(prompt.split("\n", 1)[1])
    full = json.loads(finish.messages[1].value)
    assert set(partial) == {"header", "stream"}
    assert partial["stream"] == full["stream"][: len(full["stream"]) // 2]

    assert length.messages[0].value.startswith("How long is this song, in seconds?\n")
    assert length.messages[1].value == "2 seconds"


def test_lines_are_compact_sharegpt_json(nested_data):
    doc = MidiSpec.model_validate(nested_data)
    line = conversations_for("song-a.json", doc, ["quest"])[0].to_line()
    assert "\n" not in line
    assert line.startswith('{"conversations":[{"from":"human","value":')
    msgs = _messages(line)
    assert [m["from"] for m in msgs] == ["human", "gpt"]
    assert set(msgs[0]) == {"from", "value"}


def test_filter_lines_drops_long_conversations(nested_data):
    doc = MidiSpec.model_validate(nested_data)
    convos = conversations_for("song-a.json", doc, ["quest"])
    lines, dropped = filter_lines(convos, max_chars=100)
    assert lines == []
    assert dropped == ["song-a.json"] * 4

    lines, dropped = filter_lines(convos, max_chars=409600)
    assert len(lines) == 4 and dropped == []


def test_build_dataset(library):
    result = build_dataset(library, DESCRIPTIONS, example_file="example.json", max_chars=409600)
    # song-a only: example is held out, song-b has no description, broken.json is skipped
    assert len(result.lines) == 4
    assert result.example_file == "example.json"
    assert result.skipped_songs == ["song-b.json"]
    assert result.filtered == []

    humans = [_messages(line)[0]["value"] for line in result.lines]
    assert humans[0].endswith("slow intro, quest")


def test_build_dataset_default_example(library):
    result = build_dataset(library, DESCRIPTIONS, max_chars=409600)
    # first loadable file in name order (broken.json is not JSON)
    assert result.example_file == "example.json"
    assert len(result.lines) == 4


def test_build_dataset_empty_library(tmp_path):
    with pytest.raises(ValueError):
        build_dataset(tmp_path, {}, max_chars=409600)


def test_system_prompt(nested_data):
    text = system_prompt(MidiSpec.model_validate(nested_data))
    assert text.startswith("You're an excellent composer of MIDI-style music.")
    assert "type SimpleMidiSpec = {" in text
    assert "\n\nFor example: {" in text
    assert text.endswith("\n")


def test_write_dataset(library, tmp_path):
    result = build_dataset(library, DESCRIPTIONS, example_file="example.json", max_chars=409600)
    dataset_path, prompt_path = write_dataset(result, tmp_path / "out")
    assert dataset_path.name == DATASET_FILE
    assert prompt_path.name == SYSTEM_PROMPT_FILE
    assert len(dataset_path.read_text(encoding="utf-8").split("\n")) == 4
    assert prompt_path.read_text(encoding="utf-8") == result.system_prompt


def test_load_descriptions(tmp_path):
    p = tmp_path / "descriptions.json"
    p.write_text(json.dumps(DESCRIPTIONS), encoding="utf-8")
    assert load_descriptions(p) == DESCRIPTIONS

    with pytest.raises(FileNotFoundError):
        load_descriptions(tmp_path / "missing.json")


def test_library_helpers(library):
    assert list_music_files(library) == ["broken.json", "example.json", "song-a.json", "song-b.json"]
    assert [name for name, _ in iter_songs(library, exclude=["example.json"])] == ["song-a.json", "song-b.json"]
    assert song_id("song-a.json") == "song-a"

    with pytest.raises(ValueError):
        resolve_music_file(library, "../secret.json")
    with pytest.raises(FileNotFoundError):
        resolve_music_file(library, "missing.json")
