from __future__ import annotations

from pathlib import Path

import mido
import pytest

from core.midi_convert import nested_to_flat
from core.midi_import import midi_to_spec, note_name
from core.midi_models import MidiSpec
from core.midi_timing import total_duration_seconds


def _write_tiny_midi(path: Path) -> Path:
    mid = mido.MidiFile(ticks_per_beat=480)

    conductor = mido.MidiTrack()
    conductor.append(mido.MetaMessage("track_name", name="Tiny", time=0))
    conductor.append(mido.MetaMessage("set_tempo", tempo=mido.bpm2tempo(120), time=0))
    conductor.append(mido.MetaMessage("time_signature", numerator=3, denominator=4, time=0))
    conductor.append(mido.MetaMessage("key_signature", key="Am", time=0))
    conductor.append(mido.MetaMessage("set_tempo", tempo=mido.bpm2tempo(60), time=960))
    mid.tracks.append(conductor)

    piano = mido.MidiTrack()
    piano.append(mido.MetaMessage("track_name", name="Piano", time=0))
    piano.append(mido.Message("program_change", program=0, channel=0, time=0))
    piano.append(mido.Message("control_change", control=7, value=127, channel=0, time=0))
    piano.append(mido.Message("control_change", control=3, value=10, channel=0, time=0))
    piano.append(mido.Message("note_on", note=60, velocity=127, channel=0, time=0))
    piano.append(mido.Message("note_off", note=60, velocity=0, channel=0, time=480))
    piano.append(mido.Message("pitchwheel", pitch=4096, channel=0, time=0))
    piano.append(mido.Message("note_on", note=64, velocity=64, channel=0, time=0))
    # velocity-0 note_on ends the note
    piano.append(mido.Message("note_on", note=64, velocity=0, channel=0, time=480))
    mid.tracks.append(piano)

    drums = mido.MidiTrack()
    drums.append(mido.Message("program_change", program=25, channel=9, time=0))
    drums.append(mido.Message("note_on", note=36, velocity=100, channel=9, time=0))
    drums.append(mido.Message("note_off", note=36, velocity=0, channel=9, time=240))
    mid.tracks.append(drums)

    mid.save(str(path))
    return path


@pytest.fixture
def tiny_midi(tmp_path) -> Path:
    return _write_tiny_midi(tmp_path / "tiny.mid")


def test_note_name():
    assert note_name(60) == ("C4", "C", 4)
    assert note_name(61) == ("C#4", "C#", 4)
    assert note_name(21) == ("A0", "A", 0)


def test_header(tiny_midi):
    spec = midi_to_spec(tiny_midi)
    assert isinstance(spec, MidiSpec)
    h = spec.header
    assert h.name == "Tiny"
    assert h.ppq == 480
    assert [(t.ticks, t.bpm) for t in h.tempos] == [(0, pytest.approx(120.0)), (960, pytest.approx(60.0))]
    assert [t.time for t in h.tempos] == pytest.approx([0.0, 1.0])
    assert h.timeSignatures[0].timeSignature == (3, 4)
    assert h.timeSignatures[0].measures == 0
    assert (h.keySignatures[0].key, h.keySignatures[0].scale) == ("A", "minor")


def test_name_override(tiny_midi):
    assert midi_to_spec(tiny_midi, name="Other").header.name == "Other"


def test_tracks(tiny_midi):
    spec = midi_to_spec(tiny_midi)
    assert len(spec.tracks) == 3
    conductor, piano, drums = spec.tracks

    assert conductor.notes == ()

    assert piano.name == "Piano"
    assert piano.channel == 0
    assert (piano.instrument.family, piano.instrument.name) == ("piano", "acoustic grand piano")
    assert piano.instrument.percussion is False
    assert piano.endOfTrackTicks == 960

    first, second = piano.notes
    assert (first.midi, first.ticks, first.durationTicks, first.name) == (60, 0, 480, "C4")
    assert first.velocity == pytest.approx(1.0)
    assert (second.midi, second.ticks, second.durationTicks) == (64, 480, 480)
    assert second.velocity == pytest.approx(64 / 127)

    assert [(b.ticks, b.value) for b in piano.pitchBends] == [(480, 0.5)]
    changes = piano.controlChanges.by_number()
    assert list(changes) == [7]
    assert changes[7][0].value == pytest.approx(1.0)

    assert drums.channel == 9
    assert drums.instrument.percussion is True
    assert (drums.instrument.family, drums.instrument.name) == ("drums", "tr-808 kit")


def test_imported_song_converts_and_times(tiny_midi):
    spec = midi_to_spec(tiny_midi)
    flat = nested_to_flat(spec)
    # the note-less conductor track is dropped
    assert len(flat.trackDefinitions) == 2
    assert total_duration_seconds(spec) == pytest.approx(1.0)


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        midi_to_spec(tmp_path / "nope.mid")


def test_unreadable_file(tmp_path):
    p = tmp_path / "bad.mid"
    p.write_bytes(b"definitely not midi")
    with pytest.raises(ValueError):
        midi_to_spec(p)
