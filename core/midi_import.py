"""
core.midi_import

Standard MIDI file -> nested MIDI JSON document (MidiSpec).

Tick-accurate via mido. Velocities and CC values are normalized to 0-1,
pitch bends to -1..1, tempo entries get their ``time`` integrated and time
signatures their ``measures``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import mido

from core.midi_constants import CONTROL_CHANGE_NUMBERS, instrument_for_program, is_percussion_channel
from core.midi_models import (
    ControlChange,
    ControlChanges,
    Header,
    Instrument,
    KeySignatureEvent,
    MidiSpec,
    Note,
    PitchBend,
    TempoEvent,
    TimeSignatureEvent,
    Track,
)
from core.tempo_map import annotate_tempo_times

logger = logging.getLogger(__name__)

PITCH_CLASSES = ("C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B")
PITCH_BEND_RANGE = 8192


def note_name(midi: int) -> Tuple[str, str, int]:
    """60 -> ("C4", "C", 4)"""
    pitch = PITCH_CLASSES[midi % 12]
    octave = midi // 12 - 1
    return f"{pitch}{octave}", pitch, octave


def _split_key(key: str) -> Tuple[str, str]:
    """mido key names: 'C', 'Am', 'F#m' -> (root, scale)"""
    if key.endswith("m"):
        return key[:-1], "minor"
    return key, "major"


def _with_measures(signatures: List[TimeSignatureEvent], ppq: int) -> Tuple[TimeSignatureEvent, ...]:
    out: List[TimeSignatureEvent] = []
    measures = 0.0
    for index, event in enumerate(signatures):
        last = signatures[index - 1] if index > 0 else signatures[0]
        numerator, denominator = last.timeSignature
        elapsed_beats = (event.ticks - last.ticks) / ppq
        measures += elapsed_beats / numerator / (denominator / 4)
        out.append(event.model_copy(update={"measures": measures}))
    return tuple(out)


def _read_track(track: mido.MidiTrack) -> Track:
    abs_tick = 0
    name = ""
    channel: Optional[int] = None
    program: Optional[int] = None
    end_of_track: Optional[int] = None

    notes: List[Tuple[int, int, Note]] = []  # (start_tick, seq, note)
    bends: List[PitchBend] = []
    changes: Dict[int, List[ControlChange]] = {}
    active: Dict[Tuple[int, int], List[Tuple[int, int, int]]] = {}  # (ch, pitch) -> [(start_tick, vel, seq)]
    seq = 0

    for msg in track:
        abs_tick += int(msg.time)

        if msg.type == "track_name" and not name:
            name = str(msg.name)
        elif msg.type == "end_of_track":
            end_of_track = abs_tick

        if msg.is_meta:
            continue
        if hasattr(msg, "channel") and channel is None:
            channel = int(msg.channel)

        if msg.type == "program_change" and program is None:
            program = int(msg.program)
        elif msg.type == "note_on" and int(msg.velocity) > 0:
            active.setdefault((int(msg.channel), int(msg.note)), []).append((abs_tick, int(msg.velocity), seq))
            seq += 1
        elif msg.type in ("note_off", "note_on"):
            pending = active.get((int(msg.channel), int(msg.note)))
            if not pending:
                continue
            start_tick, vel, order = pending.pop(0)
            full, pitch, octave = note_name(int(msg.note))
            notes.append(
                (
                    start_tick,
                    order,
                    Note(
                        midi=int(msg.note),
                        ticks=start_tick,
                        name=full,
                        pitch=pitch,
                        octave=octave,
                        velocity=vel / 127,
                        durationTicks=abs_tick - start_tick,
                    ),
                )
            )
        elif msg.type == "pitchwheel":
            bends.append(PitchBend(ticks=abs_tick, value=int(msg.pitch) / PITCH_BEND_RANGE))
        elif msg.type == "control_change" and int(msg.control) in CONTROL_CHANGE_NUMBERS:
            number = int(msg.control)
            changes.setdefault(number, []).append(ControlChange(number=number, ticks=abs_tick, value=int(msg.value) / 127))

    channel = channel if channel is not None else 0
    percussion = is_percussion_channel(channel)
    family, instrument_name = instrument_for_program(program or 0, percussion=percussion)

    # stable sort by (start, seq) so ties keep original order
    notes.sort(key=lambda x: (x[0], x[1]))

    return Track(
        name=name,
        channel=channel,
        endOfTrackTicks=end_of_track,
        instrument=Instrument(family=family, name=instrument_name, number=program or 0, percussion=percussion),
        pitchBends=tuple(bends),
        notes=tuple(n for _, _, n in notes),
        controlChanges=ControlChanges.from_numbers({n: changes[n] for n in sorted(changes)}),
    )


def midi_to_spec(midi_path: Path, *, name: Optional[str] = None) -> MidiSpec:
    """
    MIDI -> MidiSpec (tick-based). Every track of the file becomes a track of
    the document, including note-less conductor tracks.
    """
    midi_path = Path(midi_path)
    if not midi_path.exists() or not midi_path.is_file():
        raise FileNotFoundError(f"midi_path not found: {midi_path}")

    try:
        mid = mido.MidiFile(str(midi_path))
    except (OSError, EOFError, ValueError, KeyError) as e:
        raise ValueError(f"Unreadable MIDI file: {midi_path} ({e})") from e

    ppq = int(getattr(mid, "ticks_per_beat", 480) or 480)

    # global meta events (with absolute tick), collected from every track
    tempos: List[TempoEvent] = []
    signatures: List[TimeSignatureEvent] = []
    keys: List[KeySignatureEvent] = []
    header_name = ""

    for index, tr in enumerate(mid.tracks):
        abs_tick = 0
        for msg in tr:
            abs_tick += int(msg.time)
            if msg.type == "set_tempo":
                tempos.append(TempoEvent(ticks=abs_tick, bpm=float(mido.tempo2bpm(msg.tempo))))
            elif msg.type == "time_signature":
                signatures.append(
                    TimeSignatureEvent(ticks=abs_tick, timeSignature=(int(msg.numerator), int(msg.denominator)))
                )
            elif msg.type == "key_signature":
                root, scale = _split_key(str(msg.key))
                keys.append(KeySignatureEvent(ticks=abs_tick, key=root, scale=scale))
            elif msg.type == "track_name" and index == 0 and not header_name:
                header_name = str(msg.name)

    signatures.sort(key=lambda e: e.ticks)
    keys.sort(key=lambda e: e.ticks)

    tracks = [_read_track(tr) for tr in mid.tracks]
    logger.debug(
        "imported %s: ppq=%d tracks=%d tempos=%d notes=%d",
        midi_path.name,
        ppq,
        len(tracks),
        len(tempos),
        sum(len(t.notes) for t in tracks),
    )

    header = Header(
        name=name if name is not None else header_name,
        ppq=ppq,
        tempos=annotate_tempo_times(tempos, ppq),
        timeSignatures=_with_measures(signatures, ppq),
        keySignatures=tuple(keys),
    )
    return MidiSpec(header=header, tracks=tuple(tracks))
