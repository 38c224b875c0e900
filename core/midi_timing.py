from __future__ import annotations

import math
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field

from core.midi_convert import flat_to_nested
from core.midi_models import Instrument, MidiSpec, SimpleMidiSpec
from core.tempo_map import TempoMap


class TimedNote(BaseModel):
    """A note with wall-clock placement (seconds) next to its tick placement."""
    midi: float
    name: str
    ticks: float
    durationTicks: float
    velocity: float
    time: float = Field(..., description="Start in seconds")
    duration: float = Field(..., description="Sounding length in seconds")


class TimedPitchBend(BaseModel):
    ticks: float
    value: float
    time: float


class TimedControlChange(BaseModel):
    number: int
    ticks: float
    value: float
    time: float


class TimedTrack(BaseModel):
    name: str
    channel: int
    instrument: Instrument
    notes: List[TimedNote] = Field(default_factory=list)
    pitchBends: List[TimedPitchBend] = Field(default_factory=list)
    controlChanges: Dict[int, List[TimedControlChange]] = Field(default_factory=dict)

    @property
    def duration(self) -> float:
        return max((n.time + n.duration for n in self.notes), default=0.0)


class TimedMidi(BaseModel):
    name: str
    ppq: int
    duration: float = Field(..., description="Seconds until the last note ends")
    tracks: List[TimedTrack] = Field(default_factory=list)


def _as_nested(doc: Union[MidiSpec, SimpleMidiSpec]) -> MidiSpec:
    if isinstance(doc, SimpleMidiSpec):
        return flat_to_nested(doc)
    return doc


def hydrate(doc: Union[MidiSpec, SimpleMidiSpec], tempo_map: Optional[TempoMap] = None) -> TimedMidi:
    """Attach seconds to every note, pitch bend and control change."""
    midi = _as_nested(doc)
    tm = tempo_map or TempoMap.from_document(midi)

    tracks: List[TimedTrack] = []
    for track in midi.tracks:
        notes = [
            TimedNote(
                midi=n.midi,
                name=n.name,
                ticks=n.ticks,
                durationTicks=n.durationTicks,
                velocity=n.velocity,
                time=tm.seconds_at(n.ticks),
                duration=tm.duration_seconds(n.ticks, n.durationTicks),
            )
            for n in track.notes
        ]
        bends = [TimedPitchBend(ticks=b.ticks, value=b.value, time=tm.seconds_at(b.ticks)) for b in track.pitchBends]
        changes = {
            number: [
                TimedControlChange(number=number, ticks=c.ticks, value=c.value, time=tm.seconds_at(c.ticks))
                for c in events
            ]
            for number, events in track.controlChanges.by_number().items()
        }
        tracks.append(
            TimedTrack(
                name=track.name,
                channel=track.channel,
                instrument=track.instrument,
                notes=notes,
                pitchBends=bends,
                controlChanges=changes,
            )
        )

    duration = max((t.duration for t in tracks), default=0.0)
    return TimedMidi(name=midi.header.name, ppq=midi.header.ppq, duration=duration, tracks=tracks)


def total_duration_seconds(doc: Union[MidiSpec, SimpleMidiSpec]) -> float:
    """Seconds from tick 0 until the last note stops sounding (0.0 without notes)."""
    midi = _as_nested(doc)
    tm = TempoMap.from_document(midi)
    ends = (
        tm.seconds_at(n.ticks) + tm.duration_seconds(n.ticks, n.durationTicks)
        for track in midi.tracks
        for n in track.notes
    )
    return max(ends, default=0.0)


def round_seconds(seconds: float) -> int:
    """Half-up rounding, so 2.5 s reads as 3 s."""
    return math.floor(seconds + 0.5)
