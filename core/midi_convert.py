"""
core.midi_convert

Nested <-> Flat conversion of MIDI JSON documents.

Nested (MidiSpec): tracks own their notes / pitch bends / control changes.
Flat (SimpleMidiSpec): one stream of tagged events ordered by ticks, plus
track definitions the events point at.

Both directions are pure: inputs are never touched, outputs are new trees.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import DefaultDict, Dict, Iterable, List, Sequence, Tuple, TypeVar, Union

from core.midi_constants import is_percussion_channel
from core.midi_models import (
    ControlChange,
    ControlChanges,
    ControlChangeStreamEvent,
    Header,
    HeaderBase,
    Instrument,
    KeySignatureEvent,
    KeyStreamEvent,
    MidiSpec,
    Note,
    NoteStreamEvent,
    PitchBend,
    PitchBendStreamEvent,
    SimpleMidiSpec,
    TempoEvent,
    TempoStreamEvent,
    TimeSignatureEvent,
    TimeStreamEvent,
    Track,
    TrackDefinition,
)

logger = logging.getLogger(__name__)

# Tie-break for events sharing a tick: context (meter / tempo / key) before sound.
STREAM_PRIORITY: Dict[str, int] = {
    "time": 0,
    "tempo": 1,
    "key": 2,
    "cc": 3,
    "pb": 4,
    "note": 5,
}

TempoT = TypeVar("TempoT", TempoEvent, TempoStreamEvent)

FlatEvent = Union[
    TimeStreamEvent,
    KeyStreamEvent,
    TempoStreamEvent,
    ControlChangeStreamEvent,
    PitchBendStreamEvent,
    NoteStreamEvent,
]


def with_derived_percussion(instrument: Instrument, channel: int) -> Instrument:
    """Channel decides percussion; whatever the instrument said is ignored."""
    return instrument.model_copy(update={"percussion": is_percussion_channel(channel)})


def dedupe_tempos(tempos: Iterable[TempoT]) -> Tuple[TempoT, ...]:
    """
    Sort by ticks and drop redundant tempo changes:
    an entry is skipped when it repeats the last kept bpm or lands on the
    last kept tick.
    """
    kept: List[TempoT] = []
    last = None
    for tempo in sorted(tempos, key=lambda t: t.ticks):
        if last is not None and (tempo.bpm == last.bpm or tempo.ticks == last.ticks):
            continue
        kept.append(tempo)
        last = tempo
    return tuple(kept)


def sort_stream(events: Iterable[FlatEvent]) -> Tuple[FlatEvent, ...]:
    """Stable sort by (ticks, type priority)."""
    return tuple(sorted(events, key=lambda e: (e.ticks, STREAM_PRIORITY[e.type])))


def is_stream_ordered(events: Sequence[FlatEvent]) -> bool:
    keys = [(e.ticks, STREAM_PRIORITY[e.type]) for e in events]
    return all(a <= b for a, b in zip(keys, keys[1:]))


# -----------------------------
# Nested -> Flat
# -----------------------------
def _track_events(track: Track, track_id: int) -> List[FlatEvent]:
    events: List[FlatEvent] = []
    for number, changes in track.controlChanges.by_number().items():
        for cc in changes:
            events.append(
                ControlChangeStreamEvent(type="cc", track=track_id, number=number, ticks=cc.ticks, value=cc.value)
            )
    for bend in track.pitchBends:
        events.append(PitchBendStreamEvent(type="pb", track=track_id, ticks=bend.ticks, value=bend.value))
    for note in track.notes:
        events.append(NoteStreamEvent(type="note", track=track_id, **note.model_dump(exclude_none=True)))
    return events


def nested_to_flat(doc: MidiSpec) -> SimpleMidiSpec:
    header = doc.header
    definitions: List[TrackDefinition] = []
    events: List[FlatEvent] = []

    for track in doc.tracks:
        # silent tracks carry nothing playable
        if not track.notes:
            continue
        track_id = len(definitions)
        definitions.append(
            TrackDefinition(
                id=track_id,
                channel=track.channel,
                instrument=with_derived_percussion(track.instrument, track.channel),
            )
        )
        events.extend(_track_events(track, track_id))

    for ts in header.timeSignatures:
        events.append(TimeStreamEvent(type="time", ticks=ts.ticks, timeSignature=ts.timeSignature, measures=ts.measures))
    for ks in header.keySignatures:
        events.append(KeyStreamEvent(type="key", ticks=ks.ticks, key=ks.key, scale=ks.scale))

    tempos = dedupe_tempos(header.tempos)
    for tempo in tempos:
        events.append(TempoStreamEvent(type="tempo", ticks=tempo.ticks, bpm=tempo.bpm, time=tempo.time))

    dropped_tracks = len(doc.tracks) - len(definitions)
    dropped_tempos = len(header.tempos) - len(tempos)
    if dropped_tracks or dropped_tempos:
        logger.debug("nested_to_flat: dropped %d empty tracks, %d redundant tempos", dropped_tracks, dropped_tempos)

    return SimpleMidiSpec(
        header=HeaderBase(name=header.name, ppq=header.ppq),
        trackDefinitions=tuple(definitions),
        stream=sort_stream(events),
    )


# -----------------------------
# Flat -> Nested
# -----------------------------
def flat_to_nested(doc: SimpleMidiSpec) -> MidiSpec:
    time_signatures: List[TimeSignatureEvent] = []
    key_signatures: List[KeySignatureEvent] = []
    tempos: List[TempoEvent] = []

    notes: DefaultDict[int, List[Note]] = defaultdict(list)
    bends: DefaultDict[int, List[PitchBend]] = defaultdict(list)
    changes: DefaultDict[int, DefaultDict[int, List[ControlChange]]] = defaultdict(lambda: defaultdict(list))

    for event in doc.stream:
        if event.type == "time":
            time_signatures.append(
                TimeSignatureEvent(ticks=event.ticks, timeSignature=event.timeSignature, measures=event.measures)
            )
        elif event.type == "tempo":
            tempos.append(TempoEvent(ticks=event.ticks, bpm=event.bpm, time=event.time))
        elif event.type == "key":
            key_signatures.append(KeySignatureEvent(ticks=event.ticks, key=event.key, scale=event.scale))
        elif event.type == "cc":
            changes[event.track][event.number].append(
                ControlChange(number=event.number, ticks=event.ticks, value=event.value)
            )
        elif event.type == "pb":
            bends[event.track].append(PitchBend(ticks=event.ticks, value=event.value))
        elif event.type == "note":
            notes[event.track].append(Note(**event.model_dump(exclude={"type", "track"}, exclude_none=True)))

    tracks: List[Track] = []
    for definition in doc.trackDefinitions:
        groups = changes.get(definition.id, {})
        tracks.append(
            Track(
                # names do not survive the flat format
                name="",
                channel=definition.channel,
                instrument=with_derived_percussion(definition.instrument, definition.channel),
                pitchBends=tuple(bends.get(definition.id, ())),
                notes=tuple(notes.get(definition.id, ())),
                controlChanges=ControlChanges.from_numbers({n: groups[n] for n in sorted(groups)}),
            )
        )

    known = {d.id for d in doc.trackDefinitions}
    orphans = sum(len(v) for owner, v in notes.items() if owner not in known)
    orphans += sum(len(v) for owner, v in bends.items() if owner not in known)
    orphans += sum(len(v) for owner, g in changes.items() if owner not in known for v in g.values())
    if orphans:
        logger.debug("flat_to_nested: %d events reference unknown tracks and were dropped", orphans)

    header = Header(
        name=doc.header.name,
        ppq=doc.header.ppq,
        tempos=dedupe_tempos(tempos),
        timeSignatures=tuple(time_signatures),
        keySignatures=tuple(key_signatures),
    )
    return MidiSpec(header=header, tracks=tuple(tracks))
