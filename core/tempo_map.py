"""
core.tempo_map

Tick -> seconds conversion over a piecewise-constant tempo table.

Lookups use each tempo entry's precomputed ``time`` (seconds at the entry).
When no entry applies, or the applying entry has no ``time``, the position
is measured at 120 BPM from tick 0; intermediate tempo changes are not
integrated in that case. ``annotate_tempo_times`` is the explicit way to fill
in ``time`` values.
"""

from __future__ import annotations

from bisect import bisect_right
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from core.midi_constants import DEFAULT_BPM
from core.midi_models import MidiSpec, SimpleMidiSpec, TempoEvent, TempoStreamEvent

TempoEntry = Union[TempoEvent, TempoStreamEvent]
TempoSource = Union["TempoMap", MidiSpec, SimpleMidiSpec, Iterable[Union[TempoEntry, Mapping[str, Any]]]]


def _as_tempo(entry: Union[TempoEntry, Mapping[str, Any]]) -> TempoEntry:
    if isinstance(entry, Mapping):
        return TempoEvent.model_validate(entry)
    return entry


class TempoMap:
    """Tempo entries sorted by ticks (stable, so same-tick entries keep their order)."""

    def __init__(self, tempos: Iterable[Union[TempoEntry, Mapping[str, Any]]], ppq: int):
        if int(ppq) <= 0:
            raise ValueError(f"ppq must be > 0, got {ppq}")
        self.ppq = int(ppq)
        self.tempos: Tuple[TempoEntry, ...] = tuple(sorted((_as_tempo(t) for t in tempos), key=lambda t: t.ticks))
        for tempo in self.tempos:
            if tempo.bpm <= 0:
                raise ValueError(f"bpm must be > 0, got {tempo.bpm} at tick {tempo.ticks}")
        self._ticks: List[float] = [t.ticks for t in self.tempos]

    @classmethod
    def from_document(cls, doc: Union[MidiSpec, SimpleMidiSpec]) -> "TempoMap":
        if isinstance(doc, SimpleMidiSpec):
            return cls([e for e in doc.stream if e.type == "tempo"], doc.header.ppq)
        return cls(doc.header.tempos, doc.header.ppq)

    def __len__(self) -> int:
        return len(self.tempos)

    def search(self, ticks: float) -> int:
        """Index of the last entry with ``entry.ticks <= ticks``, or -1."""
        n = len(self._ticks)
        if n and self._ticks[-1] <= ticks:
            return n - 1
        return bisect_right(self._ticks, ticks) - 1

    def seconds_at(self, ticks: float) -> float:
        index = self.search(ticks)
        if index != -1:
            tempo = self.tempos[index]
            if tempo.time is not None:
                elapsed_beats = (ticks - tempo.ticks) / self.ppq
                return float(tempo.time + (60.0 / tempo.bpm) * elapsed_beats)

        # no usable entry: 120 BPM from tick 0
        return (60.0 / DEFAULT_BPM) * (ticks / self.ppq)

    def duration_seconds(self, start_ticks: float, duration_ticks: float) -> float:
        start = self.seconds_at(start_ticks)
        return self.seconds_at(start_ticks + duration_ticks) - start


def tempo_map_for(source: TempoSource, ppq: Optional[int] = None) -> TempoMap:
    if isinstance(source, TempoMap):
        return source
    if isinstance(source, (MidiSpec, SimpleMidiSpec)):
        return TempoMap.from_document(source)
    if ppq is None:
        raise ValueError("ppq is required when converting with a bare tempo table")
    return TempoMap(source, ppq)


def seconds_at_tick(source: TempoSource, ticks: float, *, ppq: Optional[int] = None) -> float:
    return tempo_map_for(source, ppq).seconds_at(ticks)


def note_duration_seconds(
    source: TempoSource,
    start_ticks: float,
    duration_ticks: float,
    *,
    ppq: Optional[int] = None,
) -> float:
    return tempo_map_for(source, ppq).duration_seconds(start_ticks, duration_ticks)


def annotate_tempo_times(tempos: Sequence[TempoEntry], ppq: int) -> Tuple[TempoEntry, ...]:
    """
    Return the tempos sorted by ticks with ``time`` filled in by integrating
    every preceding segment. The first entry is timed at its own bpm.
    """
    if ppq <= 0:
        raise ValueError(f"ppq must be > 0, got {ppq}")
    ordered = sorted(tempos, key=lambda t: t.ticks)
    out: List[TempoEntry] = []
    current_time = 0.0
    last_beats = 0.0
    for index, tempo in enumerate(ordered):
        last_bpm = ordered[index - 1].bpm if index > 0 else tempo.bpm
        beats = tempo.ticks / ppq - last_beats
        current_time += (60.0 / last_bpm) * beats
        last_beats += beats
        out.append(tempo.model_copy(update={"time": current_time}))
    return tuple(out)
