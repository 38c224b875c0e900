from __future__ import annotations

import math
from typing import Annotated, Any, Callable, Dict, FrozenSet, Literal, Mapping, Optional, Sequence, Tuple, Union

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    PlainValidator,
    StrictBool,
    StrictInt,
    StrictStr,
    WithJsonSchema,
)

from core.midi_constants import (
    CONTROL_CHANGE_NAMES,
    CONTROL_CHANGE_NUMBERS,
    FAMILIES,
    INSTRUMENT_FAMILIES,
    INSTRUMENT_NAMES,
    KEY_SPELLINGS,
    KEYS,
)


# =========================
# Scalar types
# =========================
def _strict_number(value: Any) -> Union[int, float]:
    # JSON number: int or float as given, never a bool, a numeric string or NaN/Infinity
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("number")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError("finite number")
    return value


def _unit_interval(value: Union[int, float]) -> Union[int, float]:
    if not 0 <= value <= 1:
        raise ValueError("number between 0 and 1")
    return value


def _member_of(values: FrozenSet[Any], label: str) -> Callable[[Any], Any]:
    def check(value: Any) -> Any:
        if value not in values:
            raise ValueError(f"valid {label}")
        return value

    return check


Number = Annotated[Union[int, float], PlainValidator(_strict_number), WithJsonSchema({"type": "number"})]
UnitNumber = Annotated[Number, AfterValidator(_unit_interval)]
TimeSignature = Annotated[Tuple[Number, ...], Field(min_length=2, max_length=2)]
ProgramNumber = Annotated[StrictInt, Field(ge=0, le=127)]

KeyName = Annotated[
    StrictStr,
    AfterValidator(_member_of(KEYS, "key")),
    WithJsonSchema({"type": "string", "enum": list(dict.fromkeys(KEY_SPELLINGS))}),
]
InstrumentFamily = Annotated[
    StrictStr,
    AfterValidator(_member_of(FAMILIES, "instrument family")),
    WithJsonSchema({"type": "string", "enum": list(INSTRUMENT_FAMILIES)}),
]
InstrumentName = Annotated[
    StrictStr,
    AfterValidator(_member_of(INSTRUMENT_NAMES, "instrument name")),
    WithJsonSchema({"type": "string", "enum": sorted(INSTRUMENT_NAMES)}),
]
ControlChangeNumber = Annotated[
    Number,
    AfterValidator(_member_of(CONTROL_CHANGE_NUMBERS, "control change number")),
    WithJsonSchema({"type": "number", "enum": sorted(CONTROL_CHANGE_NUMBERS)}),
]


class _SpecModel(BaseModel):
    """
    Base for every wire-format model:
    - unknown fields are dropped (slice semantics)
    - instances are immutable
    """
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)


# =========================
# Header
# =========================
class TempoEvent(_SpecModel):
    ticks: Number
    bpm: Number
    time: Optional[Number] = None


class TimeSignatureEvent(_SpecModel):
    ticks: Number
    timeSignature: TimeSignature
    measures: Optional[Number] = None


class KeySignatureEvent(_SpecModel):
    ticks: Number
    key: KeyName
    scale: StrictStr


class HeaderBase(_SpecModel):
    """Name + resolution; the whole header of the flat format."""
    name: StrictStr
    ppq: StrictInt = Field(..., gt=0, description="Pulses per quarter note")


class HeaderTiming(_SpecModel):
    tempos: Tuple[TempoEvent, ...]
    timeSignatures: Tuple[TimeSignatureEvent, ...]
    keySignatures: Tuple[KeySignatureEvent, ...]


class Header(HeaderBase, HeaderTiming):
    """Nested-format header: the base header joined with the timing lists."""


# =========================
# Tracks (nested format)
# =========================
class Instrument(_SpecModel):
    family: InstrumentFamily
    name: InstrumentName
    number: Optional[ProgramNumber] = None
    percussion: Optional[StrictBool] = None


class PitchBend(_SpecModel):
    ticks: Number
    value: Number


class ControlChange(_SpecModel):
    number: Number
    ticks: Number
    value: UnitNumber


class Note(_SpecModel):
    midi: Number
    ticks: Number
    name: StrictStr
    pitch: Optional[StrictStr] = None
    octave: Optional[Number] = None
    velocity: UnitNumber
    durationTicks: Number


ControlChangeList = Tuple[ControlChange, ...]


class ControlChanges(_SpecModel):
    """Partial map from CC number (JSON key) to its events."""
    modulationWheel: Optional[ControlChangeList] = Field(None, alias="1")
    breath: Optional[ControlChangeList] = Field(None, alias="2")
    footController: Optional[ControlChangeList] = Field(None, alias="4")
    portamentoTime: Optional[ControlChangeList] = Field(None, alias="5")
    volume: Optional[ControlChangeList] = Field(None, alias="7")
    balance: Optional[ControlChangeList] = Field(None, alias="8")
    pan: Optional[ControlChangeList] = Field(None, alias="10")
    sustain: Optional[ControlChangeList] = Field(None, alias="64")
    portamento: Optional[ControlChangeList] = Field(None, alias="65")
    sostenuto: Optional[ControlChangeList] = Field(None, alias="66")
    softPedal: Optional[ControlChangeList] = Field(None, alias="67")
    legatoFootswitch: Optional[ControlChangeList] = Field(None, alias="68")
    portamentoControl: Optional[ControlChangeList] = Field(None, alias="84")

    def by_number(self) -> Dict[int, ControlChangeList]:
        """Present CC lists keyed by CC number, ascending."""
        out: Dict[int, ControlChangeList] = {}
        for number, field_name in CONTROL_CHANGE_NAMES.items():
            events = getattr(self, field_name)
            if events is not None:
                out[number] = events
        return out

    @classmethod
    def from_numbers(cls, groups: Mapping[int, Sequence[ControlChange]]) -> "ControlChanges":
        return cls(**{CONTROL_CHANGE_NAMES[n]: tuple(events) for n, events in groups.items()})


class Track(_SpecModel):
    name: StrictStr
    channel: StrictInt
    endOfTrackTicks: Optional[StrictInt] = None
    instrument: Instrument
    pitchBends: Tuple[PitchBend, ...]
    notes: Tuple[Note, ...]
    controlChanges: ControlChanges = Field(default_factory=ControlChanges)


class MidiSpec(_SpecModel):
    """Nested document: tracks own their notes / bends / CCs, timing in ticks."""
    header: Header
    tracks: Tuple[Track, ...]


# =========================
# Flat format
# =========================
class TrackDefinition(_SpecModel):
    id: StrictInt
    channel: StrictInt
    instrument: Instrument


class TimeStreamEvent(_SpecModel):
    type: Literal["time"]
    ticks: Number
    timeSignature: TimeSignature
    measures: Optional[Number] = None


class KeyStreamEvent(_SpecModel):
    type: Literal["key"]
    ticks: Number
    key: KeyName
    scale: StrictStr


class TempoStreamEvent(_SpecModel):
    type: Literal["tempo"]
    ticks: Number
    bpm: Number
    time: Optional[Number] = None


class ControlChangeStreamEvent(_SpecModel):
    type: Literal["cc"]
    track: StrictInt
    number: ControlChangeNumber
    ticks: Number
    value: UnitNumber


class PitchBendStreamEvent(_SpecModel):
    type: Literal["pb"]
    track: StrictInt
    ticks: Number
    value: Number


class NoteStreamEvent(_SpecModel):
    type: Literal["note"]
    track: StrictInt
    midi: Number
    ticks: Number
    name: StrictStr
    pitch: Optional[StrictStr] = None
    octave: Optional[Number] = None
    velocity: UnitNumber
    durationTicks: Number


StreamEvent = Annotated[
    Union[
        TimeStreamEvent,
        KeyStreamEvent,
        TempoStreamEvent,
        ControlChangeStreamEvent,
        PitchBendStreamEvent,
        NoteStreamEvent,
    ],
    Field(discriminator="type"),
]

StreamEventType = Literal["time", "tempo", "key", "cc", "pb", "note"]


class SimpleMidiSpec(_SpecModel):
    """Flat document: one chronologically ordered stream of tagged events."""
    header: HeaderBase
    trackDefinitions: Tuple[TrackDefinition, ...]
    stream: Tuple[StreamEvent, ...]


MidiDocument = Union[MidiSpec, SimpleMidiSpec]


def dump_document(doc: BaseModel) -> Dict[str, Any]:
    """JSON-shaped dict: wire field names, absent optionals omitted."""
    return doc.model_dump(mode="json", by_alias=True, exclude_none=True)
