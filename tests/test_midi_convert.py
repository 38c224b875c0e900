from __future__ import annotations

from core.midi_convert import (
    STREAM_PRIORITY,
    dedupe_tempos,
    flat_to_nested,
    is_stream_ordered,
    nested_to_flat,
    sort_stream,
)
from core.midi_models import MidiSpec, SimpleMidiSpec, TempoEvent, dump_document


def _nested(data) -> MidiSpec:
    return MidiSpec.model_validate(data)


def test_nested_to_flat_shape(nested_data):
    flat = nested_to_flat(_nested(nested_data))
    assert isinstance(flat, SimpleMidiSpec)
    assert [d.id for d in flat.trackDefinitions] == [0, 1]
    assert [d.channel for d in flat.trackDefinitions] == [0, 9]

    types = [e.type for e in flat.stream]
    assert types.count("note") == 3
    assert types.count("cc") == 2
    assert types.count("pb") == 1
    assert types.count("tempo") == 2

    cc = [e for e in flat.stream if e.type == "cc"]
    assert {(e.track, e.number) for e in cc} == {(0, 7), (0, 64)}


def test_stream_is_ordered_by_ticks_then_priority(nested_data):
    flat = nested_to_flat(_nested(nested_data))
    assert is_stream_ordered(flat.stream)
    # context events first at tick 0
    assert [e.type for e in flat.stream[:3]] == ["time", "tempo", "key"]
    keys = [(e.ticks, STREAM_PRIORITY[e.type]) for e in flat.stream]
    assert keys == sorted(keys)


def test_all_event_kinds_on_one_tick(nested_data):
    nested_data["tracks"][0]["pitchBends"].insert(0, {"ticks": 0, "value": 0.25})
    flat = nested_to_flat(_nested(nested_data))
    at_zero = [e.type for e in flat.stream if e.ticks == 0]
    assert at_zero == ["time", "tempo", "key", "cc", "pb", "note", "note"]

    resorted = sort_stream(list(reversed(flat.stream)))
    assert [e.type for e in resorted if e.ticks == 0] == at_zero


def test_sort_stream_is_stable(flat_data):
    doc = SimpleMidiSpec.model_validate(flat_data)
    notes_at_zero = [e for e in doc.stream if e.type == "note" and e.ticks == 0]
    shuffled = list(reversed(doc.stream))
    again = [e for e in sort_stream(shuffled) if e.type == "note" and e.ticks == 0]
    # equal keys keep their relative (reversed) order
    assert again == list(reversed(notes_at_zero))


def test_round_trip_nested_flat_nested(nested_data):
    doc = _nested(nested_data)
    back = flat_to_nested(nested_to_flat(doc))
    assert dump_document(back) == dump_document(doc)


def test_flat_conversion_is_idempotent(nested_data):
    flat1 = nested_to_flat(_nested(nested_data))
    flat2 = nested_to_flat(flat_to_nested(flat1))
    assert dump_document(flat2) == dump_document(flat1)


def test_empty_tracks_are_elided(nested_data):
    silent = {
        "name": "conductor",
        "channel": 3,
        "instrument": {"family": "organ", "name": "church organ"},
        "pitchBends": [{"ticks": 0, "value": 0.1}],
        "notes": [],
    }
    nested_data["tracks"].insert(0, silent)
    flat = nested_to_flat(_nested(nested_data))
    assert [d.id for d in flat.trackDefinitions] == [0, 1]
    assert [d.channel for d in flat.trackDefinitions] == [0, 9]
    # the silent track's bend is gone too
    assert len([e for e in flat.stream if e.type == "pb"]) == 1


def test_orphan_events_are_dropped(flat_data):
    flat_data["stream"].append(
        {"type": "note", "track": 7, "midi": 70, "ticks": 2000, "name": "A#4", "velocity": 0.5, "durationTicks": 10}
    )
    flat_data["stream"].append({"type": "pb", "track": 7, "ticks": 2000, "value": 0})
    nested = flat_to_nested(SimpleMidiSpec.model_validate(flat_data))
    assert len(nested.tracks) == 2
    assert all(n.midi != 70 for t in nested.tracks for n in t.notes)


def test_definition_without_events_gives_empty_track(flat_data):
    flat_data["trackDefinitions"].append(
        {"id": 5, "channel": 2, "instrument": {"family": "bass", "name": "fretless bass"}}
    )
    nested = flat_to_nested(SimpleMidiSpec.model_validate(flat_data))
    assert len(nested.tracks) == 3
    last = nested.tracks[-1]
    assert last.notes == () and last.pitchBends == ()
    assert last.controlChanges.by_number() == {}
    assert last.name == ""


def test_percussion_follows_channel(nested_data):
    nested_data["tracks"][1]["instrument"]["percussion"] = False
    nested_data["tracks"][0]["instrument"]["percussion"] = True
    flat = nested_to_flat(_nested(nested_data))
    assert flat.trackDefinitions[0].instrument.percussion is False
    assert flat.trackDefinitions[1].instrument.percussion is True

    flat_dict = dump_document(flat)
    flat_dict["trackDefinitions"][0]["channel"] = 10
    nested = flat_to_nested(SimpleMidiSpec.model_validate(flat_dict))
    assert nested.tracks[0].instrument.percussion is True


def test_cc_number_comes_from_map_key(nested_data):
    # event body disagrees with the key it is filed under
    nested_data["tracks"][0]["controlChanges"]["7"][0]["number"] = 10
    flat = nested_to_flat(_nested(nested_data))
    numbers = {e.number for e in flat.stream if e.type == "cc"}
    assert numbers == {7, 64}


def test_names_and_end_of_track_do_not_survive_flat(nested_data):
    nested_data["tracks"][0]["name"] = "Piano"
    nested_data["tracks"][0]["endOfTrackTicks"] = 1440
    back = flat_to_nested(nested_to_flat(_nested(nested_data)))
    assert back.tracks[0].name == ""
    assert back.tracks[0].endOfTrackTicks is None


def test_dedupe_tempos():
    tempos = [
        TempoEvent(ticks=480, bpm=120),
        TempoEvent(ticks=0, bpm=120),
        TempoEvent(ticks=0, bpm=100),
        TempoEvent(ticks=960, bpm=90),
        TempoEvent(ticks=1440, bpm=90),
    ]
    kept = dedupe_tempos(tempos)
    assert [(t.ticks, t.bpm) for t in kept] == [(0, 120), (960, 90)]
    # idempotent
    assert dedupe_tempos(kept) == kept
    assert dedupe_tempos([]) == ()


def test_redundant_header_tempos_removed_in_flat(nested_data):
    nested_data["header"]["tempos"].append({"ticks": 1920, "bpm": 90, "time": 2.333})
    flat = nested_to_flat(_nested(nested_data))
    assert len([e for e in flat.stream if e.type == "tempo"]) == 2


def test_inputs_are_left_alone(nested_data):
    doc = _nested(nested_data)
    before = dump_document(doc)
    nested_to_flat(doc)
    assert dump_document(doc) == before
