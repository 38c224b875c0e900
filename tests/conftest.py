from __future__ import annotations

import copy
from typing import Any, Dict

import pytest

# ppq 480; 120 bpm until tick 960 (1.0 s), then 90 bpm
SAMPLE_NESTED: Dict[str, Any] = {
    "header": {
        "name": "",
        "ppq": 480,
        "tempos": [
            {"ticks": 0, "bpm": 120, "time": 0},
            {"ticks": 960, "bpm": 90, "time": 1.0},
        ],
        "timeSignatures": [{"ticks": 0, "timeSignature": [4, 4], "measures": 0}],
        "keySignatures": [{"ticks": 0, "key": "C", "scale": "major"}],
    },
    "tracks": [
        {
            "name": "",
            "channel": 0,
            "instrument": {"family": "piano", "name": "acoustic grand piano", "number": 0, "percussion": False},
            "pitchBends": [{"ticks": 240, "value": 0.5}],
            "notes": [
                {"midi": 60, "ticks": 0, "name": "C4", "velocity": 0.8, "durationTicks": 480},
                {"midi": 64, "ticks": 480, "name": "E4", "velocity": 0.5, "durationTicks": 960},
            ],
            "controlChanges": {
                "7": [{"number": 7, "ticks": 0, "value": 1}],
                "64": [{"number": 64, "ticks": 480, "value": 1}],
            },
        },
        {
            "name": "",
            "channel": 9,
            "instrument": {"family": "drums", "name": "standard kit", "percussion": True},
            "pitchBends": [],
            "notes": [{"midi": 36, "ticks": 0, "name": "C2", "velocity": 1, "durationTicks": 120}],
            "controlChanges": {},
        },
    ],
}


@pytest.fixture
def nested_data() -> Dict[str, Any]:
    """A nested document (plain JSON data) that survives a nested -> flat -> nested round trip."""
    return copy.deepcopy(SAMPLE_NESTED)


@pytest.fixture
def flat_data(nested_data) -> Dict[str, Any]:
    from core.midi_convert import nested_to_flat
    from core.midi_models import MidiSpec, dump_document

    return dump_document(nested_to_flat(MidiSpec.model_validate(nested_data)))
