"""
core.midi_constants

Lookup tables for the MIDI JSON schemas: key spellings, General-MIDI
instrument names/families, drum kits and the control-change numbers the
schemas know about.
"""

from __future__ import annotations

from typing import Dict, FrozenSet, Tuple

# Published key list (duplicates included; membership is what matters).
KEY_SPELLINGS: Tuple[str, ...] = (
    "Cb", "Gb", "Db", "Ab", "Eb", "Bb", "F", "C", "G", "D", "A", "E", "B", "F#", "C#",
    "Ab", "Eb", "Bb", "F", "C", "G", "D", "A", "E", "B", "F#", "C#", "G#", "D#", "A#",
)
KEYS: FrozenSet[str] = frozenset(KEY_SPELLINGS)

# General-MIDI families, indexed by program // 8, plus the drum family.
INSTRUMENT_FAMILIES: Tuple[str, ...] = (
    "piano",
    "chromatic percussion",
    "organ",
    "guitar",
    "bass",
    "strings",
    "ensemble",
    "brass",
    "reed",
    "pipe",
    "synth lead",
    "synth pad",
    "synth effects",
    "world",
    "percussive",
    "sound effects",
    "drums",
)
FAMILIES: FrozenSet[str] = frozenset(INSTRUMENT_FAMILIES)

# General-MIDI program names, indexed by program number 0-127.
GM_INSTRUMENTS: Tuple[str, ...] = (
    # piano
    "acoustic grand piano", "bright acoustic piano", "electric grand piano", "honky-tonk piano",
    "electric piano 1", "electric piano 2", "harpsichord", "clavi",
    # chromatic percussion
    "celesta", "glockenspiel", "music box", "vibraphone",
    "marimba", "xylophone", "tubular bells", "dulcimer",
    # organ
    "drawbar organ", "percussive organ", "rock organ", "church organ",
    "reed organ", "accordion", "harmonica", "tango accordion",
    # guitar
    "acoustic guitar (nylon)", "acoustic guitar (steel)", "electric guitar (jazz)", "electric guitar (clean)",
    "electric guitar (muted)", "overdriven guitar", "distortion guitar", "guitar harmonics",
    # bass
    "acoustic bass", "electric bass (finger)", "electric bass (pick)", "fretless bass",
    "slap bass 1", "slap bass 2", "synth bass 1", "synth bass 2",
    # strings
    "violin", "viola", "cello", "contrabass",
    "tremolo strings", "pizzicato strings", "orchestral harp", "timpani",
    # ensemble
    "string ensemble 1", "string ensemble 2", "synthstrings 1", "synthstrings 2",
    "choir aahs", "voice oohs", "synth voice", "orchestra hit",
    # brass
    "trumpet", "trombone", "tuba", "muted trumpet",
    "french horn", "brass section", "synthbrass 1", "synthbrass 2",
    # reed
    "soprano sax", "alto sax", "tenor sax", "baritone sax",
    "oboe", "english horn", "bassoon", "clarinet",
    # pipe
    "piccolo", "flute", "recorder", "pan flute",
    "blown bottle", "shakuhachi", "whistle", "ocarina",
    # synth lead
    "lead 1 (square)", "lead 2 (sawtooth)", "lead 3 (calliope)", "lead 4 (chiff)",
    "lead 5 (charang)", "lead 6 (voice)", "lead 7 (fifths)", "lead 8 (bass + lead)",
    # synth pad
    "pad 1 (new age)", "pad 2 (warm)", "pad 3 (polysynth)", "pad 4 (choir)",
    "pad 5 (bowed)", "pad 6 (metallic)", "pad 7 (halo)", "pad 8 (sweep)",
    # synth effects
    "fx 1 (rain)", "fx 2 (soundtrack)", "fx 3 (crystal)", "fx 4 (atmosphere)",
    "fx 5 (brightness)", "fx 6 (goblins)", "fx 7 (echoes)", "fx 8 (sci-fi)",
    # world
    "sitar", "banjo", "shamisen", "koto",
    "kalimba", "bag pipe", "fiddle", "shanai",
    # percussive
    "tinkle bell", "agogo", "steel drums", "woodblock",
    "taiko drum", "melodic tom", "synth drum", "reverse cymbal",
    # sound effects
    "guitar fret noise", "breath noise", "seashore", "bird tweet",
    "telephone ring", "helicopter", "applause", "gunshot",
)

# GM2 drum kits, keyed by program number.
DRUM_KITS: Dict[int, str] = {
    0: "standard kit",
    8: "room kit",
    16: "power kit",
    24: "electronic kit",
    25: "tr-808 kit",
    32: "jazz kit",
    40: "brush kit",
    48: "orchestra kit",
    56: "sound fx kit",
}

INSTRUMENT_NAMES: FrozenSet[str] = frozenset(GM_INSTRUMENTS) | frozenset(DRUM_KITS.values())

# Control changes carried by both formats, in ascending order.
CONTROL_CHANGE_NAMES: Dict[int, str] = {
    1: "modulationWheel",
    2: "breath",
    4: "footController",
    5: "portamentoTime",
    7: "volume",
    8: "balance",
    10: "pan",
    64: "sustain",
    65: "portamento",
    66: "sostenuto",
    67: "softPedal",
    68: "legatoFootswitch",
    84: "portamentoControl",
}
CONTROL_CHANGE_NUMBERS: FrozenSet[int] = frozenset(CONTROL_CHANGE_NAMES)

PERCUSSION_CHANNELS: FrozenSet[int] = frozenset({9, 10})

DEFAULT_BPM = 120.0


def is_percussion_channel(channel: int) -> bool:
    return channel in PERCUSSION_CHANNELS


def instrument_for_program(program: int, *, percussion: bool = False) -> Tuple[str, str]:
    """Return ``(family, name)`` for a program number (0-127)."""
    program = max(0, min(127, int(program)))
    if percussion:
        return "drums", DRUM_KITS.get(program, DRUM_KITS[0])
    return INSTRUMENT_FAMILIES[program // 8], GM_INSTRUMENTS[program]
