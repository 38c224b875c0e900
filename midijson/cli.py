from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Optional

from core.config import get_settings
from core.dataset import build_dataset, load_descriptions, write_dataset
from core.midi_convert import flat_to_nested, nested_to_flat
from core.midi_import import midi_to_spec
from core.midi_models import MidiSpec, SimpleMidiSpec, dump_document
from core.midi_timing import hydrate, round_seconds, total_duration_seconds
from core.validation import MidiJsonParseError, SchemaValidationError, describe_schema, read_document


# exit codes (keep stable)
EXIT_OK = 0
EXIT_INVALID = 2
EXIT_BAD_ARGS = 5

FORMAT_CHOICES = ["nested", "flat", "auto"]


def _print_err(msg: str) -> None:
    print(msg, file=sys.stderr)


def _fmt(value: str) -> Optional[str]:
    return None if value == "auto" else value


def _emit(data: Any, out: Optional[str]) -> None:
    """JSON to --out (parents created) or stdout."""
    text = data if isinstance(data, str) else json.dumps(data, ensure_ascii=False, indent=2)
    if not out:
        print(text)
        return
    out_path = Path(out).resolve()
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(text, encoding="utf-8")
    print(str(out_path))


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="midijson", description="MIDI-like JSON tools (validate / convert / time)")
    sub = p.add_subparsers(dest="cmd", required=True)

    v = sub.add_parser("validate", help="Validate a document; print the detected format")
    v.add_argument("json_path", type=str, help="Path to MIDI JSON")
    v.add_argument("--format", default="auto", choices=FORMAT_CHOICES, help="Schema to check against")
    v.add_argument("--out", type=str, default="", help="Write the sliced document here")

    tf = sub.add_parser("to-flat", help="Nested -> flat")
    tf.add_argument("json_path", type=str, help="Path to nested MIDI JSON")
    tf.add_argument("--out", type=str, default="", help="Output .json path (default: stdout)")

    tn = sub.add_parser("to-nested", help="Flat -> nested")
    tn.add_argument("json_path", type=str, help="Path to flat MIDI JSON")
    tn.add_argument("--out", type=str, default="", help="Output .json path (default: stdout)")

    d = sub.add_parser("duration", help="Seconds until the last note ends")
    d.add_argument("json_path", type=str, help="Path to MIDI JSON (nested or flat)")

    t = sub.add_parser("timing", help="Every note / bend / CC with its time in seconds")
    t.add_argument("json_path", type=str, help="Path to MIDI JSON (nested or flat)")
    t.add_argument("--out", type=str, default="", help="Output .json path (default: stdout)")

    s = sub.add_parser("spec", help="Print the schema as TypeScript-style declarations")
    s.add_argument("--format", default="flat", choices=["nested", "flat"], help="Which document format")

    im = sub.add_parser("import-midi", help="Standard MIDI file -> MIDI JSON")
    im.add_argument("midi", type=str, help="Path to .mid")
    im.add_argument("--out", type=str, default="", help="Output .json path (default: stdout)")
    im.add_argument("--format", default="nested", choices=["nested", "flat"], help="Output format")
    im.add_argument("--name", type=str, default=None, help="Song name (default: first track name)")

    ds = sub.add_parser("dataset", help="Build chat-style training lines from a music directory")
    ds.add_argument("music_dir", type=str, help="Directory of .json songs")
    ds.add_argument("--descriptions", type=str, required=True, help='JSON file: {"song-id": ["word", ...]}')
    ds.add_argument("--out", type=str, default="", help="Output directory (default: OUTPUT_DIR)")
    ds.add_argument("--example", type=str, default=None, help="Song file shown in the system prompt")
    ds.add_argument("--max-chars", dest="max_chars", type=int, default=None, help="Drop lines longer than this")

    return p


# -------------------------------
# Commands
# -------------------------------
def cmd_validate(args: argparse.Namespace) -> int:
    doc = read_document(Path(args.json_path), _fmt(args.format))
    fmt = "flat" if isinstance(doc, SimpleMidiSpec) else "nested"
    if args.out:
        _emit(dump_document(doc), args.out)
    print(f"ok format={fmt}")
    return EXIT_OK


def cmd_to_flat(args: argparse.Namespace) -> int:
    doc = read_document(Path(args.json_path), "nested")
    _emit(dump_document(nested_to_flat(doc)), args.out)
    return EXIT_OK


def cmd_to_nested(args: argparse.Namespace) -> int:
    doc = read_document(Path(args.json_path), "flat")
    _emit(dump_document(flat_to_nested(doc)), args.out)
    return EXIT_OK


def cmd_duration(args: argparse.Namespace) -> int:
    seconds = total_duration_seconds(read_document(Path(args.json_path)))
    print(f"duration={seconds:.3f}s rounded={round_seconds(seconds)}s")
    return EXIT_OK


def cmd_timing(args: argparse.Namespace) -> int:
    timed = hydrate(read_document(Path(args.json_path)))
    _emit(timed.model_dump(mode="json"), args.out)
    return EXIT_OK


def cmd_spec(args: argparse.Namespace) -> int:
    print(describe_schema(SimpleMidiSpec if args.format == "flat" else MidiSpec))
    return EXIT_OK


def cmd_import_midi(args: argparse.Namespace) -> int:
    spec = midi_to_spec(Path(args.midi), name=args.name)
    doc = nested_to_flat(spec) if args.format == "flat" else spec
    _emit(dump_document(doc), args.out)
    return EXIT_OK


def cmd_dataset(args: argparse.Namespace) -> int:
    s = get_settings()
    music_dir = Path(args.music_dir)
    if not music_dir.is_dir():
        _print_err(f"music_dir not found: {music_dir}")
        return EXIT_BAD_ARGS

    result = build_dataset(
        music_dir,
        load_descriptions(Path(args.descriptions)),
        example_file=args.example or s.dataset_example_file,
        max_chars=args.max_chars if args.max_chars and args.max_chars > 0 else s.dataset_max_chars,
    )
    dataset_path, prompt_path = write_dataset(result, Path(args.out) if args.out else s.output_dir)
    print(f"lines={len(result.lines)} filtered={len(result.filtered)} skipped={len(result.skipped_songs)}")
    print(str(dataset_path))
    print(str(prompt_path))
    return EXIT_OK


COMMANDS = {
    "validate": cmd_validate,
    "to-flat": cmd_to_flat,
    "to-nested": cmd_to_nested,
    "duration": cmd_duration,
    "timing": cmd_timing,
    "spec": cmd_spec,
    "import-midi": cmd_import_midi,
    "dataset": cmd_dataset,
}


def main(argv: Optional[list] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    handler = COMMANDS.get(args.cmd)
    if handler is None:
        _print_err("Unknown command.")
        return EXIT_BAD_ARGS

    try:
        return handler(args)
    except SchemaValidationError as e:
        _print_err(f"invalid: {e}")
        return EXIT_INVALID
    except MidiJsonParseError as e:
        _print_err(str(e))
        return EXIT_BAD_ARGS
    except FileNotFoundError as e:
        _print_err(str(e))
        return EXIT_BAD_ARGS
    except ValueError as e:
        # unreadable MIDI, bpm <= 0, empty library ...
        _print_err(str(e))
        return EXIT_BAD_ARGS


if __name__ == "__main__":
    raise SystemExit(main())
