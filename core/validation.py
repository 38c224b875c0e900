"""
core.validation

Structural validation of untrusted MIDI JSON against the canonical schemas.

Three ways to apply a schema (any pydantic model or type expression):
- validate(): typed value, or SchemaValidationError on the first bad field
- slice_json(): JSON-shaped copy holding only the declared fields
- guard(): membership test, never raises

Malformed JSON text is a MidiJsonParseError, never a validation error.
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Sequence, Tuple, Type, Union, get_args

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from core.midi_models import MidiDocument, MidiSpec, SimpleMidiSpec, StreamEventType, dump_document

logger = logging.getLogger(__name__)

DocumentFormat = Literal["nested", "flat"]

_JSON_TYPE_NAMES = {
    dict: "object",
    list: "array",
    tuple: "array",
    str: "string",
    bool: "boolean",
    int: "number",
    float: "number",
    type(None): "null",
}

# pydantic type-error codes -> the JSON type the schema wanted
_EXPECTED_TYPES = {
    "string_type": "string",
    "int_type": "integer",
    "float_type": "number",
    "bool_type": "boolean",
    "dict_type": "object",
    "model_type": "object",
    "model_attributes_type": "object",
    "list_type": "array",
    "tuple_type": "array",
}

# tags of the flat stream union; pydantic puts the chosen tag into error locations
_STREAM_TAGS = frozenset(get_args(StreamEventType))


# -----------------------------
# Errors
# -----------------------------
class MidiJsonParseError(ValueError):
    """Input text is not JSON at all."""

    def __init__(self, message: str, *, line: Optional[int] = None, column: Optional[int] = None):
        super().__init__(message)
        self.line = line
        self.column = column


class SchemaValidationError(ValueError):
    """
    Input JSON does not match the schema.

    path: first failing field, e.g. ``header.ppq`` or ``tracks[0].notes[0].velocity``
    expected / actual: what the schema wanted vs. what was found
    errors: every failure pydantic reported (path-formatted)
    """

    def __init__(
        self,
        path: str,
        expected: str,
        actual: str,
        errors: Sequence[Dict[str, Any]] = (),
    ):
        super().__init__(f"{path or '<root>'}: expected {expected}, got {actual}")
        self.path = path
        self.expected = expected
        self.actual = actual
        self.errors = list(errors)

    @classmethod
    def from_pydantic(cls, exc: PydanticValidationError) -> "SchemaValidationError":
        details = [_describe_error(err) for err in exc.errors()]
        first = details[0] if details else {"path": "", "expected": "valid input", "actual": "invalid"}
        return cls(first["path"], first["expected"], first["actual"], details)

    def to_dict(self) -> Dict[str, Any]:
        return {"path": self.path, "expected": self.expected, "actual": self.actual}


def format_path(loc: Sequence[Union[str, int]]) -> str:
    """
    ('tracks', 0, 'notes', 0, 'velocity') -> 'tracks[0].notes[0].velocity'
    ('stream', 3, 'note', 'midi') -> 'stream[3].midi' (union tag dropped)
    """
    out = ""
    for i, part in enumerate(loc):
        if i >= 2 and loc[i - 2] == "stream" and isinstance(loc[i - 1], int) and part in _STREAM_TAGS:
            continue
        if isinstance(part, int):
            out += f"[{part}]"
        else:
            out = f"{out}.{part}" if out else str(part)
    return out


def _json_type_name(value: Any) -> str:
    return _JSON_TYPE_NAMES.get(type(value), type(value).__name__)


def _describe_error(err: Dict[str, Any]) -> Dict[str, Any]:
    path = format_path(err.get("loc", ()))
    if err.get("type") == "missing":
        return {"path": path, "expected": "a value", "actual": "missing"}

    kind = str(err.get("type", ""))
    ctx = err.get("ctx") or {}
    if ctx.get("error") is not None:
        expected = str(ctx["error"])
    elif kind in _EXPECTED_TYPES:
        expected = _EXPECTED_TYPES[kind]
    elif kind == "greater_than":
        expected = f"number > {ctx.get('gt')}"
    else:
        expected = str(err.get("msg", "valid input"))
    return {"path": path, "expected": expected, "actual": _json_type_name(err.get("input"))}


# -----------------------------
# Generic schema application
# -----------------------------
@lru_cache(maxsize=64)
def _adapter(schema: Any) -> TypeAdapter:
    return TypeAdapter(schema)


def _is_model(schema: Any) -> bool:
    return isinstance(schema, type) and issubclass(schema, BaseModel)


def validate(schema: Any, data: Any) -> Any:
    """Validate ``data`` against ``schema`` and return the typed value."""
    try:
        if _is_model(schema):
            return schema.model_validate(data)
        return _adapter(schema).validate_python(data)
    except PydanticValidationError as e:
        raise SchemaValidationError.from_pydantic(e) from e


def slice_json(schema: Any, data: Any) -> Any:
    """Validate, then return only the declared fields as plain JSON data."""
    value = validate(schema, data)
    if _is_model(schema):
        return dump_document(value)
    return _adapter(schema).dump_python(value, mode="json", by_alias=True, exclude_none=True)


def guard(schema: Any, data: Any) -> bool:
    try:
        validate(schema, data)
    except SchemaValidationError:
        return False
    return True


# -----------------------------
# Document entry points
# -----------------------------
def _reject_constant(token: str) -> Any:
    raise MidiJsonParseError(f"Invalid JSON: {token} is not allowed")


def parse_json(text: Union[str, bytes]) -> Any:
    """Strict JSON: NaN, Infinity and -Infinity are parse errors."""
    try:
        return json.loads(text, parse_constant=_reject_constant)
    except json.JSONDecodeError as e:
        raise MidiJsonParseError(f"Invalid JSON: {e.msg} (line {e.lineno}, column {e.colno})", line=e.lineno, column=e.colno) from e
    except UnicodeDecodeError as e:
        raise MidiJsonParseError(f"Invalid JSON: {e}") from e


def validate_nested(data: Any) -> MidiSpec:
    return validate(MidiSpec, data)


def validate_flat(data: Any) -> SimpleMidiSpec:
    return validate(SimpleMidiSpec, data)


def detect_format(data: Any) -> DocumentFormat:
    """A document with a ``stream`` is flat; anything else is checked as nested."""
    if isinstance(data, dict) and "stream" in data:
        return "flat"
    return "nested"


def load_document(data: Any, fmt: Optional[DocumentFormat] = None) -> MidiDocument:
    fmt = fmt or detect_format(data)
    if fmt == "flat":
        return validate_flat(data)
    return validate_nested(data)


def read_document(path: Union[str, Path], fmt: Optional[DocumentFormat] = None) -> MidiDocument:
    path = Path(path)
    if not path.exists() or not path.is_file():
        raise FileNotFoundError(f"json_path not found: {path}")
    data = parse_json(path.read_text(encoding="utf-8"))
    doc = load_document(data, fmt)
    logger.debug("loaded %s as %s", path.name, type(doc).__name__)
    return doc


# -----------------------------
# Introspection
# -----------------------------
_TS_PRIMITIVES = {
    "string": "string",
    "number": "number",
    "integer": "number",
    "boolean": "boolean",
    "null": "null",
}


def _ts_key(name: str) -> str:
    return name if name.isidentifier() else json.dumps(name)


def _ts_type(node: Dict[str, Any], indent: int) -> str:
    if "$ref" in node:
        return str(node["$ref"])
    if "const" in node:
        return json.dumps(node["const"])
    if "enum" in node:
        return " | ".join(json.dumps(v) for v in node["enum"])
    for combinator in ("anyOf", "oneOf"):
        if combinator in node:
            members = [m for m in node[combinator] if m.get("type") != "null"]
            return " | ".join(_ts_type(m, indent) for m in members) or "null"
    if "allOf" in node:
        return " & ".join(_ts_type(m, indent) for m in node["allOf"])

    kind = node.get("type")
    if kind == "array":
        return f"Array<{_ts_type(node.get('items', {}), indent)}>"
    if kind == "object" or "properties" in node:
        props: Dict[str, Any] = node.get("properties", {})
        if not props:
            return "object"
        required = set(node.get("required", []))
        pad = "  " * (indent + 1)
        lines: List[str] = ["{"]
        for key, sub in props.items():
            if sub.get("description"):
                lines.append(f"{pad}// {sub['description']}")
            opt = "" if key in required else "?"
            lines.append(f"{pad}{_ts_key(key)}{opt}: {_ts_type(sub, indent + 1)},")
        lines.append("  " * indent + "}")
        return "\n".join(lines)
    return _TS_PRIMITIVES.get(str(kind), "any")


def describe_schema(*models: Type[BaseModel]) -> str:
    """Render models (and everything they reference) as TypeScript-style declarations."""
    blocks: List[str] = []
    seen: set[str] = set()
    for model in models:
        schema = model.model_json_schema(by_alias=True, ref_template="{model}")
        defs: Dict[str, Any] = schema.pop("$defs", {})
        entries: List[Tuple[str, Dict[str, Any]]] = list(defs.items()) + [(model.__name__, schema)]
        for name, node in entries:
            if name in seen:
                continue
            seen.add(name)
            blocks.append(f"type {name} = {_ts_type(node, 0)};")
    return "\n\n".join(blocks)
