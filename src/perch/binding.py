"""Binding decoded request data onto dataclass instances.

Forms are plain mutable dataclasses. Every field needs a default, since
values are assigned onto an existing instance and anything absent or
invalid keeps its default::

    @dataclass
    class PostForm:
        title: str = form_field(required=True)
        body: str = ""
        tags: list[str] = form_field(default_factory=list, name="tag")
        draft: bool = False

Field metadata plays the part of struct tags: ``form`` names the key in
URL-encoded/multipart values, ``json`` the key in a JSON object, and
``required`` rejects an absent or blank form value.

Decoding never raises. It returns one of four outcomes, and the caller
decides what each means for the request:

- ``Decoded`` — every submitted value was bound;
- ``EmptyField`` — a required form field was missing or blank;
- ``MultiField`` — one or more values could not be converted;
- ``Failed`` — the target itself cannot be bound to (wrong kind of
  object, unsupported field type).
"""

import dataclasses
import types
import typing
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, TypeAlias

from perch._internal.multimap import MultiValueMapping
from perch.errors import PerchError
from perch.validation.errors import UnmarshalError

FORM_TAG = "form"
JSON_TAG = "json"
REQUIRED_TAG = "required"


def form_field(
    default: Any = "",
    *,
    name: str | None = None,
    json: str | None = None,
    required: bool = False,
    default_factory: Callable[[], Any] | None = None,
) -> Any:
    """Declare a dataclass field with binding metadata.

    Args:
        default: Value kept when the request does not supply one.
        name: Key in form values (defaults to the attribute name).
        json: Key in a JSON object (defaults to the attribute name).
        required: Reject the form when this key is missing or blank.
        default_factory: Used instead of *default* for mutable values.
    """
    metadata: dict[str, Any] = {REQUIRED_TAG: required}
    if name is not None:
        metadata[FORM_TAG] = name
    if json is not None:
        metadata[JSON_TAG] = json
    if default_factory is not None:
        return dataclasses.field(default_factory=default_factory, metadata=metadata)
    return dataclasses.field(default=default, metadata=metadata)


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Decoded:
    """Every submitted value was bound."""


@dataclass(frozen=True, slots=True)
class EmptyField:
    """A required form field was missing or blank."""

    key: str


@dataclass(frozen=True, slots=True)
class MultiField:
    """Values that could not be converted, keyed by their request key."""

    errors: dict[str, UnmarshalError]


@dataclass(frozen=True, slots=True)
class Failed:
    """The target cannot be bound to at all."""

    error: Exception


DecodeOutcome: TypeAlias = Decoded | EmptyField | MultiField | Failed


class ConversionError(PerchError):
    """A form value could not be converted to its field's type."""

    def __init__(self, value: str, type_name: str) -> None:
        self.value = value
        self.type_name = type_name
        super().__init__(f"cannot convert {value!r} to {type_name}")


class UnmarshalTypeError(PerchError):
    """A JSON value was of the wrong kind for its field."""

    def __init__(self, kind: str, type_name: str) -> None:
        self.kind = kind
        self.type_name = type_name
        super().__init__(f"cannot unmarshal {kind} to {type_name}")


# ---------------------------------------------------------------------------
# Type helpers
# ---------------------------------------------------------------------------


def _type_name(hint: Any) -> str:
    if isinstance(hint, type) and not typing.get_args(hint):
        return hint.__name__
    return str(hint).replace("typing.", "")


def _unwrap_optional(hint: Any) -> tuple[Any, bool]:
    """Split ``X | None`` into ``(X, True)``; anything else is ``(hint, False)``."""
    if isinstance(hint, types.UnionType) or typing.get_origin(hint) is typing.Union:
        args = [a for a in typing.get_args(hint) if a is not type(None)]
        if len(args) == 1:
            return args[0], True
    return hint, False


def _list_item(hint: Any) -> Any | None:
    """The item type of ``list[X]``, or None when *hint* is not a list."""
    if typing.get_origin(hint) is list:
        args = typing.get_args(hint)
        return args[0] if args else Any
    if hint is list:
        return Any
    return None


def _json_kind(value: Any) -> str:
    match value:
        case None:
            return "null"
        case bool():
            return "bool"
        case int() | float():
            return "number"
        case str():
            return "string"
        case list():
            return "array"
        case _:
            return "object"


def _bindable_fields(target: Any) -> tuple[list[dataclasses.Field[Any]], dict[str, Any]]:
    """Fields and resolved type hints of *target*, or raise TypeError."""
    if isinstance(target, type) or not dataclasses.is_dataclass(target):
        msg = f"cannot bind to {type(target).__name__!r}: expected a dataclass instance"
        raise TypeError(msg)
    params = getattr(target, "__dataclass_params__", None)
    if params is not None and params.frozen:
        msg = f"cannot bind to frozen dataclass {type(target).__name__!r}"
        raise TypeError(msg)
    hints = typing.get_type_hints(type(target))
    return list(dataclasses.fields(target)), hints


# ---------------------------------------------------------------------------
# Form values
# ---------------------------------------------------------------------------

_TRUE = frozenset({"1", "t", "true", "yes", "on"})
_FALSE = frozenset({"0", "f", "false", "no", "off"})


def _convert_scalar(raw: str, hint: Any) -> Any:
    """Convert one form string; raise ConversionError or TypeError."""
    if hint is str or hint is Any:
        return raw
    if hint is bool:
        lowered = raw.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        raise ConversionError(raw, "bool")
    if hint is int:
        try:
            return int(raw.strip())
        except ValueError:
            raise ConversionError(raw, "int") from None
    if hint is float:
        try:
            return float(raw.strip())
        except ValueError:
            raise ConversionError(raw, "float") from None
    if hint is Decimal:
        try:
            return Decimal(raw.strip())
        except InvalidOperation:
            raise ConversionError(raw, "Decimal") from None
    msg = f"unsupported form field type {_type_name(hint)}"
    raise TypeError(msg)


def decode_values(target: Any, values: MultiValueMapping) -> DecodeOutcome:
    """Bind form *values* onto the dataclass instance *target*.

    Unknown keys are ignored. A blank value for a non-string field is
    treated as absent. Required fields are checked before anything is
    converted; the first one missing is reported on its own.
    """
    try:
        fields, hints = _bindable_fields(target)
    except (TypeError, NameError) as e:
        return Failed(e)

    for f in fields:
        key = f.metadata.get(FORM_TAG, f.name)
        if f.metadata.get(REQUIRED_TAG) and not any(values.get_list(key)):
            return EmptyField(key)

    errors: dict[str, UnmarshalError] = {}

    for f in fields:
        key = f.metadata.get(FORM_TAG, f.name)
        raw_values = values.get_list(key)
        if not raw_values:
            continue

        hint, optional = _unwrap_optional(hints.get(f.name, str))
        item = _list_item(hint)

        try:
            if item is not None:
                item, _ = _unwrap_optional(item)
                value: Any = [_convert_scalar(raw, item) for raw in raw_values if raw or item is str]
            elif not raw_values[0] and hint is not str:
                if not optional:
                    continue
                value = None
            else:
                value = _convert_scalar(raw_values[0], hint)
        except ConversionError as e:
            errors[key] = UnmarshalError(key, e)
            continue
        except TypeError as e:
            return Failed(e)

        setattr(target, f.name, value)

    if errors:
        return MultiField(errors)
    return Decoded()


# ---------------------------------------------------------------------------
# JSON objects
# ---------------------------------------------------------------------------


def _check_json(value: Any, hint: Any) -> bool:
    """True if the JSON *value* fits the type *hint*."""
    hint, optional = _unwrap_optional(hint)
    if value is None:
        return optional or hint is Any
    if hint is Any or hint is object:
        return True
    if hint is bool:
        return isinstance(value, bool)
    if hint is int:
        return isinstance(value, int) and not isinstance(value, bool)
    if hint is float or hint is Decimal:
        return isinstance(value, int | float) and not isinstance(value, bool)
    if hint is str:
        return isinstance(value, str)
    item = _list_item(hint)
    if item is not None:
        return isinstance(value, list) and all(_check_json(v, item) for v in value)
    origin = typing.get_origin(hint) or hint
    if origin is dict or (isinstance(origin, type) and issubclass(origin, Mapping)):
        return isinstance(value, dict)
    msg = f"unsupported JSON field type {_type_name(hint)}"
    raise TypeError(msg)


def decode_json(target: Any, payload: Mapping[str, Any], *, prefix: str = "") -> DecodeOutcome:
    """Bind a decoded JSON object onto the dataclass instance *target*.

    Keys missing from *payload* and ``null`` values for non-optional
    fields leave the default in place. Values of the wrong kind are
    reported per field, keyed by their JSON name; the rest are bound.
    Nested dataclass fields are decoded recursively and reported with
    dotted keys (``"author.name"``).
    """
    try:
        fields, hints = _bindable_fields(target)
    except (TypeError, NameError) as e:
        return Failed(e)

    errors: dict[str, UnmarshalError] = {}

    for f in fields:
        key = f.metadata.get(JSON_TAG, f.name)
        if key not in payload:
            continue

        value = payload[key]
        hint = hints.get(f.name, Any)
        path = f"{prefix}{key}"
        base, optional = _unwrap_optional(hint)

        if value is None and not optional:
            continue

        if dataclasses.is_dataclass(base) and isinstance(base, type):
            if not isinstance(value, dict):
                err = UnmarshalTypeError(_json_kind(value), _type_name(base))
                errors[path] = UnmarshalError(path, err)
                continue
            nested = getattr(target, f.name, None)
            if nested is None:
                nested = base()
            outcome = decode_json(nested, value, prefix=f"{path}.")
            match outcome:
                case Failed():
                    return outcome
                case MultiField(errors=nested_errors):
                    errors.update(nested_errors)
            setattr(target, f.name, nested)
            continue

        try:
            fits = _check_json(value, hint)
        except TypeError as e:
            return Failed(e)

        if not fits:
            err = UnmarshalTypeError(_json_kind(value), _type_name(base))
            errors[path] = UnmarshalError(path, err)
            continue

        if base is Decimal and value is not None:
            value = Decimal(str(value))
        setattr(target, f.name, value)

    if errors:
        return MultiField(errors)
    return Decoded()


# ---------------------------------------------------------------------------
# Re-rendering
# ---------------------------------------------------------------------------


def _render(value: Any) -> str:
    match value:
        case None:
            return ""
        case bool():
            return "true" if value else "false"
        case list() | tuple():
            return ",".join(_render(v) for v in value)
        case _:
            return str(value)


def form_values(target: Any) -> dict[str, str]:
    """The current values of a bound dataclass as strings, by form key.

    Used to refill a form after a failed submission.
    """
    return {
        f.metadata.get(FORM_TAG, f.name): _render(getattr(target, f.name))
        for f in dataclasses.fields(target)
    }
