"""Validation-shaped errors — recoverable, field-addressable, user-facing.

``ValidationErrors`` maps each field to the ordered messages recorded
against it. It is also an exception, so the same value that collects
messages can be raised as the result of a decode or validation step::

    errs = ValidationErrors()
    errs.add("title", FieldRequired())
    errs.add("body", None)  # no-op

    if (err := errs.err()) is not None:
        raise err

Everything else that goes wrong while decoding a request is opaque and
lives in ``perch.errors``.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass

from perch.errors import PerchError


class FieldRequired(PerchError):  # noqa: N818
    """A required field was missing or blank."""

    def __init__(self, message: str = "field is required") -> None:
        super().__init__(message)


class FieldExists(PerchError):  # noqa: N818
    """A field's value already exists, for example an email in a database."""

    def __init__(self, message: str = "already exists") -> None:
        super().__init__(message)


@dataclass(frozen=True, slots=True)
class FieldError(PerchError):
    """An error recorded against a named field.

    Renders as ``"<field> <err>"``, e.g. ``"Email field is required"``.
    """

    field: str
    err: BaseException | str

    def __str__(self) -> str:
        return f"{self.field} {self.err}"


@dataclass(frozen=True, slots=True)
class UnmarshalError(PerchError):
    """A field whose submitted value could not be decoded into its type."""

    field: str
    err: BaseException | str

    def __str__(self) -> str:
        return f"failed to unmarshal {self.field}: {self.err}"


def unwrap(err: BaseException | str) -> BaseException | str:
    """Return the error a ``FieldError`` or ``UnmarshalError`` wraps."""
    if isinstance(err, FieldError | UnmarshalError):
        return err.err
    return err


def error_matches(err: BaseException | str, target: type[BaseException]) -> bool:
    """True if *err*, or any error it wraps, is an instance of *target*."""
    while True:
        if isinstance(err, target):
            return True
        inner = unwrap(err)
        if inner is err:
            return False
        err = inner


class ValidationErrors(PerchError, Mapping[str, list[str]]):
    """Messages recorded per field, in insertion order.

    A field is present only once it has at least one message, so an
    empty set means success. ``err()`` turns that into the return
    contract every producer follows: ``None`` or the populated set.
    """

    def __init__(self, errors: Mapping[str, list[str]] | None = None) -> None:
        super().__init__()
        self._fields: dict[str, list[str]] = {}
        if errors:
            self.merge(errors)

    @classmethod
    def from_mapping(cls, errors: Mapping[str, list[str]]) -> ValidationErrors:
        """Rebuild a set from a plain ``{field: [message, ...]}`` mapping."""
        return cls(errors)

    # -- Mapping --

    def __getitem__(self, field: str) -> list[str]:
        return list(self._fields[field])

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __contains__(self, field: object) -> bool:
        return field in self._fields

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Mapping):
            return self._fields == {k: list(v) for k, v in other.items()}
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    # -- Recording --

    def add(self, field: str, err: BaseException | str | None) -> None:
        """Record *err* against *field*. ``None`` and ``""`` are ignored."""
        if err is None:
            return
        message = str(err)
        if not message:
            return
        self._fields.setdefault(field, []).append(message)

    def merge(self, other: Mapping[str, list[str]]) -> None:
        """Append every message from *other*, keeping per-field order.

        Raises:
            TypeError: If a field maps to anything but a list or tuple.
        """
        for field, messages in other.items():
            if not isinstance(messages, list | tuple):
                msg = f"messages for {field!r} must be a list, got {type(messages).__name__}"
                raise TypeError(msg)
            for message in messages:
                self.add(field, message)

    # -- Lookup --

    def first(self, field: str) -> str:
        """The first message recorded for *field*, or ``""``."""
        messages = self._fields.get(field)
        if not messages:
            return ""
        return messages[0]

    def has(self, field: str, err: BaseException | str) -> bool:
        """True if the message for *err* is recorded against *field*."""
        return str(err) in self._fields.get(field, ())

    def err(self) -> ValidationErrors | None:
        """``None`` when no errors were recorded, otherwise this set."""
        if not self._fields:
            return None
        return self

    def to_dict(self) -> dict[str, list[str]]:
        """A plain copy, safe to serialize into a session or JSON body."""
        return {field: list(messages) for field, messages in self._fields.items()}

    def __str__(self) -> str:
        """One block per field::

            field:
                message
                message
        """
        lines: list[str] = []
        for field, messages in self._fields.items():
            lines.append(f"{field}:\n")
            lines.extend(f"    {message}\n" for message in messages)
        return "".join(lines)

    def __repr__(self) -> str:
        return f"ValidationErrors({self._fields!r})"
