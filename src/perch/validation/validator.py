"""Declarative field validation.

Register a rule per field value, then run them all::

    v = Validator()
    v.add("email", form.email, field_required)
    v.add("email", form.email, field_matches(r"@"))
    v.add("password", form.password, field_len(8, 64))

    errs = await v.validate()
    return errs.err()

Every failure is passed through a chain of wrappers before it is
recorded. The default chain is ``wrap_field_error``, which prefixes the
message with the capitalised field name (``"Email field is required"``).
"""

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, TypeAlias

from perch._internal.invoke import invoke
from perch.validation.errors import FieldError, ValidationErrors, error_matches
from perch.validation.rules import Rule

# Receives the field name and the failure; returns the error to record,
# or None to drop it.
WrapError: TypeAlias = Callable[[str, BaseException], BaseException | None]

_WORD_START = re.compile(r"\b\w")


def wrap_field_error(name: str, err: BaseException) -> BaseException | None:
    """Wrap *err* in a ``FieldError`` named after the field.

    The first letter of each word is upper-cased and the rest is left
    alone, so ``"passwordConfirm"`` becomes ``"PasswordConfirm"``.
    """
    return FieldError(_WORD_START.sub(lambda m: m.group().upper(), name), err)


def map_error(from_: type[BaseException], to: BaseException) -> WrapError:
    """Replace any failure that is (or wraps) a *from_* with *to*."""

    def wrap(name: str, err: BaseException) -> BaseException | None:  # noqa: ARG001
        if error_matches(err, from_):
            return to
        return err

    return wrap


def ignore_error(name: str, target: type[BaseException]) -> WrapError:
    """Drop *target* failures reported for the field *name*.

    Useful for benign failures, e.g. an unchanged email that "already
    exists" because it belongs to the user editing it.
    """

    def wrap(field: str, err: BaseException) -> BaseException | None:
        if field == name and error_matches(err, target):
            return None
        return err

    return wrap


@dataclass(slots=True)
class _FieldRule:
    name: str
    value: Any
    rule: Rule


class Validator:
    """Collects field rules and runs them together."""

    __slots__ = ("_fields", "_wraps")

    def __init__(self) -> None:
        self._fields: list[_FieldRule] = []
        self._wraps: tuple[WrapError, ...] = ()

    def add(self, name: str, value: Any, rule: Rule) -> None:
        """Check *value* with *rule*, reporting failures under *name*."""
        self._fields.append(_FieldRule(name, value, rule))

    def wrap_error(self, *wraps: WrapError) -> None:
        """Replace the wrapper chain applied to each failure."""
        self._wraps = wraps

    async def validate(self) -> ValidationErrors:
        """Run every rule and return the failures.

        The result may be empty; call ``.err()`` on it to get ``None``
        or the populated set.
        """
        errs = ValidationErrors()
        wraps = self._wraps or (wrap_field_error,)

        for fld in self._fields:
            err = await invoke(fld.rule, fld.value)
            if err is None:
                continue
            for wrap in wraps:
                err = wrap(fld.name, err)
                if err is None:
                    break
            errs.add(fld.name, err)
        return errs


async def validate(
    data: Mapping[str, Any],
    rules: Mapping[str, list[Rule]],
    *wraps: WrapError,
) -> ValidationErrors:
    """Validate *data* against a mapping of field name to rules.

    A shorthand for building a ``Validator`` by hand::

        errs = await validate(form.fields(), {
            "title": [field_required, field_max_len(200)],
            "body": [field_required],
        })
    """
    v = Validator()
    if wraps:
        v.wrap_error(*wraps)
    for name, field_rules in rules.items():
        value = data.get(name, "")
        for rule in field_rules:
            v.add(name, value, rule)
    return await v.validate()
