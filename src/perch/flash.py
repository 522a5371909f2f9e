"""Flashing a submitted form back to the page it came from.

After a failed POST the handler redirects, and the form page reads the
submitted values and their errors back out of the session once::

    # POST /posts
    try:
        await unmarshal_form_and_validate(form, request)
    except ValidationErrors as errs:
        flash_form_with_errors(session, form, errs)
        return Redirect("/posts/new")

    # GET /posts/new
    fields = form_fields(session)
    errs = form_errors(session)

The session is any mutable mapping, such as the dict a cookie session
middleware exposes per request. Values stored are plain dicts and
lists, so they survive a JSON-serialized cookie.
"""

from collections.abc import Mapping, MutableMapping
from typing import Any, TypeAlias

from perch.binding import form_values
from perch.validation.errors import ValidationErrors

FORM_FIELDS_KEY = "form_fields"
FORM_ERRORS_KEY = "form_errors"

Session: TypeAlias = MutableMapping[str, Any]


def add_flash(session: Session, value: Any, key: str) -> None:
    """Queue *value* under *key* until it is next read."""
    queued = session.get(key)
    if not isinstance(queued, list):
        queued = []
    queued.append(value)
    session[key] = queued


def flashes(session: Session, key: str) -> list[Any]:
    """Return and clear everything queued under *key*."""
    queued = session.pop(key, None)
    if not isinstance(queued, list):
        return []
    return queued


def flash_form_with_errors(session: Session, form: Any, errs: Mapping[str, list[str]] | None) -> None:
    """Flash the submitted values of *form* and the errors found in them."""
    fields_fn = getattr(form, "fields", None)
    if callable(fields_fn):
        fields = {k: str(v) for k, v in fields_fn().items()}
    else:
        fields = form_values(form)

    add_flash(session, fields, FORM_FIELDS_KEY)
    add_flash(session, ValidationErrors(errs).to_dict(), FORM_ERRORS_KEY)


def form_fields(session: Session) -> dict[str, str]:
    """The flashed form values, or an empty dict."""
    queued = flashes(session, FORM_FIELDS_KEY)
    if not queued or not isinstance(queued[0], Mapping):
        return {}
    return {str(k): str(v) for k, v in queued[0].items()}


def form_errors(session: Session) -> ValidationErrors:
    """The flashed form errors, or an empty set."""
    queued = flashes(session, FORM_ERRORS_KEY)
    if not queued or not isinstance(queued[0], Mapping):
        return ValidationErrors()
    try:
        return ValidationErrors.from_mapping(queued[0])
    except TypeError:
        return ValidationErrors()
