"""Request body decoding by content type.

``unmarshal_form`` picks a decoder from the request's Content-Type:

- ``application/json`` — the body is a JSON object bound by field name
  (or ``json`` metadata);
- anything else — the parsed form body (URL-encoded or multipart only)
  followed by the URL query values, bound by field name (or ``form``
  metadata).

Problems with individual fields are raised as ``ValidationErrors`` so
they can be shown back to the user. Everything else — a malformed body,
an unusable target — is raised as-is.
"""

import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol, assert_never, runtime_checkable

from perch._internal.invoke import invoke
from perch.binding import (
    Decoded,
    DecodeOutcome,
    EmptyField,
    Failed,
    MultiField,
    decode_json,
    decode_values,
)
from perch.config import DEFAULT_CONFIG, UploadConfig
from perch.errors import DecodeError
from perch.http.forms import FORM_URLENCODED, FormData, is_multipart, media_type
from perch.http.request import Request
from perch.validation.errors import FieldRequired, ValidationErrors

logger = logging.getLogger("perch.forms")

JSON_CONTENT_TYPE = "application/json"


@runtime_checkable
class Form(Protocol):
    """A request form that can report its values and validate itself.

    ``validate`` may be ``def`` or ``async def``. It returns ``None``
    when the form is valid, otherwise the populated error set.
    """

    def fields(self) -> Mapping[str, Any]: ...

    def validate(self) -> Any: ...


def is_json(content_type: str | None) -> bool:
    """True if *content_type* declares a JSON body."""
    return media_type(content_type).startswith(JSON_CONTENT_TYPE)


def outcome_errors(outcome: DecodeOutcome) -> ValidationErrors | None:
    """Translate a decode outcome into field errors.

    Raises:
        Exception: The underlying error of a ``Failed`` outcome.
    """
    match outcome:
        case Decoded():
            return None
        case EmptyField(key=key):
            errs = ValidationErrors()
            errs.add(key, FieldRequired())
            return errs
        case MultiField(errors=errors):
            errs = ValidationErrors()
            for key, err in errors.items():
                errs.add(key, err.err)
            return errs
        case Failed(error=error):
            raise error
        case _:
            assert_never(outcome)


def merge_values(*sources: Any) -> FormData:
    """Concatenate the values of several multi-valued mappings, in order."""
    merged: dict[str, list[str]] = {}
    for source in sources:
        for key in source:
            merged.setdefault(key, []).extend(source.get_list(key))
    return FormData(merged)


async def _unmarshal_json(form: Any, request: Request) -> None:
    body = await request.body()
    if not body.strip():
        logger.debug("empty JSON body, nothing to decode")
        return

    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        msg = f"Malformed JSON body: {e}"
        raise DecodeError(msg) from e

    if not isinstance(payload, dict):
        msg = f"JSON body must be an object, got {type(payload).__name__}"
        raise DecodeError(msg)

    if (errs := outcome_errors(decode_json(form, payload))) is not None:
        raise errs


async def request_values(request: Request, *, config: UploadConfig = DEFAULT_CONFIG) -> FormData:
    """The form body values (when the body is a form) followed by the query values."""
    ct = request.content_type
    if media_type(ct) == FORM_URLENCODED or is_multipart(ct):
        body = await request.form(config=config)
        return merge_values(body, request.query)
    return merge_values(request.query)


async def unmarshal_form(
    form: Any,
    request: Request,
    *,
    config: UploadConfig = DEFAULT_CONFIG,
) -> None:
    """Decode the request into the dataclass instance *form*.

    Raises:
        ValidationErrors: Values were missing or could not be converted.
        DecodeError: The body could not be decoded at all.
    """
    if is_json(request.content_type):
        logger.debug("decoding %s %s as JSON", request.method, request.path)
        await _unmarshal_json(form, request)
        return

    logger.debug("decoding %s %s as form values", request.method, request.path)
    values = await request_values(request, config=config)
    if (errs := outcome_errors(decode_values(form, values))) is not None:
        raise errs


async def validate_form(form: Any, errs: ValidationErrors | None = None) -> None:
    """Run ``form.validate()`` and raise the merged errors, if any."""
    merged = ValidationErrors()
    if errs is not None:
        merged.merge(errs)

    result = await invoke(form.validate)
    if result is not None:
        if not isinstance(result, Mapping):
            raise result
        merged.merge(result)

    if merged.err() is not None:
        raise merged


async def unmarshal_form_and_validate(
    form: Any,
    request: Request,
    *,
    config: UploadConfig = DEFAULT_CONFIG,
) -> None:
    """Decode the request into *form*, then validate it.

    Validation runs even when some fields failed to decode, so the
    user sees every problem at once. Both sets of errors are merged.

    Raises:
        ValidationErrors: Decoding or validation reported field errors.
        DecodeError: The body could not be decoded at all.
    """
    errs: ValidationErrors | None = None
    try:
        await unmarshal_form(form, request, config=config)
    except ValidationErrors as e:
        errs = e
    await validate_form(form, errs)
