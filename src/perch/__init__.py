"""Perch — request decoding, validation and form flashing for ASGI apps.

Decode a request body into a dataclass, validate it, and send the
errors back::

    from dataclasses import dataclass

    from perch import ValidationErrors, form_field, unmarshal_form_and_validate

    @dataclass
    class PostForm:
        title: str = form_field(required=True)
        body: str = ""

        def fields(self):
            return {"title": self.title, "body": self.body}

        def validate(self):
            return None

    try:
        await unmarshal_form_and_validate(form, request)
    except ValidationErrors as errs:
        return json(errs, status=422)
"""

__version__ = "0.1.0"
__all__ = [
    "DecodeError",
    "FieldError",
    "FieldExists",
    "FieldRequired",
    "FilePolicy",
    "Form",
    "PerchError",
    "Request",
    "Response",
    "UnmarshalError",
    "UploadConfig",
    "UploadedFile",
    "ValidationErrors",
    "Validator",
    "base_address",
    "base_path",
    "flash_form_with_errors",
    "form_errors",
    "form_field",
    "form_fields",
    "html",
    "human_size",
    "json",
    "send_response",
    "text",
    "unmarshal_file",
    "unmarshal_files",
    "unmarshal_form",
    "unmarshal_form_and_validate",
    "unmarshal_form_with_file",
    "unmarshal_form_with_files",
]


def __getattr__(name: str) -> object:
    """Lazy imports for public API.

    Keeps ``import perch`` fast while providing a clean top-level API.
    """
    if name == "Request":
        from perch.http.request import Request

        return Request

    if name in ("Response", "html", "text", "json"):
        from perch.http import response

        return getattr(response, name)

    if name == "send_response":
        from perch.http.sender import send_response

        return send_response

    if name == "UploadConfig":
        from perch.config import UploadConfig

        return UploadConfig

    if name in ("PerchError", "DecodeError"):
        from perch import errors

        return getattr(errors, name)

    if name in (
        "FieldError",
        "FieldExists",
        "FieldRequired",
        "UnmarshalError",
        "ValidationErrors",
        "Validator",
    ):
        from perch import validation

        return getattr(validation, name)

    if name == "form_field":
        from perch.binding import form_field

        return form_field

    if name in ("Form", "unmarshal_form", "unmarshal_form_and_validate"):
        from perch import unmarshal

        return getattr(unmarshal, name)

    if name in (
        "FilePolicy",
        "UploadedFile",
        "human_size",
        "unmarshal_file",
        "unmarshal_files",
        "unmarshal_form_with_file",
        "unmarshal_form_with_files",
    ):
        from perch import files

        return getattr(files, name)

    if name in ("base_address", "base_path"):
        from perch import web

        return getattr(web, name)

    if name in ("flash_form_with_errors", "form_errors", "form_fields"):
        from perch import flash

        return getattr(flash, name)

    msg = f"module 'perch' has no attribute {name!r}"
    raise AttributeError(msg)
