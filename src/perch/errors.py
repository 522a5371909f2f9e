"""Perch exception hierarchy.

Two tiers of failure flow out of request decoding:

- validation-shaped errors (``perch.validation.errors``) are field-addressable
  and meant to be shown to the end user;
- everything raised from here is opaque. Callers treat these as
  server-side (5xx-class) conditions, never as field errors.
"""


class PerchError(Exception):
    """Base for all perch-specific errors."""


class ConfigurationError(PerchError):
    """Raised when an ``UploadConfig`` or a form declaration is invalid."""


class DecodeError(PerchError):
    """The request body could not be decoded at all.

    Malformed JSON, a JSON document that is not an object, a broken
    multipart stream, or a request of the wrong type for the operation.
    """


class BodyConsumedError(DecodeError):
    """The request body was already streamed and cannot be read again."""
