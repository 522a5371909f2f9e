"""Form validation — per-field error sets, composable rules.

Usage::

    from perch.validation import Validator, field_required, field_max_len

    class PostForm:
        async def validate(self):
            v = Validator()
            v.add("title", self.title, field_required)
            v.add("title", self.title, field_max_len(200))
            errs = await v.validate()
            return errs.err()
"""

from perch.validation.errors import (
    FieldError,
    FieldExists,
    FieldRequired,
    UnmarshalError,
    ValidationErrors,
    error_matches,
)
from perch.validation.rules import (
    MatchError,
    Rule,
    RuleError,
    field_equals,
    field_len,
    field_matches,
    field_max_len,
    field_min_len,
    field_required,
)
from perch.validation.validator import (
    Validator,
    WrapError,
    ignore_error,
    map_error,
    validate,
    wrap_field_error,
)

__all__ = [
    "FieldError",
    "FieldExists",
    "FieldRequired",
    "MatchError",
    "Rule",
    "RuleError",
    "UnmarshalError",
    "ValidationErrors",
    "Validator",
    "WrapError",
    "error_matches",
    "field_equals",
    "field_len",
    "field_matches",
    "field_max_len",
    "field_min_len",
    "field_required",
    "ignore_error",
    "map_error",
    "validate",
    "wrap_field_error",
]
