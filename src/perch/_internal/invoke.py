"""Invoke helpers — call sync or async callables uniformly.

``Form.validate`` and validator rules can be ``def`` or ``async def``.
This module keeps the sync/async check in exactly one place.

Usage::

    from perch._internal.invoke import invoke

    result = await invoke(form.validate)
"""

import inspect
from typing import Any


async def invoke(fn: Any, *args: Any, **kwargs: Any) -> Any:
    """Call *fn* and await the result if it's awaitable.

    Works with both sync and async callables::

        # sync: returns immediately
        def validate(self):
            return errs.err()

        # async: awaited automatically
        async def validate(self):
            if await users.exists(self.email):
                errs.add("email", FieldExists())
            return errs.err()
    """
    result = fn(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result
