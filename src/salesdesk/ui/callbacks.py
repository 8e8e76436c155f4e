"""Callback plumbing between view-models and the presentation layer.

Notifications leave the package through a ``Notifier(level, message)``
callable; levels are ``success``, ``info``, ``warning`` and ``error``.
Callbacks may be plain functions or coroutine functions.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from typing import Any, Union

Notifier = Callable[[str, str], Union[None, Awaitable[None]]]


async def invoke(callback: Callable[..., Any] | None, *args: Any) -> Any:
    """Call a sync or async callback, awaiting the result when needed."""
    if callback is None:
        return None
    result = callback(*args)
    if inspect.isawaitable(result):
        return await result
    return result
