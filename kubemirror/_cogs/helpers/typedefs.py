"""
Rudimentary type [re-]definitions for cross-versioned Python & mypy.

Some stdlib types are generics only in the type-sheds, not at runtime:
e.g. ``logging.LoggerAdapter``. This module defines them in a reusable way,
plus a few common plain type definitions used across the codebase.
"""
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Union

if TYPE_CHECKING:
    LoggerAdapter = logging.LoggerAdapter[Any]
else:
    LoggerAdapter = logging.LoggerAdapter

# As publicly exposed: we only promise that it is based on one of the built-in loggable classes.
Logger = Union[logging.Logger, LoggerAdapter]

# Consumer callbacks can be either sync or async; the result is ignored.
Callback = Callable[..., Union[None, Awaitable[None]]]
