"""General util objects"""

import time
from functools import update_wrapper as _update_wrapper
from functools import wraps as _wraps
from functools import partial, WRAPPER_ASSIGNMENTS
from typing import Any, Callable

# WRAPPER_ASSIGNMENTS extended to get "proper" wrapping (adding defaults and kwdefaults)
wrapper_assignments = (*WRAPPER_ASSIGNMENTS, "__defaults__", "__kwdefaults__")

update_wrapper = partial(_update_wrapper, assigned=wrapper_assignments)
wraps = partial(_wraps, assigned=wrapper_assignments)


class Sentinel:
    """A named marker object, for "nothing there" values that ``None`` can't express.

    >>> NOT_FOUND = Sentinel('NOT_FOUND')
    >>> NOT_FOUND
    <NOT_FOUND>
    >>> bool(NOT_FOUND)
    False
    """

    __slots__ = ("name",)

    def __init__(self, name: str):
        self.name = name

    def __repr__(self):
        return f"<{self.name}>"

    def __bool__(self):
        return False


NOT_FOUND = Sentinel("NOT_FOUND")


def now_millis() -> float:
    """Monotonic clock reading, in milliseconds.

    Only differences between two readings are meaningful.

    >>> t = now_millis()
    >>> now_millis() >= t
    True
    """
    return time.monotonic_ns() / 1_000_000


def func_name(func: Callable, default: str = "<callable>") -> str:
    """The name of a callable, falling back on ``default``.

    >>> func_name(len)
    'len'
    >>> func_name(partial(len))
    '<callable>'
    """
    return getattr(func, "__qualname__", None) or getattr(func, "__name__", default)


def type_name(obj: Any) -> str:
    return type(obj).__name__
