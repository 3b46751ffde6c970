"""Error objects for memokit"""


class MemoizeError(Exception):
    """Base class for errors raised by memokit itself.

    Errors raised by memoized functions are never wrapped in these: they reach the
    caller as they were raised.
    """


class MemoizeConfigurationError(MemoizeError, TypeError):
    """Raised when memoization is asked of something that can't be memoized, or with
    a ``cache`` argument that doesn't make a cache.

    Subclasses ``TypeError`` since it's almost always an object of the wrong type
    that was given.

    >>> raise MemoizeConfigurationError("Can't memoize that")
    Traceback (most recent call last):
      ...
    memokit.errors.MemoizeConfigurationError: Can't memoize that
    """
