"""
Tools to memoize functions and methods.

Main Use Cases:
- Function memoization: cache the results of a function, keyed by its arguments
- Expiring results: recompute a result once it's older than a given age
- Async memoization: share one in-flight computation between all the callers of a
  coroutine function, and don't keep failed computations around
- Custom caching strategies: flexible key derivation and cache storage options

Key Tools:

memoize:
    The main decorator. Wraps a callable into a ``Memoized`` one.

Memoized:
    The memoized callable. Also a descriptor, so that memoized functions can be used
    as methods (the instance is then passed to the function, but isn't part of the key).

MemoizeConfig:
    The (frozen) configuration of a ``Memoized``.

SharedAwaitable:
    An awaitable that can be awaited by any number of callers, running the awaitable
    it wraps only once.

Examples:

    >>> calls = []
    >>> @memoize
    ... def square(x):
    ...     calls.append(x)
    ...     return x * x
    >>> square(3), square(3), square(4)
    (9, 9, 16)
    >>> calls
    [3, 4]

    The key is, by default, the first positional argument only. Use ``key`` to say
    otherwise:

    >>> @memoize(key=lambda *args: args)
    ... def add(x, y):
    ...     return x + y
    >>> add(1, 2), add(1, 3)
    (3, 4)

    The cache can be a mapping you keep a hold on:

    >>> cache = {}
    >>> @memoize(cache=cache)
    ... def double(x):
    ...     return 2 * x
    >>> double(21)
    42
    >>> list(cache)
    [21]
    >>> cache[21].value
    42

    Use ``functools.partial`` to fix a configuration you use in several places:

    >>> from functools import partial
    >>> memoize_for_a_minute = partial(memoize, max_age=60 * 1000)
    >>> @memoize_for_a_minute
    ... def now_ish(tz):
    ...     return tz.upper()
    >>> now_ish('utc')
    'UTC'

"""

import asyncio
import concurrent.futures
import logging
import math
import numbers
from contextlib import contextmanager
from dataclasses import dataclass
from functools import partial, wraps
from inspect import isawaitable
from threading import Lock, RLock
from typing import Any, Callable, Optional
from warnings import warn

from memokit.base import Cache, CacheEntry, CacheSpec, is_a_cache, mk_cache
from memokit.errors import MemoizeConfigurationError
from memokit.util import NOT_FOUND, func_name, now_millis, type_name, update_wrapper

logger = logging.getLogger(__name__)

KeyFunc = Callable[..., Any]
ContextCacheFunc = Callable[[Any], Cache]

futures_types = (asyncio.Future, concurrent.futures.Future)


def first_arg_key(*args, **kwargs):
    """The default key function: the first positional argument, if any.

    Keyword arguments are ignored.

    >>> first_arg_key('a', 'b', c=3)
    'a'
    >>> first_arg_key(c=3) is None
    True
    """
    return args[0] if args else None


def normalize_max_age(max_age) -> Optional[float]:
    """Normalize a ``max_age`` (milliseconds) to a float, or ``None`` for "never expires".

    >>> normalize_max_age(5000)
    5000.0
    >>> normalize_max_age(0)
    0.0
    >>> normalize_max_age(None) is None
    True
    >>> normalize_max_age(float('nan')) is None
    True
    >>> normalize_max_age(float('inf')) is None
    True
    """
    if max_age is None:
        return None
    if isinstance(max_age, bool) or not isinstance(max_age, numbers.Real):
        warn(
            f"max_age should be a number of milliseconds, not a {type_name(max_age)} "
            f"({max_age!r}). Cached values won't expire."
        )
        return None
    max_age = float(max_age)
    if not math.isfinite(max_age):
        return None
    return max_age


@dataclass(frozen=True)
class MemoizeConfig:
    """The configuration of a ``Memoized``, captured when it's made.

    :param max_age: How long (in milliseconds) a cached value is valid. ``None`` (or
        ``nan``, or anything that isn't a finite number) means forever. ``0`` means
        the cached value is never used.
    :param cache: A cache instance (shared by whoever uses it), or an argument-less
        callable that makes one. Defaults to ``dict``.
    :param key: A callable that takes the call's ``(*args, **kwargs)`` and returns
        the cache key. Defaults to ``first_arg_key``.
    :param cache_rejected: If ``True``, a pending (awaitable) result that fails stays
        cached, so the same failure is given to later callers. If ``False`` (the
        default), it's removed so that the next call computes anew.
    :param cache_from_context: A callable that is given the receiver of the call
        (the instance, when used as a method, else ``None``) and returns the cache to
        use. When given, ``cache`` is not used by the ``Memoized`` itself.
    :param clock: Argument-less callable giving the current time in milliseconds.

    >>> config = MemoizeConfig(max_age=1000)
    >>> config.expires
    1000.0
    >>> MemoizeConfig().expires is None
    True
    """

    max_age: Optional[float] = None
    cache: CacheSpec = dict
    key: Optional[KeyFunc] = None
    cache_rejected: bool = False
    cache_from_context: Optional[ContextCacheFunc] = None
    clock: Callable[[], float] = now_millis

    def __post_init__(self):
        if self.key is not None and not callable(self.key):
            raise MemoizeConfigurationError(
                f"key should be a callable, was a {type_name(self.key)}: {self.key!r}"
            )
        if self.cache_from_context is not None and not callable(
            self.cache_from_context
        ):
            raise MemoizeConfigurationError(
                f"cache_from_context should be a callable, "
                f"was a {type_name(self.cache_from_context)}"
            )

    @property
    def expires(self) -> Optional[float]:
        return normalize_max_age(self.max_age)


def has_failed(future) -> bool:
    """Whether a done future ended in an exception (or was cancelled)."""
    return future.cancelled() or future.exception() is not None


class SharedAwaitable:
    """
    An awaitable that can be awaited any number of times, by any number of callers.

    A coroutine can only be awaited once. Memoizing the result of a coroutine
    function means giving the same awaitable to several callers, so the coroutine is
    wrapped in a ``SharedAwaitable``: the first ``await`` schedules it as a task, and
    every ``await`` (the first included) waits on a shield of that same task.
    Cancelling one awaiter (a timeout, say) doesn't cancel the task the others wait on.

    >>> import asyncio
    >>> runs = []
    >>> async def compute():
    ...     runs.append('ran')
    ...     return 42
    >>> shared = SharedAwaitable(compute())
    >>> async def main():
    ...     return await asyncio.gather(shared, shared, shared)
    >>> asyncio.run(main())
    [42, 42, 42]
    >>> runs
    ['ran']

    A done ``SharedAwaitable`` can still be awaited:

    >>> async def again():
    ...     return await shared
    >>> asyncio.run(again())
    42
    """

    def __init__(self, awaitable):
        self._awaitable = awaitable
        self._future = None
        self._done_callbacks = []

    @property
    def future(self) -> Optional[asyncio.Future]:
        """The task running the awaitable (``None`` until first awaited)."""
        return self._future

    def done(self) -> bool:
        return self._future is not None and self._future.done()

    def add_done_callback(self, fn: Callable[[asyncio.Future], Any]):
        """Have ``fn(future)`` called when the underlying task is done."""
        if self._future is None:
            self._done_callbacks.append(fn)
        else:
            self._future.add_done_callback(fn)

    def __await__(self):
        if self._future is None:
            self._future = asyncio.ensure_future(self._awaitable)
            for fn in self._done_callbacks:
                self._future.add_done_callback(fn)
            self._done_callbacks.clear()
        return asyncio.shield(self._future).__await__()

    def __repr__(self):
        state = "pending" if not self.done() else "done"
        return f"<{type(self).__name__} {state} {self._awaitable!r}>"


pending_types = (SharedAwaitable, *futures_types)


class Memoized:
    """
    A memoized callable.

    Made by ``memoize``, usually. Calls are cached in a cache (by default, a ``dict``
    made when the ``Memoized`` is), under a key computed from the call's arguments.

    A ``Memoized`` is also a descriptor: put it in a class and it will be called with
    the instance as first argument. The instance is the "receiver" of the call. It is
    not part of the key, but it is what ``cache_from_context`` gets, if given. Called
    through the class (``Class.method(instance, ...)``), a ``Memoized`` that has a
    ``cache_from_context`` takes its first argument as the receiver.

    >>> class Counter:
    ...     def __init__(self, start=0):
    ...         self.index = start
    ...     def count(self, *args):
    ...         self.index += 1
    ...         return self.index
    ...     count = Memoized(count)
    >>> c = Counter()
    >>> c.count(), c.count(), c.count('other')
    (1, 1, 2)

    Note that the cache above is shared by all instances (there's only one
    ``Memoized``, with one cache). See ``memokit.tools.memoize_decorator`` for a cache
    per instance.
    """

    def __init__(
        self,
        func: Callable,
        config: Optional[MemoizeConfig] = None,
        *,
        lock_factory: Callable = RLock,
    ):
        if not callable(func):
            raise MemoizeConfigurationError(
                f"Can only memoize callables. This is a {type_name(func)}: {func!r}"
            )
        self.func = func
        self.config = config = config or MemoizeConfig()
        self.key_func = config.key or first_arg_key
        self.max_age = config.expires
        self.clock = config.clock
        self.lock_factory = lock_factory
        self._key_locks = {}  # (id(cache), key) -> [lock, number of users]
        self._key_locks_lock = Lock()
        if config.cache_from_context is None:
            self.cache = mk_cache(config.cache, name=func_name(func))
        else:
            self.cache = None
        update_wrapper(self, func)

    def __call__(self, *args, **kwargs):
        if self.config.cache_from_context is not None and args:
            return self.invoke(args[0], args[1:], kwargs)
        return self.invoke(None, args, kwargs)

    def __get__(self, instance, owner=None):
        if instance is None:
            return self

        @wraps(self.func)
        def memoized_method(*args, **kwargs):
            return self.invoke(instance, args, kwargs)

        return memoized_method

    def cache_for(self, receiver=None) -> Cache:
        """The cache a call with that receiver uses."""
        if self.config.cache_from_context is None:
            return self.cache
        cache = self.config.cache_from_context(receiver)
        if not is_a_cache(cache):
            raise MemoizeConfigurationError(
                f"cache_from_context of {self.__qualname__} gave a "
                f"{type_name(cache)}, which is not a cache"
            )
        return cache

    def is_expired(self, entry: CacheEntry, now: float) -> bool:
        if self.max_age is None:
            return False
        return self.max_age <= 0 or now - entry.timestamp > self.max_age

    @contextmanager
    def locked(self, cache: Cache, key):
        """Hold the lock of ``key`` in ``cache``.

        Calls with different keys (or for different caches) don't wait on each other.
        Keys that can't be hashed share one lock per cache.
        """
        try:
            lock_key = (id(cache), key)
            hash(lock_key)
        except TypeError:
            lock_key = id(cache)
        with self._key_locks_lock:
            lock_and_users = self._key_locks.get(lock_key)
            if lock_and_users is None:
                lock_and_users = self._key_locks[lock_key] = [self.lock_factory(), 0]
            lock_and_users[1] += 1
        try:
            with lock_and_users[0]:
                yield
        finally:
            with self._key_locks_lock:
                lock_and_users[1] -= 1
                if lock_and_users[1] == 0:
                    del self._key_locks[lock_key]

    def invoke(self, receiver, args: tuple, kwargs: dict):
        """Get the result of the call, from the cache if there, computing it if not.

        ``receiver`` is the object the call is made on (passed on to the function as
        its first argument) or ``None`` for a plain function call.
        """
        cache = self.cache_for(receiver)
        key = self.key_func(*args, **kwargs)

        with self.locked(cache, key):
            entry = _get_entry(cache, key)
            if entry is not NOT_FOUND:
                if not self.is_expired(entry, self.clock()):
                    return entry.value
                logger.debug("%s: cached value for %r expired", self.__qualname__, key)

            if receiver is None:
                value = self.func(*args, **kwargs)
            else:
                value = self.func(receiver, *args, **kwargs)

            if isawaitable(value) and not isinstance(value, futures_types):
                value = SharedAwaitable(value)
            cache[key] = CacheEntry(value, self.clock())

            if not self.config.cache_rejected and isinstance(value, pending_types):
                value.add_done_callback(
                    partial(self._evict_if_failed, cache, key, value)
                )
            return value

    def _evict_if_failed(self, cache, key, value, future):
        if not has_failed(future):
            return
        with self.locked(cache, key):
            if getattr(_get_entry(cache, key), "value", NOT_FOUND) is value:
                del cache[key]
                logger.debug(
                    "%s: removed failed result for %r", self.__qualname__, key
                )

    def __repr__(self):
        return f"<{type(self).__name__} {func_name(self.func)}>"


def _get_entry(cache, key):
    try:
        if key in cache:
            return cache[key]
    except KeyError:  # the cache may drop the key between the two calls
        pass
    return NOT_FOUND


def memoize(
    func: Callable = None,
    *,
    max_age: Optional[float] = None,
    cache: CacheSpec = dict,
    key: Optional[KeyFunc] = None,
    cache_rejected: bool = False,
    cache_from_context: Optional[ContextCacheFunc] = None,
    clock: Callable[[], float] = now_millis,
    lock_factory: Callable = RLock,
):
    """
    Memoize a function: cache its results, keyed by (some function of) its arguments.

    :param func: The function to memoize. If not given, a decorator is returned.
    :param max_age: Cached result expiration duration, in milliseconds.
    :param cache: Cache instance, or argument-less function returning a cache instance.
    :param key: Function computing the cache key from the call's ``(*args, **kwargs)``.
        Default is to use the first positional argument.
    :param cache_rejected: Keep failed awaitable results in the cache.
    :param cache_from_context: Function returning the cache to use, given the
        receiver of the call (the instance, when used as a method).
    :param clock: Argument-less function giving the current time in milliseconds.
    :param lock_factory: Factory of the locks that serialize the computations of a key.
    :return: The memoized function (a ``Memoized`` instance).

    >>> from itertools import count
    >>> counter = count()
    >>> @memoize
    ... def next_count(*args):
    ...     return next(counter)
    >>> next_count(), next_count(), next_count('')
    (0, 0, 1)
    >>> next_count.__name__
    'next_count'

    With a ``max_age``, and a clock we control:

    >>> now = 0
    >>> @memoize(max_age=5000, clock=lambda: now)
    ... def tick(*args):
    ...     return next(counter)
    >>> tick()
    2
    >>> now = 5000; tick()  # not expired: the age is exactly max_age
    2
    >>> now = 5001; tick()
    3

    A function raising an exception doesn't have anything cached:

    >>> attempts = []
    >>> @memoize
    ... def flaky(x):
    ...     attempts.append(x)
    ...     if len(attempts) == 1:
    ...         raise ValueError("first attempt fails")
    ...     return x
    >>> flaky(1)
    Traceback (most recent call last):
      ...
    ValueError: first attempt fails
    >>> flaky(1), flaky(1)
    (1, 1)
    >>> attempts
    [1, 1]

    """
    if func is None:
        return partial(
            memoize,
            max_age=max_age,
            cache=cache,
            key=key,
            cache_rejected=cache_rejected,
            cache_from_context=cache_from_context,
            clock=clock,
            lock_factory=lock_factory,
        )
    config = MemoizeConfig(
        max_age=max_age,
        cache=cache,
        key=key,
        cache_rejected=cache_rejected,
        cache_from_context=cache_from_context,
        clock=clock,
    )
    return Memoized(func, config, lock_factory=lock_factory)
