"""
Base objects for memoization caches.

A cache, here, is anything that has the (subset of the) ``MutableMapping`` interface
that memoization needs: ``__contains__``, ``__getitem__``, ``__setitem__`` and
``__delitem__``. A ``dict`` is the default, but any store with that interface
(a ``collections.OrderedDict``, a ``UserDict`` subclass that logs its accesses,
a size-bounded mapping...) can be used.

What is stored under a key is a ``CacheEntry``: the value the memoized function
returned, and the time at which it was stored.
"""

from typing import Any, Callable, NamedTuple, Optional, Protocol, TypeVar, Union
from typing import runtime_checkable

from memokit.errors import MemoizeConfigurationError
from memokit.util import type_name

KT = TypeVar("KT")  # Key type
VT = TypeVar("VT")  # Value type

cache_attr_names = ("__contains__", "__getitem__", "__setitem__", "__delitem__")


class CacheEntry(NamedTuple):
    """What a memoization cache holds under a key.

    >>> entry = CacheEntry('computed', 1000.0)
    >>> entry.value
    'computed'
    >>> entry.timestamp
    1000.0
    """

    value: Any
    timestamp: float  # clock reading (milliseconds) when the value was stored


@runtime_checkable
class Cache(Protocol[KT, VT]):
    """The interface a memoization cache must have.

    These are the ``has``, ``get``, ``set`` and ``delete`` of a key-value store, in
    their python (dunder) spelling.

    >>> isinstance({}, Cache)
    True
    >>> isinstance((), Cache)
    False
    """

    def __contains__(self, k: KT) -> bool: ...

    def __getitem__(self, k: KT) -> VT: ...

    def __setitem__(self, k: KT, v: VT) -> None: ...

    def __delitem__(self, k: KT) -> None: ...


CacheFactory = Callable[[], Cache]
CacheSpec = Union[Cache, CacheFactory, None]


def is_a_cache(obj) -> bool:
    """Check if an object implements the cache interface.

    A cache object must have __contains__, __getitem__, __setitem__ and __delitem__
    methods.

    >>> is_a_cache({})  # dict is a valid cache
    True
    >>> is_a_cache(dict)  # but the dict type is a cache factory, not a cache
    False
    >>> is_a_cache("string")  # string is not (immutable)
    False
    """
    if isinstance(obj, type):
        return False
    return all(hasattr(obj, attr) for attr in cache_attr_names)


def mk_cache(cache: CacheSpec = None, *, name: Optional[str] = None) -> Cache:
    """Make a cache instance from a ``cache`` argument.

    The argument can be:

    - ``None``: a new ``dict`` is made,
    - a cache instance: it is returned as is (and will be shared by whoever uses it),
    - a type, or any other argument-less callable: it is called to make the cache.

    >>> mk_cache()
    {}
    >>> d = {'a': 1}
    >>> mk_cache(d) is d
    True
    >>> mk_cache(dict)
    {}
    >>> from collections import OrderedDict
    >>> mk_cache(lambda: OrderedDict(b=2))
    OrderedDict([('b', 2)])

    Anything else is a configuration error:

    >>> mk_cache(42)
    Traceback (most recent call last):
      ...
    memokit.errors.MemoizeConfigurationError: Not a cache, nor a cache factory: 42

    And so is a factory that doesn't make a cache:

    >>> mk_cache(tuple, name='my_func')
    Traceback (most recent call last):
      ...
    memokit.errors.MemoizeConfigurationError: The cache factory of my_func made a tuple, which is not a cache
    """
    if cache is None:
        return {}
    if is_a_cache(cache):
        return cache
    if callable(cache):
        instance = cache()
        if not is_a_cache(instance):
            of = f" of {name}" if name else ""
            raise MemoizeConfigurationError(
                f"The cache factory{of} made a {type_name(instance)}, "
                f"which is not a cache"
            )
        return instance
    raise MemoizeConfigurationError(f"Not a cache, nor a cache factory: {cache!r}")
