"""
Binding caches to the objects they are used for.

When a method is memoized, it's usually the results of *that instance's* method that
should be cached: two instances in different states shouldn't share results.
A ``ContextCacheBinder`` keeps one cache per "owner" object, making it the first time
it's asked for, and forgetting it when the owner is garbage collected.
"""

import logging
import weakref
from functools import partial
from threading import RLock
from typing import Any, Callable

from memokit.base import Cache, CacheSpec, mk_cache
from memokit.util import type_name

logger = logging.getLogger(__name__)


class ContextCacheBinder:
    """
    Maps owner objects to their own private cache.

    :param cache: A cache factory (called to make a cache for each new owner), or a
        cache instance (which then is the cache of every owner).
    :param name: A name for the binder, used in error messages.

    >>> binder = ContextCacheBinder()
    >>> class Owner:
    ...     pass
    >>> a, b = Owner(), Owner()
    >>> binder.cache_for(a) is binder.cache_for(a)
    True
    >>> binder.cache_for(a) is binder.cache_for(b)
    False
    >>> len(binder)
    2

    Owners are not kept alive by the binder:

    >>> import gc
    >>> del a; _ = gc.collect()
    >>> len(binder)
    1

    Owners are told apart by identity, not equality:

    >>> class AlwaysEqual:
    ...     def __eq__(self, other):
    ...         return True
    >>> x, y = AlwaysEqual(), AlwaysEqual()
    >>> binder.cache_for(x) is binder.cache_for(y)
    False
    """

    def __init__(self, cache: CacheSpec = dict, *, name: str = None):
        self.cache = cache
        self.name = name
        self._caches = {}  # id(owner) -> (weakref to owner, cache)
        self._lock = RLock()

    def cache_for(self, owner: Any) -> Cache:
        """Get the cache of ``owner``, making it if it doesn't exist yet."""
        owner_id = id(owner)
        with self._lock:
            ref_and_cache = self._caches.get(owner_id)
            if ref_and_cache is not None and ref_and_cache[0]() is owner:
                return ref_and_cache[1]

            try:
                ref = weakref.ref(owner, partial(self._forget, owner_id))
            except TypeError:
                of = f" of {self.name}" if self.name else ""
                raise TypeError(
                    f"Can't bind a cache{of} to a {type_name(owner)!r} instance: "
                    f"It can't be weakly referenced (if it defines __slots__, add "
                    f"'__weakref__' to them)."
                ) from None
            cache = mk_cache(self.cache, name=self.name)
            self._caches[owner_id] = (ref, cache)
            logger.debug("Made a cache for a %s instance", type_name(owner))
            return cache

    __call__ = cache_for

    def _forget(self, owner_id, ref):
        with self._lock:
            ref_and_cache = self._caches.get(owner_id)
            if ref_and_cache is not None and ref_and_cache[0] is ref:
                del self._caches[owner_id]

    def __contains__(self, owner) -> bool:
        ref_and_cache = self._caches.get(id(owner))
        return ref_and_cache is not None and ref_and_cache[0]() is owner

    def __len__(self):
        return len(self._caches)

    def __repr__(self):
        name = f" {self.name}" if self.name else ""
        return f"<{type(self).__name__}{name} ({len(self)} owners)>"


def cache_from_attribute(attr: str) -> Callable[[Any], Cache]:
    """Make a ``cache_from_context`` function that gets the cache from an attribute of
    the owner.

    >>> class Owner:
    ...     def __init__(self):
    ...         self.my_cache = {}
    >>> owner = Owner()
    >>> get_cache = cache_from_attribute('my_cache')
    >>> get_cache(owner) is owner.my_cache
    True
    >>> get_cache(object())
    Traceback (most recent call last):
      ...
    TypeError: No attribute named 'my_cache' found on 'object' instance.
    """

    def _cache_from_attribute(owner):
        cache = getattr(owner, attr, None)
        if cache is None:
            raise TypeError(
                f"No attribute named {attr!r} found on {type_name(owner)!r} instance."
            )
        return cache

    _cache_from_attribute.__name__ = f"cache_from_{attr}"
    return _cache_from_attribute
