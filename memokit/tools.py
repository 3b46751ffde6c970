"""
Memoization decorators for methods and properties.
"""

from functools import partial, wraps
from typing import Callable, Optional, Union

from memokit.base import CacheSpec
from memokit.caching import ContextCacheFunc, Memoized, memoize
from memokit.context import ContextCacheBinder, cache_from_attribute
from memokit.errors import MemoizeConfigurationError
from memokit.util import func_name, type_name

MethodName = str


def _not_memoizable_error(obj) -> MemoizeConfigurationError:
    return MemoizeConfigurationError(
        "Memoize decorator can only be used on a method or a property. "
        f"Was used on a {type_name(obj)}: {obj!r}"
    )


def _memoized_property(prop: property, memoized: Memoized) -> property:
    @wraps(prop.fget)
    def memoized_getter(self):
        return memoized.invoke(self, (), {})

    memoized_getter.memoized = memoized
    return property(memoized_getter, prop.fset, prop.fdel, prop.__doc__)


def memoize_decorator(
    func: Union[Callable, property] = None,
    *,
    cache: Union[CacheSpec, MethodName] = dict,
    cache_from_context: Optional[ContextCacheFunc] = None,
    **memoize_kwargs,
):
    """
    Memoize decorator: cache results of expensive methods and properties, per instance.

    Each decorated method (or property) gets its own ``ContextCacheBinder``, so that
    every instance has its own cache for it, made the first time the method is called
    on that instance.

    :param func: The method or property to decorate (usually left empty).
    :param cache: What the cache of an instance is. Can be:
        - A cache factory (default ``dict``): each instance gets a new cache.
        - A cache instance: shared by all instances (so that all instances share
          results).
        - A string naming an instance attribute that holds the cache.
    :param cache_from_context: Function taking the instance and returning its cache.
        Takes precedence over ``cache``.
    :param memoize_kwargs: The other arguments of ``memoize`` (``max_age``, ``key``,
        ``cache_rejected``, ``clock``, ``lock_factory``).
    :return: The memoized method or property.

    >>> class Counter:
    ...     def __init__(self, index):
    ...         self.index = index
    ...
    ...     @memoize_decorator
    ...     def count(self, *args):
    ...         self.index += 1
    ...         return self.index
    ...
    ...     @memoize_decorator
    ...     @property
    ...     def current(self):
    ...         return self.index
    ...
    >>> a, b = Counter(0), Counter(10)
    >>> a.count(), a.count(), b.count(), b.count()
    (1, 1, 11, 11)
    >>> a.current, b.current
    (1, 11)
    >>> a.count('again'), a.current
    (2, 1)

    Only methods and properties can be decorated:

    >>> memoize_decorator()(10)
    Traceback (most recent call last):
      ...
    memokit.errors.MemoizeConfigurationError: Memoize decorator can only be used on a method or a property. Was used on a int: 10
    """
    if func is None:
        return partial(
            memoize_decorator,
            cache=cache,
            cache_from_context=cache_from_context,
            **memoize_kwargs,
        )

    if isinstance(func, property):
        if func.fget is None:
            raise _not_memoizable_error(func)
        method = func.fget
    elif isinstance(func, (staticmethod, classmethod)) or not callable(func):
        raise _not_memoizable_error(func)
    else:
        method = func

    if cache_from_context is None:
        if isinstance(cache, str):
            cache_from_context = cache_from_attribute(cache)
        else:
            binder = ContextCacheBinder(cache, name=func_name(method))
            cache_from_context = binder.cache_for

    memoized = memoize(method, cache_from_context=cache_from_context, **memoize_kwargs)
    if isinstance(func, property):
        return _memoized_property(func, memoized)
    return memoized
