"""Memoize functions, methods and properties: pluggable caches, custom keys,
expiration, and async results that are shared, not recomputed"""

from memokit.caching import (
    memoize,  # memoize a function (the main tool)
    Memoized,  # the memoized callable memoize makes (also a descriptor)
    MemoizeConfig,  # the (frozen) configuration of a Memoized
    SharedAwaitable,  # an awaitable many callers can await (wraps coroutines)
    first_arg_key,  # the default key function
)

from memokit.tools import (
    memoize_decorator,  # memoize methods and properties, with a cache per instance
)

from memokit.context import (
    ContextCacheBinder,  # maps owner objects to their own cache
    cache_from_attribute,  # make a cache_from_context that reads an attribute
)

from memokit.base import (
    Cache,  # the interface a cache must have (a protocol)
    CacheEntry,  # what's stored in a cache: (value, timestamp)
    is_a_cache,  # check if an object has the cache interface
    mk_cache,  # make a cache instance from a cache or cache factory
)

from memokit.keys import (
    all_args,  # key from all arguments, cast to str and joined
    json_args,  # key from the JSON of the arguments
    any_order,  # key that doesn't depend on the order of the arguments
)

from memokit.errors import MemoizeError, MemoizeConfigurationError
