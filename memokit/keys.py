"""
Helpers to make cache keys from the arguments of a call.

These are meant to be used as the ``key`` of ``memoize`` (or ``memoize_decorator``),
when the default key (the first positional argument) isn't enough.

>>> from memokit import memoize
>>> @memoize(key=all_args)
... def area(width, height):
...     return width * height
>>> area(2, 3), area(2, 4)
(6, 8)
>>> sorted(area.cache)
['2-3', '2-4']
"""

import json

key_sep = "-"


def _kwargs_parts(kwargs: dict):
    return [f"{k}={v}" for k, v in sorted(kwargs.items())]


def all_args(*args, **kwargs) -> str:
    """Get a key from all the arguments cast to a string and joined together.

    Note: Doesn't work with objects whose string doesn't identify them.

    >>> all_args()
    ''
    >>> all_args('str', 100, None, True, [1, 'a'])
    "str-100-None-True-[1, 'a']"
    >>> all_args(1, 2, mode='fast', verbose=False)
    '1-2-mode=fast-verbose=False'
    """
    return key_sep.join([*map(str, args), *_kwargs_parts(kwargs)])


def json_args(*args, **kwargs) -> str:
    """Get a (compact) JSON string key from the arguments.

    Keyword arguments, if any, are added as a last object. Object keys are sorted, so
    that equal dicts give equal keys.

    Note: Doesn't work with arguments that aren't JSON serializable.

    >>> json_args()
    '[]'
    >>> json_args(None)
    '[null]'
    >>> json_args({'b': True, 'a': 1}, [False, {'c': 2}])
    '[{"a":1,"b":true},[false,{"c":2}]]'
    >>> json_args(1, mode='fast')
    '[1,{"mode":"fast"}]'
    """
    items = [*args, kwargs] if kwargs else list(args)
    return json.dumps(items, sort_keys=True, separators=(",", ":"))


def any_order(*args, **kwargs) -> str:
    """Get the same key from a set of arguments passed in any order.

    The arguments are cast to strings, sorted, then joined together.

    Note: Doesn't work with objects whose string doesn't identify them.

    >>> any_order()
    ''
    >>> any_order('b', 'a', 3, None) == any_order(None, 3, 'a', 'b')
    True
    >>> any_order(2, 1, x=0)
    '1-2-x=0'
    """
    return key_sep.join(sorted([*map(str, args), *_kwargs_parts(kwargs)]))
