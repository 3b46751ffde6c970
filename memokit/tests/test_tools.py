"""Test the memoize decorator for methods and properties"""

import asyncio
import gc
from inspect import isawaitable

import pytest

from memokit.tools import memoize_decorator
from memokit.caching import Memoized
from memokit.context import ContextCacheBinder
from memokit.errors import MemoizeConfigurationError
from memokit.tests.utils_for_tests import FakeClock, LoggedCache


# Decorating what can't be decorated


@pytest.mark.parametrize(
    "not_a_method",
    [10, "a string", None, staticmethod(len), classmethod(len), property()],
)
def test_decorating_a_non_method_raises(not_a_method):
    with pytest.raises(MemoizeConfigurationError, match="can only be used"):
        memoize_decorator()(not_a_method)


def test_decorating_a_class_attribute_raises():
    with pytest.raises(MemoizeConfigurationError, match="can only be used"):

        class TestClass:
            prop = memoize_decorator()(10)


# Decorating methods


def test_decorating_sync_method():
    class TestClass:
        def __init__(self, index):
            self.index = index

        @memoize_decorator()
        def count(self, *args):
            self.index += 1
            return self.index - 1

    a = TestClass(0)

    assert not isawaitable(a.count())
    assert a.count() == 0
    assert a.count() == 0
    assert a.count("") == 1


def test_decorating_async_method():
    class TestClass:
        def __init__(self, index):
            self.index = index

        @memoize_decorator()
        async def count(self, *args):
            self.index += 1
            return self.index - 1

    a = TestClass(0)

    async def main():
        assert isawaitable(a.count())
        assert await a.count() == 0
        assert await a.count() == 0
        assert await a.count("") == 1

    asyncio.run(main())


def test_decorating_without_parentheses():
    class TestClass:
        @memoize_decorator
        def method(self, x):
            """Method docs"""
            return [x]

    obj = TestClass()
    assert obj.method(1) is obj.method(1)
    assert obj.method.__name__ == "method"
    assert obj.method.__doc__ == "Method docs"
    assert isinstance(TestClass.method, Memoized)


# Decorating properties


def test_decorating_sync_property():
    class TestClass:
        def __init__(self, index):
            self.index = index

        @memoize_decorator()
        @property
        def count(self):
            self.index += 1
            return self.index - 1

    a = TestClass(0)

    assert not isawaitable(a.count)
    assert a.count == 0
    assert a.count == 0
    assert isinstance(TestClass.__dict__["count"], property)


def test_decorating_async_property():
    class TestClass:
        def __init__(self, index):
            self.index = index

        @memoize_decorator()
        @property
        async def count(self):
            self.index += 1
            return self.index - 1

    a = TestClass(0)

    async def main():
        assert isawaitable(a.count)
        assert await a.count == 0
        assert await a.count == 0

    asyncio.run(main())


def test_property_setter_and_doc_are_kept():
    class TestClass:
        def __init__(self):
            self._value = 1

        def _get(self):
            return self._value * 10

        def _set(self, value):
            self._value = value

        value = memoize_decorator(property(_get, _set, doc="The value"))

    obj = TestClass()
    assert obj.value == 10
    obj.value = 2
    assert obj._value == 2
    assert obj.value == 10  # still the cached value
    assert TestClass.value.__doc__ == "The value"


# Caches are per instance and per method


def test_cache_is_not_shared_across_instances():
    class TestClass:
        def __init__(self, index):
            self.index = index

        @memoize_decorator()
        async def count(self):
            self.index += 1
            return self.index - 1

    async def main():
        a = TestClass(0)
        assert await a.count() == 0
        assert await a.count() == 0

        b = TestClass(10)
        assert await b.count() == 10
        assert await b.count() == 10

        c = TestClass(20)
        assert await c.count() == 20
        assert await c.count() == 20

    asyncio.run(main())


def test_each_decorated_method_has_its_own_cache():
    class TestClass:
        def __init__(self, index):
            self.index = index

        @memoize_decorator()
        def count1(self):
            self.index += 1
            return self.index - 1

        @memoize_decorator()
        def count2(self):
            self.index += 1
            return self.index - 1

    a = TestClass(0)

    assert a.count1() == 0
    assert a.count1() == 0
    assert a.count2() == 1
    assert a.count2() == 1


def test_calling_the_method_through_the_class():
    class TestClass:
        def __init__(self, base):
            self.base = base
            self.calls = 0

        @memoize_decorator()
        def add(self, x):
            self.calls += 1
            return self.base + x

    a, b = TestClass(10), TestClass(20)

    assert TestClass.add(a, 1) == 11
    assert a.add(1) == 11
    assert a.calls == 1

    assert list(map(TestClass.add, [a, b], [1, 1])) == [11, 21]
    assert (a.calls, b.calls) == (1, 1)
    assert b.add(2) == 22


def test_instances_with_equal_values_have_their_own_cache():
    class Unhashable:
        def __init__(self, index):
            self.index = index

        def __eq__(self, other):
            return isinstance(other, Unhashable) and self.index == other.index

        @memoize_decorator()
        def count(self):
            self.index += 1
            return self.index - 1

    a, b = Unhashable(0), Unhashable(0)
    assert a.count() == 0
    assert b.count() == 0
    assert a.count() == 0
    assert a.index == b.index == 1


def test_instance_caches_are_released_with_their_instance():
    class TestClass:
        @memoize_decorator()
        def method(self, x):
            return x

    binder = TestClass.method.config.cache_from_context.__self__
    assert isinstance(binder, ContextCacheBinder)

    a, b = TestClass(), TestClass()
    a.method(1)
    b.method(1)
    assert len(binder) == 2

    del a
    gc.collect()
    assert len(binder) == 1
    assert b in binder


# Custom caches


def test_using_the_same_cache_for_all_instances():
    cache = {}

    class TestClass:
        def __init__(self, index):
            self.index = index

        # Using the same cache instance
        @memoize_decorator(cache=cache)
        async def count(self):
            self.index += 1
            return self.index - 1

    async def main():
        a = TestClass(0)
        assert await a.count() == 0
        assert await a.count() == 0

        b = TestClass(10)
        assert await b.count() == 0
        assert await b.count() == 0

        c = TestClass(20)
        assert await c.count() == 0
        assert await c.count() == 0

    asyncio.run(main())
    assert len(cache) == 1


def test_cache_factory_makes_a_cache_for_each_instance():
    made = []

    def cache_factory():
        cache = LoggedCache()
        made.append(cache)
        return cache

    class TestClass:
        def __init__(self, index):
            self.index = index

        # Creates a new cache instance for each class instance
        @memoize_decorator(cache=cache_factory)
        async def count(self):
            self.index += 1
            return self.index - 1

    async def main():
        a = TestClass(0)
        assert await a.count() == 0
        assert await a.count() == 0

        b = TestClass(10)
        assert await b.count() == 10
        assert await b.count() == 10

        c = TestClass(20)
        assert await c.count() == 20
        assert await c.count() == 20

    asyncio.run(main())
    assert len(made) == 3
    assert all(len(cache) == 1 for cache in made)


def test_using_instance_attribute_for_the_cache():
    class TestClass:
        def __init__(self, index):
            self.index = index
            self.cache = {}

        @memoize_decorator(cache_from_context=lambda self: self.cache)
        def count(self):
            self.index += 1
            return self.index - 1

    for start in (0, 10, 20):
        obj = TestClass(start)
        assert obj.count() == start
        assert obj.count() == start
        assert len(obj.cache) == 1


def test_naming_the_instance_attribute_holding_the_cache():
    class TestClass:
        def __init__(self):
            self.my_cache = LoggedCache()

        @memoize_decorator(cache="my_cache")
        def double(self, x):
            return 2 * x

    obj = TestClass()
    assert obj.double(3) == 6
    assert obj.double(3) == 6
    assert list(obj.my_cache) == [3]
    assert obj.my_cache.get_log == [3]


def test_missing_cache_attribute():
    class TestClass:
        @memoize_decorator(cache="my_cache")
        def double(self, x):
            return 2 * x

    with pytest.raises(TypeError, match="my_cache"):
        TestClass().double(3)


def test_memoize_options_are_passed_on():
    clock = FakeClock()

    class TestClass:
        def __init__(self):
            self.calls = 0

        @memoize_decorator(max_age=100, key=lambda *args: args, clock=clock)
        def add(self, x, y):
            self.calls += 1
            return x + y

    obj = TestClass()
    assert obj.add(1, 2) == 3
    assert obj.add(1, 2) == 3
    assert obj.add(2, 1) == 3
    assert obj.calls == 2

    clock.now = 101
    assert obj.add(1, 2) == 3
    assert obj.calls == 3


def test_slotted_instances_without_weakref_raise():
    class Slotted:
        __slots__ = ("index",)

        def __init__(self):
            self.index = 0

        @memoize_decorator()
        def count(self):
            return self.index

    with pytest.raises(TypeError, match="weakly referenced"):
        Slotted().count()
