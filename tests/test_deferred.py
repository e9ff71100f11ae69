import asyncio

import pytest

from infragraph.deferred import (
    DeferredValue,
    collect_deferred,
    combine,
    contains_deferred,
    resolve_nested,
)
from infragraph.errors import InvalidStateError


def test_resolving_twice_raises():
    deferred = DeferredValue()
    deferred.resolve(1)

    with pytest.raises(InvalidStateError, match="already been settled"):
        deferred.resolve(2)
    assert deferred.value == 1


def test_resolving_after_failure_raises():
    deferred = DeferredValue()
    deferred.fail(RuntimeError("boom"))

    with pytest.raises(InvalidStateError):
        deferred.resolve(1)


def test_reading_pending_value_raises():
    with pytest.raises(InvalidStateError, match="has not been resolved"):
        DeferredValue().value


def test_map_on_resolved_value_runs_immediately_and_once():
    calls = []
    deferred = DeferredValue.of(20)

    doubled = deferred.map(lambda v: calls.append(v) or v * 2)

    assert calls == [20]
    assert doubled.value == 40
    assert doubled.value == 40
    assert calls == [20]


def test_map_on_pending_value_waits_for_resolution():
    calls = []
    deferred = DeferredValue()

    mapped = deferred.map(lambda v: calls.append(v) or v + 1)
    assert calls == []
    assert not mapped.is_settled

    deferred.resolve(1)

    assert calls == [1]
    assert mapped.value == 2


def test_continuations_fire_in_registration_order():
    fired = []
    deferred = DeferredValue()
    deferred.map(lambda _: fired.append("first"))
    deferred.map(lambda _: fired.append("second"))
    deferred.map(lambda _: fired.append("third"))

    deferred.resolve(None)

    assert fired == ["first", "second", "third"]


def test_map_function_failure_fails_derived_value():
    deferred = DeferredValue.of({})

    missing = deferred.map(lambda v: v["absent"])

    assert missing.is_failed
    with pytest.raises(KeyError):
        missing.value


def test_failure_propagates_through_map():
    deferred = DeferredValue()
    mapped = deferred.map(lambda v: v + 1).map(lambda v: v * 2)

    deferred.fail(ValueError("no zones"))

    with pytest.raises(ValueError, match="no zones"):
        mapped.value


def test_indexing_maps_over_value():
    zones = DeferredValue()
    first, second = zones[0], zones[1]

    zones.resolve(["zone-a", "zone-b"])

    assert (first.value, second.value) == ("zone-a", "zone-b")


def test_deferred_values_are_not_iterable():
    with pytest.raises(TypeError, match="not iterable"):
        list(DeferredValue())


def test_map_preserves_origins():
    origin = object()
    deferred = DeferredValue({origin})

    assert deferred.map(str).origins == {origin}
    assert deferred[0].origins == {origin}


def test_combine_keeps_input_order_not_arrival_order():
    first, second, third = DeferredValue(), DeferredValue(), DeferredValue()
    combined = combine([first, second, third])

    third.resolve("c")
    first.resolve("a")
    assert not combined.is_settled
    second.resolve("b")

    assert combined.value == ["a", "b", "c"]


def test_combine_unions_origins_and_accepts_literals():
    a, b = object(), object()
    combined = combine([DeferredValue({a}), "literal", DeferredValue({b})])

    assert combined.origins == {a, b}


def test_combine_of_nothing_is_resolved():
    assert combine([]).value == []


def test_all_combines_a_generator_of_values():
    a = object()
    ids = [DeferredValue({a}), DeferredValue({a})]
    combined = DeferredValue.all(deferred for deferred in ids)

    ids[1].resolve("subnet-2")
    ids[0].resolve("subnet-1")

    assert combined.value == ["subnet-1", "subnet-2"]
    assert combined.origins == {a}


def test_combine_fails_with_first_failure_in_input_order():
    first, second = DeferredValue(), DeferredValue()
    combined = combine([first, second])

    second.fail(ValueError("second"))
    first.fail(ValueError("first"))

    with pytest.raises(ValueError, match="first"):
        combined.value


def test_collect_deferred_walks_nested_structures():
    inner = DeferredValue()
    outer = DeferredValue()
    properties = {
        "name": "cluster",
        "settings": [{"name": "containerInsights", "value": inner}],
        "vpc_id": outer,
    }

    assert collect_deferred(properties) == [inner, outer]
    assert contains_deferred(properties)
    assert not contains_deferred({"name": "cluster", "tags": {"a": "b"}})


@pytest.mark.asyncio
async def test_awaiting_suspends_until_resolved():
    deferred = DeferredValue()
    asyncio.get_running_loop().call_later(0.01, deferred.resolve, "zone-a")

    assert await deferred == "zone-a"


@pytest.mark.asyncio
async def test_awaiting_failed_value_raises():
    deferred = DeferredValue()
    deferred.fail(LookupError("gone"))

    with pytest.raises(LookupError, match="gone"):
        await deferred


@pytest.mark.asyncio
async def test_resolve_nested_replaces_every_deferred_value():
    zone = DeferredValue.of("zone-a")
    ids = combine([DeferredValue.of("subnet-1"), DeferredValue.of("subnet-2")])

    resolved = await resolve_nested({
        "availability_zone": zone,
        "subnet_ids": ids,
        "pair": (zone, 1),
        "tags": {"Name": "public"},
    })

    assert resolved == {
        "availability_zone": "zone-a",
        "subnet_ids": ["subnet-1", "subnet-2"],
        "pair": ("zone-a", 1),
        "tags": {"Name": "public"},
    }
