import asyncio
import uuid

import pytest

from conftest import make_push
from core.errors import SubscriptionNotFound
from services.subscription_service import SubscriptionRegistry


async def assert_index_consistent(registry, locations):
    """subscribers_of(L) is exactly the subscriptions whose location set contains L."""
    persisted = await registry.storage.list_subscriptions()
    for key in locations:
        indexed = {s.id for s in await registry.subscribers_of(key)}
        expected = {row.id for row in persisted if key in row.locations}
        assert indexed == expected, key


@pytest.mark.asyncio
async def test_register_then_remove(registry, storage, locations):
    """Full flow: register once, then remove; both the index and storage follow."""
    sub = await registry.register(make_push(1), ["nyc", "tokyo"])

    assert sub.locations == ["nyc", "tokyo"]
    assert sub.id.version == 7
    assert [s.id for s in await registry.subscribers_of("nyc")] == [sub.id]
    assert [s.id for s in await registry.subscribers_of("tokyo")] == [sub.id]
    stored = await storage.get_subscription(sub.id)
    assert stored.locations == ["nyc", "tokyo"]
    assert stored.push == make_push(1)
    await assert_index_consistent(registry, locations)

    await registry.remove(sub.id)

    assert await registry.subscribers_of("nyc") == ()
    assert await registry.subscribers_of("tokyo") == ()
    assert await storage.get_subscription(sub.id) is None
    await assert_index_consistent(registry, locations)


@pytest.mark.asyncio
async def test_register_normalizes_duplicate_locations(registry):
    sub = await registry.register(make_push(1), ["nyc", "nyc", "tokyo", "nyc"])

    assert sub.locations == ["nyc", "tokyo"]
    assert registry.count("nyc") == 1


@pytest.mark.asyncio
async def test_public_shape_never_contains_push_capability(registry):
    sub = await registry.register(make_push(1), ["nyc"])

    dumped = sub.model_dump(mode="json")
    assert set(dumped) == {"id", "locations"}


@pytest.mark.asyncio
async def test_update_adding_same_location_twice_is_idempotent(registry, storage):
    sub = await registry.register(make_push(1), ["nyc"])

    await registry.update(sub.id, add_locations=["tokyo"])
    updated = await registry.update(sub.id, add_locations=["tokyo"])

    assert updated.locations == ["nyc", "tokyo"]
    assert (await storage.get_subscription(sub.id)).locations == ["nyc", "tokyo"]
    assert registry.count("tokyo") == 1


@pytest.mark.asyncio
async def test_update_adds_and_removes_incrementally(registry, locations):
    sub = await registry.register(make_push(1), ["nyc", "la"])
    other = await registry.register(make_push(2), ["nyc"])

    updated = await registry.update(sub.id, add_locations=["tokyo"], remove_locations=["nyc"])

    assert updated.locations == ["la", "tokyo"]
    assert [s.id for s in await registry.subscribers_of("nyc")] == [other.id]
    assert [s.id for s in await registry.subscribers_of("tokyo")] == [sub.id]
    assert [s.id for s in await registry.subscribers_of("la")] == [sub.id]
    await assert_index_consistent(registry, locations)


@pytest.mark.asyncio
async def test_update_replaces_push_capability_in_every_bucket(registry):
    sub = await registry.register(make_push(1), ["nyc", "tokyo"])

    await registry.update(sub.id, push=make_push(99))

    for key in ("nyc", "tokyo"):
        (current,) = await registry.subscribers_of(key)
        assert current.push == make_push(99)


@pytest.mark.asyncio
async def test_update_keeps_push_capability_when_none_given(registry, storage):
    sub = await registry.register(make_push(1), ["nyc"])

    await registry.update(sub.id, add_locations=["la"])

    assert (await storage.get_subscription(sub.id)).push == make_push(1)


@pytest.mark.asyncio
async def test_update_reads_persisted_locations_not_the_index(registry, storage):
    """A location persisted by another writer survives an update from this process."""
    sub = await registry.register(make_push(1), ["nyc"])
    await storage.upsert_subscription(sub.id, ["nyc", "paris"], make_push(1))

    updated = await registry.update(sub.id, add_locations=["tokyo"])

    assert updated.locations == ["nyc", "paris", "tokyo"]
    assert registry.count("paris") == 1


@pytest.mark.asyncio
async def test_update_unknown_id_raises_not_found(registry):
    with pytest.raises(SubscriptionNotFound):
        await registry.update(uuid.uuid4(), add_locations=["nyc"])


@pytest.mark.asyncio
async def test_update_removing_every_location_deletes_subscription(registry, storage, locations):
    sub = await registry.register(make_push(1), ["nyc", "tokyo"])

    updated = await registry.update(sub.id, remove_locations=["nyc", "tokyo"])

    assert updated.locations == []
    assert await storage.get_subscription(sub.id) is None
    assert registry.get(sub.id) is None
    assert registry.count("nyc") == 0
    await assert_index_consistent(registry, locations)


@pytest.mark.asyncio
async def test_remove_unknown_id_raises_not_found(registry):
    sub = await registry.register(make_push(1), ["nyc"])
    await registry.remove(sub.id)

    with pytest.raises(SubscriptionNotFound):
        await registry.remove(sub.id)


@pytest.mark.asyncio
async def test_subscribers_snapshot_is_not_affected_by_later_mutations(registry):
    first = await registry.register(make_push(1), ["nyc"])
    snapshot = await registry.subscribers_of("nyc")

    await registry.register(make_push(2), ["nyc"])
    await registry.remove(first.id)

    assert [s.id for s in snapshot] == [first.id]
    assert registry.count("nyc") == 1


@pytest.mark.asyncio
async def test_concurrent_updates_to_same_subscription_keep_both_additions(registry, storage, locations):
    sub = await registry.register(make_push(1), ["nyc"])

    await asyncio.gather(
        registry.update(sub.id, add_locations=["tokyo"]),
        registry.update(sub.id, add_locations=["la"]),
        registry.update(sub.id, add_locations=["paris"]),
    )

    stored = await storage.get_subscription(sub.id)
    assert set(stored.locations) == {"nyc", "tokyo", "la", "paris"}
    await assert_index_consistent(registry, locations)
    assert registry._id_locks == {}


@pytest.mark.asyncio
async def test_concurrent_registrations_land_in_the_index(registry, locations):
    subs = await asyncio.gather(*(registry.register(make_push(n), ["nyc", "berlin"]) for n in range(20)))

    assert registry.count("nyc") == 20
    assert {s.id for s in await registry.subscribers_of("berlin")} == {s.id for s in subs}
    await assert_index_consistent(registry, locations)


@pytest.mark.asyncio
async def test_load_rebuilds_index_from_storage(registry, storage, locations):
    a = await registry.register(make_push(1), ["nyc", "tokyo"])
    b = await registry.register(make_push(2), ["tokyo"])

    fresh = SubscriptionRegistry(storage, locations.keys())
    loaded = await fresh.load()

    assert loaded == 2
    assert [s.id for s in await fresh.subscribers_of("nyc")] == [a.id]
    assert {s.id for s in await fresh.subscribers_of("tokyo")} == {a.id, b.id}
    assert fresh.get(b.id).push == make_push(2)


@pytest.mark.asyncio
async def test_per_id_locks_are_released_on_every_path(registry):
    for _ in range(50):
        with pytest.raises(SubscriptionNotFound):
            await registry.update(uuid.uuid4(), add_locations=["nyc"])
        with pytest.raises(SubscriptionNotFound):
            await registry.remove(uuid.uuid4())

    emptied = await registry.register(make_push(1), ["nyc"])
    await registry.update(emptied.id, remove_locations=["nyc"])
    removed = await registry.register(make_push(2), ["la"])
    await registry.remove(removed.id)

    assert registry._id_locks == {}
