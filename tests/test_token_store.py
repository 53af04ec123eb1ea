import pytest

from shclink.gnap.keys import new_key_pair
from shclink.gnap.types import (
    AccessType,
    Anyone,
    ClientIdentity,
    Keyholder,
    Permission,
    PolicyRecord,
    RARItem,
)
from shclink.tokenstore.store import AccessTokenStore

pytestmark = pytest.mark.asyncio


def make_identity():
    return ClientIdentity.from_jwk(new_key_pair().public_jwk)


def read_item(location="https://shclink.example.org/shclinks/c/p/data/x.json"):
    return RARItem(type=AccessType.READ.value, locations=(location,))


def claim_on(package, revision=1):
    return PolicyRecord(who=Anyone(), permission=Permission.CLAIM, package=package, revision=revision)


async def test_save_and_introspect(config, clock):
    store = AccessTokenStore(config)
    client = make_identity()

    token = await store.save([read_item()], [claim_on("p")], client)

    assert token.bound_client == client
    assert token.issued_at == clock()
    assert token.expiration_time == clock() + config.token_ttl
    result = await store.introspect(token.value)
    assert result.found and result.valid
    assert result.token is token


async def test_token_values_are_unique(config):
    store = AccessTokenStore(config)
    client = make_identity()

    values = {(await store.save([], [], client)).value for _ in range(50)}

    assert len(values) == 50
    assert await store.count() == 50


async def test_unknown_token_is_not_an_error(config):
    store = AccessTokenStore(config)

    result = await store.introspect("missing")

    assert result.found is False
    assert result.valid is False


async def test_expiry_is_lazy(config, clock):
    store = AccessTokenStore(config)
    token = await store.save([read_item()], [], make_identity())

    clock.advance(config.token_ttl - 1)
    assert (await store.introspect(token.value)).valid is True

    clock.advance(1)
    result = await store.introspect(token.value)
    assert result.found is True
    assert result.valid is False


async def test_revoke_by_package_only_removes_claims_on_that_package(config):
    store = AccessTokenStore(config)
    client = make_identity()
    claimed = await store.save([read_item()], [claim_on("pkg-1")], client)
    other = await store.save([read_item()], [claim_on("pkg-2")], client)
    managed = await store.save(
        [read_item()],
        [PolicyRecord(who=Keyholder(client.key_id), permission=Permission.MANAGE, package="pkg-1")],
        client,
    )

    assert await store.revoke_by_package("pkg-1") == 1

    assert not (await store.introspect(claimed.value)).found
    assert (await store.introspect(other.value)).found
    assert (await store.introspect(managed.value)).found


async def test_revoke_and_cleanup(config, clock):
    store = AccessTokenStore(config)
    client = make_identity()
    first = await store.save([], [], client)
    clock.advance(10)
    second = await store.save([], [], client)

    assert await store.revoke(first.value) is True
    assert await store.revoke(first.value) is False

    clock.advance(config.token_ttl)
    third = await store.save([], [], client)
    assert await store.cleanup() == 1
    assert not (await store.introspect(second.value)).found
    assert (await store.introspect(third.value)).valid

    stats = await store.get_statistics()
    assert stats == {"total_tokens": 1, "valid_tokens": 1, "token_ttl": config.token_ttl}


async def test_issued_and_removed_tokens_leave_no_locks(config, clock):
    store = AccessTokenStore(config)
    client = make_identity()

    for _ in range(200):
        token = await store.save([read_item()], [claim_on("pkg")], client)
        await store.revoke(token.value)
    for _ in range(20):
        await store.save([read_item()], [claim_on("pkg")], client)
    await store.revoke_by_package("pkg")
    await store.save([], [], client)
    clock.advance(config.token_ttl)
    await store.cleanup()

    assert await store.count() == 0
    assert store._tokens._locks == {}
