"""Unit tests for latch.storage.memory_store module.

These also cover the store-level session semantics shared by every backend.
"""

import asyncio
from datetime import timedelta
from unittest.mock import patch

import pytest

from latch.core.exceptions import (
    IdentifierCollisionError,
    SessionConflictError,
    UnknownIdentifierError,
)
from latch.core.serialization import SessionRecord, encode_record
from latch.session.identifier import generate_identifier, hash_identifier
from latch.session.renewal import RenewalPolicy
from latch.session.session import Session
from latch.storage.memory_store import MemorySessionStore


def new_session(store, data=None, lifetime=None):
    session = Session(data, clock=store.clock)
    if lifetime is not None:
        session.expire_in(lifetime)
    return session


# =============================================================================
# Basic Operations
# =============================================================================


class TestMemoryStoreBasics:
    """Tests for saving, loading and destroying sessions."""

    @pytest.mark.asyncio
    async def test_save_and_load(self, store):
        """Test a saved session loads back by identifier."""
        session = new_session(store, {"role": "guest"})
        identifier = await store.save(session)

        loaded = await store.load_identifier(identifier)

        assert identifier == session.identifier
        assert loaded is not None
        assert loaded.identifier == identifier
        assert loaded.get("role") == "guest"
        assert not loaded.is_new
        assert not loaded.dirty

    @pytest.mark.asyncio
    async def test_store_holds_only_hashed_keys(self, store):
        """Test the raw identifier never appears in the store."""
        session = new_session(store, {"role": "guest"})
        identifier = await store.save(session)

        keys = await store.list_hashed_keys()

        assert keys == [hash_identifier(identifier)]
        assert all(identifier not in raw for raw in store._records.values())

    @pytest.mark.asyncio
    async def test_load_by_hashed_key(self, store):
        """Test loading by hashed key gives a session without identifier."""
        session = new_session(store, {"a": 1})
        await store.save(session)

        loaded = await store.load(session.hashed_key)

        assert loaded.identifier is None
        assert loaded.get("a") == 1
        assert await store.exists(session.hashed_key)

    @pytest.mark.asyncio
    async def test_load_unknown(self, store):
        """Test unknown identifiers load as None."""
        assert await store.load_identifier(generate_identifier()) is None
        assert await store.load(hash_identifier(generate_identifier())) is None

    @pytest.mark.asyncio
    async def test_load_malformed_identifier(self, store):
        """Test malformed identifiers are rejected without a lookup."""
        with patch.object(store, "_read") as mock_read:
            assert await store.load_identifier("not-an-identifier") is None

        mock_read.assert_not_called()

    @pytest.mark.asyncio
    async def test_guest_becomes_admin(self, store):
        """Test a changed payload is rewritten under the same identifier."""
        session = new_session(store, {"role": "guest"})
        identifier = await store.save(session)

        loaded = await store.load_identifier(identifier)
        loaded.set("role", "admin")
        assert await store.save(loaded) == identifier

        reloaded = await store.load_identifier(identifier)
        assert reloaded.get("role") == "admin"

    @pytest.mark.asyncio
    async def test_unchanged_session_not_written(self, store):
        """Test saving an unchanged session performs no write."""
        session = new_session(store, {"role": "guest"})
        identifier = await store.save(session)
        loaded = await store.load_identifier(identifier)

        with patch.object(store, "_update") as mock_update:
            assert await store.save(loaded) == identifier

        mock_update.assert_not_called()

    @pytest.mark.asyncio
    async def test_new_session_always_written(self, store):
        """Test an unmodified new session is still persisted."""
        session = new_session(store)
        await store.save(session)

        assert await store.count() == 1
        assert not session.is_new

    @pytest.mark.asyncio
    async def test_destroy_idempotent(self, store):
        """Test destroying twice, or an unknown key, is fine."""
        session = new_session(store)
        await store.save(session)

        await store.destroy(session.hashed_key)
        await store.destroy(session.hashed_key)
        await store.destroy(hash_identifier(generate_identifier()))

        assert await store.load(session.hashed_key) is None

    @pytest.mark.asyncio
    async def test_save_destroyed_session(self, store):
        """Test saving a destroyed session deletes its record."""
        session = new_session(store, {"role": "guest"})
        identifier = await store.save(session)

        loaded = await store.load_identifier(identifier)
        loaded.destroy()

        assert await store.save(loaded) is None
        assert await store.load_identifier(identifier) is None
        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_save_destroyed_new_session(self, store):
        """Test a session destroyed before its first save is never stored."""
        session = new_session(store)
        session.destroy()

        assert await store.save(session) is None
        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_clear(self, store):
        """Test clear removes everything."""
        for _ in range(3):
            await store.save(new_session(store))

        await store.clear()

        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_context_manager(self, clock):
        """Test the store works as an async context manager."""
        async with MemorySessionStore(clock=clock) as store:
            await store.save(new_session(store))
            assert await store.count() == 1


# =============================================================================
# Expiry
# =============================================================================


class TestMemoryStoreExpiry:
    """Tests for expiry handling."""

    @pytest.mark.asyncio
    async def test_expired_not_loadable(self, store, clock):
        """Test expired sessions are gone without any sweep."""
        session = new_session(store, lifetime=timedelta(minutes=1))
        identifier = await store.save(session)

        clock.advance(timedelta(minutes=1))

        assert await store.load_identifier(identifier) is None
        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_save_expired_session(self, store, clock):
        """Test saving an expired session deletes it."""
        session = new_session(store, lifetime=timedelta(minutes=1))
        await store.save(session)

        clock.advance(timedelta(minutes=2))

        assert await store.save(session) is None
        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_save_already_expired_new_session(self, store, clock):
        """Test a new session expiring in the past is not stored."""
        session = new_session(store)
        session.set_expiry(clock.now() - timedelta(milliseconds=1))

        assert await store.save(session) is None
        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_cleanup_expired(self, store, clock):
        """Test cleanup removes expired sessions only."""
        await store.save(new_session(store, lifetime=timedelta(minutes=1)))
        await store.save(new_session(store, lifetime=timedelta(minutes=1)))
        keeper = new_session(store, lifetime=timedelta(hours=1))
        await store.save(keeper)
        forever = new_session(store)
        await store.save(forever)

        clock.advance(timedelta(minutes=5))

        assert await store.cleanup_expired() == 2
        assert sorted(await store.list_hashed_keys()) == sorted(
            [keeper.hashed_key, forever.hashed_key]
        )

    @pytest.mark.asyncio
    async def test_extending_expiry_is_saved(self, store, clock):
        """Test a changed expiry is persisted."""
        session = new_session(store, lifetime=timedelta(minutes=1))
        identifier = await store.save(session)

        session.expire_in(timedelta(hours=1))
        await store.save(session)
        clock.advance(timedelta(minutes=30))

        assert await store.load_identifier(identifier) is not None


# =============================================================================
# Renewal
# =============================================================================


class TestMemoryStoreRenewal:
    """Tests for renewal and identifier rotation."""

    @pytest.mark.asyncio
    async def test_renewal_rotates_identifier(self, renewing_store, clock):
        """Test a session saved inside the window gets a new identifier."""
        store = renewing_store
        session = new_session(store, {"role": "guest"}, lifetime=timedelta(minutes=10))
        old_identifier = await store.save(session)

        clock.advance(timedelta(minutes=9))
        loaded = await store.load_identifier(old_identifier)
        new_identifier = await store.save(loaded)

        assert new_identifier is not None
        assert new_identifier != old_identifier
        assert await store.load_identifier(old_identifier) is None

        renewed = await store.load_identifier(new_identifier)
        assert renewed.get("role") == "guest"
        assert renewed.expiry == clock.now() + timedelta(minutes=10)
        assert await store.count() == 1

    @pytest.mark.asyncio
    async def test_no_renewal_outside_window(self, renewing_store, clock):
        """Test sessions far from expiry keep their identifier."""
        store = renewing_store
        session = new_session(store, lifetime=timedelta(minutes=10))
        identifier = await store.save(session)

        clock.advance(timedelta(minutes=5))
        loaded = await store.load_identifier(identifier)
        loaded.set("seen", True)

        assert await store.save(loaded) == identifier

    @pytest.mark.asyncio
    async def test_fraction_renewal_of_absolute_expiry(self, clock):
        """Test a session with only an absolute expiry renews under a fractional policy."""
        store = MemorySessionStore(
            clock=clock,
            renewal=RenewalPolicy(fraction=0.2, lifetime=timedelta(minutes=10)),
        )
        session = new_session(store)
        session.set_expiry(clock.now() + timedelta(minutes=10))
        identifier = await store.save(session)

        clock.advance(timedelta(minutes=9))
        loaded = await store.load_identifier(identifier)
        renewed = await store.save(loaded)

        assert renewed != identifier
        assert loaded.expiry == clock.now() + timedelta(minutes=10)
        assert await store.load_identifier(identifier) is None

    @pytest.mark.asyncio
    async def test_regenerate_moves_record(self, store):
        """Test an explicit regenerate moves the record to the new key."""
        session = new_session(store, {"role": "guest"})
        old_identifier = await store.save(session)

        session.regenerate()
        new_identifier = await store.save(session)

        assert new_identifier == session.identifier != old_identifier
        assert await store.load_identifier(old_identifier) is None
        assert (await store.load_identifier(new_identifier)).get("role") == "guest"

    @pytest.mark.asyncio
    async def test_renewal_of_vanished_session(self, renewing_store, clock):
        """Test renewing a session removed meanwhile raises a conflict."""
        store = renewing_store
        session = new_session(store, lifetime=timedelta(minutes=10))
        identifier = await store.save(session)

        clock.advance(timedelta(minutes=9))
        loaded = await store.load_identifier(identifier)
        await store.destroy(loaded.hashed_key)

        with pytest.raises(SessionConflictError):
            await store.save(loaded)
        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_rotation_is_atomic(self, renewing_store, clock):
        """Test concurrent readers never see both keys or neither."""
        store = renewing_store
        sessions = [
            new_session(store, {"n": i}, lifetime=timedelta(minutes=10))
            for i in range(20)
        ]
        for session in sessions:
            await store.save(session)
        clock.advance(timedelta(minutes=9))

        loaded = [await store.load(s.hashed_key) for s in sessions]
        snapshots = []

        async def observe():
            for _ in range(50):
                snapshots.append(len(await store.list_hashed_keys()))
                await asyncio.sleep(0)

        async def renew():
            for session in loaded:
                await store.save(session)
                await asyncio.sleep(0)

        await asyncio.gather(observe(), renew())

        assert set(snapshots) == {20}
        assert not set(await store.list_hashed_keys()) & {s.hashed_key for s in sessions}


# =============================================================================
# Concurrent Requests
# =============================================================================


class TestMemoryStoreStaleSaves:
    """Tests for saves of copies loaded before another request changed the key."""

    @pytest.mark.asyncio
    async def test_stale_save_after_regenerate(self, store):
        """Test a stale copy cannot bring back a rotated-away identifier."""
        session = new_session(store, {"role": "guest"})
        old_identifier = await store.save(session)
        first = await store.load_identifier(old_identifier)
        second = await store.load_identifier(old_identifier)

        first.set("role", "admin")
        first.regenerate()
        new_identifier = await store.save(first)

        second.set("cart", 1)
        with pytest.raises(SessionConflictError):
            await store.save(second)

        assert await store.load_identifier(old_identifier) is None
        assert (await store.load_identifier(new_identifier)).get("role") == "admin"
        assert await store.count() == 1

    @pytest.mark.asyncio
    async def test_stale_save_after_renewal(self, renewing_store, clock):
        """Test a stale copy cannot bring back a renewed-away identifier."""
        store = renewing_store
        session = new_session(store, lifetime=timedelta(minutes=10))
        old_identifier = await store.save(session)
        clock.advance(timedelta(minutes=9))
        first = await store.load_identifier(old_identifier)
        second = await store.load_identifier(old_identifier)

        new_identifier = await store.save(first)
        with pytest.raises(SessionConflictError):
            await store.save(second)

        assert new_identifier != old_identifier
        assert await store.list_hashed_keys() == [hash_identifier(new_identifier)]

    @pytest.mark.asyncio
    async def test_stale_save_after_destroy(self, store):
        """Test a destroyed session stays destroyed."""
        identifier = await store.save(new_session(store, {"role": "guest"}))
        first = await store.load_identifier(identifier)
        second = await store.load_identifier(identifier)

        first.destroy()
        assert await store.save(first) is None

        second.set("x", 1)
        with pytest.raises(SessionConflictError):
            await store.save(second)

        assert await store.load_identifier(identifier) is None
        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_stale_unchanged_copy_writes_nothing(self, store):
        """Test an unchanged stale copy is not written back either."""
        identifier = await store.save(new_session(store))
        first = await store.load_identifier(identifier)
        second = await store.load_identifier(identifier)

        first.destroy()
        await store.save(first)

        assert await store.save(second) == identifier
        assert await store.count() == 0


# =============================================================================
# Sessions Loaded By Hashed Key
# =============================================================================


class TestMemoryStoreKeyOnlySessions:
    """Tests for sessions whose client identifier is unknown."""

    @pytest.mark.asyncio
    async def test_save_refuses_unknown_identifier(self, store):
        """Test save cannot report an identifier it does not know."""
        session = new_session(store, {"role": "guest"})
        await store.save(session)
        loaded = await store.load(session.hashed_key)
        loaded.set("role", "admin")

        with pytest.raises(UnknownIdentifierError) as exc_info:
            await store.save(loaded)

        assert exc_info.value.hashed_key == session.hashed_key
        assert (await store.load(session.hashed_key)).get("role") == "guest"

    @pytest.mark.asyncio
    async def test_persist_key_only_session(self, store):
        """Test persist writes a session loaded by hashed key."""
        session = new_session(store, {"role": "guest"})
        identifier = await store.save(session)
        loaded = await store.load(session.hashed_key)
        loaded.set("role", "admin")

        assert await store.persist(loaded) is True
        assert (await store.load_identifier(identifier)).get("role") == "admin"

    @pytest.mark.asyncio
    async def test_destroy_key_only_session(self, store):
        """Test a destroyed key-only session saves as deleted."""
        session = new_session(store)
        await store.save(session)
        loaded = await store.load(session.hashed_key)
        loaded.destroy()

        assert await store.save(loaded) is None
        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_renewed_key_only_session(self, renewing_store, clock):
        """Test renewal gives a key-only session an identifier to report."""
        store = renewing_store
        session = new_session(store, lifetime=timedelta(minutes=10))
        await store.save(session)
        clock.advance(timedelta(minutes=9))
        loaded = await store.load(session.hashed_key)

        identifier = await store.save(loaded)

        assert identifier is not None
        assert await store.list_hashed_keys() == [hash_identifier(identifier)]


# =============================================================================
# Failure Handling
# =============================================================================


class TestMemoryStoreFailures:
    """Tests for collisions and corrupt records."""

    @pytest.mark.asyncio
    async def test_malformed_record_loads_as_none(self, store):
        """Test an undecodable record is treated as absent."""
        identifier = generate_identifier()
        store._records[hash_identifier(identifier)] = "{not json"

        assert await store.load_identifier(identifier) is None

    @pytest.mark.asyncio
    async def test_cleanup_removes_malformed(self, store):
        """Test cleanup sweeps undecodable records."""
        store._records[hash_identifier(generate_identifier())] = '{"v": 99}'

        assert await store.cleanup_expired() == 1

    @pytest.mark.asyncio
    async def test_collision_retries(self, store):
        """Test a taken key is skipped with a new identifier."""
        taken = generate_identifier()
        store._records[hash_identifier(taken)] = encode_record(SessionRecord())
        fresh = generate_identifier()

        session = new_session(store)
        with patch(
            "latch.session.session.generate_identifier",
            side_effect=[fresh],
        ):
            session._identifier = taken
            session._hashed_key = hash_identifier(taken)
            identifier = await store.save(session)

        assert identifier == fresh
        assert await store.count() == 2

    @pytest.mark.asyncio
    async def test_collision_exhaustion(self, clock):
        """Test running out of attempts raises IdentifierCollisionError."""
        store = MemorySessionStore(clock=clock, max_id_retries=3)
        taken = generate_identifier()
        store._records[hash_identifier(taken)] = encode_record(SessionRecord())

        session = new_session(store)
        with patch(
            "latch.session.session.generate_identifier",
            return_value=taken,
        ):
            session._identifier = taken
            session._hashed_key = hash_identifier(taken)
            with pytest.raises(IdentifierCollisionError) as exc_info:
                await store.save(session)

        assert exc_info.value.maximum == 3
        assert await store.count() == 1

    def test_invalid_retry_count(self):
        """Test max_id_retries must be positive."""
        with pytest.raises(ValueError):
            MemorySessionStore(max_id_retries=0)
