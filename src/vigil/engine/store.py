"""Concurrent in-memory profile store.

Profiles are keyed by (tenant_id, client_id) and spread over a fixed
number of shards, each guarded by its own lock. Operations on two keys
in different shards never wait on each other; there is no global lock
on the hot path.

Locking rules:

- Per-key work takes only that key's shard lock.
- Admitting a new key additionally takes the admission lock first, so
  the capacity check, any eviction, and the insert happen as one step
  and the cap cannot be overshot by a burst of concurrent new keys.
  It is released before the caller's callback runs, so one slow first
  event does not hold up admission of every other new key.
- Store-wide sweeps take shard locks one at a time (eviction) or all of
  them in index order (snapshot, clear). Lock order is always
  admission -> shards in ascending index, so sweeps cannot deadlock
  against per-key work.

Every entry is either left untouched by a sweep or removed while its
shard is locked. No caller ever sees a half-evicted profile.
"""

from __future__ import annotations

import logging
import threading
from contextlib import ExitStack
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, TypeVar

from vigil.errors import ConfigurationError
from vigil.models.profile import ClientProfile

logger = logging.getLogger("vigil.engine.store")

T = TypeVar("T")

ProfileKey = tuple[str, str]
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _Shard:
    """One lock and the slice of profiles it guards."""

    __slots__ = ("lock", "profiles")

    def __init__(self):
        self.lock = threading.Lock()
        self.profiles: dict[ProfileKey, ClientProfile] = {}


class ProfileStore:
    """Sharded mapping from (tenant_id, client_id) to ClientProfile.

    The store owns creation, lookup, mutation and eviction of profiles.
    Mutation goes through ``update()``, which runs a callback while the
    key's shard is locked; everything returned to callers outside that
    callback is a copy.
    """

    def __init__(self, shards: int = 64, clock: Clock = utc_now):
        if shards <= 0:
            raise ConfigurationError(f"shards must be positive, got {shards}")
        self._shards = [_Shard() for _ in range(shards)]
        self._admission_lock = threading.Lock()
        self._clock = clock

    def _shard_for(self, key: ProfileKey) -> _Shard:
        return self._shards[hash(key) % len(self._shards)]

    # ------------------------------------------------------------------
    # Per-key operations
    # ------------------------------------------------------------------

    def update(
        self,
        tenant_id: str,
        client_id: str,
        mutate: Callable[[ClientProfile, bool], T],
        before_admit: Optional[Callable[[], None]] = None,
    ) -> T:
        """Run ``mutate(profile, created)`` with the key exclusively held.

        If the key is absent a fresh profile is created first. Creation
        is atomic: concurrent callers for the same new key all end up
        mutating the single profile that won. ``before_admit`` runs
        under the admission lock just before a new key is inserted and
        is where callers enforce capacity.

        The return value of ``mutate`` is passed through.
        """
        key = (tenant_id, client_id)
        shard = self._shard_for(key)

        with shard.lock:
            profile = shard.profiles.get(key)
            if profile is not None:
                return mutate(profile, False)

        # Admission covers only the capacity check and the insert; the
        # shard lock is kept across the hand-off so mutate still runs
        # with the key held, but other new keys are admitted meanwhile.
        self._admission_lock.acquire()
        try:
            if before_admit is not None:
                with shard.lock:
                    present = key in shard.profiles
                if not present:
                    before_admit()
            shard.lock.acquire()
            try:
                profile = shard.profiles.get(key)
                created = profile is None
                if created:
                    now = self._clock()
                    profile = ClientProfile(
                        tenant_id=tenant_id,
                        client_id=client_id,
                        first_seen=now,
                        last_seen=now,
                    )
                    shard.profiles[key] = profile
            except BaseException:
                shard.lock.release()
                raise
        finally:
            self._admission_lock.release()

        try:
            return mutate(profile, created)
        finally:
            shard.lock.release()

    def update_existing(
        self,
        tenant_id: str,
        client_id: str,
        mutate: Callable[[ClientProfile], T],
    ) -> Optional[T]:
        """Run ``mutate(profile)`` under the key's lock only if the key exists."""
        key = (tenant_id, client_id)
        shard = self._shard_for(key)
        with shard.lock:
            profile = shard.profiles.get(key)
            if profile is None:
                return None
            return mutate(profile)

    def get_or_create(
        self,
        tenant_id: str,
        client_id: str,
        before_admit: Optional[Callable[[], None]] = None,
    ) -> ClientProfile:
        """Return the live profile for a key, creating it if needed.

        The handle is the stored object itself. Mutate it only through
        ``update()``; use ``get()`` when a read-only snapshot will do.
        """
        return self.update(
            tenant_id, client_id, lambda profile, _: profile, before_admit
        )

    def get(self, tenant_id: str, client_id: str) -> Optional[ClientProfile]:
        """Snapshot of a profile, or None if the key is absent."""
        key = (tenant_id, client_id)
        shard = self._shard_for(key)
        with shard.lock:
            profile = shard.profiles.get(key)
            return profile.model_copy() if profile is not None else None

    def contains(self, tenant_id: str, client_id: str) -> bool:
        key = (tenant_id, client_id)
        shard = self._shard_for(key)
        with shard.lock:
            return key in shard.profiles

    def remove(self, tenant_id: str, client_id: str) -> bool:
        """Delete a profile. Absent keys are not an error; returns whether one existed."""
        key = (tenant_id, client_id)
        shard = self._shard_for(key)
        with shard.lock:
            return shard.profiles.pop(key, None) is not None

    # ------------------------------------------------------------------
    # Store-wide operations
    # ------------------------------------------------------------------

    def size(self) -> int:
        return sum(len(shard.profiles) for shard in self._shards)

    def __len__(self) -> int:
        return self.size()

    def snapshot(self) -> list[ClientProfile]:
        """Copy every profile while all shards are held.

        The result is a consistent point-in-time view, not a live one.
        """
        with ExitStack() as stack:
            for shard in self._shards:
                stack.enter_context(shard.lock)
            return [
                profile.model_copy()
                for shard in self._shards
                for profile in shard.profiles.values()
            ]

    def evict_stale(self, staleness_window: timedelta) -> int:
        """Remove idle, non-compromised profiles. O(n) over the store.

        A profile is stale when its last_seen is older than
        ``now - staleness_window``. Compromised profiles are always
        kept: dropping one would silently unblock its client.

        Returns:
            Number of profiles removed.
        """
        cutoff = self._clock() - staleness_window
        evicted = 0
        for shard in self._shards:
            with shard.lock:
                stale = [
                    key for key, profile in shard.profiles.items()
                    if profile.last_seen < cutoff and not profile.is_compromised
                ]
                for key in stale:
                    del shard.profiles[key]
                evicted += len(stale)
        if evicted:
            logger.info("Evicted %d stale profiles", evicted)
        return evicted

    def clear_all(self) -> int:
        """Drop every profile, compromised ones included.

        Last-resort memory valve for when eviction alone cannot get the
        store under its cap. Returns the number of profiles dropped.
        """
        with ExitStack() as stack:
            for shard in self._shards:
                stack.enter_context(shard.lock)
            dropped = 0
            for shard in self._shards:
                dropped += len(shard.profiles)
                shard.profiles.clear()
        return dropped
