"""Per-key mutual exclusion for Keystone.

Each interview session and each agent's schedule is an independently
mutable resource. Work on different keys proceeds without coordination;
work on the same key is serialized.

Usage:
    from keystone.core.locks import AGENT_LOCKS, SESSION_LOCKS

    with AGENT_LOCKS.hold(agent_id):
        ...  # read existing entries, decide, write

    with SESSION_LOCKS.try_hold(session_id):
        ...  # raises SessionBusyError if another submit is in flight
"""

import threading
from contextlib import contextmanager
from typing import Hashable, Iterator

from keystone.core.exceptions import SessionBusyError
from keystone.core.logging import get_logger

logger = get_logger(__name__)


class _Slot:
    """A key's lock and the number of threads holding or waiting on it."""

    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class KeyedLocks:
    """Registry of one lock per key.

    A key's lock exists only while some thread holds or waits on it, so
    the registry stays as small as the number of keys in use.

    Attributes:
        name: Registry name, used in log context
    """

    def __init__(self, name: str):
        self.name = name
        self._slots: dict[Hashable, _Slot] = {}
        self._registry_lock = threading.Lock()

    def _checkout(self, key: Hashable) -> _Slot:
        with self._registry_lock:
            slot = self._slots.get(key)
            if slot is None:
                slot = _Slot()
                self._slots[key] = slot
            slot.users += 1
            return slot

    def _checkin(self, key: Hashable, slot: _Slot) -> None:
        with self._registry_lock:
            slot.users -= 1
            if slot.users == 0:
                del self._slots[key]

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        """Block until the key is free, then hold it for the block."""
        slot = self._checkout(key)
        try:
            with slot.lock:
                yield
        finally:
            self._checkin(key, slot)

    @contextmanager
    def try_hold(self, key: Hashable) -> Iterator[None]:
        """Hold the key if free.

        Raises:
            SessionBusyError: If the key is already held
        """
        slot = self._checkout(key)
        if not slot.lock.acquire(blocking=False):
            self._checkin(key, slot)
            logger.info(
                "Rejected concurrent request",
                extra={"context": {"registry": self.name, "key": key}},
            )
            raise SessionBusyError(f"{self.name} {key} is busy with another request")
        try:
            yield
        finally:
            slot.lock.release()
            self._checkin(key, slot)

    def is_held(self, key: Hashable) -> bool:
        """Whether the key is currently held."""
        with self._registry_lock:
            slot = self._slots.get(key)
        return slot is not None and slot.lock.locked()

    def __len__(self) -> int:
        """Number of keys currently held or waited on."""
        with self._registry_lock:
            return len(self._slots)


AGENT_LOCKS = KeyedLocks("agent")
SESSION_LOCKS = KeyedLocks("session")
