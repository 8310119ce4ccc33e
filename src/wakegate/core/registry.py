"""Registry of wakeable hosts and their wake throttling state."""

import dataclasses
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SEC = 5 * 60  # at least 5 minutes between magic packets
DEFAULT_WAIT_ONLINE_SEC = 40
DEFAULT_WAIT_ONLINE2_SEC = 40
DEFAULT_WAIT_SERVICES_SEC = 5
DEFAULT_NETWORK_INIT_SEC = 20
DEFAULT_NETWORK_SETTLE_MS = 500
MIN_TIMEOUT_SEC = 10

# Entries start out due, so the first access after load or discovery wakes the host.
IMMEDIATELY = datetime.min.replace(tzinfo=timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class WakeEntry:
    """Wake policy for a single host."""

    host: str
    mac: str = ""
    ping_port: int = 0
    ping_mode: int = 0
    timeout: int = DEFAULT_TIMEOUT_SEC
    wait_online: int = DEFAULT_WAIT_ONLINE_SEC
    wait_online2: int = DEFAULT_WAIT_ONLINE2_SEC
    wait_services: int = DEFAULT_WAIT_SERVICES_SEC
    # Not persisted; the wake throttle only lives for the process lifetime.
    next_wake: datetime = field(default=IMMEDIATELY, compare=False)

    def __post_init__(self) -> None:
        if not self.host:
            raise ValueError("WakeEntry.host must not be empty")
        if self.timeout < MIN_TIMEOUT_SEC:
            raise ValueError(f"WakeEntry.timeout must be at least {MIN_TIMEOUT_SEC}s")

    @property
    def actionable(self) -> bool:
        return bool(self.mac)

    def matches(self, host: str) -> bool:
        return self.host.casefold() == host.casefold()


@dataclass
class NetworkPolicy:
    """Global timing for the local network check that precedes every wake."""

    init_timeout: int = DEFAULT_NETWORK_INIT_SEC
    settle_ms: int = DEFAULT_NETWORK_SETTLE_MS


@dataclass
class RegistryData:
    """Everything the registry persists."""

    entries: list[WakeEntry] = field(default_factory=list)
    policy: NetworkPolicy = field(default_factory=NetworkPolicy)


class UpsertResult(Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


class HostRegistry:
    """
    Thread-safe collection of WakeEntry objects.

    A single lock guards the entries and the network policy. It is only held
    for the duration of a decision or an update, never while a wake sequence
    is waiting.

    Args:
        store: Object with ``load() -> RegistryData`` and ``save(RegistryData)``.
            Without a store the registry is memory-only.
        clock: Returns the current tz-aware time (default: UTC now).
    """

    def __init__(
        self,
        store: Optional[Any] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._clock = clock or _utcnow
        self._lock = threading.Lock()
        self._entries: list[WakeEntry] = []
        self._policy = NetworkPolicy()

    def load(self) -> int:
        """Replace all entries and the network policy with the stored ones."""
        data = self._store.load() if self._store is not None else RegistryData()
        with self._lock:
            self._entries = list(data.entries)
            self._policy = dataclasses.replace(data.policy)
        logger.info(
            "Loaded %d wake entry(ies); network init timeout %ds, settle time %dms",
            len(data.entries),
            data.policy.init_timeout,
            data.policy.settle_ms,
        )
        return len(data.entries)

    def entries(self) -> list[WakeEntry]:
        with self._lock:
            return [dataclasses.replace(e) for e in self._entries]

    def get(self, host: str) -> Optional[WakeEntry]:
        with self._lock:
            entry = self._find(host)
            return dataclasses.replace(entry) if entry else None

    def policy(self) -> NetworkPolicy:
        with self._lock:
            return dataclasses.replace(self._policy)

    def decide(self, host: str) -> tuple[bool, Optional[WakeEntry]]:
        """
        Decide whether accessing ``host`` requires a wake sequence now.

        Returns:
            ``(True, snapshot)`` when the entry is due; ``(False, snapshot)``
            after touching an entry that is not due yet; ``(False, None)``
            for unknown hosts.
        """
        with self._lock:
            entry = self._find(host)
            if entry is None:
                return False, None

            now = self._clock()
            if now > entry.next_wake:
                if not entry.actionable:
                    logger.warning("[%s] Wake entry has no hardware address, cannot wake", host)
                    return False, dataclasses.replace(entry)
                return True, dataclasses.replace(entry)

            # Known trade-off: a host that fell asleep inside the throttle
            # window is not woken until the window lapses.
            self._advance(entry, now)
            return False, dataclasses.replace(entry)

    def touch(self, host: str) -> None:
        """Re-arm the throttle: no wake for ``host`` before now + timeout."""
        with self._lock:
            entry = self._find(host)
            if entry is not None:
                self._advance(entry, self._clock())

    def upsert_discovered(self, host: str, mac: str) -> UpsertResult:
        """Record a discovered hardware address for ``host``."""
        logger.info("Hardware address discovered for host '%s' -> '%s'", host, mac)
        with self._lock:
            entry = self._find(host)
            if entry is not None:
                if entry.mac.casefold() == mac.casefold():
                    logger.debug("[%s] Hardware address unchanged", host)
                    return UpsertResult.UNCHANGED
                logger.debug("[%s] Updating existing entry", host)
                entry.mac = mac
                self._save()
                return UpsertResult.UPDATED

            logger.debug("[%s] Creating new entry with default timing", host)
            self._entries.append(WakeEntry(host=host, mac=mac))
            self._save()
            return UpsertResult.CREATED

    def _find(self, host: str) -> Optional[WakeEntry]:
        for entry in self._entries:
            if entry.matches(host):
                return entry
        return None

    def _advance(self, entry: WakeEntry, now: datetime) -> None:
        entry.next_wake = max(entry.next_wake, now + timedelta(seconds=entry.timeout))

    def _save(self) -> None:
        if self._store is None:
            return
        self._store.save(
            RegistryData(
                entries=[dataclasses.replace(e) for e in self._entries],
                policy=dataclasses.replace(self._policy),
            )
        )
