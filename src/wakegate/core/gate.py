"""
Wake-on-access entry point.

Every remote resource access goes through ``WakeOnAccess.on_access``. It asks
the host registry whether the host is due for a wake, runs the wake sequence
if so, and re-arms the host's throttle afterwards.
"""

import contextlib
import functools
import logging
from contextvars import ContextVar
from pathlib import Path
from typing import Any, Callable, Iterator, Optional
from urllib.parse import urlsplit

from wakegate.config.store import RegistryStore
from wakegate.core.discovery import MacDiscoveryJob, candidate_hosts
from wakegate.core.network import Network
from wakegate.core.registry import HostRegistry, UpsertResult
from wakegate.core.sequencer import WakeResult, WakeSequencer
from wakegate.core.wait import ProgressReporter
from wakegate.notifications.notify import NotificationKind, Notifier
from wakegate.scheduler.runner import JobRunner

logger = logging.getLogger(__name__)

DEFAULT_REGISTRY_FILE = Path.home() / ".config" / "wakegate" / "wakeup.yaml"
DISCOVERY_HEADING = "Wake on access"

_nesting: ContextVar[int] = ContextVar("wakegate_nesting", default=0)


def nesting_level() -> int:
    """How many wake sequences are active in the current execution context."""
    return _nesting.get()


@contextlib.contextmanager
def _nested() -> Iterator[int]:
    token = _nesting.set(_nesting.get() + 1)
    try:
        yield _nesting.get()
    finally:
        _nesting.reset(token)


class WakeOnAccess:
    """
    Wakes registered hosts when they are accessed.

    Lifecycle: construct, ``start()`` (loads the registry, starts the job
    runner), call ``on_access`` around remote accesses, ``shutdown()``.

    Args:
        registry: Host registry
        sequencer: Wake sequencer
        runner: Background job runner for MAC discovery
        network: Network provider handed to discovery jobs
        notifier: Optional notification sink
        enabled: Initial state of the feature switch
        candidates: Returns the hosts ``queue_discovery_for_all`` looks at
    """

    def __init__(
        self,
        registry: HostRegistry,
        sequencer: WakeSequencer,
        runner: Any,
        network: Any,
        notifier: Optional[Any] = None,
        *,
        enabled: bool = False,
        candidates: Optional[Callable[[], list[str]]] = None,
    ) -> None:
        self._registry = registry
        self._sequencer = sequencer
        self._runner = runner
        self._network = network
        self._notifier = notifier
        self._enabled = enabled
        self._candidates = candidates or (lambda: [])

    @property
    def registry(self) -> HostRegistry:
        return self._registry

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        """Turn the feature on or off; turning it on queues discovery for all remotes."""
        if enabled == self._enabled:
            return
        self._enabled = enabled
        logger.info("Wake on access %s", "enabled" if enabled else "disabled")
        if enabled:
            self.queue_discovery_for_all()

    def start(self) -> None:
        self._registry.load()
        self._runner.start()

    def shutdown(self) -> None:
        self._runner.stop(wait=False)

    # ── Access gate ──────────────────────────────────────────────────────────

    def on_access(
        self,
        host: str,
        context: str = "",
        progress: Optional[ProgressReporter] = None,
    ) -> Optional[WakeResult]:
        """
        Make sure ``host`` is awake before it is accessed.

        Blocks while a wake sequence runs. Never raises: if the host could
        not be woken the caller simply proceeds without that guarantee.
        Concurrent accesses to a due host each run their own sequence; the
        throttle window starts when a sequence finishes.

        Args:
            host: Hostname or address about to be accessed
            context: What triggered the access (logged)
            progress: Optional progress reporter; enables cancellation

        Returns:
            The WakeResult if a wake sequence ran, otherwise None
        """
        if not self._enabled or not host:
            return None

        needs_wake, entry = self._registry.decide(host)
        if not needs_wake or entry is None:
            return None

        logger.info("[%s] Wake on access triggered by accessing: %s", host, context)

        with _nested() as level:
            if level > 1:
                logger.warning("Wake on access called recursively in the same context [%d]", level)
            try:
                return self._sequencer.run(
                    entry, self._registry.policy(), progress=progress, nesting=level
                )
            except Exception:
                logger.exception("[%s] Wake sequence failed unexpectedly", host)
                return None
            finally:
                self._registry.touch(host)

    def on_access_url(
        self, url: str, progress: Optional[ProgressReporter] = None
    ) -> Optional[WakeResult]:
        """``on_access`` for the host of a resource URL such as ``smb://nas/share``."""
        try:
            host = urlsplit(url).hostname
        except ValueError:
            return None
        if not host:
            return None
        return self.on_access(host, url, progress)

    # ── MAC discovery ────────────────────────────────────────────────────────

    def queue_discovery(self, host: str) -> Optional[str]:
        """Queue a background MAC discovery for ``host``; returns the job id."""
        if not self._enabled or not host:
            return None
        job = MacDiscoveryJob(host, self._network)
        return self._runner.submit(job, functools.partial(self._on_discovery_complete, job))

    def queue_discovery_for_all(self) -> int:
        """Queue MAC discovery for every remote host found in the configuration."""
        hosts = self._candidates()
        queued = 0
        for host in hosts:
            if self.queue_discovery(host) is not None:
                queued += 1
        logger.info("Queued MAC discovery for %d host(s)", queued)
        return queued

    def _on_discovery_complete(self, job: MacDiscoveryJob, success: bool) -> None:
        if not success:
            logger.error("MAC discovery failed for host '%s'", job.host)
            self._notify(
                NotificationKind.ERROR,
                f"Failed to discover hardware address for {job.host}",
            )
            return

        result = self._registry.upsert_discovered(job.host, job.mac)
        if result is UpsertResult.CREATED:
            self._notify(NotificationKind.INFO, f"Created new wake entry for {job.host}")
        elif result is UpsertResult.UPDATED:
            self._notify(NotificationKind.INFO, f"Updated hardware address for {job.host}")

    def _notify(self, kind: NotificationKind, message: str) -> None:
        # only bother the user while the feature is on
        if self._enabled and self._notifier is not None:
            self._notifier.notify(kind, DISCOVERY_HEADING, message)


def create_service(
    config: dict[str, Any],
    network: Optional[Any] = None,
    notifier: Optional[Any] = None,
    runner: Optional[Any] = None,
) -> WakeOnAccess:
    """
    Build a WakeOnAccess service from a settings file dict.

    The service is not started; call ``start()`` to load the registry.
    """
    settings: dict[str, Any] = config.get("settings", {}) or {}

    if network is None:
        network = Network(
            broadcast=settings.get("wol_broadcast", "255.255.255.255"),
            wol_port=int(settings.get("wol_port", 9)),
        )
    if notifier is None:
        notifier = Notifier(settings.get("notifications"))
    if runner is None:
        runner = JobRunner()

    store = RegistryStore(Path(settings.get("registry_file") or DEFAULT_REGISTRY_FILE))
    registry = HostRegistry(store)
    sequencer = WakeSequencer(network, notifier=notifier, runner=runner)

    return WakeOnAccess(
        registry,
        sequencer,
        runner,
        network,
        notifier,
        enabled=bool(settings.get("enabled", False)),
        candidates=lambda: candidate_hosts(settings),
    )
