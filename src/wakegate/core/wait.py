"""
Bounded, cancellable waits and the conditions that end them.

``wait_for`` is the only place the wake sequence blocks. It polls a
``WaitCondition`` until it is satisfied, the timeout elapses, or the user
cancels through the attached ``ProgressReporter``.
"""

import logging
import threading
import time
from enum import Enum
from typing import Any, Optional

from wakegate.core.network import AddressResolutionError
from wakegate.core.registry import WakeEntry

logger = logging.getLogger(__name__)

POLL_INTERVAL_PROGRESS = 0.02  # seconds, keeps the progress display smooth
POLL_INTERVAL = 0.2
PROBE_TIMEOUT_MS = 2000
# one probe plus process startup; the longest a closing LivenessProbe blocks
CLOSE_TIMEOUT = PROBE_TIMEOUT_MS / 1000 + 1


class WaitResult(Enum):
    SUCCESS = "success"
    TIMED_OUT = "timed_out"
    CANCELED = "canceled"


class ProgressReporter:
    """
    Progress display for a blocking wake sequence.

    The base class shows nothing and is never canceled; front ends subclass it.
    """

    def start(self, heading: str) -> None:
        pass

    def set_label(self, text: str) -> None:
        pass

    def set_percent(self, percent: int) -> None:
        pass

    def is_canceled(self) -> bool:
        return False

    def close(self) -> None:
        pass


# ── Conditions ────────────────────────────────────────────────────────────────


class WaitCondition:
    """Base condition: never satisfied, so the wait always runs to its timeout."""

    def is_satisfied(self) -> bool:
        return False


class FixedWait(WaitCondition):
    """Uninterruptible grace period (only the user can end it early)."""


class NetworkReady(WaitCondition):
    """
    Satisfied once the local network is connected and has stayed connected.

    Every check that finds the network down pushes the earliest ready time
    ``settle_ms`` into the future. A network found up on the first check has
    never been seen down and is trusted right away.
    """

    def __init__(self, network: Any, settle_ms: int) -> None:
        self._network = network
        self._settle = settle_ms / 1000
        self._ready_at = 0.0

    def is_satisfied(self) -> bool:
        online = self._network.is_connected()
        now = time.monotonic()
        if not online:
            self._ready_at = now + self._settle
            return False
        return now >= self._ready_at


def probe_host(
    network: Any,
    entry: WakeEntry,
    timeout_ms: int = PROBE_TIMEOUT_MS,
    mode: Optional[int] = None,
) -> bool:
    """
    Probe ``entry.host`` once using its ping port and mode.

    Args:
        network: Network provider
        entry: Host to probe
        timeout_ms: Probe timeout in milliseconds
        mode: Override for ``entry.ping_mode``

    Returns:
        True if the host answered; False if it did not or could not be resolved
    """
    try:
        address = network.resolve(entry.host)
    except AddressResolutionError as exc:
        logger.debug("[%s] %s", entry.host, exc)
        return False
    return network.probe(
        address,
        entry.ping_port,
        timeout_ms,
        entry.ping_mode if mode is None else mode,
    )


class LivenessProbe(WaitCondition):
    """
    Satisfied once the host answers a liveness probe.

    Without a runner every ``is_satisfied()`` call probes synchronously.
    With a running runner a background job probes back-to-back until the
    host answers or the job is canceled, and ``is_satisfied()`` only reads
    the result. A runner that has not been started is ignored. Use as a
    context manager so the job is always canceled and awaited.
    """

    def __init__(self, network: Any, entry: WakeEntry, runner: Optional[Any] = None) -> None:
        self._network = network
        self._entry = entry
        self._runner = runner
        self._online = False
        self._done = threading.Event()
        self._job_id: Optional[str] = None
        if runner is not None:
            if runner.running:
                self._job_id = runner.submit(self._probe_until_online, self._on_complete)
            else:
                logger.debug("[%s] Job runner not started, probing synchronously", entry.host)

    @property
    def asynchronous(self) -> bool:
        return self._job_id is not None

    def is_satisfied(self) -> bool:
        if self._job_id is not None:
            return self._online
        return probe_host(self._network, self._entry)

    def close(self) -> None:
        """Cancel the background job and wait for an in-flight probe to return."""
        if self._job_id is None:
            return
        job_id, self._job_id = self._job_id, None
        if self._runner.cancel(job_id):
            return
        if not self._done.wait(CLOSE_TIMEOUT):
            logger.warning(
                "[%s] Background probe still running after %ss", self._entry.host, CLOSE_TIMEOUT
            )

    def __enter__(self) -> "LivenessProbe":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _probe_until_online(self, cancel: threading.Event) -> bool:
        while not cancel.is_set():
            if probe_host(self._network, self._entry):
                return True
        return False

    def _on_complete(self, success: bool) -> None:
        self._online = success
        self._done.set()


# ── Orchestrator ──────────────────────────────────────────────────────────────


def wait_for(
    condition: WaitCondition,
    timeout: float,
    progress: Optional[ProgressReporter] = None,
    label: str = "",
) -> WaitResult:
    """
    Block until ``condition`` is satisfied, ``timeout`` elapses, or the user cancels.

    Args:
        condition: Condition polled on every iteration
        timeout: Maximum seconds to wait
        progress: Optional progress reporter; enables fine-grained polling,
            percentage updates and cancellation
        label: Text shown on the progress reporter during this wait

    Returns:
        WaitResult.SUCCESS, WaitResult.TIMED_OUT or WaitResult.CANCELED
    """
    if progress is not None:
        progress.set_label(label)
        progress.set_percent(1)  # start at 1% to avoid flicker

    interval = POLL_INTERVAL_PROGRESS if progress is not None else POLL_INTERVAL
    start = time.monotonic()
    deadline = start + timeout

    while time.monotonic() < deadline:
        if condition.is_satisfied():
            return WaitResult.SUCCESS

        if progress is not None:
            if progress.is_canceled():
                return WaitResult.CANCELED
            elapsed = time.monotonic() - start
            progress.set_percent(min(max(int(elapsed * 100 / timeout), 1), 100))

        time.sleep(interval)

    return WaitResult.TIMED_OUT
