"""The wake sequence: network check, quick probe, magic packet, online waits."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from wakegate.core.registry import NetworkPolicy, WakeEntry
from wakegate.core.wait import (
    FixedWait,
    LivenessProbe,
    NetworkReady,
    ProgressReporter,
    WaitResult,
    probe_host,
    wait_for,
)
from wakegate.notifications.notify import NotificationKind

logger = logging.getLogger(__name__)

QUICK_CHECK_TIMEOUT_MS = 500  # short, the caller is blocked


class WakeStage(Enum):
    AWAIT_NETWORK = "await_network"
    QUICK_CHECK = "quick_check"
    SEND_SIGNAL = "send_signal"
    AWAIT_ONLINE_PRIMARY = "await_online_primary"
    AWAIT_ONLINE_EXTENDED = "await_online_extended"
    AWAIT_SERVICES = "await_services"
    DONE = "done"
    ABORTED = "aborted"


class WakeOutcome(Enum):
    ALREADY_AWAKE = "already_awake"
    WOKEN = "woken"
    NETWORK_NOT_READY = "network_not_ready"
    SIGNAL_SEND_FAILED = "signal_send_failed"
    NO_RESPONSE = "no_response"
    CANCELED = "canceled"


@dataclass
class WakeResult:
    """Result of one wake sequence."""

    host: str
    outcome: WakeOutcome
    stage: WakeStage
    started_at: datetime
    finished_at: Optional[datetime] = None
    signal_sent: bool = False
    # last stage entered before the sequence aborted
    failed_stage: Optional[WakeStage] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome in (WakeOutcome.ALREADY_AWAKE, WakeOutcome.WOKEN)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.finished_at and self.started_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None


class WakeSequencer:
    """
    Runs the wake sequence for one host.

    Stages run strictly in order and are never retried; any failure aborts
    the sequence. The throttle in the host registry decides when the next
    attempt may start.

    Args:
        network: Network provider (connectivity, resolve, probe, magic packet)
        notifier: Optional notification sink for send failures
        runner: Optional JobRunner used for background probing while a
            progress reporter is shown
    """

    def __init__(
        self,
        network: Any,
        notifier: Optional[Any] = None,
        runner: Optional[Any] = None,
    ) -> None:
        self._network = network
        self._notifier = notifier
        self._runner = runner

    def run(
        self,
        entry: WakeEntry,
        policy: NetworkPolicy,
        progress: Optional[ProgressReporter] = None,
        nesting: int = 1,
    ) -> WakeResult:
        """
        Wake ``entry.host`` and wait until it is ready.

        Workflow:
            1. Wait for the local network to be connected and settled
            2. Quick probe: done if the host is already awake
            3. Send the magic packet
            4. Wait for the host to answer probes (primary, then extended budget)
            5. Wait a fixed grace period for services to start

        Args:
            entry: Snapshot of the host's wake entry
            policy: Network init timeout and settle time
            progress: Optional progress reporter; enables cancellation
            nesting: Nesting level of the calling access, shown on the reporter

        Returns:
            WakeResult describing how far the sequence got
        """
        started_at = datetime.now(timezone.utc)
        heading = f"Waking up {entry.host}"

        if progress is not None:
            progress.start(heading)
            if nesting > 1:
                progress.set_label(f"Nesting: {nesting}")

        try:
            result = self._run_stages(entry, policy, progress, heading, started_at)
        finally:
            if progress is not None:
                progress.close()

        result.finished_at = datetime.now(timezone.utc)
        return result

    def _run_stages(
        self,
        entry: WakeEntry,
        policy: NetworkPolicy,
        progress: Optional[ProgressReporter],
        heading: str,
        started_at: datetime,
    ) -> WakeResult:
        host = entry.host

        def _abort(stage: WakeStage, outcome: WakeOutcome, error: str, sent: bool) -> WakeResult:
            return WakeResult(
                host=host,
                outcome=outcome,
                stage=WakeStage.ABORTED,
                started_at=started_at,
                signal_sent=sent,
                failed_stage=stage,
                error=error,
            )

        # ── Stage 1: Local network ───────────────────────────────────────────
        logger.debug("[%s] Waiting for network (timeout: %ds)", host, policy.init_timeout)
        waited = wait_for(
            NetworkReady(self._network, policy.settle_ms),
            policy.init_timeout,
            progress,
            "Waiting for network to connect...",
        )
        if waited is not WaitResult.SUCCESS:
            logger.info("[%s] Timeout/cancel while waiting for network", host)
            if waited is WaitResult.CANCELED:
                return _abort(WakeStage.AWAIT_NETWORK, WakeOutcome.CANCELED, "Canceled", False)
            return _abort(
                WakeStage.AWAIT_NETWORK,
                WakeOutcome.NETWORK_NOT_READY,
                f"Network did not become ready within {policy.init_timeout}s",
                False,
            )
        logger.debug("[%s] Network ready", host)

        # ── Stage 2: Quick check ─────────────────────────────────────────────
        if probe_host(self._network, entry, timeout_ms=QUICK_CHECK_TIMEOUT_MS, mode=0):
            logger.info("[%s] Host already running, no wake needed", host)
            return WakeResult(
                host=host,
                outcome=WakeOutcome.ALREADY_AWAKE,
                stage=WakeStage.DONE,
                started_at=started_at,
            )
        logger.debug("[%s] Host did not answer quick check", host)

        # ── Stage 3: Magic packet ────────────────────────────────────────────
        if not self._network.send_wake_signal(entry.mac):
            logger.error("[%s] Failed to send wake signal (is it blocked by a firewall?)", host)
            if self._notifier is not None:
                self._notifier.notify(
                    NotificationKind.ERROR,
                    heading,
                    f"Failed to send wake-up signal to {host}. Is it blocked by a firewall?",
                )
            return _abort(
                WakeStage.SEND_SIGNAL,
                WakeOutcome.SIGNAL_SEND_FAILED,
                f"Failed to send wake signal to {entry.mac}",
                False,
            )
        logger.info("[%s] Wake signal sent to %s", host, entry.mac)

        # ── Stages 4+5: Wait for the host to answer ──────────────────────────
        # Background probing only pays off while a progress display keeps this
        # thread busy; otherwise the poll loop probes synchronously.
        runner = self._runner if progress is not None else None
        with LivenessProbe(self._network, entry, runner) as probe:
            stage = WakeStage.AWAIT_ONLINE_PRIMARY
            waited = wait_for(
                probe, entry.wait_online, progress, "Waiting for host to wake up..."
            )
            if waited is WaitResult.TIMED_OUT:
                logger.info(
                    "[%s] No response after %ds, extending wait by %ds",
                    host,
                    entry.wait_online,
                    entry.wait_online2,
                )
                stage = WakeStage.AWAIT_ONLINE_EXTENDED
                waited = wait_for(
                    probe, entry.wait_online2, progress, "Still waiting for host to wake up..."
                )

        if waited is not WaitResult.SUCCESS:
            logger.info("[%s] Timeout/cancel while waiting for response", host)
            if waited is WaitResult.CANCELED:
                return _abort(stage, WakeOutcome.CANCELED, "Canceled", True)
            return _abort(
                stage,
                WakeOutcome.NO_RESPONSE,
                f"No response after {entry.wait_online + entry.wait_online2}s",
                True,
            )
        logger.info("[%s] Host is online", host)

        # ── Stage 6: Services grace period ───────────────────────────────────
        waited = wait_for(
            FixedWait(), entry.wait_services, progress, "Waiting for services to start..."
        )
        if waited is WaitResult.CANCELED:
            logger.info("[%s] Canceled while waiting for services", host)
            return _abort(WakeStage.AWAIT_SERVICES, WakeOutcome.CANCELED, "Canceled", True)

        logger.info("[%s] Wake sequence completed, host started", host)
        return WakeResult(
            host=host,
            outcome=WakeOutcome.WOKEN,
            stage=WakeStage.DONE,
            started_at=started_at,
            signal_sent=True,
        )
