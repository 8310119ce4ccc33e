"""Local network status, address resolution and host reachability probes."""

import logging
import re
import socket
import subprocess
from dataclasses import dataclass

import psutil

from wakegate.core.wol import send_wake_signal

logger = logging.getLogger(__name__)

# ping_mode bit: after connecting, wait until the peer sends something
PING_MODE_READABLE = 1

_MAC_RE = re.compile(r"([0-9a-fA-F]{2}:){5}[0-9a-fA-F]{2}")


class AddressResolutionError(Exception):
    """Raised when a hostname cannot be resolved to an IPv4 address."""


@dataclass
class NetworkInterface:
    """A local network interface able to look up its neighbour table."""

    name: str

    def host_mac(self, address: str) -> str:
        """
        Return the hardware address this interface has cached for ``address``.

        Reads the kernel neighbour (ARP) table via ``ip neighbor show``.
        Returns an empty string when there is no usable entry.
        """
        cmd = ["ip", "neighbor", "show", address, "dev", self.name]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=5)
        except (OSError, subprocess.TimeoutExpired) as exc:
            logger.debug("Neighbour lookup on %s failed: %s", self.name, exc)
            return ""
        if result.returncode != 0:
            return ""

        match = _MAC_RE.search(result.stdout)
        if not match:
            logger.debug("No neighbour entry for %s on %s: %r", address, self.name, result.stdout)
            return ""
        return match.group(0).upper()


class Network:
    """
    Network primitives used by the wake sequence and MAC discovery.

    Args:
        broadcast: Broadcast address magic packets are sent to
        wol_port: UDP port magic packets are sent to
    """

    def __init__(self, broadcast: str = "255.255.255.255", wol_port: int = 9) -> None:
        self.broadcast = broadcast
        self.wol_port = wol_port

    def is_connected(self) -> bool:
        """True if any non-loopback interface is up and has an IPv4 address."""
        stats = psutil.net_if_stats()
        addrs = psutil.net_if_addrs()
        for name, st in stats.items():
            if not st.isup:
                continue
            for addr in addrs.get(name, []):
                if addr.family == socket.AF_INET and not addr.address.startswith("127."):
                    return True
        return False

    def resolve(self, host: str) -> str:
        """Resolve ``host`` to an IPv4 address."""
        try:
            return socket.gethostbyname(host)
        except (OSError, UnicodeError) as exc:
            raise AddressResolutionError(f"Can't determine IP of '{host}': {exc}") from exc

    def probe(self, address: str, port: int = 0, timeout_ms: int = 2000, mode: int = 0) -> bool:
        """
        Check whether ``address`` responds right now.

        Port 0 sends a single ICMP echo request through the system ``ping``;
        any other port attempts a TCP connection. With ``PING_MODE_READABLE``
        set in ``mode`` the peer must also send data (e.g. an SSH banner).
        """
        if port == 0:
            return self._icmp_ping(address, timeout_ms)
        return self._tcp_connect(address, port, timeout_ms, bool(mode & PING_MODE_READABLE))

    def interfaces(self) -> list[NetworkInterface]:
        """All local interfaces that are up, loopback excluded."""
        result: list[NetworkInterface] = []
        for name, st in psutil.net_if_stats().items():
            if st.isup and name != "lo":
                result.append(NetworkInterface(name))
        return result

    def send_wake_signal(self, mac: str) -> bool:
        return send_wake_signal(mac, ip_address=self.broadcast, port=self.wol_port)

    def _icmp_ping(self, address: str, timeout_ms: int) -> bool:
        wait_sec = timeout_ms / 1000
        # iputils ping takes fractional seconds for -W
        cmd = ["ping", "-c", "1", "-W", f"{wait_sec:g}", address]
        try:
            result = subprocess.run(cmd, capture_output=True, timeout=wait_sec + 1)
        except (OSError, subprocess.TimeoutExpired) as exc:
            logger.debug("ping %s failed: %s", address, exc)
            return False
        return result.returncode == 0

    def _tcp_connect(self, address: str, port: int, timeout_ms: int, readable: bool) -> bool:
        try:
            with socket.create_connection((address, port), timeout=timeout_ms / 1000) as sock:
                if readable:
                    # empty read means the peer closed without a banner
                    return bool(sock.recv(1))
                return True
        except OSError:
            return False
