"""Hardware (MAC) address discovery for hosts that are reachable now."""

import logging
import threading
from typing import Any, Iterable, Optional
from urllib.parse import urlsplit

from wakegate.core.network import AddressResolutionError

logger = logging.getLogger(__name__)


class DiscoveryError(Exception):
    """Raised when no local interface knows the host's hardware address."""


def discover_mac(host: str, network: Any) -> str:
    """
    Find the hardware address of ``host``.

    Resolves the host, sends one probe so the neighbour table is populated,
    then asks each local interface for a matching entry.

    Args:
        host: Hostname or IP address
        network: Network provider

    Returns:
        The MAC address reported by the first interface that knows it

    Raises:
        AddressResolutionError: If the host cannot be resolved
        DiscoveryError: If no interface has a neighbour entry for it
    """
    address = network.resolve(host)
    network.probe(address, 0, 1000, 0)

    for iface in network.interfaces():
        mac = iface.host_mac(address)
        if mac:
            logger.debug("Found MAC %s for %s (%s) on %s", mac, host, address, iface.name)
            return mac

    raise DiscoveryError(f"No local interface has a hardware address for '{host}' ({address})")


class MacDiscoveryJob:
    """Background unit of work wrapping ``discover_mac`` for a single host."""

    def __init__(self, host: str, network: Any) -> None:
        self.host = host
        self.mac = ""
        self.error: Optional[str] = None
        self._network = network

    def __call__(self, cancel: threading.Event) -> bool:
        if cancel.is_set():
            return False
        try:
            self.mac = discover_mac(self.host, self._network)
        except (AddressResolutionError, DiscoveryError) as exc:
            self.error = str(exc)
            logger.error("MAC discovery failed for host '%s': %s", self.host, exc)
            return False
        return True


# ── Candidate hosts ───────────────────────────────────────────────────────────


def _host_of(location: str) -> str:
    """Hostname part of a resource URL, or '' for local paths."""
    try:
        return urlsplit(location).hostname or ""
    except ValueError:
        return ""


def _add_host(host: str, hosts: list[str]) -> None:
    if not host:
        return
    if any(h.casefold() == host.casefold() for h in hosts):
        return
    hosts.append(host)


def candidate_hosts(settings: dict[str, Any]) -> list[str]:
    """
    Collect remote hosts referenced by the application configuration.

    Looks at:
      - ``sources``: list of resource URLs (``smb://nas.local/media``)
      - ``databases``: list of ``{type, host}``; only ``mysql`` servers count
      - ``path_substitutions``: mapping of local path -> remote URL

    Returns:
        Hostnames in first-seen order, deduplicated case-insensitively
    """
    hosts: list[str] = []

    sources: Iterable[str] = settings.get("sources") or []
    for source in sources:
        _add_host(_host_of(str(source)), hosts)

    for db in settings.get("databases") or []:
        if isinstance(db, dict) and str(db.get("type", "")).lower() == "mysql":
            _add_host(str(db.get("host") or ""), hosts)

    substitutions: dict[str, str] = settings.get("path_substitutions") or {}
    for target in substitutions.values():
        _add_host(_host_of(str(target)), hosts)

    return hosts
