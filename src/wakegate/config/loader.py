"""YAML configuration loader and validator."""

import logging
import re
from pathlib import Path
from typing import Any, Optional

import yaml

from wakegate.core.registry import (
    DEFAULT_NETWORK_INIT_SEC,
    DEFAULT_NETWORK_SETTLE_MS,
    DEFAULT_TIMEOUT_SEC,
    DEFAULT_WAIT_ONLINE2_SEC,
    DEFAULT_WAIT_ONLINE_SEC,
    DEFAULT_WAIT_SERVICES_SEC,
    MIN_TIMEOUT_SEC,
    NetworkPolicy,
    RegistryData,
    WakeEntry,
)

logger = logging.getLogger(__name__)

_MAC_RE = re.compile(r"^([0-9A-Fa-f]{2}[:\-]){5}[0-9A-Fa-f]{2}$")

# (key, default, min, max) for every numeric per-host field
_ENTRY_INTS = (
    ("ping_port", 0, 0, 65535),
    ("ping_mode", 0, 0, 65535),
    ("timeout", DEFAULT_TIMEOUT_SEC, MIN_TIMEOUT_SEC, 12 * 60 * 60),
    ("wait_online", DEFAULT_WAIT_ONLINE_SEC, 0, 10 * 60),
    ("wait_online2", DEFAULT_WAIT_ONLINE2_SEC, 0, 10 * 60),
    ("wait_services", DEFAULT_WAIT_SERVICES_SEC, 0, 5 * 60),
)


class ConfigError(Exception):
    """Raised for invalid or missing configuration."""

    def __init__(self, message: str, errors: Optional[list[str]] = None) -> None:
        super().__init__(message)
        self.errors = errors or []


def load_config(path: Path) -> Optional[dict[str, Any]]:
    """
    Load configuration from a YAML file.

    Args:
        path: Path to the YAML config file

    Returns:
        Parsed configuration dictionary, or None if file is empty

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
    """
    with open(path) as f:
        result: Optional[dict[str, Any]] = yaml.safe_load(f)
        return result


def validate_config(config: dict[str, Any]) -> list[str]:
    """
    Validate a loaded settings file.

    Returns:
        List of validation error messages (empty list = valid)
    """
    errors: list[str] = []

    if not isinstance(config, dict):
        return ["Config root must be a YAML mapping"]

    settings = config.get("settings", {})
    if not isinstance(settings, dict):
        return ["'settings' must be a mapping"]

    port = settings.get("wol_port", 9)
    if not isinstance(port, int) or not 1 <= port <= 65535:
        errors.append(f"settings.wol_port: invalid port '{port}'")

    for key in ("sources", "databases"):
        value = settings.get(key)
        if value is not None and not isinstance(value, list):
            errors.append(f"settings.{key}: must be a list")

    for i, db in enumerate(settings.get("databases") or []):
        if not isinstance(db, dict):
            errors.append(f"settings.databases[{i}]: must be a mapping")

    subs = settings.get("path_substitutions")
    if subs is not None and not isinstance(subs, dict):
        errors.append("settings.path_substitutions: must be a mapping")

    notifications = settings.get("notifications")
    if notifications is not None and not isinstance(notifications, dict):
        errors.append("settings.notifications: must be a mapping")

    return errors


def load_settings(path: Path) -> dict[str, Any]:
    """
    Load and validate the settings file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ConfigError: If the file is not valid YAML or fails validation
    """
    try:
        raw = load_config(path) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

    errors = validate_config(raw)
    if errors:
        raise ConfigError(f"{path} has {len(errors)} error(s)", errors)
    return raw


def _clamped_int(raw: dict[str, Any], key: str, default: int, lo: int, hi: int) -> int:
    if key not in raw:
        return default
    try:
        value = int(raw[key])
    except (TypeError, ValueError):
        logger.warning("Ignoring non-numeric %s=%r, using %d", key, raw[key], default)
        return default
    return min(max(value, lo), hi)


def entries_from_raw(raw_entries: list[Any]) -> list[WakeEntry]:
    """
    Build WakeEntry objects from the registry file's ``wakeup`` list.

    Numeric fields are clamped into their allowed range. Entries without a
    host or MAC, or whose MAC did not load as a string, are logged and skipped.
    """
    entries: list[WakeEntry] = []
    for i, raw in enumerate(raw_entries):
        if not isinstance(raw, dict):
            logger.error("wakeup[%d]: must be a mapping, skipped", i)
            continue
        host = str(raw.get("host") or "").strip()
        if not host:
            logger.error("wakeup[%d]: missing or empty 'host', skipped", i)
            continue
        raw_mac = raw.get("mac")
        if raw_mac is not None and not isinstance(raw_mac, str):
            # YAML reads an unquoted all-digit MAC as a base-60 number
            logger.error(
                "wakeup[%d]: mac for host '%s' is not a string (quote it), skipped", i, host
            )
            continue
        mac = (raw_mac or "").strip()
        if not mac:
            logger.error("wakeup[%d]: missing or empty 'mac' for host '%s', skipped", i, host)
            continue
        if not _MAC_RE.match(mac):
            logger.warning("wakeup[%d]: unusual mac '%s' for host '%s'", i, mac, host)

        values = {key: _clamped_int(raw, key, d, lo, hi) for key, d, lo, hi in _ENTRY_INTS}
        entry = WakeEntry(host=host, mac=mac, **values)
        logger.info(
            "Registering wake entry: host=%s mac=%s ping_port=%d ping_mode=%d timeout=%ds "
            "wait_online=%ds wait_online2=%ds wait_services=%ds",
            entry.host,
            entry.mac,
            entry.ping_port,
            entry.ping_mode,
            entry.timeout,
            entry.wait_online,
            entry.wait_online2,
            entry.wait_services,
        )
        entries.append(entry)
    return entries


def load_registry(path: Path) -> RegistryData:
    """
    Load the wake registry file.

    A missing, empty, or unparsable file yields an empty registry with default
    network timing; the problem is logged, never raised.
    """
    try:
        raw = load_config(path)
    except FileNotFoundError:
        logger.info("No wake registry at %s, starting empty", path)
        return RegistryData()
    except (OSError, yaml.YAMLError) as exc:
        logger.error("Unable to load wake registry %s: %s", path, exc)
        return RegistryData()

    if raw is None:
        return RegistryData()
    if not isinstance(raw, dict):
        logger.error("Wake registry %s must contain a YAML mapping", path)
        return RegistryData()

    policy = NetworkPolicy(
        init_timeout=_clamped_int(raw, "network_init_timeout", DEFAULT_NETWORK_INIT_SEC, 0, 5 * 60),
        settle_ms=_clamped_int(raw, "network_settle_time", DEFAULT_NETWORK_SETTLE_MS, 0, 5 * 1000),
    )
    raw_entries = raw.get("wakeup") or []
    if not isinstance(raw_entries, list):
        logger.error("Wake registry %s: 'wakeup' must be a list", path)
        raw_entries = []

    return RegistryData(entries=entries_from_raw(raw_entries), policy=policy)
