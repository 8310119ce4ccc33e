"""Atomic YAML write-back of the wake registry."""

import os
from pathlib import Path
from typing import Any

import yaml

from wakegate.core.registry import RegistryData, WakeEntry

_ENTRY_KEYS = (
    "host",
    "mac",
    "ping_port",
    "ping_mode",
    "timeout",
    "wait_online",
    "wait_online2",
    "wait_services",
)


def entry_to_raw(entry: WakeEntry) -> dict[str, Any]:
    """Persisted fields of ``entry`` in the order the registry file lists them."""
    return {key: getattr(entry, key) for key in _ENTRY_KEYS}


def build_registry_dict(data: RegistryData) -> dict[str, Any]:
    """Full registry file contents: network timing followed by all entries."""
    return {
        "network_init_timeout": data.policy.init_timeout,
        "network_settle_time": data.policy.settle_ms,
        "wakeup": [entry_to_raw(e) for e in data.entries],
    }


def write_config(path: Path, config: dict[str, Any]) -> None:
    """
    Replace ``path`` with ``config`` as YAML.

    The document goes to ``<name>.tmp`` first and is renamed over the target,
    so readers see either the old file or the new one.
    """
    text = yaml.safe_dump(config, default_flow_style=False, sort_keys=False, allow_unicode=True)
    tmp = path.with_name(path.name + ".tmp")
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        tmp.write_text(text, encoding="utf-8")
        os.replace(tmp, path)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise
