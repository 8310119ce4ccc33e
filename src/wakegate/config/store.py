"""File-backed persistence for the host registry."""

import logging
from pathlib import Path

from wakegate.config.loader import load_registry
from wakegate.config.writer import build_registry_dict, write_config
from wakegate.core.registry import RegistryData

logger = logging.getLogger(__name__)


class RegistryStore:
    """Loads and rewrites the whole registry YAML file."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path).expanduser()

    def load(self) -> RegistryData:
        return load_registry(self.path)

    def save(self, data: RegistryData) -> None:
        write_config(self.path, build_registry_dict(data))
        logger.debug("Wake registry with %d entry(ies) written to %s", len(data.entries), self.path)
