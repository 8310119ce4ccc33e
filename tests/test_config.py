"""Tests for configuration loading and validation."""

import logging
from pathlib import Path

import pytest
import yaml

from wakegate.config.loader import (
    ConfigError,
    entries_from_raw,
    load_config,
    load_registry,
    load_settings,
    validate_config,
)
from wakegate.core.registry import NetworkPolicy


class TestLoadConfig:
    def test_load_valid_yaml(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("settings:\n  enabled: true\n")

        assert load_config(config_file) == {"settings": {"enabled": True}}

    def test_empty_file_returns_none(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("")
        assert load_config(config_file) is None

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")


class TestValidateConfig:
    def test_minimal_config_is_valid(self) -> None:
        assert validate_config({}) == []

    def test_full_config_is_valid(self) -> None:
        config = {
            "settings": {
                "enabled": True,
                "wol_port": 7,
                "sources": ["smb://nas/media"],
                "databases": [{"type": "mysql", "host": "db"}],
                "path_substitutions": {"/mnt/media": "nfs://nas/media"},
                "notifications": {"ntfy_topic": "wakegate"},
            }
        }
        assert validate_config(config) == []

    def test_root_must_be_mapping(self) -> None:
        assert validate_config(["nope"]) == ["Config root must be a YAML mapping"]  # type: ignore[arg-type]

    def test_settings_must_be_mapping(self) -> None:
        assert validate_config({"settings": "on"}) == ["'settings' must be a mapping"]

    @pytest.mark.parametrize("port", [0, 70000, "nine"])
    def test_invalid_wol_port(self, port: object) -> None:
        errors = validate_config({"settings": {"wol_port": port}})
        assert any("wol_port" in e for e in errors)

    def test_sources_must_be_list(self) -> None:
        errors = validate_config({"settings": {"sources": "smb://nas/media"}})
        assert errors == ["settings.sources: must be a list"]

    def test_database_entries_must_be_mappings(self) -> None:
        errors = validate_config({"settings": {"databases": ["db"]}})
        assert errors == ["settings.databases[0]: must be a mapping"]

    def test_path_substitutions_must_be_mapping(self) -> None:
        errors = validate_config({"settings": {"path_substitutions": ["a"]}})
        assert errors == ["settings.path_substitutions: must be a mapping"]


class TestLoadSettings:
    def test_valid_settings_returned(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("settings:\n  enabled: true\n  wol_port: 7\n")
        assert load_settings(path)["settings"]["wol_port"] == 7

    def test_empty_file_is_empty_settings(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_settings(path) == {}

    def test_validation_errors_raise(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("settings:\n  wol_port: 0\n  sources: nas\n")

        with pytest.raises(ConfigError) as exc_info:
            load_settings(path)

        assert len(exc_info.value.errors) == 2

    def test_invalid_yaml_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("settings: [unclosed\n")

        with pytest.raises(ConfigError):
            load_settings(path)


class TestEntriesFromRaw:
    def test_defaults_applied(self) -> None:
        (entry,) = entries_from_raw([{"host": "nas", "mac": "AA:BB:CC:DD:EE:FF"}])

        assert entry.ping_port == 0
        assert entry.ping_mode == 0
        assert entry.timeout == 300
        assert (entry.wait_online, entry.wait_online2, entry.wait_services) == (40, 40, 5)

    def test_values_clamped(self) -> None:
        (entry,) = entries_from_raw(
            [
                {
                    "host": "nas",
                    "mac": "AA:BB:CC:DD:EE:FF",
                    "ping_port": 70000,
                    "ping_mode": -1,
                    "timeout": 1,
                    "wait_online": 9999,
                    "wait_online2": -5,
                    "wait_services": 301,
                }
            ]
        )

        assert entry.ping_port == 65535
        assert entry.ping_mode == 0
        assert entry.timeout == 10
        assert entry.wait_online == 600
        assert entry.wait_online2 == 0
        assert entry.wait_services == 300

    def test_timeout_upper_bound(self) -> None:
        (entry,) = entries_from_raw([{"host": "nas", "mac": "AA:BB:CC:DD:EE:FF", "timeout": 10**6}])
        assert entry.timeout == 43200

    def test_non_numeric_uses_default(self) -> None:
        (entry,) = entries_from_raw([{"host": "nas", "mac": "AA:BB:CC:DD:EE:FF", "timeout": "soon"}])
        assert entry.timeout == 300

    def test_missing_host_or_mac_skipped(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.ERROR):
            entries = entries_from_raw(
                [
                    {"mac": "AA:BB:CC:DD:EE:FF"},
                    {"host": "nas"},
                    "garbage",
                    {"host": "db", "mac": "11-22-33-44-55-66"},
                ]
            )

        assert [e.host for e in entries] == ["db"]
        assert caplog.text.count("skipped") == 3

    def test_unusual_mac_warns_but_loads(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            entries = entries_from_raw([{"host": "nas", "mac": "aabbccddeeff"}])

        assert entries[0].mac == "aabbccddeeff"
        assert "unusual mac" in caplog.text

    def test_non_string_mac_skipped(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.ERROR):
            entries = entries_from_raw([{"host": "db", "mac": 2405253059}])

        assert entries == []
        assert "not a string" in caplog.text


class TestLoadRegistry:
    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        data = load_registry(tmp_path / "wakeup.yaml")
        assert data.entries == []
        assert data.policy == NetworkPolicy()

    def test_garbage_file_is_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "wakeup.yaml"
        path.write_text("wakeup: [unclosed\n")

        data = load_registry(path)

        assert data.entries == []
        assert data.policy == NetworkPolicy()

    def test_non_mapping_root_is_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "wakeup.yaml"
        path.write_text("- host: nas\n")
        assert load_registry(path).entries == []

    def test_empty_file_is_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "wakeup.yaml"
        path.write_text("")
        assert load_registry(path).entries == []

    def test_loads_policy_and_entries(self, tmp_path: Path) -> None:
        path = tmp_path / "wakeup.yaml"
        path.write_text(
            yaml.dump(
                {
                    "network_init_timeout": 30,
                    "network_settle_time": 750,
                    "wakeup": [
                        {"host": "nas", "mac": "AA:BB:CC:DD:EE:FF", "ping_port": 445},
                        {"host": "db", "mac": "11:22:33:44:55:66"},
                    ],
                }
            )
        )

        data = load_registry(path)

        assert data.policy == NetworkPolicy(30, 750)
        assert [e.host for e in data.entries] == ["nas", "db"]
        assert data.entries[0].ping_port == 445
        assert data.entries[1].mac == "11:22:33:44:55:66"

    def test_policy_clamped(self, tmp_path: Path) -> None:
        path = tmp_path / "wakeup.yaml"
        path.write_text("network_init_timeout: 9000\nnetwork_settle_time: -1\n")

        assert load_registry(path).policy == NetworkPolicy(300, 0)

    def test_unquoted_digit_mac_skipped(self, tmp_path: Path) -> None:
        path = tmp_path / "wakeup.yaml"
        # every group after the first is below 60, so YAML reads a base-60 int
        path.write_text("wakeup:\n  - host: db\n    mac: 10:20:30:40:50:59\n")

        assert load_registry(path).entries == []

    def test_quoted_digit_mac_loads(self, tmp_path: Path) -> None:
        path = tmp_path / "wakeup.yaml"
        path.write_text("wakeup:\n  - host: db\n    mac: \"10:20:30:40:50:59\"\n")

        assert load_registry(path).entries[0].mac == "10:20:30:40:50:59"

    def test_wakeup_not_a_list(self, tmp_path: Path) -> None:
        path = tmp_path / "wakeup.yaml"
        path.write_text("network_init_timeout: 5\nwakeup: nas\n")

        data = load_registry(path)

        assert data.entries == []
        assert data.policy.init_timeout == 5
