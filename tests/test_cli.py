"""Tests for the wakegate CLI."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import yaml
from click.testing import CliRunner

from wakegate.cli import main
from wakegate.core.discovery import DiscoveryError

# ── Helpers ───────────────────────────────────────────────────────────────────


def _write_config(tmp_path: Path, enabled: bool = True, **settings: object) -> Path:
    """Write a settings file plus a registry with one host named 'nas'."""
    registry = tmp_path / "wakeup.yaml"
    registry.write_text(
        yaml.dump(
            {
                "network_init_timeout": 1,
                "network_settle_time": 0,
                "wakeup": [
                    {
                        "host": "nas",
                        "mac": "AA:BB:CC:DD:EE:FF",
                        "ping_port": 445,
                        "wait_online": 1,
                        "wait_online2": 1,
                        "wait_services": 0,
                    }
                ],
            }
        )
    )
    config = tmp_path / "config.yaml"
    values: dict = {"enabled": enabled, "registry_file": str(registry)}
    values.update(settings)
    config.write_text(yaml.dump({"settings": values}))
    return config


def _network(awake: bool = True, sent: bool = True) -> MagicMock:
    network = MagicMock()
    network.is_connected.return_value = True
    network.resolve.return_value = "192.168.1.20"
    network.probe.return_value = awake
    network.send_wake_signal.return_value = sent
    return network


def _invoke(config: Path, *args: str):
    return CliRunner().invoke(main, ["--config", str(config), *args])


# ── Config handling ───────────────────────────────────────────────────────────


class TestLoadCfgErrors:
    def test_invalid_config_exits_1(self, tmp_path: Path) -> None:
        config = _write_config(tmp_path, wol_port="nine")

        result = _invoke(config, "hosts", "list")

        assert result.exit_code == 1
        assert "wol_port" in result.output

    def test_malformed_yaml_exits_1(self, tmp_path: Path) -> None:
        config = tmp_path / "config.yaml"
        config.write_text("settings: [unclosed\n")

        result = _invoke(config, "hosts", "list")

        assert result.exit_code == 1
        assert "Invalid YAML" in result.output

    def test_env_var_selects_config(self, tmp_path: Path) -> None:
        config = _write_config(tmp_path)

        result = CliRunner().invoke(main, ["hosts", "list"], env={"WAKEGATE_CONFIG": str(config)})

        assert result.exit_code == 0
        assert "nas" in result.output


# ── hosts list ────────────────────────────────────────────────────────────────


class TestHostsList:
    def test_lists_registered_hosts(self, tmp_path: Path) -> None:
        result = _invoke(_write_config(tmp_path), "hosts", "list")

        assert result.exit_code == 0
        assert "nas" in result.output
        assert "AA:BB:CC:DD:EE:FF" in result.output
        assert "445" in result.output

    def test_empty_registry(self, tmp_path: Path) -> None:
        config = _write_config(tmp_path)
        (tmp_path / "wakeup.yaml").unlink()

        result = _invoke(config, "hosts", "list")

        assert result.exit_code == 0
        assert "No hosts registered" in result.output


# ── access ────────────────────────────────────────────────────────────────────


class TestAccess:
    @patch("wakegate.core.gate.Network")
    def test_already_awake(self, mock_network_cls: MagicMock, tmp_path: Path) -> None:
        mock_network_cls.return_value = _network(awake=True)

        result = _invoke(_write_config(tmp_path), "access", "nas", "--quiet")

        assert result.exit_code == 0
        assert "already_awake" in result.output
        mock_network_cls.return_value.send_wake_signal.assert_not_called()

    @patch("wakegate.core.gate.Network")
    def test_url_target(self, mock_network_cls: MagicMock, tmp_path: Path) -> None:
        mock_network_cls.return_value = _network(awake=True)

        result = _invoke(_write_config(tmp_path), "access", "smb://nas/media", "-q")

        assert result.exit_code == 0
        assert "nas" in result.output

    @patch("wakegate.core.gate.Network")
    def test_send_failure_exits_2(self, mock_network_cls: MagicMock, tmp_path: Path) -> None:
        mock_network_cls.return_value = _network(awake=False, sent=False)

        result = _invoke(_write_config(tmp_path), "access", "nas", "--quiet")

        assert result.exit_code == 2
        assert "signal_send_failed" in result.output

    @patch("wakegate.core.gate.Network")
    def test_unknown_host_needs_no_wake(self, mock_network_cls: MagicMock, tmp_path: Path) -> None:
        mock_network_cls.return_value = _network()

        result = _invoke(_write_config(tmp_path), "access", "printer", "--quiet")

        assert result.exit_code == 0
        assert "No wake needed for printer" in result.output

    @patch("wakegate.core.gate.Network")
    def test_progress_shown(self, mock_network_cls: MagicMock, tmp_path: Path) -> None:
        mock_network_cls.return_value = _network(awake=True)

        result = _invoke(_write_config(tmp_path), "access", "nas")

        assert result.exit_code == 0
        assert "Waking up nas" in result.output
        assert "Waiting for network to connect..." in result.output

    def test_disabled_exits_1(self, tmp_path: Path) -> None:
        result = _invoke(_write_config(tmp_path, enabled=False), "access", "nas")

        assert result.exit_code == 1
        assert "disabled" in result.output


# ── wake / probe ──────────────────────────────────────────────────────────────


class TestWake:
    @patch("wakegate.core.network.send_wake_signal", return_value=True)
    def test_sends_packet(self, mock_send: MagicMock, tmp_path: Path) -> None:
        config = _write_config(tmp_path, wol_broadcast="192.168.1.255")

        result = _invoke(config, "wake", "nas")

        assert result.exit_code == 0
        mock_send.assert_called_once_with("AA:BB:CC:DD:EE:FF", ip_address="192.168.1.255", port=9)

    @patch("wakegate.core.network.send_wake_signal", return_value=False)
    def test_send_failure_exits_2(self, mock_send: MagicMock, tmp_path: Path) -> None:
        assert _invoke(_write_config(tmp_path), "wake", "nas").exit_code == 2

    def test_unknown_host_exits_1(self, tmp_path: Path) -> None:
        result = _invoke(_write_config(tmp_path), "wake", "printer")
        assert result.exit_code == 1
        assert "not in the wake registry" in result.output


class TestProbe:
    @patch("wakegate.core.wait.probe_host", return_value=True)
    def test_host_up(self, mock_probe: MagicMock, tmp_path: Path) -> None:
        result = _invoke(_write_config(tmp_path), "probe", "nas")
        assert result.exit_code == 0
        assert "nas is up" in result.output

    @patch("wakegate.core.wait.probe_host", return_value=False)
    def test_host_down_exits_2(self, mock_probe: MagicMock, tmp_path: Path) -> None:
        assert _invoke(_write_config(tmp_path), "probe", "nas").exit_code == 2


# ── discover ──────────────────────────────────────────────────────────────────


class TestDiscover:
    @patch("wakegate.core.discovery.discover_mac", return_value="DE:AD:BE:EF:00:01")
    def test_registers_new_host(self, mock_discover: MagicMock, tmp_path: Path) -> None:
        config = _write_config(tmp_path)

        result = _invoke(config, "discover", "printer")

        assert result.exit_code == 0
        assert "created" in result.output
        saved = yaml.safe_load((tmp_path / "wakeup.yaml").read_text())
        assert [e["host"] for e in saved["wakeup"]] == ["nas", "printer"]
        assert saved["network_init_timeout"] == 1

    @patch("wakegate.core.discovery.discover_mac", return_value="AA:BB:CC:DD:EE:FF")
    def test_known_mac_unchanged(self, mock_discover: MagicMock, tmp_path: Path) -> None:
        result = _invoke(_write_config(tmp_path), "discover", "nas")
        assert result.exit_code == 0
        assert "unchanged" in result.output

    @patch(
        "wakegate.core.discovery.discover_mac",
        side_effect=DiscoveryError("No local interface has a hardware address for 'printer'"),
    )
    def test_failure_exits_2(self, mock_discover: MagicMock, tmp_path: Path) -> None:
        result = _invoke(_write_config(tmp_path), "discover", "printer")
        assert result.exit_code == 2

    @patch("wakegate.core.discovery.discover_mac", return_value="DE:AD:BE:EF:00:01")
    def test_all_uses_configured_remotes(self, mock_discover: MagicMock, tmp_path: Path) -> None:
        config = _write_config(
            tmp_path,
            sources=["smb://media/share"],
            databases=[{"type": "mysql", "host": "db"}],
        )

        result = _invoke(config, "discover", "--all")

        assert result.exit_code == 0
        assert [c[0][0] for c in mock_discover.call_args_list] == ["media", "db"]

    def test_no_target_exits_1(self, tmp_path: Path) -> None:
        assert _invoke(_write_config(tmp_path), "discover").exit_code == 1
