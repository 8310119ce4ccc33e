"""Tests for magic packet transmission."""

from unittest.mock import MagicMock, patch

from wakegate.core.wol import send_wake_signal


class TestSendWakeSignal:
    """Tests for send_wake_signal."""

    @patch("wakegate.core.wol.send_magic_packet")
    def test_sends_magic_packet(self, mock_send: MagicMock) -> None:
        mac = "AA:BB:CC:DD:EE:FF"

        result = send_wake_signal(mac)

        assert result is True
        mock_send.assert_called_once_with(mac, ip_address="255.255.255.255", port=9)

    @patch("wakegate.core.wol.send_magic_packet")
    def test_custom_broadcast_and_port(self, mock_send: MagicMock) -> None:
        send_wake_signal("AA:BB:CC:DD:EE:FF", ip_address="192.168.1.255", port=7)

        mock_send.assert_called_once_with(
            "AA:BB:CC:DD:EE:FF", ip_address="192.168.1.255", port=7
        )

    @patch("wakegate.core.wol.send_magic_packet", side_effect=OSError("Network is unreachable"))
    def test_socket_error_returns_false(self, mock_send: MagicMock) -> None:
        """A send failure (no route, firewall) is reported, not raised."""
        assert send_wake_signal("AA:BB:CC:DD:EE:FF") is False

    @patch("wakegate.core.wol.send_magic_packet", side_effect=ValueError("Incorrect MAC address format"))
    def test_bad_mac_returns_false(self, mock_send: MagicMock) -> None:
        assert send_wake_signal("not-a-mac") is False

    @patch("wakegate.core.wol.send_magic_packet")
    def test_empty_mac_not_sent(self, mock_send: MagicMock) -> None:
        assert send_wake_signal("") is False
        mock_send.assert_not_called()
