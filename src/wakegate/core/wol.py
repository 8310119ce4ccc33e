"""Magic packet transmission."""

import logging

from wakeonlan import send_magic_packet

logger = logging.getLogger(__name__)


def send_wake_signal(mac_address: str, ip_address: str = "255.255.255.255", port: int = 9) -> bool:
    """
    Broadcast a magic packet for ``mac_address``.

    Delivery is never confirmed; a True result only means the packet left
    this machine. Whether the host wakes is up to the caller to verify.

    Args:
        mac_address: Hardware address, ``:`` or ``-`` separated
        ip_address: Broadcast address to send to
        port: UDP port, usually 7 or 9

    Returns:
        False for an empty or malformed address or a socket error
    """
    if not mac_address:
        logger.error("No hardware address given, no magic packet sent")
        return False

    try:
        send_magic_packet(mac_address, ip_address=ip_address, port=port)
    except (OSError, ValueError) as exc:
        logger.error("Magic packet to %s via %s:%d failed: %s", mac_address, ip_address, port, exc)
        return False
    logger.info("Magic packet sent to %s via %s:%d", mac_address, ip_address, port)
    return True
