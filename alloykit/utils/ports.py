"""Host port availability checks."""

import socket
from typing import Dict, List

from ..core.log import get_logger

logger = get_logger(__name__)


def is_port_available(port: int, host: str = "0.0.0.0") -> bool:
    """Check if a TCP port can be bound on the host.

    Args:
        port: Port number to check
        host: Interface to probe (default: all interfaces)

    Returns:
        True if nothing is listening on the port
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, port))
            return True
    except OSError as e:
        logger.debug("Port %s unavailable: %s", port, e)
        return False


def find_ports_in_use(ports: Dict[str, int]) -> List[str]:
    """Return one message per component whose port is already bound."""
    messages = []
    for component, port in ports.items():
        if not is_port_available(port):
            messages.append(f"Port {port} for {component} is already in use")
    return messages
