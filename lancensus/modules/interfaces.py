"""
Interface Enumerator Module

Lists local IPv4 network interfaces and derives the subnet each one sits on,
plus a couple of small OS helpers (command runner, default gateway lookup)
shared by the prober.
"""

import ipaddress
import logging
import re
import socket
import subprocess
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import psutil

logger = logging.getLogger(__name__)


@dataclass
class NetworkInterface:
    """A local, non-loopback IPv4 interface and the network it belongs to."""
    interface_name: str
    cidr: str
    local_address: str

    def to_dict(self) -> Dict:
        return {
            "interface_name": self.interface_name,
            "cidr": self.cidr,
            "local_address": self.local_address,
        }


def run_command(cmd: List[str], timeout: float = 5) -> Tuple[str, str, int]:
    """
    Execute a command and return stdout, stderr, and return code.

    Args:
        cmd: Command and arguments as list
        timeout: Command timeout in seconds

    Returns:
        Tuple of (stdout, stderr, return_code)
    """
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
        return result.stdout, result.stderr, result.returncode
    except subprocess.TimeoutExpired:
        logger.debug(f"Command timed out: {' '.join(cmd)}")
        return "", f"Command timed out after {timeout}s", -1
    except FileNotFoundError:
        logger.warning(f"Command not found: {cmd[0]}")
        return "", f"Command not found: {cmd[0]}", -1
    except OSError as e:
        logger.error(f"Error running command {' '.join(cmd)}: {e}")
        return "", str(e), -1


def netmask_to_prefix(netmask: str) -> int:
    """Count the set bits of a dotted-quad netmask (255.255.255.0 -> 24)."""
    return bin(int(ipaddress.IPv4Address(netmask))).count("1")


def ip_to_cidr(ip: str, netmask: str) -> str:
    """
    Convert an interface address and its netmask to network CIDR notation.

    Args:
        ip: Interface address, e.g. '192.168.1.37'
        netmask: Dotted-quad mask, e.g. '255.255.255.0'

    Returns:
        Network in CIDR form, e.g. '192.168.1.0/24'
    """
    address = int(ipaddress.IPv4Address(ip))
    mask = int(ipaddress.IPv4Address(netmask))
    network = ipaddress.IPv4Address(address & mask)
    return f"{network}/{netmask_to_prefix(netmask)}"


def list_local_networks() -> List[NetworkInterface]:
    """
    Enumerate local IPv4 networks.

    Loopback addresses and entries without a netmask are skipped. If the OS
    query itself fails an empty list is returned, since callers can still
    scan an explicit target CIDR.

    Returns:
        List of NetworkInterface objects, in the order the OS reports them
    """
    try:
        all_addrs = psutil.net_if_addrs()
    except (OSError, RuntimeError) as e:
        logger.error(f"Error enumerating network interfaces: {e}")
        return []

    networks: List[NetworkInterface] = []
    for name, addrs in all_addrs.items():
        for addr in addrs:
            if addr.family != socket.AF_INET or not addr.netmask:
                continue
            try:
                if ipaddress.IPv4Address(addr.address).is_loopback:
                    continue
                cidr = ip_to_cidr(addr.address, addr.netmask)
            except ValueError as e:
                logger.debug(f"Skipping address {addr.address} on {name}: {e}")
                continue

            networks.append(NetworkInterface(
                interface_name=name,
                cidr=cidr,
                local_address=addr.address,
            ))

    logger.debug(f"Found {len(networks)} local IPv4 networks")
    return networks


def get_gateway_ip() -> Optional[str]:
    """Detect the default gateway/router IP from the system routing table.

    Returns:
        Gateway IP address string or None if not detected.
    """
    # Method 1: parse `ip route`
    stdout, _, returncode = run_command(["ip", "route", "show", "default"])
    if returncode == 0 and stdout:
        match = re.search(r'default\s+via\s+(\d+\.\d+\.\d+\.\d+)', stdout)
        if match:
            logger.debug(f"Detected gateway IP: {match.group(1)}")
            return match.group(1)

    # Method 2: fallback to `route -n`
    stdout, _, returncode = run_command(["route", "-n"])
    if returncode == 0 and stdout:
        for line in stdout.splitlines():
            parts = line.split()
            if len(parts) >= 2 and parts[0] == "0.0.0.0":
                logger.debug(f"Detected gateway IP (route -n): {parts[1]}")
                return parts[1]

    logger.debug("Could not detect default gateway")
    return None
