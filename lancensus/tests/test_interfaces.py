"""
Unit tests for the interface enumerator.
"""

import socket
import subprocess
from collections import namedtuple
from unittest.mock import MagicMock, patch

import pytest

from modules.interfaces import (
    NetworkInterface,
    get_gateway_ip,
    ip_to_cidr,
    list_local_networks,
    netmask_to_prefix,
    run_command,
)

# Same shape as psutil's snicaddr
Addr = namedtuple("Addr", ["family", "address", "netmask", "broadcast", "ptp"])


def _inet(address, netmask):
    return Addr(socket.AF_INET, address, netmask, None, None)


# ─── CIDR helpers ────────────────────────────────────────────────────────────


class TestCidrHelpers:

    @pytest.mark.parametrize("netmask, prefix", [
        ("255.255.255.0", 24),
        ("255.255.0.0", 16),
        ("255.255.255.252", 30),
        ("255.255.255.255", 32),
        ("0.0.0.0", 0),
    ])
    def test_netmask_to_prefix(self, netmask, prefix):
        assert netmask_to_prefix(netmask) == prefix

    def test_ip_to_cidr_masks_host_bits(self):
        assert ip_to_cidr("192.168.1.37", "255.255.255.0") == "192.168.1.0/24"
        assert ip_to_cidr("10.20.30.40", "255.255.0.0") == "10.20.0.0/16"
        assert ip_to_cidr("172.16.5.9", "255.255.255.252") == "172.16.5.8/30"


# ─── list_local_networks ─────────────────────────────────────────────────────


class TestListLocalNetworks:

    @patch("modules.interfaces.psutil.net_if_addrs")
    def test_lists_ipv4_networks(self, mock_addrs):
        mock_addrs.return_value = {
            "eth0": [_inet("192.168.1.37", "255.255.255.0")],
            "wlan0": [_inet("10.0.5.2", "255.255.0.0")],
        }

        networks = list_local_networks()

        assert networks == [
            NetworkInterface("eth0", "192.168.1.0/24", "192.168.1.37"),
            NetworkInterface("wlan0", "10.0.0.0/16", "10.0.5.2"),
        ]

    @patch("modules.interfaces.psutil.net_if_addrs")
    def test_skips_loopback_ipv6_and_missing_netmask(self, mock_addrs):
        mock_addrs.return_value = {
            "lo": [_inet("127.0.0.1", "255.0.0.0")],
            "eth0": [
                Addr(socket.AF_INET6, "fe80::1", "ffff:ffff:ffff:ffff::", None, None),
                _inet("192.168.1.37", None),
                _inet("192.168.1.38", "255.255.255.0"),
            ],
        }

        networks = list_local_networks()

        assert [n.local_address for n in networks] == ["192.168.1.38"]

    @patch("modules.interfaces.psutil.net_if_addrs")
    def test_empty_when_no_interfaces(self, mock_addrs):
        mock_addrs.return_value = {"lo": [_inet("127.0.0.1", "255.0.0.0")]}
        assert list_local_networks() == []

    @patch("modules.interfaces.psutil.net_if_addrs", side_effect=OSError("denied"))
    def test_os_error_returns_empty(self, mock_addrs):
        assert list_local_networks() == []

    def test_to_dict(self):
        iface = NetworkInterface("eth0", "192.168.1.0/24", "192.168.1.37")
        assert iface.to_dict() == {
            "interface_name": "eth0",
            "cidr": "192.168.1.0/24",
            "local_address": "192.168.1.37",
        }


# ─── run_command / gateway ───────────────────────────────────────────────────


class TestRunCommand:

    @patch("modules.interfaces.subprocess.run")
    def test_success(self, mock_run):
        mock_run.return_value = MagicMock(stdout="out", stderr="", returncode=0)
        assert run_command(["echo", "out"]) == ("out", "", 0)

    @patch("modules.interfaces.subprocess.run",
           side_effect=subprocess.TimeoutExpired(cmd="sleep", timeout=1))
    def test_timeout(self, mock_run):
        stdout, stderr, rc = run_command(["sleep", "10"], timeout=1)
        assert rc == -1
        assert "timed out" in stderr

    @patch("modules.interfaces.subprocess.run", side_effect=FileNotFoundError())
    def test_missing_binary(self, mock_run):
        stdout, stderr, rc = run_command(["nope"])
        assert rc == -1
        assert "not found" in stderr


class TestGetGatewayIp:

    @patch("modules.interfaces.run_command")
    def test_ip_route(self, mock_cmd):
        mock_cmd.return_value = ("default via 192.168.1.1 dev eth0 proto dhcp\n", "", 0)
        assert get_gateway_ip() == "192.168.1.1"

    @patch("modules.interfaces.run_command")
    def test_route_n_fallback(self, mock_cmd):
        mock_cmd.side_effect = [
            ("", "Command not found: ip", -1),
            (
                "Kernel IP routing table\n"
                "Destination     Gateway         Genmask\n"
                "0.0.0.0         10.0.0.1        0.0.0.0\n",
                "",
                0,
            ),
        ]
        assert get_gateway_ip() == "10.0.0.1"

    @patch("modules.interfaces.run_command", return_value=("", "", 1))
    def test_none_when_undetected(self, mock_cmd):
        assert get_gateway_ip() is None
