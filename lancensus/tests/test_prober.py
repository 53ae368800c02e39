"""
Unit tests for the active prober.

No real network traffic: the neighbour cache is a fake reader and
``subprocess.run`` / ``socket.create_connection`` are patched.
"""

import subprocess
import threading
import time
from unittest.mock import MagicMock, patch

import pytest

from modules.prober import (
    ActiveProber,
    ArpCacheReader,
    PortResult,
    ProbeOutcome,
    ProbeResult,
)


class FakeArpReader:
    """Returns one canned harvest per read() call, repeating the last one."""

    def __init__(self, *harvests):
        self.harvests = list(harvests)
        self.calls = 0

    def read(self):
        index = min(self.calls, len(self.harvests) - 1)
        self.calls += 1
        harvest = self.harvests[index]
        if isinstance(harvest, Exception):
            raise harvest
        return harvest


PROC_ARP = """\
IP address       HW type     Flags       HW address            Mask     Device
192.168.1.1      0x1         0x2         b8:27:eb:12:34:56     *        eth0
192.168.1.9      0x1         0x0         00:00:00:00:00:00     *        eth0
192.168.1.20     0x1         0x2         00:11:32:aa:bb:cc     *        eth0
"""


# ─── ArpCacheReader ──────────────────────────────────────────────────────────


class TestArpCacheReader:

    def test_reads_proc_and_skips_incomplete(self, tmp_path):
        proc = tmp_path / "arp"
        proc.write_text(PROC_ARP)

        entries = ArpCacheReader(proc_path=proc).read()

        assert entries == [
            ("192.168.1.1", "b8:27:eb:12:34:56"),
            ("192.168.1.20", "00:11:32:aa:bb:cc"),
        ]

    @patch("modules.prober.run_command")
    def test_falls_back_to_arp_command(self, mock_cmd, tmp_path):
        mock_cmd.return_value = (
            "? (192.168.1.1) at b8:27:eb:12:34:56 [ether] on eth0\n"
            "? (192.168.1.7) at <incomplete> on eth0\n"
            "router.lan (10.0.0.1) at 0:1c:42:0:0:8 on en0 ifscope [ethernet]\n",
            "",
            0,
        )

        entries = ArpCacheReader(proc_path=tmp_path / "missing").read()

        assert entries == [
            ("192.168.1.1", "b8:27:eb:12:34:56"),
            ("10.0.0.1", "0:1c:42:0:0:8"),
        ]

    @patch("modules.prober.run_command", return_value=("", "Command not found: arp", -1))
    def test_arp_command_failure_raises(self, mock_cmd, tmp_path):
        with pytest.raises(OSError):
            ArpCacheReader(proc_path=tmp_path / "missing").read()


# ─── ARP harvest ─────────────────────────────────────────────────────────────


class TestReadArpCache:

    def test_normalizes_and_looks_up_vendor(self):
        prober = ActiveProber(arp_reader=FakeArpReader([
            ("192.168.1.1", "b8:27:eb:12:34:56"),
            ("192.168.1.2", "not-a-mac"),
            ("192.168.1.3", "00:00:00:00:00:00"),
        ]))

        results = prober.read_arp_cache()

        assert list(results) == ["192.168.1.1"]
        result = results["192.168.1.1"]
        assert result.mac_address == "B8:27:EB:12:34:56"
        assert result.vendor == "Raspberry Pi"
        assert result.is_alive is True

    def test_first_entry_per_ip_wins(self):
        prober = ActiveProber(arp_reader=FakeArpReader([
            ("192.168.1.1", "b8:27:eb:12:34:56"),
            ("192.168.1.1", "00:11:32:aa:bb:cc"),
        ]))
        assert prober.read_arp_cache()["192.168.1.1"].mac_address == "B8:27:EB:12:34:56"

    def test_reader_failure_yields_empty(self):
        prober = ActiveProber(arp_reader=FakeArpReader(OSError("permission denied")))
        assert prober.read_arp_cache() == {}


class TestScanArp:

    def test_harvest_only_without_target(self):
        reader = FakeArpReader([("192.168.1.1", "b8:27:eb:12:34:56")])
        prober = ActiveProber(arp_reader=reader)

        with patch.object(prober, "ping_sweep") as mock_sweep:
            results = prober.scan_arp()

        mock_sweep.assert_not_called()
        assert [r.ip_address for r in results] == ["192.168.1.1"]
        assert reader.calls == 1

    def test_sweep_then_merge_second_harvest(self):
        reader = FakeArpReader(
            [("192.168.1.1", "b8:27:eb:12:34:56")],
            [
                ("192.168.1.1", "b8:27:eb:12:34:56"),
                ("192.168.1.20", "00:11:32:aa:bb:cc"),
            ],
        )
        prober = ActiveProber(arp_reader=reader)
        outcomes = [
            ProbeOutcome("192.168.1.1", ok=True, elapsed_ms=1.5),
            ProbeOutcome("192.168.1.20", ok=True, elapsed_ms=3.25),
            ProbeOutcome("192.168.1.30", ok=False, error="exit status 1"),
        ]

        with patch.object(prober, "ping_sweep", return_value=outcomes) as mock_sweep:
            results = prober.scan_arp("192.168.1.0/24")

        mock_sweep.assert_called_once_with("192.168.1.0/24")
        assert [r.ip_address for r in results] == ["192.168.1.1", "192.168.1.20"]
        assert results[0].response_time_ms == 1.5
        assert results[1].response_time_ms == 3.25
        assert results[1].vendor == "Synology"

    def test_empty_network(self):
        prober = ActiveProber(arp_reader=FakeArpReader([]))
        with patch.object(prober, "ping_sweep", return_value=[]):
            assert prober.scan_arp("192.168.1.0/24") == []


# ─── Ping ────────────────────────────────────────────────────────────────────


class TestPingHost:

    @patch("modules.prober.subprocess.run")
    def test_reply(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0)

        outcome = ActiveProber().ping_host("192.168.1.1")

        assert outcome.ok is True
        assert outcome.target == "192.168.1.1"
        assert outcome.elapsed_ms is not None
        assert mock_run.call_args[0][0][-1] == "192.168.1.1"

    @patch("modules.prober.subprocess.run")
    def test_no_reply(self, mock_run):
        mock_run.return_value = MagicMock(returncode=1)

        outcome = ActiveProber().ping_host("192.168.1.99")

        assert outcome.ok is False
        assert outcome.error == "exit status 1"

    @patch("modules.prober.subprocess.run",
           side_effect=subprocess.TimeoutExpired(cmd="ping", timeout=2))
    def test_process_timeout_is_an_outcome(self, mock_run):
        outcome = ActiveProber().ping_host("192.168.1.99")
        assert outcome == ProbeOutcome("192.168.1.99", ok=False, error="timeout")

    @patch("modules.prober.subprocess.run", side_effect=FileNotFoundError("ping"))
    def test_missing_ping_is_an_outcome(self, mock_run):
        outcome = ActiveProber().ping_host("192.168.1.99")
        assert outcome.ok is False

    @pytest.mark.parametrize("timeout_ms, expected", [
        (500, "1"),
        (1000, "1"),
        (1500, "2"),
        (0, "1"),
    ])
    def test_linux_timeout_in_whole_seconds(self, timeout_ms, expected):
        with patch("modules.prober.sys.platform", "linux"):
            cmd = ActiveProber(ping_timeout_ms=timeout_ms)._ping_command("10.0.0.1")
        assert cmd == ["ping", "-c", "1", "-W", expected, "10.0.0.1"]

    def test_darwin_timeout_in_milliseconds(self):
        with patch("modules.prober.sys.platform", "darwin"):
            cmd = ActiveProber(ping_timeout_ms=500)._ping_command("10.0.0.1")
        assert cmd == ["ping", "-c", "1", "-W", "500", "10.0.0.1"]


class TestSweepTargets:

    def test_slash_24(self):
        targets = ActiveProber.sweep_targets("192.168.1.0/24")
        assert len(targets) == 254
        assert targets[0] == "192.168.1.1"
        assert targets[-1] == "192.168.1.254"

    def test_host_bits_allowed(self):
        assert ActiveProber.sweep_targets("192.168.1.77/30") == ["192.168.1.77", "192.168.1.78"]

    def test_large_network_is_bounded(self):
        targets = ActiveProber.sweep_targets("10.0.0.0/16")
        assert len(targets) == 254
        assert targets[0] == "10.0.0.1"

    def test_invalid_cidr_raises(self):
        with pytest.raises(ValueError):
            ActiveProber.sweep_targets("not-a-network")


class TestPingSweep:

    def test_at_most_batch_size_in_flight(self):
        prober = ActiveProber(arp_reader=FakeArpReader([]), batch_size=10)
        lock = threading.Lock()
        state = {"in_flight": 0, "peak": 0, "calls": 0}

        def fake_ping(ip):
            with lock:
                state["in_flight"] += 1
                state["calls"] += 1
                state["peak"] = max(state["peak"], state["in_flight"])
            time.sleep(0.002)
            with lock:
                state["in_flight"] -= 1
            return ProbeOutcome(ip, ok=True, elapsed_ms=2.0)

        with patch.object(prober, "ping_host", side_effect=fake_ping):
            outcomes = prober.ping_sweep("10.1.0.0/23")

        assert state["calls"] == 254
        assert len(outcomes) == 254
        assert 1 <= state["peak"] <= 10

    def test_probe_exception_becomes_failed_outcome(self):
        prober = ActiveProber(arp_reader=FakeArpReader([]), batch_size=4)

        def flaky(ip):
            if ip == "192.168.1.2":
                raise RuntimeError("boom")
            return ProbeOutcome(ip, ok=False, error="exit status 1")

        with patch.object(prober, "ping_host", side_effect=flaky):
            outcomes = prober.ping_sweep("192.168.1.0/29")

        assert [o.target for o in outcomes] == [f"192.168.1.{i}" for i in range(1, 7)]
        failed = outcomes[1]
        assert failed.ok is False
        assert failed.error == "boom"


# ─── Ports ───────────────────────────────────────────────────────────────────


class TestPorts:

    @patch("modules.prober.socket.create_connection")
    def test_open_port(self, mock_connect):
        mock_connect.return_value = MagicMock()

        result = ActiveProber(port_timeout=0.5).probe_port("192.168.1.1", 22)

        assert result == PortResult(port=22, open=True)
        mock_connect.assert_called_once_with(("192.168.1.1", 22), timeout=0.5)

    @patch("modules.prober.socket.create_connection", side_effect=ConnectionRefusedError())
    def test_refused_is_closed(self, mock_connect):
        assert ActiveProber().probe_port("192.168.1.1", 23).open is False

    @patch("modules.prober.socket.create_connection", side_effect=TimeoutError())
    def test_timeout_is_closed(self, mock_connect):
        assert ActiveProber().probe_port("192.168.1.1", 8443).open is False

    def test_scan_ports_keeps_order(self):
        prober = ActiveProber()
        with patch.object(prober, "probe_port",
                          side_effect=lambda ip, port: PortResult(port, port in (80, 443))):
            results = prober.scan_ports("192.168.1.1", [443, 22, 80])

        assert [r.to_dict() for r in results] == [
            {"port": 443, "open": True},
            {"port": 22, "open": False},
            {"port": 80, "open": True},
        ]

    def test_scan_ports_uses_defaults(self):
        prober = ActiveProber(default_ports=[22, 80])
        with patch.object(prober, "probe_port",
                          side_effect=lambda ip, port: PortResult(port, False)):
            results = prober.scan_ports("192.168.1.1")
        assert [r.port for r in results] == [22, 80]

    def test_scan_no_ports(self):
        assert ActiveProber().scan_ports("192.168.1.1", []) == []


def test_probe_result_to_dict():
    result = ProbeResult("192.168.1.1", "B8:27:EB:12:34:56", "Raspberry Pi", 1.5)
    assert result.to_dict() == {
        "ip_address": "192.168.1.1",
        "mac_address": "B8:27:EB:12:34:56",
        "vendor": "Raspberry Pi",
        "response_time_ms": 1.5,
        "is_alive": True,
    }
