"""
Active Prober Module

Two probe strategies for finding hosts on the local segment:

    - ARP harvest: read the kernel neighbour cache (``/proc/net/arp`` or
      ``arp -an``). No network traffic, no privileges needed.
    - Ping sweep: one ICMP echo per host address so that the kernel
      resolves and caches every live neighbour, then harvest again.

Plus a short-timeout TCP connect probe against a small port set.

Every probe primitive returns a value (``ProbeOutcome`` / ``PortResult``)
instead of raising; unused addresses failing to answer is the normal case.
"""

import ipaddress
import logging
import math
import re
import socket
import subprocess
import sys
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from itertools import islice
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from config import (
    ARP_CACHE_PATH,
    ARP_COMMAND_TIMEOUT,
    DEFAULT_SCAN_PORTS,
    INCOMPLETE_MAC,
    PING_BATCH_SIZE,
    PING_PROCESS_TIMEOUT,
    PING_SWEEP_MAX_HOSTS,
    PING_TIMEOUT_MS,
    PORT_SCAN_TIMEOUT,
)
from modules.interfaces import run_command
from modules.oui import lookup_vendor, normalize_mac

logger = logging.getLogger(__name__)

_ARP_LINE = re.compile(r'\(?(\d+\.\d+\.\d+\.\d+)\)?\s+at\s+([0-9a-f:]+)', re.IGNORECASE)


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class ProbeResult:
    """One observed host from a single probe pass."""
    ip_address: str
    mac_address: Optional[str] = None
    vendor: Optional[str] = None
    response_time_ms: Optional[float] = None
    is_alive: bool = True

    def to_dict(self) -> Dict:
        return {
            "ip_address": self.ip_address,
            "mac_address": self.mac_address,
            "vendor": self.vendor,
            "response_time_ms": self.response_time_ms,
            "is_alive": self.is_alive,
        }


@dataclass
class ProbeOutcome:
    """Result of a single reachability probe (ok or error, never raised)."""
    target: str
    ok: bool
    elapsed_ms: Optional[float] = None
    error: Optional[str] = None


@dataclass
class PortResult:
    port: int
    open: bool

    def to_dict(self) -> Dict:
        return {"port": self.port, "open": self.open}


# ---------------------------------------------------------------------------
# ARP / neighbour cache
# ---------------------------------------------------------------------------

class ArpCacheReader:
    """Read (ip, mac) pairs from the OS neighbour cache.

    Prefers ``/proc/net/arp`` (Linux) and falls back to parsing ``arp -an``
    elsewhere. Raises OSError when neither source can be read; incomplete
    entries are dropped.
    """

    def __init__(
        self,
        proc_path: Path = ARP_CACHE_PATH,
        command_timeout: float = ARP_COMMAND_TIMEOUT,
    ):
        self.proc_path = Path(proc_path)
        self.command_timeout = command_timeout

    def read(self) -> List[Tuple[str, str]]:
        if self.proc_path.exists():
            return self._read_proc()
        return self._read_arp_command()

    def _read_proc(self) -> List[Tuple[str, str]]:
        entries: List[Tuple[str, str]] = []
        with open(self.proc_path, "r") as f:
            for line in f.readlines()[1:]:  # skip header
                parts = line.split()
                if len(parts) < 4:
                    continue
                ip, flags, mac = parts[0], parts[2], parts[3]
                if flags == "0x0" or mac == INCOMPLETE_MAC:
                    continue
                entries.append((ip, mac))
        return entries

    def _read_arp_command(self) -> List[Tuple[str, str]]:
        stdout, stderr, returncode = run_command(["arp", "-an"], timeout=self.command_timeout)
        if returncode != 0:
            raise OSError(f"arp -an failed: {stderr.strip() or returncode}")

        entries: List[Tuple[str, str]] = []
        for line in stdout.splitlines():
            match = _ARP_LINE.search(line)
            if match:
                entries.append((match.group(1), match.group(2)))
        return entries


# ---------------------------------------------------------------------------
# Active Prober
# ---------------------------------------------------------------------------

class ActiveProber:
    """ARP harvest, bounded ping sweep and TCP port probe."""

    def __init__(
        self,
        arp_reader: Optional[ArpCacheReader] = None,
        ping_timeout_ms: int = PING_TIMEOUT_MS,
        ping_process_timeout: float = PING_PROCESS_TIMEOUT,
        batch_size: int = PING_BATCH_SIZE,
        max_sweep_hosts: int = PING_SWEEP_MAX_HOSTS,
        port_timeout: float = PORT_SCAN_TIMEOUT,
        default_ports: Optional[Sequence[int]] = None,
    ):
        """
        Args:
            arp_reader: Neighbour cache source (default: ArpCacheReader()).
            ping_timeout_ms: Per-echo reply timeout handed to ``ping``.
            ping_process_timeout: Hard bound on a single ping process, seconds.
            batch_size: Pings in flight at once during a sweep.
            max_sweep_hosts: Upper bound of addresses probed per sweep.
            port_timeout: TCP connect timeout per port, seconds.
            default_ports: Ports probed when ``scan_ports`` gets none.
        """
        self.arp_reader = arp_reader or ArpCacheReader()
        self.ping_timeout_ms = ping_timeout_ms
        self.ping_process_timeout = ping_process_timeout
        self.batch_size = max(1, batch_size)
        self.max_sweep_hosts = max_sweep_hosts
        self.port_timeout = port_timeout
        self.default_ports = list(default_ports or DEFAULT_SCAN_PORTS)

    # -- ARP -----------------------------------------------------------------

    def read_arp_cache(self) -> Dict[str, ProbeResult]:
        """Harvest the neighbour cache into ProbeResults keyed by IP.

        A failed read is logged and yields an empty dict; callers must not
        take that as proof that the network is empty.
        """
        try:
            entries = self.arp_reader.read()
        except OSError as e:
            logger.warning(f"Could not read ARP cache: {e}")
            return {}

        results: Dict[str, ProbeResult] = {}
        for ip, raw_mac in entries:
            mac = normalize_mac(raw_mac)
            if mac is None or mac == INCOMPLETE_MAC or ip in results:
                continue
            results[ip] = ProbeResult(
                ip_address=ip,
                mac_address=mac,
                vendor=lookup_vendor(mac),
                is_alive=True,
            )
        return results

    def scan_arp(self, target_cidr: Optional[str] = None) -> List[ProbeResult]:
        """Harvest the ARP cache, optionally sweeping ``target_cidr`` first.

        Args:
            target_cidr: Network to ping sweep before the second harvest.

        Returns:
            One ProbeResult per IP, first harvest first, deduplicated by IP.
        """
        results = self.read_arp_cache()
        logger.debug(f"ARP cache harvest found {len(results)} entries")

        if target_cidr:
            outcomes = self.ping_sweep(target_cidr)

            added = 0
            for ip, result in self.read_arp_cache().items():
                if ip not in results:
                    results[ip] = result
                    added += 1
            logger.debug(f"Post-sweep ARP harvest added {added} entries")

            latency = {o.target: o.elapsed_ms for o in outcomes if o.ok}
            for result in results.values():
                if result.ip_address in latency:
                    result.response_time_ms = latency[result.ip_address]

        return list(results.values())

    # -- Ping sweep ----------------------------------------------------------

    @staticmethod
    def sweep_targets(cidr: str, max_hosts: int = PING_SWEEP_MAX_HOSTS) -> List[str]:
        """First ``max_hosts`` host addresses of ``cidr``.

        Networks wider than /24 are not swept in full; a warning is logged.

        Raises:
            ValueError: ``cidr`` is not a valid IPv4 network.
        """
        network = ipaddress.IPv4Network(cidr, strict=False)
        if network.num_addresses - 2 > max_hosts:
            logger.warning(
                f"Network {network} too large for ping sweep, "
                f"limiting to first {max_hosts} hosts"
            )
        return [str(host) for host in islice(network.hosts(), max_hosts)]

    def _ping_command(self, ip: str) -> List[str]:
        if sys.platform == "darwin":
            # BSD ping takes the wait time in milliseconds
            return ["ping", "-c", "1", "-W", str(self.ping_timeout_ms), ip]
        # iputils and BusyBox only accept whole seconds
        wait_seconds = max(1, math.ceil(self.ping_timeout_ms / 1000))
        return ["ping", "-c", "1", "-W", str(wait_seconds), ip]

    def ping_host(self, ip: str) -> ProbeOutcome:
        """Send a single ICMP echo to ``ip``."""
        start = time.monotonic()
        try:
            result = subprocess.run(
                self._ping_command(ip),
                capture_output=True,
                timeout=self.ping_process_timeout,
            )
        except subprocess.TimeoutExpired:
            return ProbeOutcome(target=ip, ok=False, error="timeout")
        except OSError as e:
            return ProbeOutcome(target=ip, ok=False, error=str(e))

        elapsed_ms = round((time.monotonic() - start) * 1000, 2)
        if result.returncode != 0:
            return ProbeOutcome(target=ip, ok=False, elapsed_ms=elapsed_ms,
                                error=f"exit status {result.returncode}")
        return ProbeOutcome(target=ip, ok=True, elapsed_ms=elapsed_ms)

    @staticmethod
    def _settle(future: Future, target: str) -> ProbeOutcome:
        error = future.exception()
        if error is not None:
            return ProbeOutcome(target=target, ok=False, error=str(error))
        return future.result()

    def ping_sweep(self, cidr: str) -> List[ProbeOutcome]:
        """Ping every sweep target in fixed-size concurrent batches.

        Each batch is awaited in full before the next one starts, so at most
        ``batch_size`` probes are in flight at any time.
        """
        targets = self.sweep_targets(cidr, self.max_sweep_hosts)
        outcomes: List[ProbeOutcome] = []

        with ThreadPoolExecutor(max_workers=self.batch_size,
                                thread_name_prefix="ping-sweep") as pool:
            for start in range(0, len(targets), self.batch_size):
                batch = targets[start:start + self.batch_size]
                futures = [pool.submit(self.ping_host, ip) for ip in batch]
                wait(futures)
                outcomes.extend(self._settle(f, ip) for f, ip in zip(futures, batch))

        alive = sum(1 for o in outcomes if o.ok)
        logger.info(f"Ping sweep of {cidr}: {alive}/{len(outcomes)} hosts answered")
        return outcomes

    # -- Ports ---------------------------------------------------------------

    def probe_port(self, ip: str, port: int) -> PortResult:
        """TCP connect to ``ip:port``; any failure counts as closed."""
        try:
            with socket.create_connection((ip, port), timeout=self.port_timeout):
                return PortResult(port=port, open=True)
        except OSError:
            return PortResult(port=port, open=False)

    def scan_ports(self, ip: str, ports: Optional[Sequence[int]] = None) -> List[PortResult]:
        """Probe each port concurrently; one result per requested port, in order."""
        ports = list(ports) if ports is not None else list(self.default_ports)
        if not ports:
            return []

        with ThreadPoolExecutor(max_workers=len(ports),
                                thread_name_prefix="port-probe") as pool:
            results = list(pool.map(lambda p: self.probe_port(ip, p), ports))

        open_ports = [r.port for r in results if r.open]
        logger.debug(f"Port scan of {ip}: open={open_ports}")
        return results
