"""
Discovery Engine

In-process facade over the prober, job manager, reconciler, classification
store and topology builder. This is what the REST/MCP layers (or the CLI in
``main.py``) call.

Usage::

    db = init_database()
    engine = DiscoveryEngine(db)
    scan_id = engine.start_scan("full", "192.168.1.0/24")   # returns at once
    engine.wait_for_scan(scan_id)
    for device in engine.list_discovered_devices(only_new=True):
        ...

Scans run on a background thread. Each engine instance runs at most one
scan at a time; a ``start_scan`` while another is running raises
``ScanInProgress`` and persists nothing. Failures inside the scan body are
recorded on the job (``failed`` + ``error_message``) and are only visible
through ``get_scan_status``.
"""

import ipaddress
import logging
import threading
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from config import (
    DEFAULT_HISTORY_LIMIT,
    PORT_SCAN_TYPES,
    PROGRESS_ARP_DONE,
    PROGRESS_PORT_SCAN,
    PROGRESS_STARTED,
    SCAN_TYPES,
)
from modules.classification import ClassificationStore
from modules.database import DatabaseManager, DiscoveredDevice, ScanJob
from modules.exceptions import (
    InvalidScanRequest,
    InvalidTransition,
    LanCensusError,
    NoNetworkFound,
    ScanInProgress,
)
from modules.interfaces import NetworkInterface, get_gateway_ip, list_local_networks
from modules.jobs import ScanJobManager
from modules.notifier import Notifier
from modules.prober import ActiveProber
from modules.reconciler import DiscoveryReconciler
from modules.topology import TopologyBuilder, network_map_data

logger = logging.getLogger(__name__)

# callback(event_type: str, payload: dict)
EventCallback = Callable[[str, Dict], None]


class DiscoveryEngine:
    """Network discovery and classification engine.

    The ``event_callback`` receives ``(event_type, payload)`` where
    *event_type* is one of:

    - ``"scan_progress"``: ``{"scan_id", "progress"}``
    - ``"device_joined"``: a newly created device record
    - ``"scan_completed"`` / ``"scan_failed"`` / ``"scan_cancelled"``: the job
    """

    def __init__(
        self,
        db: DatabaseManager,
        prober: Optional[ActiveProber] = None,
        notifier: Optional[Notifier] = None,
        event_callback: Optional[EventCallback] = None,
        network_provider: Callable[[], List[NetworkInterface]] = list_local_networks,
        gateway_provider: Callable[[], Optional[str]] = get_gateway_ip,
        managed_device_exists: Optional[Callable[[str], bool]] = None,
        scan_ports: Optional[Sequence[int]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Args:
            db: Persistence collaborator.
            prober: Probe implementation (default: ActiveProber()).
            notifier: Alert sink for new devices and failures.
            event_callback: Receives progress and lifecycle events.
            network_provider: Lists local networks when no target is given.
            gateway_provider: Returns the default gateway IP, if any.
            managed_device_exists: Validates managed-device link targets.
            scan_ports: Ports for the port-scan pass (prober default if None).
            clock: Time source for all persisted timestamps.
        """
        self.db = db
        self.prober = prober or ActiveProber()
        self.notifier = notifier or Notifier()
        self.clock = clock
        self.scan_ports = list(scan_ports) if scan_ports is not None else None

        self.jobs = ScanJobManager(db, clock=clock)
        self.reconciler = DiscoveryReconciler(db, clock=clock)
        self.classifications = ClassificationStore(db, managed_device_exists, clock=clock)
        self.topology = TopologyBuilder(db, clock=clock)

        self._event_callback = event_callback
        self._network_provider = network_provider
        self._gateway_provider = gateway_provider

        self._lock = threading.Lock()
        self._active_scan_id: Optional[str] = None
        self._threads: Dict[str, threading.Thread] = {}
        self._cancel_events: Dict[str, threading.Event] = {}

        self._stats = {
            "scans_started": 0,
            "scans_completed": 0,
            "scans_failed": 0,
            "scans_cancelled": 0,
        }

    # -- public API ----------------------------------------------------------

    @property
    def active_scan_id(self) -> Optional[str]:
        with self._lock:
            return self._active_scan_id

    @property
    def is_scanning(self) -> bool:
        return self.active_scan_id is not None

    def get_stats(self) -> Dict:
        with self._lock:
            return {**self._stats, "active_scan_id": self._active_scan_id}

    def list_local_networks(self) -> List[NetworkInterface]:
        return self._network_provider()

    def resolve_target(self, target_network: Optional[str] = None) -> str:
        """Validate an explicit target, or pick the first local network.

        Raises:
            InvalidScanRequest: ``target_network`` is not an IPv4 CIDR.
            NoNetworkFound: no target given and no local network exists.
        """
        if target_network:
            try:
                return str(ipaddress.IPv4Network(target_network.strip(), strict=False))
            except ValueError as e:
                raise InvalidScanRequest(f"Invalid target network '{target_network}': {e}") from e

        networks = self.list_local_networks()
        if not networks:
            raise NoNetworkFound()
        logger.info(f"No target given, using {networks[0].cidr} on {networks[0].interface_name}")
        return networks[0].cidr

    def start_scan(self, scan_type: str = "arp", target_network: Optional[str] = None) -> str:
        """
        Start a scan on a background thread.

        Args:
            scan_type: One of SCAN_TYPES
            target_network: CIDR to scan (auto-detected when omitted)

        Returns:
            The new scan id; poll it with ``get_scan_status``.

        Raises:
            InvalidScanRequest: bad scan type or target
            NoNetworkFound: nothing to scan
            ScanInProgress: this engine already has a running scan
        """
        if scan_type not in SCAN_TYPES:
            raise InvalidScanRequest(
                f"Invalid scan type '{scan_type}', expected one of {', '.join(SCAN_TYPES)}"
            )
        target = self.resolve_target(target_network)

        with self._lock:
            if self._active_scan_id is not None:
                logger.warning(f"Rejected {scan_type} scan of {target}: {self._active_scan_id} is running")
                raise ScanInProgress(self._active_scan_id)

            job = self.jobs.create(scan_type, target)
            self.jobs.start(job.id)

            cancel_event = threading.Event()
            thread = threading.Thread(
                target=self._run_scan,
                args=(job.id, scan_type, target, cancel_event),
                daemon=True,
                name=f"scan-{job.id[:8]}",
            )
            self._active_scan_id = job.id
            self._cancel_events[job.id] = cancel_event
            self._threads[job.id] = thread
            self._stats["scans_started"] += 1
            thread.start()

        logger.info(f"Started {scan_type} scan {job.id} of {target}")
        return job.id

    def wait_for_scan(self, scan_id: str, timeout: Optional[float] = None) -> ScanJob:
        """Block until the scan thread finishes (or ``timeout`` elapses)."""
        with self._lock:
            thread = self._threads.get(scan_id)
        if thread is not None:
            thread.join(timeout)
        return self.get_scan_status(scan_id)

    def cancel_scan(self, scan_id: str) -> ScanJob:
        """Move a pending or running scan to ``cancelled``.

        The scan thread notices between phases and stops early. The engine
        accepts a new scan as soon as this returns.

        Raises:
            ScanNotFound: unknown id
            InvalidTransition: the scan already finished
        """
        job = self.jobs.cancel(scan_id)
        with self._lock:
            event = self._cancel_events.get(scan_id)
            if self._active_scan_id == scan_id:
                self._active_scan_id = None
            self._stats["scans_cancelled"] += 1
        if event is not None:
            event.set()
        self._emit("scan_cancelled", job.to_dict())
        return job

    def get_scan_status(self, scan_id: str) -> ScanJob:
        """Raises ScanNotFound for an unknown id."""
        return self.jobs.get(scan_id)

    def get_scan_history(self, limit: int = DEFAULT_HISTORY_LIMIT) -> List[ScanJob]:
        return self.jobs.history(limit)

    def list_discovered_devices(
        self,
        classification: Optional[str] = None,
        only_new: bool = False,
    ) -> List[DiscoveredDevice]:
        """Discovered devices, most recently seen first.

        ``only_new`` is shorthand for ``classification="unknown"``.
        """
        if only_new and classification is None:
            classification = "unknown"
        return self.classifications.list_devices(classification)

    def classify_device(
        self,
        device_id: str,
        classification: str,
        notes: Optional[str] = None,
        link_to: Optional[str] = None,
    ) -> DiscoveredDevice:
        device = self.classifications.classify(device_id, classification, notes)
        if link_to:
            device = self.classifications.link_to_managed_device(device_id, link_to)
        return device

    def link_device(self, device_id: str, managed_device_id: str) -> DiscoveredDevice:
        return self.classifications.link_to_managed_device(device_id, managed_device_id)

    def get_network_map_data(self) -> Dict[str, List[Dict]]:
        return network_map_data(self.db)

    # -- scan body -----------------------------------------------------------

    def _run_scan(self, scan_id: str, scan_type: str, target: str,
                  cancel_event: threading.Event) -> None:
        devices_found = 0
        new_devices_found = 0

        try:
            self._progress(scan_id, PROGRESS_STARTED)

            results = self.prober.scan_arp(target)
            self._progress(scan_id, PROGRESS_ARP_DONE)

            seen: Dict[str, str] = {}  # ip -> device id
            now = self.clock()
            for result in results:
                if cancel_event.is_set():
                    return
                devices_found += 1
                outcome = self.reconciler.reconcile(result, scan_id, now)
                seen[result.ip_address] = outcome.record.id
                if outcome.created:
                    new_devices_found += 1
                    self._emit("device_joined", outcome.record.to_dict())
                    self.notifier.notify_new_device(
                        result.ip_address, result.mac_address, result.vendor
                    )

            if scan_type in PORT_SCAN_TYPES:
                self._progress(scan_id, PROGRESS_PORT_SCAN)
                for result in results:
                    if cancel_event.is_set():
                        return
                    ports = self.prober.scan_ports(result.ip_address, self.scan_ports)
                    open_ports = [p.port for p in ports if p.open]
                    if open_ports:
                        self.reconciler.apply_open_ports(seen[result.ip_address], open_ports)

            if cancel_event.is_set():
                return
            self._link_gateway(target, seen, now)

            job = self.jobs.complete(scan_id, devices_found, new_devices_found)
            with self._lock:
                self._stats["scans_completed"] += 1
            self._emit("scan_completed", job.to_dict())
            self.notifier.notify_scan_complete(target, devices_found, new_devices_found)

        except InvalidTransition as e:
            # cancelled from another thread between the last check and now
            logger.info(f"Scan {scan_id} stopped: {e}")

        except Exception as e:
            logger.error(f"Scan {scan_id} error: {e}", exc_info=True)
            self._record_failure(scan_id, str(e) or type(e).__name__,
                                 devices_found, new_devices_found)

        finally:
            with self._lock:
                if self._active_scan_id == scan_id:
                    self._active_scan_id = None
                self._cancel_events.pop(scan_id, None)
                self._threads.pop(scan_id, None)

    def _record_failure(self, scan_id: str, message: str,
                        devices_found: int, new_devices_found: int) -> None:
        try:
            job = self.jobs.fail(scan_id, message, devices_found, new_devices_found)
        except LanCensusError as e:
            logger.error(f"Could not record failure of scan {scan_id}: {e}")
            return
        with self._lock:
            self._stats["scans_failed"] += 1
        self._emit("scan_failed", job.to_dict())
        self.notifier.notify_scan_failed(scan_id, message)

    def _progress(self, scan_id: str, progress: int) -> None:
        job = self.jobs.set_progress(scan_id, progress)
        if job.status == "running":
            self._emit("scan_progress", {"scan_id": scan_id, "progress": job.progress})

    def _link_gateway(self, target: str, seen: Dict[str, str], now: datetime) -> None:
        gateway_ip = self._gateway_provider()
        if not gateway_ip:
            return
        network = ipaddress.IPv4Network(target, strict=False)
        try:
            if ipaddress.IPv4Address(gateway_ip) not in network:
                return
        except ValueError:
            logger.debug(f"Ignoring malformed gateway address {gateway_ip!r}")
            return

        device_ids: Iterable[str] = [
            device_id for ip, device_id in seen.items()
            if ipaddress.IPv4Address(ip) in network
        ]
        self.topology.infer_gateway_links(gateway_ip, device_ids, now)

    def _emit(self, event_type: str, payload: Dict) -> None:
        if self._event_callback:
            try:
                self._event_callback(event_type, payload)
            except Exception as e:
                logger.error(f"Event callback error for {event_type}: {e}")
