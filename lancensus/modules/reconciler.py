"""
Discovery Reconciler

Merges each probe observation into a persisted DiscoveredDevice record.
Matching is logical (there is no unique constraint): a MAC match always
wins, an IP match is only a fallback, and an IP match is refused when both
sides carry different MACs since that is a different host that inherited
the address from DHCP.

Operator-owned fields (classification, notes, first_seen_at and the
managed-device link) are never written here.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from config import DEFAULT_CLASSIFICATION
from modules.classifier import guess_device_type
from modules.database import DatabaseManager, DiscoveredDevice
from modules.prober import ProbeResult

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    created: bool
    record: DiscoveredDevice
    matched_by: Optional[str] = None  # "mac", "ip" or None for new records


class DiscoveryReconciler:
    """Create-or-update discovered devices from probe results."""

    def __init__(self, db: DatabaseManager, clock: Callable[[], datetime] = datetime.now):
        self.db = db
        self.clock = clock
        self._lock = threading.Lock()

    def find_match(self, probe: ProbeResult) -> Tuple[Optional[DiscoveredDevice], Optional[str]]:
        """Find the existing record for ``probe``.

        Returns:
            (record, "mac" | "ip") or (None, None)
        """
        if probe.mac_address:
            device = self.db.find_device_by_mac(probe.mac_address)
            if device is not None:
                return device, "mac"

        for candidate in self.db.find_devices_by_ip(probe.ip_address):
            if probe.mac_address and candidate.mac_address and candidate.mac_address != probe.mac_address:
                continue
            logger.warning(
                f"Matched {probe.ip_address} to device {candidate.id} by IP only "
                f"(probe MAC {probe.mac_address}, stored MAC {candidate.mac_address})"
            )
            return candidate, "ip"

        return None, None

    def reconcile(
        self,
        probe: ProbeResult,
        scan_id: Optional[str],
        now: Optional[datetime] = None,
    ) -> ReconcileResult:
        """
        Merge one observation into the device table.

        Args:
            probe: Observation from the prober
            scan_id: Scan that produced the observation
            now: Observation time (defaults to the reconciler clock)

        Returns:
            ReconcileResult with ``created`` True for a brand-new record
        """
        now = now or self.clock()

        with self._lock:
            existing, matched_by = self.find_match(probe)

            if existing is None:
                device = self.db.add_discovered_device(
                    probe.ip_address,
                    mac_address=probe.mac_address,
                    mac_vendor=probe.vendor,
                    classification=DEFAULT_CLASSIFICATION,
                    device_type=guess_device_type(probe.vendor),
                    first_seen_at=now,
                    last_seen_at=now,
                    last_scan_id=scan_id,
                    response_time_ms=probe.response_time_ms,
                    is_reachable=probe.is_alive,
                    created_at=now,
                    updated_at=now,
                )
                return ReconcileResult(created=True, record=device)

            fields = {
                "ip_address": probe.ip_address,
                "mac_address": probe.mac_address or existing.mac_address,
                "mac_vendor": probe.vendor or existing.mac_vendor,
                "last_seen_at": now,
                "last_scan_id": scan_id,
                "is_reachable": probe.is_alive,
                "updated_at": now,
            }
            if probe.response_time_ms is not None:
                fields["response_time_ms"] = probe.response_time_ms
            if existing.device_type == "unknown" and fields["mac_vendor"]:
                fields["device_type"] = guess_device_type(fields["mac_vendor"])

            if existing.ip_address != probe.ip_address:
                logger.info(
                    f"Device {existing.id} moved from {existing.ip_address} to {probe.ip_address}"
                )

            device = self.db.update_discovered_device(existing.id, **fields)
            return ReconcileResult(created=False, record=device, matched_by=matched_by)

    def apply_open_ports(self, device_id: str, open_ports: List[int],
                         now: Optional[datetime] = None) -> DiscoveredDevice:
        """Record the open ports found by a port-scan pass."""
        return self.db.update_discovered_device(
            device_id,
            open_ports=sorted(open_ports),
            updated_at=now or self.clock(),
        )
