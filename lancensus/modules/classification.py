"""
Classification Store

Operator-assigned state of discovered devices: the classification label,
free-form notes and the optional link to a record in the managed-device
inventory. Discovery passes never write these fields.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional

from config import CLASSIFICATIONS
from modules.database import DatabaseManager, DiscoveredDevice
from modules.exceptions import DeviceNotFound, InvalidScanRequest, ManagedDeviceNotFound

logger = logging.getLogger(__name__)


class ClassificationStore:
    """Reads and writes operator classifications."""

    def __init__(
        self,
        db: DatabaseManager,
        managed_device_exists: Optional[Callable[[str], bool]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Args:
            db: Database manager
            managed_device_exists: Lookup into the managed-device inventory.
                When omitted, link targets are not validated.
            clock: Time source for ``updated_at``
        """
        self.db = db
        self.managed_device_exists = managed_device_exists
        self.clock = clock

    def _require(self, device_id: str) -> DiscoveredDevice:
        device = self.db.get_discovered_device(device_id)
        if device is None:
            raise DeviceNotFound(device_id)
        return device

    def classify(self, device_id: str, classification: str, notes: Optional[str] = None) -> DiscoveredDevice:
        """
        Set a device's classification.

        Args:
            device_id: Discovered device id
            classification: One of CLASSIFICATIONS
            notes: Replaces the stored notes when given; kept otherwise

        Raises:
            InvalidScanRequest: unknown classification value
            DeviceNotFound: no device with that id
        """
        if classification not in CLASSIFICATIONS:
            raise InvalidScanRequest(
                f"Invalid classification '{classification}', expected one of {', '.join(CLASSIFICATIONS)}"
            )
        self._require(device_id)

        fields = {"classification": classification, "updated_at": self.clock()}
        if notes:
            fields["notes"] = notes

        device = self.db.update_discovered_device(device_id, **fields)
        logger.info(f"Device {device_id} ({device.ip_address}) classified as {classification}")
        return device

    def link_to_managed_device(self, device_id: str, managed_device_id: str) -> DiscoveredDevice:
        """Link a discovered device to a managed-inventory record."""
        self._require(device_id)
        if self.managed_device_exists is not None and not self.managed_device_exists(managed_device_id):
            raise ManagedDeviceNotFound(managed_device_id)

        device = self.db.update_discovered_device(
            device_id,
            linked_managed_device_id=managed_device_id,
            updated_at=self.clock(),
        )
        logger.info(f"Device {device_id} linked to managed device {managed_device_id}")
        return device

    def list_devices(self, classification: Optional[str] = None) -> List[DiscoveredDevice]:
        if classification is not None and classification not in CLASSIFICATIONS:
            raise InvalidScanRequest(f"Invalid classification '{classification}'")
        return self.db.get_discovered_devices(classification)
