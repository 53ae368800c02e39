"""
Exceptions Module

Error taxonomy for the discovery engine.

Per-host probe failures are not exceptions: probe primitives return a
``ProbeOutcome`` instead (see ``modules.prober``).
"""


class LanCensusError(Exception):
    """Base class for all discovery engine errors."""


class NoNetworkFound(LanCensusError):
    """No explicit target was given and no local IPv4 interface exists."""

    def __init__(self, message: str = "No local networks found"):
        super().__init__(message)


class ScanNotFound(LanCensusError):
    """Lookup of a scan job by id missed."""

    def __init__(self, scan_id: str):
        self.scan_id = scan_id
        super().__init__(f"Scan not found: {scan_id}")


class DeviceNotFound(LanCensusError):
    """Lookup of a discovered device by id missed."""

    def __init__(self, device_id: str):
        self.device_id = device_id
        super().__init__(f"Discovered device not found: {device_id}")


class ManagedDeviceNotFound(LanCensusError):
    """A link target does not exist in the managed-device inventory."""

    def __init__(self, managed_device_id: str):
        self.managed_device_id = managed_device_id
        super().__init__(f"Managed device not found: {managed_device_id}")


class ScanInProgress(LanCensusError):
    """Another scan is already running on this engine instance."""

    def __init__(self, active_scan_id: str):
        self.active_scan_id = active_scan_id
        super().__init__(f"Scan already in progress: {active_scan_id}")


class InvalidScanRequest(LanCensusError, ValueError):
    """Bad scan type, target CIDR or classification value."""


class InvalidTransition(LanCensusError):
    """Illegal scan state machine transition."""

    def __init__(self, scan_id: str, current: str, target: str):
        self.scan_id = scan_id
        self.current = current
        self.target = target
        super().__init__(f"Scan {scan_id}: cannot move from {current} to {target}")


class PersistenceError(LanCensusError):
    """Wraps errors raised by the storage layer."""
