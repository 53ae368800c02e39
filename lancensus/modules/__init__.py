"""
LanCensus Modules Package

Discovery, classification and topology modules for the local network.
"""

from .exceptions import (
    LanCensusError, NoNetworkFound, ScanNotFound, DeviceNotFound,
    ManagedDeviceNotFound, ScanInProgress, InvalidScanRequest,
    InvalidTransition, PersistenceError,
)
from .oui import OUI_VENDORS, normalize_mac, lookup_vendor
from .classifier import DEVICE_TYPES, guess_device_type
from .interfaces import NetworkInterface, list_local_networks, get_gateway_ip
from .prober import ActiveProber, ArpCacheReader, ProbeResult, ProbeOutcome, PortResult
from .database import (
    init_database, DatabaseManager,
    ScanJob, DiscoveredDevice, DiscoveredConnection,
)
from .jobs import ScanJobManager
from .reconciler import DiscoveryReconciler, ReconcileResult
from .classification import ClassificationStore
from .topology import TopologyBuilder, network_map_data, render_mermaid
from .notifier import Notification, Notifier, NotifierBackend, LogBackend, WebhookBackend
from .engine import DiscoveryEngine

__all__ = [
    "LanCensusError",
    "NoNetworkFound",
    "ScanNotFound",
    "DeviceNotFound",
    "ManagedDeviceNotFound",
    "ScanInProgress",
    "InvalidScanRequest",
    "InvalidTransition",
    "PersistenceError",
    "OUI_VENDORS",
    "normalize_mac",
    "lookup_vendor",
    "DEVICE_TYPES",
    "guess_device_type",
    "NetworkInterface",
    "list_local_networks",
    "get_gateway_ip",
    "ActiveProber",
    "ArpCacheReader",
    "ProbeResult",
    "ProbeOutcome",
    "PortResult",
    "init_database",
    "DatabaseManager",
    "ScanJob",
    "DiscoveredDevice",
    "DiscoveredConnection",
    "ScanJobManager",
    "DiscoveryReconciler",
    "ReconcileResult",
    "ClassificationStore",
    "TopologyBuilder",
    "network_map_data",
    "render_mermaid",
    "Notification",
    "Notifier",
    "NotifierBackend",
    "LogBackend",
    "WebhookBackend",
    "DiscoveryEngine",
]
