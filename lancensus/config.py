"""
LanCensus Configuration Module

Contains all configuration constants and default values for the discovery
engine. Every value can be overridden through a ``LANCENSUS_*`` environment
variable.
"""

import os
from pathlib import Path
from typing import List

APP_NAME = "LanCensus"
APP_VERSION = "1.0.0"

# Project Paths
PROJECT_ROOT = Path(__file__).parent
LOGS_DIR = PROJECT_ROOT / "logs"
DB_DIR = PROJECT_ROOT / "data"


# Environment Variable Overrides
def get_env_int(key: str, default: int) -> int:
    """Get integer from environment variable with fallback to default."""
    try:
        return int(os.getenv(key, default))
    except (ValueError, TypeError):
        return default

def get_env_float(key: str, default: float) -> float:
    """Get float from environment variable with fallback to default."""
    try:
        return float(os.getenv(key, default))
    except (ValueError, TypeError):
        return default

def get_env_bool(key: str, default: bool) -> bool:
    """Get boolean from environment variable with fallback to default."""
    value = os.getenv(key, str(default)).lower()
    return value in ("true", "1", "yes", "on")

def get_env_str(key: str, default: str) -> str:
    """Get string from environment variable with fallback to default."""
    value = os.getenv(key)
    return value.strip() if value else default

def get_env_list(key: str, default: List[str]) -> List[str]:
    """Get list from comma-separated environment variable."""
    value = os.getenv(key)
    if not value:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]

def get_env_int_list(key: str, default: List[int]) -> List[int]:
    """Get list of integers from comma-separated environment variable."""
    try:
        return [int(item) for item in get_env_list(key, [str(d) for d in default])]
    except ValueError:
        return list(default)


# Database Configuration
DATABASE_URL = get_env_str("LANCENSUS_DATABASE_URL", f"sqlite:///{DB_DIR}/lancensus.db")
DB_ECHO = get_env_bool("LANCENSUS_DB_ECHO", False)  # Set to True for SQL query debugging

# Scan Types and States
SCAN_TYPES = ("arp", "mdns", "port", "snmp", "full", "quick")
PORT_SCAN_TYPES = ("full", "port")
TERMINAL_SCAN_STATUSES = ("completed", "failed", "cancelled")

# Progress checkpoints (percent)
PROGRESS_STARTED = 10
PROGRESS_ARP_DONE = 50
PROGRESS_PORT_SCAN = 70
PROGRESS_COMPLETE = 100

# Device Classification
CLASSIFICATIONS = ("known", "unknown", "suspicious", "authorized", "blocked")
DEFAULT_CLASSIFICATION = "unknown"

# Ping Sweep
PING_TIMEOUT_MS = get_env_int("LANCENSUS_PING_TIMEOUT_MS", 500)
PING_PROCESS_TIMEOUT = get_env_float("LANCENSUS_PING_PROCESS_TIMEOUT", 2.0)  # seconds
PING_BATCH_SIZE = get_env_int("LANCENSUS_PING_BATCH_SIZE", 50)
PING_SWEEP_MAX_HOSTS = 254

# ARP Cache
ARP_CACHE_PATH = Path("/proc/net/arp")
ARP_COMMAND_TIMEOUT = get_env_int("LANCENSUS_ARP_COMMAND_TIMEOUT", 30)  # seconds
INCOMPLETE_MAC = "00:00:00:00:00:00"

# Port Scanning
DEFAULT_SCAN_PORTS = get_env_int_list("LANCENSUS_SCAN_PORTS", [22, 80, 443, 8080, 8443])
PORT_SCAN_TIMEOUT = get_env_float("LANCENSUS_PORT_SCAN_TIMEOUT", 1.0)  # seconds

# Topology evidence weights (confidence points per true flag)
EVIDENCE_WEIGHTS = {
    "arpTable": 20,
    "sameSubnet": 15,
    "traceroute": 25,
    "lldp": 40,
    "cdp": 40,
}
CONNECTION_TYPES = ("gateway", "peer", "switch", "wireless", "vpn", "unknown")

# Scan History
DEFAULT_HISTORY_LIMIT = get_env_int("LANCENSUS_HISTORY_LIMIT", 10)

# Notification Configuration
WEBHOOK_URL = get_env_str("LANCENSUS_WEBHOOK_URL", "")
WEBHOOK_TIMEOUT = get_env_int("LANCENSUS_WEBHOOK_TIMEOUT", 10)  # seconds
NOTIFY_ON_NEW_DEVICE = get_env_bool("LANCENSUS_NOTIFY_ON_NEW_DEVICE", True)
NOTIFY_ON_SCAN_FAILURE = get_env_bool("LANCENSUS_NOTIFY_ON_SCAN_FAILURE", True)

# Logging Configuration
LOG_FILE = LOGS_DIR / "lancensus.log"
LOG_MAX_BYTES = 10 * 1024 * 1024  # 10MB
LOG_BACKUP_COUNT = 5
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEBUG_MODE = get_env_bool("LANCENSUS_DEBUG", False)
