"""
Device-Type Classifier

Best-effort mapping from a MAC vendor string to a coarse device type. The
vendor name alone says little about what a box actually does (an Apple OUI
can be a laptop or a phone), so treat the result as a hint for the
operator, never as authoritative.
"""

from typing import Callable, List, Optional, Tuple

DEVICE_TYPES = (
    "router",
    "switch",
    "access_point",
    "camera",
    "server",
    "workstation",
    "mobile",
    "iot",
    "printer",
    "nas",
    "unknown",
)

VendorPredicate = Callable[[str], bool]


def _contains(*fragments: str) -> VendorPredicate:
    """Build a predicate matching any fragment in a lowercased vendor."""
    return lambda vendor: any(fragment in vendor for fragment in fragments)


# Evaluated top to bottom; first match wins.
DEVICE_TYPE_RULES: List[Tuple[VendorPredicate, str]] = [
    (_contains("ubiquiti"), "access_point"),
    (_contains("synology", "qnap"), "nas"),
    (_contains("raspberry"), "iot"),
    (_contains("apple"), "workstation"),
    (_contains("vmware", "microsoft", "hyper-v", "qemu", "virtualbox", "parallels", "xen"), "server"),
    (_contains("netgear", "tp-link", "d-link"), "router"),
    (_contains("hewlett", "hp"), "workstation"),
    (_contains("starlink"), "router"),
    (_contains("google", "nest"), "iot"),
]


def guess_device_type(vendor: Optional[str]) -> str:
    """Guess a device type from its vendor name.

    Args:
        vendor: Vendor string from the OUI lookup (may be None)

    Returns:
        One of ``DEVICE_TYPES``; ``"unknown"`` when nothing matches.
    """
    if not vendor:
        return "unknown"

    v = vendor.lower()
    for predicate, device_type in DEVICE_TYPE_RULES:
        if predicate(v):
            return device_type
    return "unknown"
