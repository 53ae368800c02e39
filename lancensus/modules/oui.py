"""
OUI Vendor Lookup

Static table mapping the first three octets of a MAC address (the
Organizationally Unique Identifier) to a manufacturer name. Covers the
vendors commonly seen on small office and home networks; unknown prefixes
simply resolve to None.
"""

import logging
import re
from typing import Dict, Optional

logger = logging.getLogger(__name__)

_MAC_SEPARATORS = re.compile(r"[:\-.]")
_HEX12 = re.compile(r"^[0-9A-F]{12}$")

OUI_VENDORS: Dict[str, str] = {
    # Virtualization
    "00:50:56": "VMware",
    "00:0C:29": "VMware",
    "00:1C:42": "Parallels",
    "00:16:3E": "Xen",
    "08:00:27": "VirtualBox",
    "52:54:00": "QEMU/KVM",
    "00:0D:3A": "Microsoft",
    "00:15:5D": "Microsoft Hyper-V",
    "AC:DE:48": "Private",
    # Ubiquiti
    "00:1A:79": "Ubiquiti",
    "00:27:22": "Ubiquiti",
    "24:5A:4C": "Ubiquiti",
    "78:8A:20": "Ubiquiti",
    "DC:9F:DB": "Ubiquiti",
    "E0:63:DA": "Ubiquiti",
    "F0:9F:C2": "Ubiquiti",
    "18:E8:29": "Ubiquiti",
    "80:2A:A8": "Ubiquiti",
    "74:83:C2": "Ubiquiti",
    "B4:FB:E4": "Ubiquiti",
    "44:D9:E7": "Ubiquiti",
    "60:22:32": "Ubiquiti",
    "68:D7:9A": "Ubiquiti",
    "78:45:58": "Ubiquiti",
    "AC:8B:A9": "Ubiquiti",
    # NAS
    "D0:21:F9": "Synology",
    "00:11:32": "Synology",
    "CE:8C:0E": "QNAP",
    "00:08:9B": "QNAP",
    "24:5E:BE": "QNAP",
    # Dell
    "00:1E:C9": "Dell",
    "00:14:22": "Dell",
    "00:21:9B": "Dell",
    "14:FE:B5": "Dell",
    # Apple
    "00:17:F2": "Apple",
    "00:1C:B3": "Apple",
    "00:1D:4F": "Apple",
    "00:21:E9": "Apple",
    "00:23:12": "Apple",
    "00:25:00": "Apple",
    "00:26:08": "Apple",
    "28:E0:2C": "Apple",
    "3C:D0:F8": "Apple",
    "40:6C:8F": "Apple",
    "48:60:BC": "Apple",
    "50:BC:96": "Apple",
    "54:26:96": "Apple",
    "60:03:08": "Apple",
    "64:A3:CB": "Apple",
    "68:5B:35": "Apple",
    "70:56:81": "Apple",
    "78:4F:43": "Apple",
    "80:E6:50": "Apple",
    "84:38:35": "Apple",
    "88:66:A5": "Apple",
    "8C:85:90": "Apple",
    "9C:20:7B": "Apple",
    "A4:83:E7": "Apple",
    "A8:88:08": "Apple",
    "AC:87:A3": "Apple",
    "B8:17:C2": "Apple",
    "B8:E8:56": "Apple",
    "BC:54:36": "Apple",
    "C8:69:CD": "Apple",
    "D4:61:9D": "Apple",
    "D8:30:62": "Apple",
    "DC:A4:CA": "Apple",
    "E0:B5:2D": "Apple",
    "E4:25:E7": "Apple",
    "F0:99:BF": "Apple",
    "F4:5C:89": "Apple",
    "F8:1E:DF": "Apple",
    # D-Link
    "00:1E:58": "D-Link",
    "00:05:5D": "D-Link",
    "00:0F:3D": "D-Link",
    "00:13:46": "D-Link",
    "00:17:9A": "D-Link",
    "00:1B:11": "D-Link",
    # TP-Link
    "B0:5A:DA": "TP-Link",
    "14:CC:20": "TP-Link",
    "60:E3:27": "TP-Link",
    "AC:84:C6": "TP-Link",
    "C0:25:E9": "TP-Link",
    "E8:94:F6": "TP-Link",
    "F4:F2:6D": "TP-Link",
    "54:C8:0F": "TP-Link",
    "B0:A7:B9": "TP-Link",
    "30:D3:2D": "TP-Link",
    "74:DA:38": "TP-Link",
    # Netgear
    "00:1F:33": "Netgear",
    "00:1E:2A": "Netgear",
    "00:22:3F": "Netgear",
    "00:24:B2": "Netgear",
    "00:26:F2": "Netgear",
    "2C:B0:5D": "Netgear",
    "84:1B:5E": "Netgear",
    "A4:2B:8C": "Netgear",
    "C0:FF:D4": "Netgear",
    "E0:91:F5": "Netgear",
    "30:46:9C": "Netgear",
    "00:18:4D": "Netgear",
    "00:0F:B5": "Netgear",
    "00:09:5B": "Netgear",
    "00:14:6C": "Netgear",
    "00:1B:2F": "Netgear",
    # Raspberry Pi
    "B8:27:EB": "Raspberry Pi",
    "DC:A6:32": "Raspberry Pi",
    "E4:5F:01": "Raspberry Pi",
    "28:CD:C1": "Raspberry Pi",
    # Starlink
    "18:31:BF": "Starlink",
    "66:48:E6": "Starlink",
    "98:25:4A": "Starlink",
    # Google
    "E4:F0:42": "Google",
    "94:EB:2C": "Google",
    "F4:F5:D8": "Google",
    "00:1A:11": "Google",
    "54:60:09": "Google Nest",
    "F8:0F:F9": "Google Nest",
    "18:D6:C7": "Google Nest",
    "1C:F2:9A": "Google Nest",
    # Hewlett Packard
    "3C:52:82": "Hewlett Packard",
    "00:0A:57": "Hewlett Packard",
    "00:1E:0B": "Hewlett Packard",
    "2C:44:FD": "Hewlett Packard",
    "3C:D9:2B": "Hewlett Packard",
    "48:0F:CF": "Hewlett Packard",
    "68:B5:99": "Hewlett Packard",
    "A0:2B:B8": "Hewlett Packard",
    "A4:5D:36": "Hewlett Packard",
    "B4:B5:2F": "Hewlett Packard",
    "C8:CB:B8": "Hewlett Packard",
    "E4:11:5B": "Hewlett Packard",
    "F4:39:09": "Hewlett Packard",
    # Misc
    "00:40:05": "Ani Communications",
    "00:E0:4C": "Realtek",
    "00:00:00": "Xerox",
    "08:00:20": "Sun",
    "08:00:2B": "DEC",
    "00:04:4B": "Nvidia",
    "00:24:8C": "Nvidia",
    "2C:26:17": "Oculus",
    "00:09:0F": "Fortinet",
    "00:60:6E": "Davicom",
    "00:50:C2": "IEEE Registration Auth",
}


def normalize_mac(mac: Optional[str]) -> Optional[str]:
    """Normalize a MAC address to uppercase colon-delimited form.

    Accepts ``aa:bb:cc:dd:ee:ff``, ``AA-BB-CC-DD-EE-FF``,
    ``aabb.ccdd.eeff`` and bare ``aabbccddeeff``. Also accepts the
    single-digit octets that BSD ``arp -a`` prints (``0:1c:42:0:0:8``).

    Returns:
        ``"AA:BB:CC:DD:EE:FF"`` or None if the input is not a MAC address.
    """
    if not mac or not isinstance(mac, str):
        return None

    value = mac.strip().upper()
    parts = _MAC_SEPARATORS.split(value)

    if len(parts) == 6:
        if not all(1 <= len(p) <= 2 for p in parts):
            return None
        value = "".join(p.zfill(2) for p in parts)
    else:
        value = "".join(parts)

    if not _HEX12.match(value):
        return None
    return ":".join(value[i:i + 2] for i in range(0, 12, 2))


def lookup_vendor(mac: Optional[str]) -> Optional[str]:
    """Look up the vendor for a MAC address.

    Never raises: malformed input and unknown prefixes both return None.
    """
    normalized = normalize_mac(mac)
    if normalized is None:
        return None
    return OUI_VENDORS.get(normalized[:8])
