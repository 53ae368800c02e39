"""
Unit tests for the vendor-based device-type classifier.
"""

import pytest

from modules.classifier import DEVICE_TYPES, guess_device_type
from modules.oui import OUI_VENDORS


class TestGuessDeviceType:

    @pytest.mark.parametrize("vendor, expected", [
        ("Ubiquiti", "access_point"),
        ("Synology", "nas"),
        ("QNAP Systems", "nas"),
        ("Raspberry Pi", "iot"),
        ("Apple", "workstation"),
        ("VMware", "server"),
        ("Microsoft Hyper-V", "server"),
        ("QEMU/KVM", "server"),
        ("VirtualBox", "server"),
        ("Netgear", "router"),
        ("TP-Link", "router"),
        ("D-Link", "router"),
        ("Hewlett Packard", "workstation"),
        ("Starlink", "router"),
        ("Google", "iot"),
        ("Google Nest", "iot"),
    ])
    def test_vendor_rules(self, vendor, expected):
        assert guess_device_type(vendor) == expected

    def test_case_insensitive(self):
        assert guess_device_type("SYNOLOGY INC.") == "nas"
        assert guess_device_type("raspberry pi trading") == "iot"

    @pytest.mark.parametrize("vendor", [None, "", "Realtek", "Xerox", "Acme Widgets"])
    def test_unmatched_is_unknown(self, vendor):
        assert guess_device_type(vendor) == "unknown"

    def test_every_table_vendor_maps_to_a_known_type(self):
        for vendor in set(OUI_VENDORS.values()):
            assert guess_device_type(vendor) in DEVICE_TYPES
