"""
Unit tests for connection evidence, gateway inference and map rendering.
"""

from datetime import datetime, timedelta

import pytest

from modules.database import DatabaseManager
from modules.topology import (
    TopologyBuilder,
    evidence_confidence,
    merge_evidence,
    network_map_data,
    render_mermaid,
)

T0 = datetime(2024, 5, 1, 12, 0, 0)
T1 = T0 + timedelta(hours=1)


@pytest.fixture
def db():
    return DatabaseManager("sqlite:///:memory:", echo=False)


@pytest.fixture
def devices(db):
    gateway = db.add_discovered_device(
        "192.168.1.1", mac_address="00:1F:33:00:00:01", mac_vendor="Netgear",
        device_type="router", classification="known",
        first_seen_at=T0, last_seen_at=T0 + timedelta(minutes=2),
    )
    laptop = db.add_discovered_device(
        "192.168.1.20", mac_address="00:17:F2:00:00:02", mac_vendor="Apple",
        device_type="workstation", classification="authorized",
        first_seen_at=T0, last_seen_at=T0 + timedelta(minutes=1), open_ports=[22],
    )
    stranger = db.add_discovered_device(
        "192.168.1.50", first_seen_at=T0, last_seen_at=T0,
    )
    return gateway, laptop, stranger


class TestEvidence:

    def test_confidence_sums_true_flags(self):
        assert evidence_confidence({"arpTable": True, "sameSubnet": True}) == 35
        assert evidence_confidence({"arpTable": True, "sameSubnet": False}) == 20
        assert evidence_confidence({}) == 0

    def test_confidence_is_capped(self):
        everything = {"arpTable": True, "sameSubnet": True, "traceroute": True, "lldp": True, "cdp": True}
        assert evidence_confidence(everything) == 100

    def test_merge_is_additive(self):
        merged = merge_evidence({"arpTable": True, "lldp": False}, {"arpTable": False, "lldp": True})
        assert merged == {"arpTable": True, "lldp": True}

    def test_merge_ignores_unknown_flags(self):
        assert merge_evidence({}, {"telepathy": True}) == {}


class TestRecordConnection:

    def test_create(self, db, devices):
        gateway, laptop, _ = devices
        builder = TopologyBuilder(db)

        conn = builder.record_connection(gateway.id, laptop.id, "gateway",
                                         {"arpTable": True}, now=T0)

        assert conn.connection_type == "gateway"
        assert conn.confidence == 20
        assert conn.get_evidence() == {"arpTable": True}
        assert conn.last_verified_at == T0

    def test_evidence_accumulates(self, db, devices):
        gateway, laptop, _ = devices
        builder = TopologyBuilder(db)
        first = builder.record_connection(gateway.id, laptop.id, "gateway", {"arpTable": True}, now=T0)

        second = builder.record_connection(gateway.id, laptop.id, "unknown", {"lldp": True}, now=T1)

        assert second.id == first.id
        assert second.confidence == 60
        assert second.get_evidence() == {"arpTable": True, "lldp": True}
        # a concrete type is not downgraded
        assert second.connection_type == "gateway"
        assert second.last_verified_at == T1
        assert len(db.get_all_connections()) == 1

    def test_unknown_type_normalized(self, db, devices):
        gateway, laptop, _ = devices
        conn = TopologyBuilder(db).record_connection(gateway.id, laptop.id, "carrier-pigeon")
        assert conn.connection_type == "unknown"
        assert conn.confidence == 0


class TestGatewayInference:

    def test_links_gateway_to_peers(self, db, devices):
        gateway, laptop, stranger = devices
        builder = TopologyBuilder(db, clock=lambda: T0)

        links = builder.infer_gateway_links(
            "192.168.1.1", [gateway.id, laptop.id, stranger.id]
        )

        assert len(links) == 2
        assert {c.target_device_id for c in links} == {laptop.id, stranger.id}
        assert all(c.source_device_id == gateway.id for c in links)
        assert all(c.confidence == 35 for c in links)

    def test_repeat_does_not_duplicate(self, db, devices):
        gateway, laptop, _ = devices
        builder = TopologyBuilder(db)
        builder.infer_gateway_links("192.168.1.1", [laptop.id])
        builder.infer_gateway_links("192.168.1.1", [laptop.id])
        assert len(db.get_all_connections()) == 1

    @pytest.mark.parametrize("gateway_ip", [None, "", "192.168.1.254"])
    def test_no_gateway_record(self, db, devices, gateway_ip):
        _, laptop, _ = devices
        assert TopologyBuilder(db).infer_gateway_links(gateway_ip, [laptop.id]) == []
        assert db.get_all_connections() == []


class TestMapData:

    def test_nodes_and_edges(self, db, devices):
        gateway, laptop, stranger = devices
        TopologyBuilder(db).infer_gateway_links("192.168.1.1", [laptop.id], now=T0)

        data = network_map_data(db)

        assert [n["id"] for n in data["nodes"]] == [gateway.id, laptop.id, stranger.id]
        node = data["nodes"][1]
        assert node == {
            "id": laptop.id,
            "label": "192.168.1.20",
            "ip": "192.168.1.20",
            "mac": "00:17:F2:00:00:02",
            "vendor": "Apple",
            "type": "workstation",
            "classification": "authorized",
            "is_reachable": True,
            "last_seen": (T0 + timedelta(minutes=1)).isoformat(),
            "open_ports": [22],
        }
        assert data["edges"] == [
            {"source": gateway.id, "target": laptop.id, "type": "gateway", "confidence": 35},
        ]

    def test_empty(self, db):
        assert network_map_data(db) == {"nodes": [], "edges": []}


class TestMermaid:

    def test_render(self):
        data = {
            "nodes": [
                {"id": "gw", "label": "192.168.1.1", "classification": "known"},
                {"id": "pc", "label": "192.168.1.20", "classification": "authorized"},
                {"id": "new", "label": "192.168.1.50", "classification": "unknown"},
            ],
            "edges": [
                {"source": "gw", "target": "pc", "type": "gateway", "confidence": 35},
                {"source": "gw", "target": "new", "type": "gateway", "confidence": 35},
            ],
        }

        assert render_mermaid(data) == (
            "graph TD\n"
            '    n_gw("192.168.1.1")\n'
            '    n_pc("192.168.1.20")\n'
            '    n_new{{"192.168.1.50"}}\n'
            "    n_gw --> n_pc\n"
            "    n_gw -.->|?| n_new\n"
        )

    def test_render_empty(self):
        assert render_mermaid({"nodes": [], "edges": []}) == "graph TD\n"
