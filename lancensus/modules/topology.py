"""
Topology Module

Best-effort edges between discovered devices and the read-only network map
projection handed to renderers.

Connection evidence is additive: flags reported by later scans are OR-ed
into what is already stored, and ``confidence`` is always recomputed from
the merged flags rather than set directly.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from config import CONNECTION_TYPES, EVIDENCE_WEIGHTS
from modules.database import DatabaseManager, DiscoveredConnection

logger = logging.getLogger(__name__)


def evidence_confidence(evidence: Dict[str, bool]) -> int:
    """Confidence (0-100) from the true evidence flags."""
    score = sum(EVIDENCE_WEIGHTS.get(key, 0) for key, value in evidence.items() if value)
    return max(0, min(100, score))


def merge_evidence(current: Dict[str, bool], new: Dict[str, bool]) -> Dict[str, bool]:
    merged = dict(current)
    for key, value in new.items():
        if key not in EVIDENCE_WEIGHTS:
            logger.debug(f"Ignoring unknown evidence flag: {key}")
            continue
        merged[key] = bool(merged.get(key)) or bool(value)
    return merged


class TopologyBuilder:
    """Records and corroborates connections between discovered devices."""

    def __init__(self, db: DatabaseManager, clock: Callable[[], datetime] = datetime.now):
        self.db = db
        self.clock = clock

    def record_connection(
        self,
        source_device_id: str,
        target_device_id: str,
        connection_type: str = "unknown",
        evidence: Optional[Dict[str, bool]] = None,
        now: Optional[datetime] = None,
    ) -> DiscoveredConnection:
        """
        Add evidence for the edge ``source -> target``, creating it if needed.

        Args:
            source_device_id: Upstream device id
            target_device_id: Downstream device id
            connection_type: One of CONNECTION_TYPES
            evidence: Evidence flags observed this time
            now: Verification time

        Returns:
            The stored DiscoveredConnection
        """
        if connection_type not in CONNECTION_TYPES:
            connection_type = "unknown"
        now = now or self.clock()

        existing = self.db.find_connection(source_device_id, target_device_id)
        merged = merge_evidence(existing.get_evidence() if existing else {}, evidence or {})
        confidence = evidence_confidence(merged)

        if existing is None:
            return self.db.add_connection(
                source_device_id,
                target_device_id,
                connection_type=connection_type,
                confidence=confidence,
                evidence=merged,
                last_verified_at=now,
                created_at=now,
                updated_at=now,
            )

        if existing.connection_type != "unknown" and connection_type == "unknown":
            connection_type = existing.connection_type
        return self.db.update_connection(
            existing.id,
            connection_type=connection_type,
            confidence=confidence,
            evidence=merged,
            last_verified_at=now,
            updated_at=now,
        )

    def infer_gateway_links(
        self,
        gateway_ip: Optional[str],
        device_ids: Iterable[str],
        now: Optional[datetime] = None,
    ) -> List[DiscoveredConnection]:
        """Link the gateway device to every other device seen in the same ARP pass."""
        if not gateway_ip:
            return []
        gateway = self.db.find_device_by_ip(gateway_ip)
        if gateway is None:
            logger.debug(f"Gateway {gateway_ip} not among discovered devices")
            return []

        connections = []
        for device_id in device_ids:
            if device_id == gateway.id:
                continue
            connections.append(self.record_connection(
                gateway.id,
                device_id,
                connection_type="gateway",
                evidence={"arpTable": True, "sameSubnet": True},
                now=now,
            ))
        logger.debug(f"Recorded {len(connections)} gateway links from {gateway_ip}")
        return connections


def network_map_data(db: DatabaseManager) -> Dict[str, List[Dict]]:
    """Read-only projection of devices and connections for topology renderers."""
    nodes = [
        {
            "id": d.id,
            "label": d.ip_address,
            "ip": d.ip_address,
            "mac": d.mac_address,
            "vendor": d.mac_vendor,
            "type": d.device_type,
            "classification": d.classification,
            "is_reachable": d.is_reachable,
            "last_seen": d.last_seen_at.isoformat() if d.last_seen_at else None,
            "open_ports": d.get_open_ports(),
        }
        for d in db.get_discovered_devices()
    ]
    edges = [
        {
            "source": c.source_device_id,
            "target": c.target_device_id,
            "type": c.connection_type,
            "confidence": c.confidence,
        }
        for c in db.get_all_connections()
    ]
    return {"nodes": nodes, "edges": edges}


def render_mermaid(map_data: Dict[str, List[Dict]]) -> str:
    """Render map data as a Mermaid ``graph TD``.

    Unclassified devices are drawn as hexagons with dotted incoming edges.
    """
    lines = ["graph TD"]
    unknown = set()

    for node in map_data["nodes"]:
        label = node.get("label") or node.get("ip")
        if node.get("classification") == "unknown":
            unknown.add(node["id"])
            lines.append(f'    n_{node["id"]}{{{{"{label}"}}}}')
        else:
            lines.append(f'    n_{node["id"]}("{label}")')

    for edge in map_data["edges"]:
        arrow = "-.->|?|" if edge["target"] in unknown else "-->"
        lines.append(f'    n_{edge["source"]} {arrow} n_{edge["target"]}')

    return "\n".join(lines) + "\n"
