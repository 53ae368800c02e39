"""
Database Module

SQLAlchemy models and database operations for the discovery engine:
scan jobs, discovered devices and the topology edges between them.

Callers outside the engine should go through ``ScanJobManager``,
``DiscoveryReconciler`` and ``ClassificationStore`` rather than calling the
write methods here directly.
"""

import json
import logging
import threading
import uuid
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import (
    Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text,
    create_engine,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from config import DATABASE_URL, DB_DIR, DB_ECHO, DEFAULT_CLASSIFICATION
from modules.exceptions import DeviceNotFound, PersistenceError, ScanNotFound

logger = logging.getLogger(__name__)

Base = declarative_base()


def generate_id() -> str:
    return uuid.uuid4().hex


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _is_memory_sqlite(database_url: str) -> bool:
    return (
        database_url in ("sqlite://", "sqlite:///:memory:")
        or "mode=memory" in database_url
    )


class ScanJob(Base):
    """Network scan job model."""

    __tablename__ = "scan_jobs"

    id = Column(String(32), primary_key=True, default=generate_id)
    scan_type = Column(String(20), nullable=False)  # arp, mdns, port, snmp, full, quick
    target_network = Column(String(50), nullable=True)  # CIDR
    status = Column(String(20), nullable=False, default="pending")
    progress = Column(Integer, nullable=False, default=0)  # 0-100
    devices_found = Column(Integer, nullable=False, default=0)
    new_devices_found = Column(Integer, nullable=False, default=0)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    duration_ms = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    def to_dict(self) -> Dict:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "scan_type": self.scan_type,
            "target_network": self.target_network,
            "status": self.status,
            "progress": self.progress,
            "devices_found": self.devices_found,
            "new_devices_found": self.new_devices_found,
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "duration_ms": self.duration_ms,
            "error_message": self.error_message,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<ScanJob {self.id} [{self.status} {self.progress}%] {self.target_network}>"


class DiscoveredDevice(Base):
    """A host observed on the network by a scan."""

    __tablename__ = "discovered_devices"

    id = Column(String(32), primary_key=True, default=generate_id)
    ip_address = Column(String(45), nullable=False, index=True)
    mac_address = Column(String(17), nullable=True, index=True)  # unavailable across routers
    mac_vendor = Column(String(255), nullable=True)
    classification = Column(String(20), nullable=False, default=DEFAULT_CLASSIFICATION, index=True)
    device_type = Column(String(20), nullable=False, default="unknown")
    linked_managed_device_id = Column(String(64), nullable=True)
    first_seen_at = Column(DateTime, nullable=False)
    last_seen_at = Column(DateTime, nullable=False)
    last_scan_id = Column(String(32), ForeignKey("scan_jobs.id"), nullable=True)
    response_time_ms = Column(Float, nullable=True)
    is_reachable = Column(Boolean, default=True)
    open_ports = Column(Text, nullable=True)  # JSON array of open ports
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    def get_open_ports(self) -> Optional[List[int]]:
        return json.loads(self.open_ports) if self.open_ports else None

    def to_dict(self) -> Dict:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "ip_address": self.ip_address,
            "mac_address": self.mac_address,
            "mac_vendor": self.mac_vendor,
            "classification": self.classification,
            "device_type": self.device_type,
            "linked_managed_device_id": self.linked_managed_device_id,
            "first_seen_at": _iso(self.first_seen_at),
            "last_seen_at": _iso(self.last_seen_at),
            "last_scan_id": self.last_scan_id,
            "response_time_ms": self.response_time_ms,
            "is_reachable": self.is_reachable,
            "open_ports": self.get_open_ports(),
            "notes": self.notes,
        }

    def __repr__(self) -> str:
        return f"<DiscoveredDevice {self.ip_address} ({self.mac_address}) - {self.classification}>"


class DiscoveredConnection(Base):
    """Best-effort topology edge between two discovered devices."""

    __tablename__ = "discovered_connections"

    id = Column(String(32), primary_key=True, default=generate_id)
    source_device_id = Column(String(32), ForeignKey("discovered_devices.id"), nullable=False, index=True)
    target_device_id = Column(String(32), ForeignKey("discovered_devices.id"), nullable=False, index=True)
    connection_type = Column(String(20), nullable=False, default="unknown")
    confidence = Column(Integer, nullable=False, default=0)  # 0-100
    evidence = Column(Text, nullable=True)  # JSON object of evidence flags
    last_verified_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    def get_evidence(self) -> Dict[str, bool]:
        return json.loads(self.evidence) if self.evidence else {}

    def to_dict(self) -> Dict:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "source_device_id": self.source_device_id,
            "target_device_id": self.target_device_id,
            "connection_type": self.connection_type,
            "confidence": self.confidence,
            "evidence": self.get_evidence(),
            "last_verified_at": _iso(self.last_verified_at),
        }

    def __repr__(self) -> str:
        return (
            f"<DiscoveredConnection {self.source_device_id} -> {self.target_device_id}"
            f" ({self.connection_type}, {self.confidence}%)>"
        )


class DatabaseManager:
    """Persistence collaborator for scan jobs, devices and connections."""

    def __init__(self, database_url: str = DATABASE_URL, echo: bool = DB_ECHO):
        """
        Initialize database manager.

        Args:
            database_url: SQLAlchemy database URL
            echo: Enable SQL query logging
        """
        self.database_url = database_url
        engine_args = {"echo": echo}
        if database_url.startswith("sqlite"):
            engine_args["connect_args"] = {"check_same_thread": False}
            # An in-memory database only exists on one connection
            if _is_memory_sqlite(database_url):
                engine_args["poolclass"] = StaticPool
        self.engine = create_engine(database_url, **engine_args)
        # Sessions are serialized so the scan thread and pollers never share a transaction
        self._lock = threading.RLock()
        self.SessionLocal = sessionmaker(autoflush=False, expire_on_commit=False, bind=self.engine)

        # Create tables
        Base.metadata.create_all(bind=self.engine)
        logger.info("Database initialized successfully")

    def get_session(self) -> Session:
        """Get a new database session."""
        return self.SessionLocal()

    def _update(self, model, object_id: str, fields: Dict, not_found: Exception):
        """Apply ``fields`` to the row ``object_id`` of ``model`` and commit."""
        with self._lock:
            return self._update_locked(model, object_id, fields, not_found)

    def _update_locked(self, model, object_id: str, fields: Dict, not_found: Exception):
        session = self.get_session()
        try:
            obj = session.get(model, object_id)
            if obj is None:
                raise not_found
            for key, value in fields.items():
                setattr(obj, key, value)
            session.commit()
            session.refresh(obj)
            return obj
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Error updating {model.__tablename__} {object_id}: {e}")
            raise PersistenceError(str(e)) from e
        finally:
            session.close()

    def _add(self, obj):
        with self._lock:
            return self._add_locked(obj)

    def _add_locked(self, obj):
        session = self.get_session()
        try:
            session.add(obj)
            session.commit()
            session.refresh(obj)
            return obj
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Error inserting into {obj.__tablename__}: {e}")
            raise PersistenceError(str(e)) from e
        finally:
            session.close()

    def _query(self, fn):
        with self._lock:
            return self._query_locked(fn)

    def _query_locked(self, fn):
        session = self.get_session()
        try:
            return fn(session)
        except SQLAlchemyError as e:
            logger.error(f"Database query failed: {e}")
            raise PersistenceError(str(e)) from e
        finally:
            session.close()

    # Scan job operations

    def add_scan_job(self, scan_type: str, target_network: Optional[str], **fields) -> ScanJob:
        """
        Insert a new scan job.

        Args:
            scan_type: Type of scan requested
            target_network: CIDR the scan covers
            **fields: Any other ScanJob column values

        Returns:
            ScanJob object
        """
        job = self._add(ScanJob(scan_type=scan_type, target_network=target_network, **fields))
        logger.debug(f"Recorded scan job: {job.id} ({scan_type} {target_network})")
        return job

    def get_scan_job(self, scan_id: str) -> Optional[ScanJob]:
        """Get scan job by id."""
        return self._query(lambda s: s.get(ScanJob, scan_id))

    def update_scan_job(self, scan_id: str, **fields) -> ScanJob:
        """Update columns of a scan job; raises ScanNotFound on a miss."""
        return self._update(ScanJob, scan_id, fields, ScanNotFound(scan_id))

    def get_recent_scan_jobs(self, limit: int = 10) -> List[ScanJob]:
        """
        Get the most recently created scan jobs.

        Args:
            limit: Maximum number of jobs to return

        Returns:
            List of ScanJob objects, newest first
        """
        return self._query(
            lambda s: s.query(ScanJob).order_by(ScanJob.created_at.desc()).limit(limit).all()
        )

    # Discovered device operations

    def add_discovered_device(self, ip_address: str, **fields) -> DiscoveredDevice:
        if "open_ports" in fields and isinstance(fields["open_ports"], list):
            fields["open_ports"] = json.dumps(fields["open_ports"])
        device = self._add(DiscoveredDevice(ip_address=ip_address, **fields))
        logger.info(f"Added new discovered device: {device.ip_address} ({device.mac_address})")
        return device

    def update_discovered_device(self, device_id: str, **fields) -> DiscoveredDevice:
        """Update columns of a discovered device; raises DeviceNotFound on a miss."""
        if "open_ports" in fields and isinstance(fields["open_ports"], list):
            fields["open_ports"] = json.dumps(fields["open_ports"])
        return self._update(DiscoveredDevice, device_id, fields, DeviceNotFound(device_id))

    def get_discovered_device(self, device_id: str) -> Optional[DiscoveredDevice]:
        """Get discovered device by id."""
        return self._query(lambda s: s.get(DiscoveredDevice, device_id))

    def find_device_by_mac(self, mac: str) -> Optional[DiscoveredDevice]:
        return self._query(
            lambda s: s.query(DiscoveredDevice)
            .filter(DiscoveredDevice.mac_address == mac)
            .order_by(DiscoveredDevice.last_seen_at.desc())
            .first()
        )

    def find_device_by_ip(self, ip: str) -> Optional[DiscoveredDevice]:
        return self._query(
            lambda s: s.query(DiscoveredDevice)
            .filter(DiscoveredDevice.ip_address == ip)
            .order_by(DiscoveredDevice.last_seen_at.desc())
            .first()
        )

    def find_devices_by_ip(self, ip: str) -> List[DiscoveredDevice]:
        return self._query(
            lambda s: s.query(DiscoveredDevice).filter(DiscoveredDevice.ip_address == ip).all()
        )

    def get_discovered_devices(self, classification: Optional[str] = None) -> List[DiscoveredDevice]:
        """
        Get discovered devices.

        Args:
            classification: Only return devices with this classification

        Returns:
            List of DiscoveredDevice objects, most recently seen first
        """
        def query(session: Session) -> List[DiscoveredDevice]:
            q = session.query(DiscoveredDevice)
            if classification:
                q = q.filter(DiscoveredDevice.classification == classification)
            return q.order_by(DiscoveredDevice.last_seen_at.desc()).all()

        return self._query(query)

    # Connection operations

    def add_connection(self, source_device_id: str, target_device_id: str, **fields) -> DiscoveredConnection:
        if "evidence" in fields and isinstance(fields["evidence"], dict):
            fields["evidence"] = json.dumps(fields["evidence"])
        return self._add(DiscoveredConnection(
            source_device_id=source_device_id,
            target_device_id=target_device_id,
            **fields,
        ))

    def update_connection(self, connection_id: str, **fields) -> DiscoveredConnection:
        if "evidence" in fields and isinstance(fields["evidence"], dict):
            fields["evidence"] = json.dumps(fields["evidence"])
        return self._update(
            DiscoveredConnection, connection_id, fields,
            PersistenceError(f"Connection not found: {connection_id}"),
        )

    def get_connection(self, connection_id: str) -> Optional[DiscoveredConnection]:
        return self._query(lambda s: s.get(DiscoveredConnection, connection_id))

    def find_connection(self, source_device_id: str, target_device_id: str) -> Optional[DiscoveredConnection]:
        return self._query(
            lambda s: s.query(DiscoveredConnection)
            .filter(
                DiscoveredConnection.source_device_id == source_device_id,
                DiscoveredConnection.target_device_id == target_device_id,
            )
            .first()
        )

    def get_all_connections(self) -> List[DiscoveredConnection]:
        return self._query(lambda s: s.query(DiscoveredConnection).all())


def init_database(database_url: str = DATABASE_URL) -> DatabaseManager:
    """
    Initialize database and return manager.

    Args:
        database_url: SQLAlchemy database URL

    Returns:
        DatabaseManager instance
    """
    if database_url == DATABASE_URL and database_url.startswith(f"sqlite:///{DB_DIR}"):
        DB_DIR.mkdir(exist_ok=True)
    return DatabaseManager(database_url)
