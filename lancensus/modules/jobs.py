"""
Scan Job Manager

Owns the scan state machine::

    pending -> running -> completed | failed
    pending | running -> cancelled

and the coarse progress percentage. Progress never goes backwards and a job
is immutable once it reaches a terminal state.
"""

import logging
import threading
from datetime import datetime
from typing import Callable, List, Optional

from config import (
    DEFAULT_HISTORY_LIMIT,
    PROGRESS_COMPLETE,
    TERMINAL_SCAN_STATUSES,
)
from modules.database import DatabaseManager, ScanJob
from modules.exceptions import InvalidTransition, ScanNotFound

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    "pending": ("running", "cancelled"),
    "running": ("completed", "failed", "cancelled"),
}


def is_terminal(status: str) -> bool:
    return status in TERMINAL_SCAN_STATUSES


class ScanJobManager:
    """Persists scan jobs and enforces their lifecycle rules."""

    def __init__(self, db: DatabaseManager, clock: Callable[[], datetime] = datetime.now):
        self.db = db
        self.clock = clock
        self._lock = threading.Lock()

    def create(self, scan_type: str, target_network: str) -> ScanJob:
        """Persist a new job at ``pending`` with zero progress."""
        now = self.clock()
        job = self.db.add_scan_job(
            scan_type,
            target_network,
            status="pending",
            progress=0,
            created_at=now,
            updated_at=now,
        )
        logger.info(f"Created scan job {job.id} ({scan_type} on {target_network})")
        return job

    def get(self, scan_id: str) -> ScanJob:
        job = self.db.get_scan_job(scan_id)
        if job is None:
            raise ScanNotFound(scan_id)
        return job

    def history(self, limit: int = DEFAULT_HISTORY_LIMIT) -> List[ScanJob]:
        return self.db.get_recent_scan_jobs(limit)

    def _transition(self, scan_id: str, target: str, **fields) -> ScanJob:
        with self._lock:
            job = self.get(scan_id)
            if target not in ALLOWED_TRANSITIONS.get(job.status, ()):
                raise InvalidTransition(scan_id, job.status, target)

            now = self.clock()
            if target == "running":
                fields.setdefault("started_at", now)
            elif is_terminal(target):
                fields["completed_at"] = now
                if job.started_at is not None:
                    fields["duration_ms"] = int((now - job.started_at).total_seconds() * 1000)
            fields["updated_at"] = now
            return self.db.update_scan_job(scan_id, status=target, **fields)

    def start(self, scan_id: str) -> ScanJob:
        return self._transition(scan_id, "running")

    def set_progress(self, scan_id: str, progress: int) -> ScanJob:
        """Raise the job's progress to ``progress``.

        Lower values than the stored one are ignored, as are updates to a
        job that is no longer running.
        """
        progress = max(0, min(PROGRESS_COMPLETE, int(progress)))
        with self._lock:
            job = self.get(scan_id)
            if job.status != "running" or progress <= job.progress:
                return job
            return self.db.update_scan_job(scan_id, progress=progress, updated_at=self.clock())

    def complete(self, scan_id: str, devices_found: int, new_devices_found: int) -> ScanJob:
        job = self._transition(
            scan_id,
            "completed",
            progress=PROGRESS_COMPLETE,
            devices_found=devices_found,
            new_devices_found=new_devices_found,
        )
        logger.info(
            f"Scan {scan_id} completed: {devices_found} devices "
            f"({new_devices_found} new) in {job.duration_ms}ms"
        )
        return job

    def fail(self, scan_id: str, error_message: str,
             devices_found: Optional[int] = None,
             new_devices_found: Optional[int] = None) -> ScanJob:
        fields = {"error_message": error_message}
        if devices_found is not None:
            fields["devices_found"] = devices_found
        if new_devices_found is not None:
            fields["new_devices_found"] = new_devices_found
        job = self._transition(scan_id, "failed", **fields)
        logger.error(f"Scan {scan_id} failed: {error_message}")
        return job

    def cancel(self, scan_id: str) -> ScanJob:
        job = self._transition(scan_id, "cancelled")
        logger.info(f"Scan {scan_id} cancelled at {job.progress}%")
        return job
