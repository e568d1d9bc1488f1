"""
Scan repository for MediScan AI.

Create, update and list scan records. The repository is authoritative;
callers do not cache what it returns.
"""

import threading
from typing import Any, Dict, List, Optional

from mediscan.config import settings
from mediscan.models.schemas import Scan
from mediscan.utils.logger import get_logger

logger = get_logger("scan_repository")


class PersistenceError(Exception):
    """Raised when a scan record cannot be written or read."""

    def __init__(self, message: str, error_code: str = "PERSISTENCE_ERROR"):
        self.message = message
        self.error_code = error_code
        super().__init__(self.message)


def scan_to_row(scan: Scan) -> Dict[str, Any]:
    """Serialize a scan into a database row (analysis result keys in camelCase)."""
    return scan.model_dump(mode="json", by_alias=True)


class ScanRepository:
    """Interface for scan persistence."""

    def insert(self, scan: Scan) -> str:
        raise NotImplementedError

    def update(self, scan_id: str, fields: Dict[str, Any]) -> Scan:
        raise NotImplementedError

    def get(self, scan_id: str) -> Optional[Scan]:
        raise NotImplementedError

    def list(self, user_id: Optional[str] = None) -> List[Scan]:
        """List scans newest first; all users when user_id is None."""
        raise NotImplementedError


class InMemoryScanRepository(ScanRepository):
    """
    Process-local scan store.

    Used in development and tests. Rows are kept in their serialized form
    so every read returns a fresh copy.
    """

    def __init__(self):
        self._rows: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def insert(self, scan: Scan) -> str:
        with self._lock:
            if scan.id in self._rows:
                raise PersistenceError(f"Scan already exists: {scan.id}")
            self._rows[scan.id] = scan_to_row(scan)

        logger.info("Scan inserted", scan_id=scan.id, user_id=scan.user_id)
        return scan.id

    def update(self, scan_id: str, fields: Dict[str, Any]) -> Scan:
        with self._lock:
            row = self._rows.get(scan_id)
            if row is None:
                raise PersistenceError(f"Scan not found: {scan_id}", error_code="SCAN_NOT_FOUND")

            updated = Scan.model_validate({**row, **fields})
            self._rows[scan_id] = scan_to_row(updated)

        logger.info("Scan updated", scan_id=scan_id, status=updated.status.value)
        return updated

    def get(self, scan_id: str) -> Optional[Scan]:
        row = self._rows.get(scan_id)
        return Scan.model_validate(row) if row is not None else None

    def list(self, user_id: Optional[str] = None) -> List[Scan]:
        with self._lock:
            rows = list(reversed(self._rows.values()))

        scans = [Scan.model_validate(row) for row in rows]
        if user_id is not None:
            scans = [scan for scan in scans if scan.user_id == user_id]

        # Stable sort: equal timestamps stay newest-inserted first
        return sorted(scans, key=lambda scan: scan.created_at, reverse=True)


class SupabaseScanRepository(ScanRepository):
    """Scan records in a Supabase (Postgres) table."""

    def __init__(self, client=None, table: Optional[str] = None):
        if client is None:
            from mediscan.core.supabase_client import get_supabase_client
            client = get_supabase_client()
        self.client = client
        self.table = table or settings.scans_table

    def insert(self, scan: Scan) -> str:
        try:
            resp = self.client.table(self.table).insert(scan_to_row(scan)).execute()
        except Exception as e:
            logger.error("Scan insert failed", scan_id=scan.id, error=str(e))
            raise PersistenceError(f"Failed to create scan record: {e}")

        scan_id = resp.data[0]["id"] if resp.data else scan.id
        logger.info("Scan inserted", scan_id=scan_id, user_id=scan.user_id)
        return scan_id

    def update(self, scan_id: str, fields: Dict[str, Any]) -> Scan:
        try:
            resp = (
                self.client.table(self.table)
                .update(fields)
                .eq("id", scan_id)
                .execute()
            )
        except Exception as e:
            logger.error("Scan update failed", scan_id=scan_id, error=str(e))
            raise PersistenceError(f"Failed to update scan record: {e}")

        if not resp.data:
            raise PersistenceError(f"Scan not found: {scan_id}", error_code="SCAN_NOT_FOUND")

        logger.info("Scan updated", scan_id=scan_id, status=fields.get("status"))
        return Scan.model_validate(resp.data[0])

    def get(self, scan_id: str) -> Optional[Scan]:
        try:
            resp = self.client.table(self.table).select("*").eq("id", scan_id).execute()
        except Exception as e:
            raise PersistenceError(f"Failed to read scan record: {e}")
        return Scan.model_validate(resp.data[0]) if resp.data else None

    def list(self, user_id: Optional[str] = None) -> List[Scan]:
        query = self.client.table(self.table).select("*")
        if user_id is not None:
            query = query.eq("user_id", user_id)

        try:
            resp = query.order("created_at", desc=True).execute()
        except Exception as e:
            logger.error("Scan list failed", user_id=user_id, error=str(e))
            raise PersistenceError(f"Failed to list scans: {e}")

        return [Scan.model_validate(row) for row in resp.data or []]
