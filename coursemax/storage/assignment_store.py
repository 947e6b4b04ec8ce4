# coursemax/storage/assignment_store.py
"""
Persistence for driver assignments.

Every state change is ONE conditional write whose predicate encodes the
allowed transition; the caller learns whether it won by whether a row came
back. Nothing here reads a row and then decides to write it.
"""

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, List, Optional

import psycopg2
import psycopg2.extras

from ..errors import DependencyUnavailable, ValidationFailure
from ..models import AssignmentStatus, DriverAssignment

logger = logging.getLogger(__name__)


class AssignmentStore(ABC):
    @abstractmethod
    def insert(self, assignment: DriverAssignment) -> DriverAssignment:
        raise NotImplementedError()

    @abstractmethod
    def get(self, assignment_id: str) -> Optional[DriverAssignment]:
        raise NotImplementedError()

    @abstractmethod
    def list(self, status: Optional[str] = None, driver_id: Optional[str] = None) -> List[DriverAssignment]:
        """Newest first. ``driver_id`` matches the assigned driver or any offered driver."""
        raise NotImplementedError()

    @abstractmethod
    def accept(self, assignment_id: str, driver_id: str, now: datetime) -> Optional[DriverAssignment]:
        """pending + unassigned + not expired -> accepted by driver_id. None if the predicate failed."""
        raise NotImplementedError()

    @abstractmethod
    def complete(self, assignment_id: str, driver_id: str, now: datetime) -> Optional[DriverAssignment]:
        """accepted by driver_id -> completed."""
        raise NotImplementedError()

    @abstractmethod
    def cancel(self, assignment_id: str, now: datetime) -> Optional[DriverAssignment]:
        """pending or accepted -> cancelled."""
        raise NotImplementedError()

    @abstractmethod
    def expire_pending(self, now: datetime) -> List[str]:
        """pending with expires_at < now -> expired. Returns the ids that moved."""
        raise NotImplementedError()


class InMemoryAssignmentStore(AssignmentStore):
    """Process-local store. The lock plays the part of the database row lock."""

    def __init__(self):
        self._rows = {}
        self._lock = threading.Lock()

    def insert(self, assignment):
        with self._lock:
            self._rows[assignment.id] = assignment.copy()
            return assignment.copy()

    def get(self, assignment_id):
        with self._lock:
            row = self._rows.get(assignment_id)
            return row.copy() if row else None

    def list(self, status=None, driver_id=None):
        with self._lock:
            rows = [row.copy() for row in self._rows.values()]
        if status:
            rows = [r for r in rows if r.status.value == status]
        if driver_id:
            rows = [r for r in rows if r.assigned_driver_id == driver_id or driver_id in r.available_driver_ids]
        return sorted(rows, key=lambda r: r.created_at or r.expires_at, reverse=True)

    def _swap(self, assignment_id, predicate, **changes):
        with self._lock:
            row = self._rows.get(assignment_id)
            if row is None or not predicate(row):
                return None
            updated = row.copy(**changes)
            self._rows[assignment_id] = updated
            return updated.copy()

    def accept(self, assignment_id, driver_id, now):
        return self._swap(
            assignment_id,
            lambda r: (r.status is AssignmentStatus.PENDING
                       and r.assigned_driver_id is None
                       and r.expires_at >= now),
            status=AssignmentStatus.ACCEPTED,
            assigned_driver_id=driver_id,
            accepted_at=now,
            updated_at=now,
        )

    def complete(self, assignment_id, driver_id, now):
        return self._swap(
            assignment_id,
            lambda r: r.status is AssignmentStatus.ACCEPTED and r.assigned_driver_id == driver_id,
            status=AssignmentStatus.COMPLETED,
            completed_at=now,
            updated_at=now,
        )

    def cancel(self, assignment_id, now):
        return self._swap(
            assignment_id,
            lambda r: r.status in (AssignmentStatus.PENDING, AssignmentStatus.ACCEPTED),
            status=AssignmentStatus.CANCELLED,
            cancelled_at=now,
            updated_at=now,
        )

    def expire_pending(self, now):
        expired = []
        with self._lock:
            for assignment_id, row in self._rows.items():
                if row.status is AssignmentStatus.PENDING and row.expires_at < now:
                    self._rows[assignment_id] = row.copy(status=AssignmentStatus.EXPIRED, updated_at=now)
                    expired.append(assignment_id)
        return expired


_RETURNING = """
    RETURNING id, store_id, order_ids, available_drivers, assigned_driver_id, total_orders,
              total_value, status, expires_at, accepted_at, completed_at, cancelled_at,
              created_at, updated_at
"""


class PostgresAssignmentStore(AssignmentStore):
    """``driver_assignments`` table (see sql/driver_assignments.sql)."""

    def __init__(self, conn_factory: Callable):
        self.conn_factory = conn_factory

    def _execute(self, sql, params, *, fetch="one", bad_input_is_missing=True):
        conn = None
        try:
            conn = self.conn_factory()
            if not conn:
                raise DependencyUnavailable(detail="Database connection unavailable")
            with conn:
                with conn.cursor(cursor_factory=psycopg2.extras.DictCursor) as cur:
                    cur.execute(sql, params)
                    if fetch == "one":
                        return cur.fetchone()
                    return cur.fetchall()
        except psycopg2.DataError as e:
            # e.g. an id that is not a uuid: no such row can exist
            if bad_input_is_missing:
                logger.info(f"driver_assignments lookup rejected by the database: {str(e).strip()}")
                return None if fetch == "one" else []
            raise ValidationFailure("Invalid assignment data", detail=str(e).strip()) from e
        except (psycopg2.OperationalError, psycopg2.InterfaceError) as e:
            logger.error(f"❌ driver_assignments unavailable: {e}")
            raise DependencyUnavailable(detail="Assignment storage unavailable") from e
        finally:
            if conn:
                conn.close()

    @staticmethod
    def _to_assignment(row):
        return DriverAssignment.from_row(row) if row else None

    def insert(self, assignment):
        row = self._execute(
            """
            INSERT INTO driver_assignments
                (id, store_id, order_ids, available_drivers, total_orders, total_value,
                 status, expires_at, created_at, updated_at)
            VALUES (%s, %s, %s::uuid[], %s::uuid[], %s, %s, %s, %s, %s, %s)
            """ + _RETURNING,
            (
                assignment.id,
                assignment.store_id,
                list(assignment.order_ids),
                list(assignment.available_driver_ids),
                assignment.total_orders,
                assignment.total_value,
                assignment.status.value,
                assignment.expires_at,
                assignment.created_at,
                assignment.updated_at,
            ),
            bad_input_is_missing=False,
        )
        return self._to_assignment(row)

    def get(self, assignment_id):
        row = self._execute(
            """
            SELECT id, store_id, order_ids, available_drivers, assigned_driver_id, total_orders,
                   total_value, status, expires_at, accepted_at, completed_at, cancelled_at,
                   created_at, updated_at
            FROM driver_assignments
            WHERE id = %s
            """,
            (assignment_id,),
        )
        return self._to_assignment(row)

    def list(self, status=None, driver_id=None):
        where, params = [], []
        if status:
            where.append("status = %s"); params.append(status)
        if driver_id:
            where.append("(assigned_driver_id = %s OR %s = ANY(available_drivers))")
            params.extend([driver_id, driver_id])
        where_sql = ("WHERE " + " AND ".join(where)) if where else ""
        rows = self._execute(
            f"""
            SELECT id, store_id, order_ids, available_drivers, assigned_driver_id, total_orders,
                   total_value, status, expires_at, accepted_at, completed_at, cancelled_at,
                   created_at, updated_at
            FROM driver_assignments
            {where_sql}
            ORDER BY created_at DESC
            """,
            tuple(params),
            fetch="all",
        )
        return [DriverAssignment.from_row(r) for r in rows]

    def accept(self, assignment_id, driver_id, now):
        row = self._execute(
            """
            UPDATE driver_assignments
            SET status = 'accepted', assigned_driver_id = %s, accepted_at = %s, updated_at = %s
            WHERE id = %s
              AND status = 'pending'
              AND assigned_driver_id IS NULL
              AND expires_at >= %s
            """ + _RETURNING,
            (driver_id, now, now, assignment_id, now),
        )
        return self._to_assignment(row)

    def complete(self, assignment_id, driver_id, now):
        row = self._execute(
            """
            UPDATE driver_assignments
            SET status = 'completed', completed_at = %s, updated_at = %s
            WHERE id = %s AND status = 'accepted' AND assigned_driver_id = %s
            """ + _RETURNING,
            (now, now, assignment_id, driver_id),
        )
        return self._to_assignment(row)

    def cancel(self, assignment_id, now):
        row = self._execute(
            """
            UPDATE driver_assignments
            SET status = 'cancelled', cancelled_at = %s, updated_at = %s
            WHERE id = %s AND status IN ('pending', 'accepted')
            """ + _RETURNING,
            (now, now, assignment_id),
        )
        return self._to_assignment(row)

    def expire_pending(self, now):
        rows = self._execute(
            """
            UPDATE driver_assignments
            SET status = 'expired', updated_at = %s
            WHERE status = 'pending' AND expires_at < %s
            RETURNING id
            """,
            (now, now),
            fetch="all",
        )
        return [str(r["id"]) for r in rows]


def get_assignment_store(config, conn_factory=None) -> AssignmentStore:
    mode = (config.get("ASSIGNMENT_STORE") or "memory").lower()
    if mode == "postgres":
        if conn_factory is None:
            raise RuntimeError("ASSIGNMENT_STORE=postgres needs a database connection factory.")
        logger.info("Using Postgres assignment store.")
        return PostgresAssignmentStore(conn_factory)
    logger.info("Using in-memory assignment store.")
    return InMemoryAssignmentStore()
