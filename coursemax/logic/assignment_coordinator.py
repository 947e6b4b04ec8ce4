# coursemax/logic/assignment_coordinator.py
"""
Lifecycle of driver assignments.

    pending --accept(driver)--> accepted --complete--> completed
    pending --sweep-----------> expired
    pending/accepted --cancel-> cancelled

Every transition is delegated to one conditional write in the store. The
coordinator reads a row only *after* a failed write, to tell the caller why
it failed; that read never decides anything.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, List, Optional

from ..config import ASSIGNMENT_TTL_SECONDS
from ..errors import NotFound, ValidationFailure
from ..models import AcceptOutcome, AcceptReason, AssignmentStatus, DriverAssignment
from ..providers.notifier import ASSIGNMENT_TAKEN_EVENT, NEW_ASSIGNMENT_EVENT, NotificationReport, Notifier
from ..storage.assignment_store import AssignmentStore
from ..utils.money import D

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AssignmentCoordinator:
    def __init__(
        self,
        store: AssignmentStore,
        notifier: Notifier,
        clock: Optional[Callable[[], datetime]] = None,
        default_ttl_seconds: int = ASSIGNMENT_TTL_SECONDS,
    ):
        self.store = store
        self.notifier = notifier
        self.clock = clock or utcnow
        self.default_ttl_seconds = default_ttl_seconds

    def create_assignment(
        self,
        store_id,
        order_ids: Iterable,
        eligible_driver_ids: Iterable,
        total_value,
        ttl_seconds: Optional[int] = None,
        notify: bool = True,
    ) -> DriverAssignment:
        order_ids = tuple(str(o) for o in order_ids or ())
        driver_ids = tuple(dict.fromkeys(str(d) for d in eligible_driver_ids or ()))
        ttl = self.default_ttl_seconds if ttl_seconds is None else int(ttl_seconds)

        if not store_id:
            raise ValidationFailure("store_id is required")
        if not order_ids:
            raise ValidationFailure("order_ids must not be empty")
        if not driver_ids:
            raise ValidationFailure("eligible_driver_ids must not be empty")
        if ttl <= 0:
            raise ValidationFailure("ttl must be positive")
        try:
            total_value = D(total_value)
        except Exception as e:
            raise ValidationFailure("total_value must be a number") from e
        if total_value < 0:
            raise ValidationFailure("total_value must not be negative")

        now = self.clock()
        assignment = DriverAssignment(
            id=str(uuid.uuid4()),
            store_id=str(store_id),
            order_ids=order_ids,
            available_driver_ids=driver_ids,
            total_orders=len(order_ids),
            total_value=total_value,
            status=AssignmentStatus.PENDING,
            expires_at=now + timedelta(seconds=ttl),
            created_at=now,
            updated_at=now,
        )
        assignment = self.store.insert(assignment)
        logger.info(
            f"🆕 Assignment {assignment.id}: {assignment.total_orders} order(s) of store {store_id} "
            f"offered to {len(driver_ids)} driver(s), expires {assignment.expires_at.isoformat()}"
        )
        if notify:
            self.notify_drivers(assignment)
        return assignment

    def notify_drivers(self, assignment: DriverAssignment) -> NotificationReport:
        """Tell every offered driver about the batch. Never fails the assignment."""
        payload = {
            "assignment_id": assignment.id,
            "store_id": assignment.store_id,
            "total_orders": assignment.total_orders,
            "total_value": str(assignment.total_value),
            "expires_at": assignment.expires_at.isoformat(),
            "ttl_seconds": max(int((assignment.expires_at - self.clock()).total_seconds()), 0),
        }
        try:
            report = self.notifier.notify(assignment.available_driver_ids, NEW_ASSIGNMENT_EVENT, payload)
        except Exception as e:
            logger.error(f"Notification fan-out for assignment {assignment.id} failed: {e}", exc_info=True)
            report = NotificationReport(failed=len(assignment.available_driver_ids))
        if report.failed:
            logger.warning(f"Assignment {assignment.id}: {report.failed} notification(s) not delivered")
        return report

    def accept_assignment(self, assignment_id, driver_id) -> AcceptOutcome:
        """
        Try to claim the batch for ``driver_id``.

        Exactly one concurrent caller wins. Losing is a normal outcome and
        comes back as a falsy ``AcceptOutcome``; only storage failures raise.
        Never retried here.
        """
        if not assignment_id or not driver_id:
            raise ValidationFailure("assignment_id and driver_id are required")

        now = self.clock()
        won = self.store.accept(str(assignment_id), str(driver_id), now)
        if won is not None:
            logger.info(f"✅ Assignment {assignment_id} accepted by driver {driver_id}")
            self._announce_taken(won)
            return AcceptOutcome(True, AcceptReason.ACCEPTED, won)

        current = self.store.get(str(assignment_id))
        if current is None:
            reason = AcceptReason.NOT_FOUND
        elif current.status is AssignmentStatus.CANCELLED:
            reason = AcceptReason.CANCELLED
        elif current.status is AssignmentStatus.EXPIRED or (
            current.status is AssignmentStatus.PENDING and current.is_expired(now)
        ):
            reason = AcceptReason.EXPIRED
        else:
            reason = AcceptReason.RACE_LOST
        logger.info(f"Driver {driver_id} did not get assignment {assignment_id}: {reason.value}")
        return AcceptOutcome(False, reason, current)

    def _announce_taken(self, assignment):
        others = [d for d in assignment.available_driver_ids if d != assignment.assigned_driver_id]
        if not others:
            return
        try:
            self.notifier.notify(others, ASSIGNMENT_TAKEN_EVENT, {"assignment_id": assignment.id})
        except Exception as e:
            logger.warning(f"Could not tell drivers that assignment {assignment.id} was taken: {e}")

    def complete_assignment(self, assignment_id, driver_id) -> DriverAssignment:
        updated = self.store.complete(str(assignment_id), str(driver_id), self.clock())
        if updated is None:
            self._raise_for_missing(assignment_id)
            raise ValidationFailure(
                "Only the driver who accepted this delivery can complete it",
                detail=f"assignment {assignment_id} is not accepted by driver {driver_id}",
            )
        logger.info(f"🏁 Assignment {assignment_id} completed by driver {driver_id}")
        return updated

    def cancel_assignment(self, assignment_id) -> DriverAssignment:
        updated = self.store.cancel(str(assignment_id), self.clock())
        if updated is None:
            current = self._raise_for_missing(assignment_id)
            raise ValidationFailure(
                "This assignment can no longer be cancelled",
                detail=f"assignment {assignment_id} is {current.status.value}",
            )
        logger.info(f"🚫 Assignment {assignment_id} cancelled")
        return updated

    def _raise_for_missing(self, assignment_id) -> DriverAssignment:
        current = self.store.get(str(assignment_id))
        if current is None:
            raise NotFound(f"Assignment {assignment_id} not found")
        return current

    def get_assignment(self, assignment_id) -> DriverAssignment:
        return self._raise_for_missing(assignment_id)

    def list_assignments(self, status=None, driver_id=None) -> List[DriverAssignment]:
        if status and status not in {s.value for s in AssignmentStatus}:
            raise ValidationFailure(f"Unknown assignment status: {status}")
        return self.store.list(status=status, driver_id=driver_id)

    def expire_sweep(self) -> List[str]:
        """Move every overdue pending assignment to expired. Safe to run concurrently and repeatedly."""
        expired = self.store.expire_pending(self.clock())
        if expired:
            logger.info(f"⏰ Expired {len(expired)} assignment(s): {', '.join(expired)}")
        return expired
