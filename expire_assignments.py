# expire_assignments.py

from dotenv import load_dotenv

from coursemax import config
from coursemax.logic.assignment_coordinator import AssignmentCoordinator
from coursemax.providers.notifier import LoggingNotifier
from coursemax.storage.assignment_store import PostgresAssignmentStore
from coursemax.utils.helpers import make_connection_factory

load_dotenv()


def expire_overdue_assignments():
    """
    One expiry sweep, for cron: moves every pending driver assignment whose
    offer window has closed to 'expired'. Safe to run while the server's own
    sweeper is running.
    """
    print("--- Starting driver assignment expiry sweep ---")

    if not config.DATABASE_URL:
        print("ERROR: DATABASE_URL must be set in .env")
        return 1

    store = PostgresAssignmentStore(make_connection_factory(config.DATABASE_URL))
    coordinator = AssignmentCoordinator(store, LoggingNotifier())

    expired = coordinator.expire_sweep()
    if not expired:
        print("No overdue assignments.")
    for assignment_id in expired:
        print(f"  -> {assignment_id} expired")

    print(f"--- Sweep finished: {len(expired)} assignment(s) expired ---")
    return 0


if __name__ == "__main__":
    raise SystemExit(expire_overdue_assignments())
