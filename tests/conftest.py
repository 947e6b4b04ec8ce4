"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from coursemax.main import create_app
from coursemax.errors import ComputationImpossible
from coursemax.logic.assignment_coordinator import AssignmentCoordinator
from coursemax.providers.distance_provider import Coordinates, DistanceProvider, RouteEstimate
from coursemax.providers.notifier import LoggingNotifier
from coursemax.storage.assignment_store import InMemoryAssignmentStore

T0 = datetime(2024, 5, 15, 14, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock shared by the coordinator and the tests."""

    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeDistanceProvider(DistanceProvider):
    def __init__(self, distance_meters=4200.0, duration_seconds=840.0, coordinates=None):
        self.distance_meters = distance_meters
        self.duration_seconds = duration_seconds
        self.coordinates = coordinates or Coordinates(lon=-74.1326, lat=45.2597)
        self.geocoded = []
        self.routes = []

    def geocode(self, address):
        self.geocoded.append(address)
        if "nowhere" in address.lower():
            raise ComputationImpossible(detail=f"No coordinates found for address: {address}")
        return self.coordinates

    def route(self, origin, destination):
        self.routes.append((origin, destination))
        return RouteEstimate(self.distance_meters, self.duration_seconds)


class FakeRepository:
    """In-memory stand-in for SupabaseRepository."""

    client = object()

    def __init__(self):
        self.stores = {
            "store-1": {
                "id": "store-1", "name": "Marché Valleyfield", "address": "12 rue Victoria",
                "city": "Salaberry-de-Valleyfield", "latitude": 45.2553, "longitude": -74.1300,
            },
            "store-2": {
                "id": "store-2", "name": "Épicerie du Lac", "address": "5 boul. Mgr-Langlois",
                "city": "Salaberry-de-Valleyfield", "latitude": None, "longitude": None,
            },
        }
        self.orders = []
        self.drivers = []
        self.order_fees = {}
        self.settings = {}
        self.commissions = []
        self.attached = []
        self.commission_queries = []

    def get_store(self, store_id):
        return self.stores.get(store_id)

    def attach_delivery_quote(self, order_id, delivery_fee, estimated_delivery):
        self.attached.append((order_id, delivery_fee, estimated_delivery))
        return True

    def list_recent_orders(self, store_id, status, since):
        return [o for o in self.orders if o["store_id"] == store_id and o["status"] == status
                and o["created_at"] >= since]

    def get_order_delivery_fee(self, order_id):
        return self.order_fees.get(order_id)

    def list_active_drivers(self):
        return list(self.drivers)

    def get_driver_token(self, driver_id):
        return None

    def get_platform_setting(self, key):
        return self.settings.get(key)

    def upsert_commission(self, record):
        self.commissions = [c for c in self.commissions if c["order_id"] != record["order_id"]]
        self.commissions.append(record)
        return record

    def list_commissions(self, start, end, driver_id=None):
        self.commission_queries.append((start, end, driver_id))
        return [c for c in self.commissions if not driver_id or c.get("driver_id") == driver_id]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def assignment_store():
    return InMemoryAssignmentStore()


@pytest.fixture
def notifier():
    return LoggingNotifier()


@pytest.fixture
def coordinator(assignment_store, notifier, clock):
    return AssignmentCoordinator(assignment_store, notifier, clock=clock, default_ttl_seconds=300)


@pytest.fixture
def pending_assignment(coordinator):
    return coordinator.create_assignment(
        store_id="store-1",
        order_ids=["order-1", "order-2"],
        eligible_driver_ids=["driver-a", "driver-b", "driver-c"],
        total_value=Decimal("48.50"),
    )


@pytest.fixture
def distance_provider():
    return FakeDistanceProvider()


@pytest.fixture
def repository():
    return FakeRepository()


@pytest.fixture
def make_app(distance_provider, notifier, repository, clock):
    """Build the app around a given assignment store."""

    def _make_app(assignment_store):
        app = create_app(
            {
                "TESTING": True,
                "SOCKETIO_ASYNC_MODE": "threading",
                "EXPIRY_SWEEP_ENABLED": False,
                "ASSIGNMENT_STORE": "memory",
                "RECEIPT_COMMISSION_POLICY": "legacy",
                "ADMIN_COMMISSION_RATE": Decimal("0"),
            },
            distance_provider=distance_provider,
            assignment_store=assignment_store,
            notifier=notifier,
            repository=repository,
        )
        app.assignment_coordinator.clock = clock
        return app

    return _make_app


@pytest.fixture
def app(make_app, assignment_store):
    return make_app(assignment_store)


@pytest.fixture
def client(app):
    return app.test_client()
