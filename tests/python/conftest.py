"""Test configuration for adding src to the import path."""

from __future__ import annotations

import itertools
import sys
from collections.abc import Callable
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from pathlib import Path

import pytest
from loguru import logger

ROOT = Path(__file__).resolve().parents[2]
SRC_PATH = ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from travel_request_workflow import (
    InMemoryNotifier,
    InMemoryRecordStore,
    RequestStatus,
    TicketOption,
    TravelDetails,
    TravelRequest,
    User,
    UserRole,
    WorkflowService,
    WorkflowSettings,
)
from travel_request_workflow.models import to_record
from travel_request_workflow.seed import seed_users
from travel_request_workflow.storage import Collection

BASE_TIME = datetime(2025, 1, 6, 9, 0, tzinfo=UTC)

EXTRA_USERS = (
    User(
        id=6,
        name="Nora Manager",
        role=UserRole.MANAGER,
        department="Sales",
        email="nora@example.com",
    ),
    User(
        id=7,
        name="Omar Admin",
        role=UserRole.ADMIN,
        department="Travel",
        email="omar@example.com",
    ),
)

# Status -> chain user who moves the request forward from it.
FORWARD_ACTORS: dict[RequestStatus, int] = {
    RequestStatus.MANAGER_PENDING: 2,
    RequestStatus.DU_PENDING: 4,
    RequestStatus.ADMIN_PENDING: 3,
    RequestStatus.MANAGER_SELECTION: 2,
    RequestStatus.DU_FINAL: 4,
}


@pytest.fixture()
def clock() -> Callable[[], datetime]:
    """Deterministic clock ticking one minute per call."""

    ticks = itertools.count()

    def _now() -> datetime:
        return BASE_TIME + timedelta(minutes=next(ticks))

    return _now


@pytest.fixture()
def store() -> InMemoryRecordStore:
    record_store = InMemoryRecordStore()
    seed_users(record_store)
    for user in EXTRA_USERS:
        record_store.insert(Collection.USERS, to_record(user))
    return record_store


@pytest.fixture()
def notifier() -> InMemoryNotifier:
    return InMemoryNotifier()


@pytest.fixture()
def settings() -> WorkflowSettings:
    return WorkflowSettings()


@pytest.fixture()
def service(
    store: InMemoryRecordStore,
    notifier: InMemoryNotifier,
    settings: WorkflowSettings,
    clock: Callable[[], datetime],
) -> WorkflowService:
    return WorkflowService(store, notifier=notifier, settings=settings, clock=clock)


@pytest.fixture()
def travel_details_factory() -> Callable[..., TravelDetails]:
    def _factory(**overrides: object) -> TravelDetails:
        data = {
            "source": "New York",
            "destination": "San Francisco",
            "start_date": date(2025, 3, 3),
            "end_date": date(2025, 3, 7),
            "purpose": "Annual Developer Conference",
            "project_code": "DEV-2025",
            "estimated_cost": Decimal("2500.00"),
        }
        data.update(overrides)
        return TravelDetails(**data)

    return _factory


@pytest.fixture()
def ticket_option_data() -> Callable[..., dict[str, object]]:
    def _factory(**overrides: object) -> dict[str, object]:
        data: dict[str, object] = {
            "carrier": "United Airlines",
            "class": "Economy",
            "price": Decimal("450.00"),
            "departure_time": datetime(2025, 3, 3, 8, 0, tzinfo=UTC),
            "arrival_time": datetime(2025, 3, 3, 11, 30, tzinfo=UTC),
            "validity_start": datetime(2025, 1, 6, tzinfo=UTC),
            "validity_end": datetime(2025, 1, 20, tzinfo=UTC),
            "refundable": True,
            "stops": 0,
        }
        data.update(overrides)
        return data

    return _factory


@pytest.fixture()
def request_factory(
    service: WorkflowService, travel_details_factory: Callable[..., TravelDetails]
) -> Callable[..., TravelRequest]:
    def _factory(requester_id: int = 1, **overrides: object) -> TravelRequest:
        return service.create_request(requester_id, travel_details_factory(**overrides))

    return _factory


@pytest.fixture()
def advance_to(
    service: WorkflowService, ticket_option_data: Callable[..., dict[str, object]]
) -> Callable[[int, RequestStatus], TravelRequest]:
    """Move a draft request forward along the happy path until ``status``."""

    def _advance(request_id: int, status: RequestStatus) -> TravelRequest:
        request = service.get_request(request_id)
        while request.current_status != status:
            current = request.current_status
            if current == RequestStatus.DRAFT:
                request = service.submit_request(request_id, request.requester_id)
            elif current == RequestStatus.MANAGER_SELECTION:
                option = service.add_ticket_option(request_id, 3, ticket_option_data())
                request = service.select_ticket_option(
                    request_id, option.option_id, FORWARD_ACTORS[current]
                )
            elif current == RequestStatus.APPROVED:
                request = service.close_request(request_id, 3)
            elif current in FORWARD_ACTORS:
                request = service.approve_request(request_id, FORWARD_ACTORS[current])
            else:
                raise AssertionError(f"cannot advance past {current}")
        return request

    return _advance


@pytest.fixture()
def ticket_option_factory(
    service: WorkflowService, ticket_option_data: Callable[..., dict[str, object]]
) -> Callable[..., TicketOption]:
    def _factory(request_id: int, admin_id: int = 3, **overrides: object) -> TicketOption:
        return service.add_ticket_option(request_id, admin_id, ticket_option_data(**overrides))

    return _factory


@pytest.fixture(autouse=True)
def _reset_log_handlers():
    """Drop handlers added during a test so no sink outlives its captured stream."""

    yield
    logger.remove()
