"""Sample users and requests for demos and local testing."""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

from .models import TravelDetails, User, UserRole, to_record
from .storage import Collection, RecordStore
from .workflow import WorkflowService

SEED_USERS: tuple[User, ...] = (
    User(
        id=1,
        name="John Employee",
        role=UserRole.EMPLOYEE,
        department="Engineering",
        email="john@example.com",
        hierarchy_chain=[2, 4],
    ),
    User(
        id=2,
        name="Sarah Manager",
        role=UserRole.MANAGER,
        department="Engineering",
        email="sarah@example.com",
        hierarchy_chain=[4],
    ),
    User(
        id=3,
        name="Mike Admin",
        role=UserRole.ADMIN,
        department="Travel",
        email="mike@example.com",
    ),
    User(
        id=4,
        name="Lisa DU Head",
        role=UserRole.DU_HEAD,
        department="Engineering",
        email="lisa@example.com",
    ),
    User(
        id=5,
        name="Alex Employee",
        role=UserRole.EMPLOYEE,
        department="Marketing",
        email="alex@example.com",
        hierarchy_chain=[2, 4],
    ),
)


def seed_users(store: RecordStore) -> list[int]:
    """Insert the sample users, skipping any id that already exists."""

    inserted: list[int] = []
    for user in SEED_USERS:
        if store.get(Collection.USERS, user.id) is None:
            inserted.append(store.insert(Collection.USERS, to_record(user)))
    return inserted


def seed_requests(service: WorkflowService, *, today: date | None = None) -> list[int]:
    """Create one draft request and one request awaiting its manager."""

    start = today or date.today()
    draft = service.create_request(
        1,
        TravelDetails(
            source="New York",
            destination="San Francisco",
            start_date=start + timedelta(days=7),
            end_date=start + timedelta(days=14),
            purpose="Annual Developer Conference",
            project_code="DEV-2023",
            estimated_cost=Decimal("2500"),
        ),
    )
    pending = service.create_request(
        5,
        TravelDetails(
            source="Chicago",
            destination="Miami",
            start_date=start + timedelta(days=14),
            end_date=start + timedelta(days=21),
            purpose="Client Meeting",
            project_code="CLIENT-XYZ",
            estimated_cost=Decimal("1800"),
        ),
    )
    service.submit_request(pending.request_id, 5)
    return [draft.request_id, pending.request_id]
