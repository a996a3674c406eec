"""Tests for the workflow data models."""

from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal

import pytest
from pydantic import TypeAdapter, ValidationError

from travel_request_workflow.models import (
    ApprovalStep,
    ApproveChangeset,
    Changeset,
    CreateChangeset,
    RequestStatus,
    ReturnChangeset,
    TicketOption,
    TravelDetails,
    TravelRequest,
    UserRole,
    VersionHistoryEntry,
    to_record,
)


def _details(**overrides: object) -> TravelDetails:
    data = {
        "source": "Chicago",
        "destination": "Miami",
        "start_date": date(2025, 4, 1),
        "end_date": date(2025, 4, 3),
        "purpose": "Client Meeting",
    }
    data.update(overrides)
    return TravelDetails(**data)


def test_travel_details_rejects_end_before_start() -> None:
    with pytest.raises(ValidationError):
        _details(start_date=date(2025, 4, 3), end_date=date(2025, 4, 1))


def test_travel_details_allows_same_day_trip() -> None:
    details = _details(end_date=date(2025, 4, 1))

    assert details.start_date == details.end_date


def test_travel_details_rejects_negative_cost() -> None:
    with pytest.raises(ValidationError):
        _details(estimated_cost=Decimal("-1"))


def test_travel_details_are_immutable() -> None:
    details = _details()

    with pytest.raises(ValidationError):
        details.destination = "Boston"  # type: ignore[misc]


def test_approval_step_rejects_employee_role() -> None:
    with pytest.raises(ValidationError):
        ApprovalStep(role=UserRole.EMPLOYEE, user_id=1)


def test_travel_request_rejects_duplicate_chain_roles() -> None:
    with pytest.raises(ValidationError, match="at most one entry per role"):
        TravelRequest(
            requester_id=1,
            travel_details=_details(),
            approval_chain=(
                ApprovalStep(role=UserRole.MANAGER, user_id=2),
                ApprovalStep(role=UserRole.MANAGER, user_id=6),
            ),
        )


def test_travel_request_history_must_start_with_create() -> None:
    entry = VersionHistoryEntry(
        timestamp=datetime(2025, 1, 1, tzinfo=UTC),
        user_id=2,
        changeset=ApproveChangeset(
            details="approved",
            from_status=RequestStatus.MANAGER_PENDING,
            to_status=RequestStatus.DU_PENDING,
        ),
    )

    with pytest.raises(ValidationError, match="create entry"):
        TravelRequest(requester_id=1, travel_details=_details(), version_history=(entry,))


def test_travel_request_round_trips_through_record() -> None:
    request = TravelRequest(
        request_id=4,
        requester_id=1,
        travel_details=_details(estimated_cost=Decimal("1800")),
        approval_chain=(ApprovalStep(role=UserRole.MANAGER, user_id=2),),
        version_history=(
            VersionHistoryEntry(
                timestamp=datetime(2025, 1, 1, tzinfo=UTC),
                user_id=1,
                changeset=CreateChangeset(details="Initial request creation"),
            ),
        ),
    )

    record = to_record(request)
    restored = TravelRequest.model_validate(record)

    assert record["current_status"] == "draft"
    assert restored == request
    assert isinstance(restored.version_history[0].changeset, CreateChangeset)
    assert restored.approver_for(UserRole.MANAGER) == 2
    assert restored.approver_for(UserRole.ADMIN) is None


def test_changeset_union_dispatches_on_type() -> None:
    adapter = TypeAdapter(Changeset)

    changeset = adapter.validate_python(
        {
            "type": "return",
            "details": "Returned",
            "from_status": "du_pending",
            "to_status": "manager_pending",
            "returned_to": 2,
        }
    )

    assert isinstance(changeset, ReturnChangeset)
    assert changeset.to_status == RequestStatus.MANAGER_PENDING


def test_changeset_union_rejects_unknown_type() -> None:
    with pytest.raises(ValidationError):
        TypeAdapter(Changeset).validate_python({"type": "delete", "details": "x"})


def test_ticket_option_accepts_class_alias_and_field_name() -> None:
    common = {
        "request_id": 1,
        "carrier": "Delta",
        "price": "399.99",
        "validity_start": datetime(2025, 1, 1, tzinfo=UTC),
        "validity_end": datetime(2025, 1, 8, tzinfo=UTC),
        "added_by_admin_id": 3,
    }

    by_alias = TicketOption.model_validate({**common, "class": "Business"})
    by_name = TicketOption.model_validate({**common, "travel_class": "Business"})

    assert by_alias.travel_class == by_name.travel_class == "Business"
    assert to_record(by_alias)["class"] == "Business"
    assert by_alias.price == Decimal("399.99")


def test_ticket_option_rejects_inverted_validity_window() -> None:
    with pytest.raises(ValidationError, match="validity_end"):
        TicketOption(
            request_id=1,
            carrier="Delta",
            travel_class="Economy",
            price=Decimal("100"),
            validity_start=datetime(2025, 1, 8, tzinfo=UTC),
            validity_end=datetime(2025, 1, 1, tzinfo=UTC),
            added_by_admin_id=3,
        )


def test_travel_request_is_immutable() -> None:
    request = TravelRequest(requester_id=1, travel_details=_details())

    with pytest.raises(ValidationError):
        request.current_status = RequestStatus.APPROVED  # type: ignore[misc]
    with pytest.raises(ValidationError):
        request.approval_chain = ()  # type: ignore[misc]

    updated = request.model_copy(update={"current_status": RequestStatus.MANAGER_PENDING})
    assert updated.current_status == RequestStatus.MANAGER_PENDING
    assert request.current_status == RequestStatus.DRAFT
