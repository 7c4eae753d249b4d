"""Phone registry operations: create, assign, unassign, update, delete."""
from datetime import date

import pytest

from phone_assets.core.exceptions import NotFound, TransitionRejected, ValidationError
from phone_assets.db.enums import EmploymentStatus, PhoneStatus
from phone_assets.db.models import PhoneUsageHistory
from phone_assets.schemas.phone import PhoneAssign, PhoneCreate, PhoneUpdate
from phone_assets.services import phone_service


def test_create_phone_normalizes_number(db, make_employee):
    registrant = make_employee()
    phone = phone_service.create_phone(
        db,
        PhoneCreate(number="+86 139-1234-5678", registrant_employee_id=registrant.employee_id),
    )
    assert phone.number == "13912345678"
    assert phone.status == PhoneStatus.IDLE.value
    assert phone.registrant_id == registrant.id
    assert phone.row_version == 1


def test_create_phone_rejects_in_use(db, make_employee):
    registrant = make_employee()
    with pytest.raises(ValidationError):
        phone_service.create_phone(
            db,
            PhoneCreate(
                number="13912345678",
                registrant_employee_id=registrant.employee_id,
                status=PhoneStatus.IN_USE,
            ),
        )
    assert phone_service.get_phone_by_number(db, "13912345678") is None


def test_create_phone_rejects_bad_format_and_duplicates(db, make_employee):
    registrant = make_employee()
    with pytest.raises(ValidationError):
        phone_service.create_phone(
            db, PhoneCreate(number="12345", registrant_employee_id=registrant.employee_id)
        )

    data = PhoneCreate(number="13912345678", registrant_employee_id=registrant.employee_id)
    phone_service.create_phone(db, data)
    with pytest.raises(ValidationError):
        phone_service.create_phone(db, data)


def test_create_phone_requires_known_registrant(db):
    with pytest.raises(ValidationError):
        phone_service.create_phone(
            db, PhoneCreate(number="13912345678", registrant_employee_id="NOPE")
        )


def test_assign_idle_phone(db, make_employee, make_phone):
    registrant = make_employee()
    user = make_employee(full_name="User")
    phone = make_phone(registrant)

    assigned = phone_service.assign_phone(
        db,
        phone.id,
        PhoneAssign(employee_id=user.employee_id, assignment_date=date(2024, 3, 1), purpose="Sales"),
    )

    assert assigned.status == PhoneStatus.IN_USE.value
    assert assigned.current_user_id == user.id
    assert assigned.purpose == "Sales"
    history = phone_service.get_usage_history(db, phone.id)
    assert len(history) == 1
    assert history[0].employee_id == user.id
    assert history[0].start_date == date(2024, 3, 1)
    assert history[0].end_date is None


def test_assign_rejects_in_use_phone(db, make_employee, make_phone):
    registrant = make_employee()
    user = make_employee()
    phone = make_phone(registrant, status=PhoneStatus.IN_USE, current_user=registrant)

    with pytest.raises(ValidationError):
        phone_service.assign_phone(db, phone.id, PhoneAssign(employee_id=user.employee_id))

    db.refresh(phone)
    assert phone.current_user_id == registrant.id


def test_assign_rejects_departed_employee(db, make_employee, make_phone):
    registrant = make_employee()
    departed = make_employee(status=EmploymentStatus.DEPARTED)
    phone = make_phone(registrant)

    with pytest.raises(ValidationError):
        phone_service.assign_phone(db, phone.id, PhoneAssign(employee_id=departed.employee_id))


def test_unassign_closes_usage(db, make_employee, make_phone):
    registrant = make_employee()
    phone = make_phone(registrant, status=PhoneStatus.IN_USE, current_user=registrant)

    unassigned = phone_service.unassign_phone(db, phone.id, date(2024, 6, 30))

    assert unassigned.status == PhoneStatus.IDLE.value
    assert unassigned.current_user_id is None
    history = phone_service.get_usage_history(db, phone.id)
    assert history[0].end_date == date(2024, 6, 30)


def test_unassign_requires_in_use(db, make_employee, make_phone):
    phone = make_phone(make_employee())
    with pytest.raises(ValidationError):
        phone_service.unassign_phone(db, phone.id)


def test_update_rejects_illegal_transition(db, make_employee, make_phone):
    phone = make_phone(make_employee())
    with pytest.raises(TransitionRejected):
        phone_service.update_phone(db, phone.id, PhoneUpdate(status=PhoneStatus.IN_USE))
    db.refresh(phone)
    assert phone.status == PhoneStatus.IDLE.value


def test_update_deactivate_requires_cancellation_date(db, make_employee, make_phone):
    phone = make_phone(make_employee())
    with pytest.raises(ValidationError):
        phone_service.update_phone(db, phone.id, PhoneUpdate(status=PhoneStatus.DEACTIVATED))

    updated = phone_service.update_phone(
        db,
        phone.id,
        PhoneUpdate(status=PhoneStatus.DEACTIVATED, cancellation_date=date(2024, 5, 1)),
    )
    assert updated.status == PhoneStatus.DEACTIVATED.value
    assert updated.cancellation_date == date(2024, 5, 1)


def test_update_bumps_row_version(db, make_employee, make_phone):
    phone = make_phone(make_employee())
    before = phone.row_version
    updated = phone_service.update_phone(db, phone.id, PhoneUpdate(vendor="China Mobile"))
    assert updated.vendor == "China Mobile"
    assert updated.row_version == before + 1


def test_update_into_user_reported_remembers_previous_status(db, make_employee, make_phone):
    registrant = make_employee()
    phone = make_phone(registrant, status=PhoneStatus.IN_USE, current_user=registrant)

    updated = phone_service.update_phone(db, phone.id, PhoneUpdate(status=PhoneStatus.USER_REPORTED))

    assert updated.status == PhoneStatus.USER_REPORTED.value
    assert updated.status_before_risk == PhoneStatus.IN_USE.value


def test_list_phones_filters(db, make_employee, make_phone):
    alice = make_employee(full_name="Alice Zhang")
    bob = make_employee(full_name="Bob Li")
    make_phone(alice, purpose="Sales hotline")
    make_phone(bob, status=PhoneStatus.SUSPENDED)

    phones, total = phone_service.list_phones(db, search="alice")
    assert total == 1 and phones[0].registrant_id == alice.id

    phones, total = phone_service.list_phones(db, status="suspended")
    assert total == 1 and phones[0].registrant_id == bob.id

    phones, total = phone_service.list_phones(db, registrant_status="Active", per_page=1)
    assert total == 2 and len(phones) == 1


def test_delete_phone(db, make_employee, make_phone):
    phone = make_phone(make_employee())
    phone_service.delete_phone(db, phone.id)
    with pytest.raises(NotFound):
        phone_service.get_phone(db, phone.id)


def test_delete_phone_with_history_is_rejected(db, make_employee, make_phone):
    registrant = make_employee()
    phone = make_phone(registrant, status=PhoneStatus.IN_USE, current_user=registrant)
    with pytest.raises(ValidationError):
        phone_service.delete_phone(db, phone.id)
    assert db.query(PhoneUsageHistory).count() == 1


def _open_entries(db, phone):
    return (
        db.query(PhoneUsageHistory)
        .filter(PhoneUsageHistory.phone_id == phone.id, PhoneUsageHistory.end_date.is_(None))
        .count()
    )


def test_deactivate_ends_usage_and_reassign_keeps_one_open_entry(db, make_employee, make_phone):
    first = make_employee()
    second = make_employee()
    phone = make_phone(first, status=PhoneStatus.IN_USE, current_user=first)

    deactivated = phone_service.update_phone(
        db,
        phone.id,
        PhoneUpdate(status=PhoneStatus.DEACTIVATED, cancellation_date=date(2024, 5, 1)),
    )
    assert deactivated.current_user_id is None
    assert _open_entries(db, phone) == 0

    reassigned = phone_service.assign_phone(db, phone.id, PhoneAssign(employee_id=second.employee_id))
    assert reassigned.current_user_id == second.id
    assert _open_entries(db, phone) == 1

    phone_service.unassign_phone(db, phone.id)
    assert _open_entries(db, phone) == 0


def test_suspended_to_idle_releases_current_user(db, make_employee, make_phone):
    user = make_employee()
    phone = make_phone(user, status=PhoneStatus.IN_USE, current_user=user)

    suspended = phone_service.update_phone(db, phone.id, PhoneUpdate(status=PhoneStatus.SUSPENDED))
    assert suspended.current_user_id == user.id

    idle = phone_service.update_phone(db, phone.id, PhoneUpdate(status=PhoneStatus.IDLE))
    assert idle.current_user_id is None
    assert _open_entries(db, phone) == 0


def test_assign_closes_stray_open_entry(db, make_employee, make_phone):
    stale = make_employee()
    user = make_employee()
    phone = make_phone(stale)
    db.add(PhoneUsageHistory(phone_id=phone.id, employee_id=stale.id, start_date=date(2023, 1, 1)))
    db.commit()

    phone_service.assign_phone(
        db, phone.id, PhoneAssign(employee_id=user.employee_id, assignment_date=date(2024, 2, 1))
    )

    history = phone_service.get_usage_history(db, phone.id)
    assert [h.end_date for h in history] == [date(2024, 2, 1), None]
    assert history[1].employee_id == user.id


def test_update_to_in_use_needs_current_user(db, make_employee, make_phone):
    user = make_employee()
    phone = make_phone(user, status=PhoneStatus.SUSPENDED)
    with pytest.raises(ValidationError, match="assign it instead"):
        phone_service.update_phone(db, phone.id, PhoneUpdate(status=PhoneStatus.IN_USE))

    held = make_phone(user, status=PhoneStatus.SUSPENDED, current_user=user)
    resumed = phone_service.update_phone(db, held.id, PhoneUpdate(status=PhoneStatus.IN_USE))
    assert resumed.status == PhoneStatus.IN_USE.value
    assert resumed.current_user_id == user.id
