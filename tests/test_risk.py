"""Registrant-departure detection and risk handling."""
from datetime import date

import pytest

from phone_assets.core.exceptions import PersistenceConflict, TransitionRejected, ValidationError
from phone_assets.db.enums import EmploymentStatus, PhoneStatus, RiskAction, RiskReason
from phone_assets.db.models import RiskCase
from phone_assets.schemas.phone import HandleRiskRequest
from phone_assets.services import directory_service, phone_service, risk_service


def _depart(db, employee):
    return directory_service.change_employment_status(
        db, employee.employee_id, EmploymentStatus.DEPARTED, date(2024, 7, 1)
    )


def test_departure_flags_registered_phones(db, make_employee, make_phone):
    registrant = make_employee()
    user = make_employee()
    in_use = make_phone(registrant, status=PhoneStatus.IN_USE, current_user=user)
    idle = make_phone(registrant)
    deactivated = make_phone(registrant, status=PhoneStatus.DEACTIVATED)

    employee, flagged = _depart(db, registrant)

    assert employee.employment_status == EmploymentStatus.DEPARTED.value
    assert employee.termination_date == date(2024, 7, 1)
    assert flagged == 2
    for phone in (in_use, idle, deactivated):
        db.refresh(phone)
    assert in_use.status == PhoneStatus.RISK_PENDING.value
    assert in_use.status_before_risk == PhoneStatus.IN_USE.value
    assert idle.status == PhoneStatus.RISK_PENDING.value
    assert deactivated.status == PhoneStatus.DEACTIVATED.value

    case = risk_service.get_open_case(db, in_use.id, RiskReason.REGISTRANT_DEPARTED)
    assert case is not None
    assert case.employee_id == registrant.id


def test_detection_is_idempotent(db, make_employee, make_phone):
    registrant = make_employee()
    phone = make_phone(registrant, status=PhoneStatus.IN_USE, current_user=registrant)
    _depart(db, registrant)
    db.refresh(phone)
    version = phone.row_version

    assert risk_service.sweep_departed(db) == 0
    assert risk_service.detect_departed_registrant(db, registrant) == []

    db.refresh(phone)
    assert phone.status == PhoneStatus.RISK_PENDING.value
    assert phone.row_version == version
    assert db.query(RiskCase).filter(RiskCase.phone_id == phone.id).count() == 1


def test_departed_registrant_reclaimed_goes_idle(db, make_employee, make_phone):
    registrant = make_employee()
    phone = make_phone(registrant, status=PhoneStatus.IN_USE, current_user=registrant)
    _depart(db, registrant)
    db.refresh(phone)
    assert phone.status == PhoneStatus.RISK_PENDING.value

    handled = phone_service.handle_risk(
        db, phone.id, HandleRiskRequest(action=RiskAction.RECLAIM, operator="admin")
    )

    assert handled.status == PhoneStatus.IDLE.value
    assert handled.current_user_id is None
    assert handled.status_before_risk is None
    assert risk_service.get_open_case(db, phone.id, RiskReason.REGISTRANT_DEPARTED) is None
    history = phone_service.get_usage_history(db, phone.id)
    assert history[-1].end_date is not None
    resolved = db.query(RiskCase).filter(RiskCase.phone_id == phone.id).one()
    assert resolved.resolution_action == RiskAction.RECLAIM.value
    assert resolved.resolved_by == "admin"


def test_change_applicant_restores_previous_status(db, make_employee, make_phone):
    registrant = make_employee()
    user = make_employee()
    successor = make_employee()
    phone = make_phone(registrant, status=PhoneStatus.IN_USE, current_user=user)
    _depart(db, registrant)

    handled = phone_service.handle_risk(
        db,
        phone.id,
        HandleRiskRequest(
            action=RiskAction.CHANGE_APPLICANT,
            new_applicant_employee_id=successor.employee_id,
        ),
    )

    assert handled.status == PhoneStatus.IN_USE.value
    assert handled.registrant_id == successor.id
    assert handled.current_user_id == user.id


def test_change_applicant_requires_active_employee(db, make_employee, make_phone):
    registrant = make_employee()
    phone = make_phone(registrant)
    _depart(db, registrant)

    with pytest.raises(ValidationError):
        phone_service.handle_risk(
            db, phone.id, HandleRiskRequest(action=RiskAction.CHANGE_APPLICANT)
        )
    with pytest.raises(ValidationError):
        phone_service.handle_risk(
            db,
            phone.id,
            HandleRiskRequest(
                action=RiskAction.CHANGE_APPLICANT,
                new_applicant_employee_id=registrant.employee_id,
            ),
        )


def test_deactivate_sets_cancellation_date(db, make_employee, make_phone):
    registrant = make_employee()
    phone = make_phone(registrant)
    _depart(db, registrant)

    handled = phone_service.handle_risk(
        db,
        phone.id,
        HandleRiskRequest(action=RiskAction.DEACTIVATE, cancellation_date=date(2024, 8, 1)),
    )

    assert handled.status == PhoneStatus.DEACTIVATED.value
    assert handled.cancellation_date == date(2024, 8, 1)


def test_handle_risk_rejects_phone_not_at_risk(db, make_employee, make_phone):
    phone = make_phone(make_employee())
    with pytest.raises(TransitionRejected):
        phone_service.handle_risk(db, phone.id, HandleRiskRequest(action=RiskAction.RECLAIM))


def test_reactivation_does_not_flag(db, make_employee, make_phone):
    employee = make_employee(status=EmploymentStatus.DEPARTED)
    phone = make_phone(employee)

    _, flagged = directory_service.change_employment_status(
        db, employee.employee_id, EmploymentStatus.ACTIVE
    )

    assert flagged == 0
    db.refresh(phone)
    assert phone.status == PhoneStatus.IDLE.value


def test_open_case_returns_existing(db, make_employee, make_phone):
    registrant = make_employee()
    phone = make_phone(registrant)
    first = risk_service.open_case(db, phone.id, RiskReason.SELF_REPORTED, employee_id=registrant.id)
    db.commit()
    second = risk_service.open_case(db, phone.id, RiskReason.SELF_REPORTED)
    assert second.id == first.id


def test_retry_after_failed_detection_flags_phones(db, make_employee, make_phone, monkeypatch):
    registrant = make_employee()
    phone = make_phone(registrant, status=PhoneStatus.IN_USE, current_user=registrant)
    real_detect = risk_service.detect_departed_registrant
    calls = []

    def flaky_detect(session, employee):
        calls.append(employee.id)
        if len(calls) == 1:
            raise PersistenceConflict("collided")
        return real_detect(session, employee)

    monkeypatch.setattr(risk_service, "detect_departed_registrant", flaky_detect)

    with pytest.raises(PersistenceConflict):
        _depart(db, registrant)
    db.refresh(phone)
    assert phone.status == PhoneStatus.IN_USE.value

    employee, flagged = _depart(db, registrant)

    assert flagged == 1
    assert employee.termination_date == date(2024, 7, 1)
    db.refresh(phone)
    assert phone.status == PhoneStatus.RISK_PENDING.value


def test_repeated_departure_keeps_termination_date(db, make_employee):
    registrant = make_employee()
    _depart(db, registrant)

    employee, flagged = directory_service.change_employment_status(
        db, registrant.employee_id, EmploymentStatus.DEPARTED
    )

    assert flagged == 0
    assert employee.termination_date == date(2024, 7, 1)


def test_racing_detectors_flag_phone_once(db, make_employee, make_phone):
    registrant = make_employee()
    phone = make_phone(registrant)
    registrant.employment_status = EmploymentStatus.DEPARTED.value
    db.commit()

    # Both detectors selected the phone; the first one's UPDATE wins
    assert risk_service.flag_phone_for_departure(db, phone.id) is True
    assert risk_service.flag_phone_for_departure(db, phone.id) is False
    db.commit()

    assert risk_service.detect_departed_registrant(db, registrant) == []
    db.refresh(phone)
    assert phone.status == PhoneStatus.RISK_PENDING.value
    assert phone.status_before_risk == PhoneStatus.IDLE.value


def test_concurrent_case_insert_reuses_open_case(db, make_employee, make_phone, monkeypatch):
    registrant = make_employee()
    phone = make_phone(registrant)
    first = risk_service.open_case(db, phone.id, RiskReason.SELF_REPORTED)
    db.commit()

    real_get_open_case = risk_service.get_open_case
    lookups = []

    def stale_lookup(session, phone_id, reason):
        lookups.append(phone_id)
        # The first lookup ran before the other detector committed its case
        if len(lookups) == 1:
            return None
        return real_get_open_case(session, phone_id, reason)

    monkeypatch.setattr(risk_service, "get_open_case", stale_lookup)

    second = risk_service.open_case(db, phone.id, RiskReason.SELF_REPORTED)
    db.commit()

    assert second.id == first.id
    assert db.query(RiskCase).filter(RiskCase.phone_id == phone.id).count() == 1


def test_departure_without_date_uses_local_today(db, make_employee, monkeypatch):
    monkeypatch.setattr(directory_service, "local_today", lambda: date(2024, 8, 15))
    registrant = make_employee()

    employee, _ = directory_service.change_employment_status(
        db, registrant.employee_id, EmploymentStatus.DEPARTED
    )

    assert employee.termination_date == date(2024, 8, 15)
