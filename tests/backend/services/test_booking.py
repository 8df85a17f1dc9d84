from datetime import date, datetime, time

import pytest
from fastapi import HTTPException

from backend.models.appointment import Appointment
from backend.services.booking import (
    add_months,
    book_appointment,
    cancel_appointment,
    list_open_slots,
    parse_time_label,
    set_appointment_status,
)

NOW = datetime(2025, 6, 20, 9, 0)
SLOT_DAY = date(2025, 7, 1)


@pytest.fixture
def doctor(make_doctor):
    return make_doctor(availability={SLOT_DAY: ['09:00', '10:00']})


@pytest.fixture
def patient(make_user):
    return make_user('patient_alice')


def add_appointment(db_session, doctor, patient, day, label, appointment_status='booked') -> Appointment:
    appointment = Appointment(
        doctor_id=doctor.id,
        patient_id=patient.id,
        date=day,
        time=label,
        status=appointment_status,
    )
    db_session.add(appointment)
    db_session.commit()
    db_session.refresh(appointment)
    return appointment


def test_booking_published_slot_creates_booked_appointment(db_session, doctor, patient, principal_for) -> None:
    appointment = book_appointment(
        db_session,
        principal_for(patient),
        doctor_user_id=doctor.user_id,
        requested_date=SLOT_DAY,
        time_label='09:00',
        notes='Routine check-up',
        duration_minutes=30,
        now=NOW,
    )

    assert appointment.id is not None
    assert appointment.status == 'booked'
    assert appointment.doctor_id == doctor.id
    assert appointment.patient_id == patient.id
    assert appointment.date == SLOT_DAY
    assert appointment.time == '09:00'
    assert appointment.duration_minutes == 30
    assert appointment.notes == 'Routine check-up'


def test_second_booking_of_same_slot_conflicts(db_session, doctor, patient, make_user, principal_for) -> None:
    book_appointment(db_session, principal_for(patient), doctor.user_id, SLOT_DAY, '09:00', now=NOW)
    other_patient = make_user('patient_bob')

    with pytest.raises(HTTPException) as exception_info:
        book_appointment(db_session, principal_for(other_patient), doctor.user_id, SLOT_DAY, '09:00', now=NOW)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'Slot already booked by another patient.'
    assert db_session.query(Appointment).count() == 1


def test_unpublished_time_label_is_not_available(db_session, doctor, patient, principal_for) -> None:
    with pytest.raises(HTTPException) as exception_info:
        book_appointment(db_session, principal_for(patient), doctor.user_id, SLOT_DAY, '23:59', now=NOW)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'Selected slot is not available.'


def test_date_without_availability_entry_is_not_available(db_session, doctor, patient, principal_for) -> None:
    with pytest.raises(HTTPException) as exception_info:
        book_appointment(db_session, principal_for(patient), doctor.user_id, date(2025, 7, 2), '09:00', now=NOW)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'Selected slot is not available.'


def test_booking_yesterday_is_rejected(db_session, make_doctor, patient, principal_for) -> None:
    yesterday = date(2025, 6, 19)
    doctor = make_doctor(availability={yesterday: ['09:00']})

    with pytest.raises(HTTPException) as exception_info:
        book_appointment(db_session, principal_for(patient), doctor.user_id, yesterday, '09:00', now=NOW)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Cannot book appointments in the past.'


def test_booking_today_ignores_time_of_day(db_session, make_doctor, patient, principal_for) -> None:
    doctor = make_doctor(availability={date(2025, 6, 20): ['08:00']})

    appointment = book_appointment(
        db_session,
        principal_for(patient),
        doctor.user_id,
        date(2025, 6, 20),
        '08:00',
        now=datetime(2025, 6, 20, 18, 30),
    )

    assert appointment.status == 'booked'


def test_booking_more_than_six_months_ahead_is_rejected(db_session, make_doctor, patient, principal_for) -> None:
    far_day = date(2025, 12, 21)
    doctor = make_doctor(availability={far_day: ['09:00']})

    with pytest.raises(HTTPException) as exception_info:
        book_appointment(db_session, principal_for(patient), doctor.user_id, far_day, '09:00', now=NOW)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Cannot book appointments more than 6 months in advance.'


def test_booking_exactly_six_months_ahead_is_allowed(db_session, make_doctor, patient, principal_for) -> None:
    last_day = date(2025, 12, 20)
    doctor = make_doctor(availability={last_day: ['09:00']})

    appointment = book_appointment(db_session, principal_for(patient), doctor.user_id, last_day, '09:00', now=NOW)

    assert appointment.date == last_day


def test_unknown_doctor_is_reported_before_role_check(db_session, make_user, principal_for) -> None:
    other_doctor = make_user('dr_other', role='doctor')

    with pytest.raises(HTTPException) as exception_info:
        book_appointment(db_session, principal_for(other_doctor), 9999, SLOT_DAY, '09:00', now=NOW)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Doctor not found.'


@pytest.mark.parametrize('role', ['doctor', 'admin'])
def test_only_patients_can_book(db_session, doctor, make_user, principal_for, role: str) -> None:
    user = make_user(f'{role}_user', role=role)

    with pytest.raises(HTTPException) as exception_info:
        book_appointment(db_session, principal_for(user), doctor.user_id, SLOT_DAY, '09:00', now=NOW)

    assert exception_info.value.status_code == 403
    assert db_session.query(Appointment).count() == 0


def test_sequential_attempts_leave_one_active_appointment_per_slot(
    db_session,
    doctor,
    make_user,
    principal_for,
) -> None:
    patients = [make_user(f'patient_{index}') for index in range(4)]

    for current in patients:
        for label in ('09:00', '10:00'):
            try:
                book_appointment(db_session, principal_for(current), doctor.user_id, SLOT_DAY, label, now=NOW)
            except HTTPException as exc:
                assert exc.status_code == 409

    for label in ('09:00', '10:00'):
        active = db_session.query(Appointment).filter(
            Appointment.doctor_id == doctor.id,
            Appointment.date == SLOT_DAY,
            Appointment.time == label,
            Appointment.status != 'cancelled',
        ).count()
        assert active == 1


def test_cancelled_slot_can_be_booked_again(db_session, doctor, patient, make_user, principal_for) -> None:
    add_appointment(db_session, doctor, patient, SLOT_DAY, '09:00', appointment_status='cancelled')
    other_patient = make_user('patient_bob')

    appointment = book_appointment(db_session, principal_for(other_patient), doctor.user_id, SLOT_DAY, '09:00', now=NOW)

    assert appointment.status == 'booked'
    db_session.refresh(doctor)
    assert doctor.entry_for(SLOT_DAY).slots == ['09:00', '10:00']


def test_open_slots_exclude_active_bookings(db_session, doctor, patient) -> None:
    assert list_open_slots(db_session, doctor, SLOT_DAY) == ['09:00', '10:00']

    booked = add_appointment(db_session, doctor, patient, SLOT_DAY, '09:00')
    assert list_open_slots(db_session, doctor, SLOT_DAY) == ['10:00']

    booked.status = 'cancelled'
    db_session.commit()
    assert list_open_slots(db_session, doctor, SLOT_DAY) == ['09:00', '10:00']
    assert list_open_slots(db_session, doctor, date(2025, 7, 2)) == []


def test_cancel_within_24_hours_is_rejected(db_session, doctor, patient, principal_for) -> None:
    appointment = add_appointment(db_session, doctor, patient, SLOT_DAY, '09:00')

    with pytest.raises(HTTPException) as exception_info:
        cancel_appointment(db_session, principal_for(patient), appointment.id, now=datetime(2025, 6, 30, 10, 0))

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Cannot cancel within 24 hours of appointment.'
    db_session.refresh(appointment)
    assert appointment.status == 'booked'


def test_cancel_one_hour_ahead_is_rejected(db_session, make_doctor, patient, principal_for) -> None:
    now = datetime(2025, 6, 20, 14, 0)
    doctor = make_doctor(availability={now.date(): ['15:00']})
    appointment = add_appointment(db_session, doctor, patient, now.date(), '15:00')

    with pytest.raises(HTTPException) as exception_info:
        cancel_appointment(db_session, principal_for(patient), appointment.id, now=now)

    assert exception_info.value.status_code == 400


def test_patient_cancels_own_appointment_ahead_of_cutoff(db_session, doctor, patient, principal_for) -> None:
    appointment = add_appointment(db_session, doctor, patient, SLOT_DAY, '09:00')

    cancelled = cancel_appointment(db_session, principal_for(patient), appointment.id, now=datetime(2025, 6, 29, 9, 0))

    assert cancelled.status == 'cancelled'
    assert db_session.query(Appointment).count() == 1


def test_cancel_already_cancelled_is_rejected(db_session, doctor, patient, principal_for) -> None:
    appointment = add_appointment(db_session, doctor, patient, SLOT_DAY, '09:00', appointment_status='cancelled')

    with pytest.raises(HTTPException) as exception_info:
        cancel_appointment(db_session, principal_for(patient), appointment.id, now=NOW)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Appointment already cancelled.'


def test_cancel_missing_appointment_returns_not_found(db_session, patient, principal_for) -> None:
    with pytest.raises(HTTPException) as exception_info:
        cancel_appointment(db_session, principal_for(patient), 999, now=NOW)

    assert exception_info.value.status_code == 404


def test_cancel_authorization(db_session, doctor, patient, make_user, make_doctor, principal_for) -> None:
    appointment = add_appointment(db_session, doctor, patient, SLOT_DAY, '09:00')
    stranger = make_user('patient_bob')
    other_doctor = make_doctor(username='dr_mary')

    for outsider in (stranger, other_doctor.user):
        with pytest.raises(HTTPException) as exception_info:
            cancel_appointment(db_session, principal_for(outsider), appointment.id, now=NOW)
        assert exception_info.value.status_code == 403

    cancelled = cancel_appointment(db_session, principal_for(doctor.user), appointment.id, now=NOW)
    assert cancelled.status == 'cancelled'


def test_admin_can_cancel_any_appointment(db_session, doctor, patient, make_user, principal_for) -> None:
    appointment = add_appointment(db_session, doctor, patient, SLOT_DAY, '10:00')
    admin = make_user('admin', role='admin')

    cancelled = cancel_appointment(db_session, principal_for(admin), appointment.id, now=NOW)

    assert cancelled.status == 'cancelled'


def test_admin_reactivation_skips_conflict_check(db_session, doctor, patient, make_user) -> None:
    cancelled = add_appointment(db_session, doctor, patient, SLOT_DAY, '09:00', appointment_status='cancelled')
    add_appointment(db_session, doctor, make_user('patient_bob'), SLOT_DAY, '09:00')

    updated = set_appointment_status(db_session, cancelled.id, 'booked')

    assert updated.status == 'booked'
    active = db_session.query(Appointment).filter(
        Appointment.time == '09:00',
        Appointment.status != 'cancelled',
    ).count()
    assert active == 2


@pytest.mark.parametrize('new_status', ['pending', 'booked', 'cancelled', 'completed'])
def test_admin_status_accepts_known_values(db_session, doctor, patient, new_status: str) -> None:
    appointment = add_appointment(db_session, doctor, patient, SLOT_DAY, '09:00')

    assert set_appointment_status(db_session, appointment.id, new_status).status == new_status


@pytest.mark.parametrize('new_status', [None, '', 'done', 'Booked', ' booked'])
def test_admin_status_rejects_other_values(db_session, doctor, patient, new_status) -> None:
    appointment = add_appointment(db_session, doctor, patient, SLOT_DAY, '09:00')

    with pytest.raises(HTTPException) as exception_info:
        set_appointment_status(db_session, appointment.id, new_status)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Invalid or missing appointment status.'


def test_admin_status_on_missing_appointment_returns_not_found(db_session) -> None:
    with pytest.raises(HTTPException) as exception_info:
        set_appointment_status(db_session, 404, 'completed')

    assert exception_info.value.status_code == 404


@pytest.mark.parametrize(
    ('label', 'expected'),
    [
        ('09:30', time(9, 30)),
        ('9:05', time(9, 5)),
        ('14:00 PM', time(14, 0)),
        ('morning', time(0, 0)),
        ('25:00', time(0, 0)),
    ],
)
def test_parse_time_label(label: str, expected: time) -> None:
    assert parse_time_label(label) == expected


@pytest.mark.parametrize(
    ('start', 'expected'),
    [
        (date(2025, 6, 20), date(2025, 12, 20)),
        (date(2025, 8, 31), date(2026, 2, 28)),
        (date(2023, 8, 31), date(2024, 2, 29)),
        (date(2025, 11, 15), date(2026, 5, 15)),
    ],
)
def test_add_months_clamps_to_month_end(start: date, expected: date) -> None:
    assert add_months(start, 6) == expected
