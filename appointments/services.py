"""
Appointment booking service.

Handles the booking write paths:
1. Validate the requested date is not in the past
2. Validate the practitioner (and room) exist and fit together
3. Optionally enforce the practitioner's effective working hours
4. Lock the practitioner row (and the room row) with select_for_update()
5. Run the conflict check under the lock
6. Create or update the appointment record

Locking the practitioner profile, rather than the existing appointments,
also serializes requests against a day that has no bookings yet, so two
concurrent requests for the same slot cannot both pass the check.
"""

import logging
from datetime import time

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from clinics.models import Room
from doctors.models import DoctorProfile
from schedules.domain import MINUTES_PER_DAY
from schedules.models import EntityKind
from schedules.resolvers import get_resolver

from .conflicts import check_booking_conflict
from .models import Appointment

logger = logging.getLogger(__name__)


class BookingError(Exception):
    """Base exception for booking failures."""

    def __init__(self, message, code="booking_error"):
        self.message = message
        self.code = code
        super().__init__(self.message)


class SlotUnavailableError(BookingError):
    """Raised when the requested time overlaps an existing booking."""

    def __init__(self, message="This time slot is no longer available. Please select another slot."):
        super().__init__(message, code="slot_unavailable")


class PastDateError(BookingError):
    """Raised when trying to book a date in the past."""

    def __init__(self, message="Cannot book appointments for past dates."):
        super().__init__(message, code="past_date")


class InvalidRoomError(BookingError):
    """Raised when the room is unknown, inactive, or belongs to another clinic."""

    def __init__(self, message="The selected room is not available for this practitioner."):
        super().__init__(message, code="invalid_room")


class OutsideWorkingHoursError(BookingError):
    """Raised when off-hours booking is disabled and the time is outside the schedule."""

    def __init__(self, message="The selected time is outside the practitioner's working hours."):
        super().__init__(message, code="outside_working_hours")


class AppointmentNotFoundError(BookingError):
    def __init__(self, message="Appointment not found."):
        super().__init__(message, code="not_found")


# ── Validation helpers ───────────────────────────────────────────────


def _check_not_past(appointment_date, appointment_time):
    today = timezone.localdate()
    if appointment_date < today:
        raise PastDateError()
    if appointment_date == today and appointment_time <= timezone.localtime().time():
        raise PastDateError("Cannot book a slot that has already passed today.")


def _get_practitioner(doctor_id):
    try:
        return DoctorProfile.objects.alive().select_related("clinic").get(user_id=doctor_id)
    except DoctorProfile.DoesNotExist:
        raise BookingError("Practitioner not found.", code="invalid_practitioner")


def _check_room(room_id, profile, appointment_type):
    if room_id is None:
        return
    if appointment_type == Appointment.Type.ONLINE:
        raise InvalidRoomError("Online appointments cannot reserve a room.")
    if not profile.clinic_id:
        raise InvalidRoomError("Independent practitioners cannot book clinic rooms.")
    if not Room.objects.active().filter(id=room_id, clinic_id=profile.clinic_id).exists():
        raise InvalidRoomError()


def _check_same_day(end):
    if end > MINUTES_PER_DAY:
        raise BookingError("Appointment must end on the day it starts.", code="invalid_time")


def _check_working_hours(schedule, start, end):
    if settings.SCHEDULING["ALLOW_OFF_HOURS_BOOKING"]:
        return
    inside = schedule.is_open and any(
        interval.start <= start and end <= interval.end for interval in schedule.intervals
    )
    if not inside:
        raise OutsideWorkingHoursError()


def _lock_and_check(*, doctor_id, room_id, appointment_date, start, end, exclude_appointment_id=None):
    """Must run inside transaction.atomic()."""
    DoctorProfile.objects.select_for_update().get(user_id=doctor_id)
    if room_id is not None:
        Room.objects.select_for_update().get(id=room_id)

    conflict = check_booking_conflict(
        appointment_date, start, end,
        doctor_id=doctor_id,
        room_id=room_id,
        exclude_appointment_id=exclude_appointment_id,
    )
    if conflict is not None:
        logger.info(
            "[BOOKING] Conflict (%s) doctor_id=%s room_id=%s date=%s with appointment_id=%s",
            conflict.kind, doctor_id, room_id, appointment_date, conflict.appointment.id,
        )
        raise SlotUnavailableError(conflict.message)


def _minutes(value: time) -> int:
    return value.hour * 60 + value.minute


# ── Write paths ──────────────────────────────────────────────────────


def book_appointment(
    *,
    patient,
    doctor_id: int,
    appointment_date,
    appointment_time: time,
    duration_minutes: int | None = None,
    room_id: int | None = None,
    appointment_type: str = Appointment.Type.IN_PERSON,
    notes: str = "",
    created_by=None,
) -> Appointment:
    """
    Book an appointment with a practitioner.

    Args:
        patient: The User instance the appointment is for.
        doctor_id: The practitioner's user ID.
        appointment_date: The desired date.
        appointment_time: The desired start time.
        duration_minutes: Session length. Defaults to the practitioner's
            preference, then to the schedule's default session duration.
        room_id: Optional room of the practitioner's clinic.
        appointment_type: Appointment.Type value.
        notes: Optional free text.
        created_by: The User performing the booking, defaults to `patient`.

    Returns:
        The created Appointment instance.

    Raises:
        PastDateError: If the date/time is in the past.
        InvalidRoomError: If the room cannot be used.
        OutsideWorkingHoursError: If off-hours booking is disabled and the
            time falls outside the effective schedule.
        SlotUnavailableError: If the practitioner or room is already booked.
        BookingError: For any other validation failure.
    """
    _check_not_past(appointment_date, appointment_time)
    profile = _get_practitioner(doctor_id)
    _check_room(room_id, profile, appointment_type)

    schedule = get_resolver(EntityKind.PRACTITIONER).resolve(doctor_id, appointment_date)
    duration = duration_minutes or profile.preferred_session_duration or schedule.default_session_duration
    start = _minutes(appointment_time)
    end = start + duration
    _check_same_day(end)
    _check_working_hours(schedule, start, end)

    with transaction.atomic():
        _lock_and_check(
            doctor_id=doctor_id,
            room_id=room_id,
            appointment_date=appointment_date,
            start=start,
            end=end,
        )
        appointment = Appointment(
            patient=patient,
            doctor_id=doctor_id,
            clinic_id=profile.clinic_id,
            room_id=room_id,
            appointment_date=appointment_date,
            appointment_time=appointment_time,
            duration_minutes=duration,
            type=appointment_type,
            notes=notes,
            status=Appointment.Status.SCHEDULED,
            created_by=created_by or patient,
        )
        appointment.full_clean()
        appointment.save()

    logger.info(
        "[BOOKING] Created appointment_id=%s doctor_id=%s room_id=%s date=%s time=%s duration=%s",
        appointment.id, doctor_id, room_id, appointment_date, appointment_time, duration,
    )
    return appointment


_UNCHANGED = object()


def reschedule_appointment(
    *,
    appointment_id: int,
    appointment_date,
    appointment_time: time,
    duration_minutes: int | None = None,
    room_id=_UNCHANGED,
) -> Appointment:
    """
    Move an existing appointment. The appointment itself is ignored by the
    conflict check, so shifting it within its own slot is allowed.

    `room_id` keeps the current room unless given; pass None to release it.
    """
    try:
        appointment = Appointment.objects.blocking().get(id=appointment_id)
    except Appointment.DoesNotExist:
        raise AppointmentNotFoundError()
    if appointment.status == Appointment.Status.COMPLETED:
        raise BookingError("Completed appointments cannot be rescheduled.", code="not_reschedulable")

    _check_not_past(appointment_date, appointment_time)
    profile = _get_practitioner(appointment.doctor_id)
    new_room_id = appointment.room_id if room_id is _UNCHANGED else room_id
    _check_room(new_room_id, profile, appointment.type)

    schedule = get_resolver(EntityKind.PRACTITIONER).resolve(appointment.doctor_id, appointment_date)
    duration = duration_minutes or appointment.duration_minutes
    start = _minutes(appointment_time)
    end = start + duration
    _check_same_day(end)
    _check_working_hours(schedule, start, end)

    with transaction.atomic():
        # The row may have been cancelled or moved since it was read above
        try:
            appointment = Appointment.objects.blocking().select_for_update().get(id=appointment_id)
        except Appointment.DoesNotExist:
            raise AppointmentNotFoundError()
        if appointment.status == Appointment.Status.COMPLETED:
            raise BookingError("Completed appointments cannot be rescheduled.", code="not_reschedulable")

        _lock_and_check(
            doctor_id=appointment.doctor_id,
            room_id=new_room_id,
            appointment_date=appointment_date,
            start=start,
            end=end,
            exclude_appointment_id=appointment.id,
        )
        appointment.appointment_date = appointment_date
        appointment.appointment_time = appointment_time
        appointment.duration_minutes = duration
        appointment.room_id = new_room_id
        appointment.full_clean()
        appointment.save(update_fields=[
            "appointment_date", "appointment_time", "duration_minutes", "room", "updated_at",
        ])

    logger.info(
        "[BOOKING] Rescheduled appointment_id=%s to date=%s time=%s",
        appointment.id, appointment_date, appointment_time,
    )
    return appointment


def cancel_appointment(*, appointment_id: int, cancelled_by, reason: str = "") -> Appointment:
    """Cancel an appointment, freeing its time for the practitioner and the room."""
    with transaction.atomic():
        try:
            appointment = Appointment.objects.alive().select_for_update().get(id=appointment_id)
        except Appointment.DoesNotExist:
            raise AppointmentNotFoundError()

        if appointment.status == Appointment.Status.CANCELLED:
            raise BookingError("Appointment is already cancelled.", code="already_cancelled")
        if appointment.status == Appointment.Status.COMPLETED:
            raise BookingError("Completed appointments cannot be cancelled.", code="not_cancellable")

        appointment.status = Appointment.Status.CANCELLED
        appointment.cancelled_by = cancelled_by
        appointment.cancelled_reason = reason
        appointment.save(update_fields=["status", "cancelled_by", "cancelled_reason", "updated_at"])

    logger.info(
        "[BOOKING] Cancelled appointment_id=%s by user_id=%s",
        appointment.id, getattr(cancelled_by, "id", None),
    )
    return appointment
