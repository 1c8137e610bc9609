"""
Booking conflict detection.

Two bookings conflict when their half-open intervals [start, end) overlap
on the same day, so a booking ending at 10:50 never collides with one
starting at 10:50. Only blocking bookings (live, not cancelled) count.

Everything here is a read: callers that need check-then-write atomicity
must hold the entity lock themselves (see appointments.services).
"""

from dataclasses import dataclass

from .models import Appointment


def intervals_overlap(a_start, a_end, b_start, b_end):
    return a_start < b_end and b_start < a_end


def get_blocking_appointments(target_date, *, doctor_id=None, room_id=None, room_ids=None,
                              exclude_appointment_id=None):
    """Blocking appointments on `target_date` for a practitioner, a room, or a set of rooms."""
    if doctor_id is None and room_id is None and room_ids is None:
        raise ValueError("Pass doctor_id, room_id or room_ids.")

    appointments = Appointment.objects.blocking().filter(appointment_date=target_date)
    if doctor_id is not None:
        appointments = appointments.filter(doctor_id=doctor_id)
    if room_id is not None:
        appointments = appointments.filter(room_id=room_id)
    if room_ids is not None:
        appointments = appointments.filter(room_id__in=room_ids)
    if exclude_appointment_id is not None:
        appointments = appointments.exclude(id=exclude_appointment_id)
    return appointments.order_by("appointment_time")


def booked_ranges(appointments):
    """[(start_minutes, end_minutes), ...] for the given appointments."""
    return [(appt.start_minutes, appt.end_minutes) for appt in appointments]


def slot_has_conflict(start, end, ranges):
    return any(intervals_overlap(start, end, booked_start, booked_end) for booked_start, booked_end in ranges)


def find_conflicting_appointment(target_date, start, end, *, doctor_id=None, room_id=None,
                                 exclude_appointment_id=None):
    """First blocking appointment overlapping [start, end) in minutes, or None."""
    candidates = get_blocking_appointments(
        target_date,
        doctor_id=doctor_id,
        room_id=room_id,
        exclude_appointment_id=exclude_appointment_id,
    )
    for appointment in candidates:
        if intervals_overlap(start, end, appointment.start_minutes, appointment.end_minutes):
            return appointment
    return None


def has_conflict(target_date, start, end, *, doctor_id=None, room_id=None, exclude_appointment_id=None):
    return find_conflicting_appointment(
        target_date, start, end,
        doctor_id=doctor_id,
        room_id=room_id,
        exclude_appointment_id=exclude_appointment_id,
    ) is not None


@dataclass(frozen=True)
class Conflict:
    kind: str  # "practitioner" or "room"
    appointment: Appointment
    message: str


def check_booking_conflict(target_date, start, end, *, doctor_id, room_id=None, exclude_appointment_id=None):
    """
    Check a candidate booking against the practitioner's and the room's
    calendars, practitioner first.

    Returns:
        Conflict describing the first clash, or None when the slot is free.
    """
    clash = find_conflicting_appointment(
        target_date, start, end,
        doctor_id=doctor_id,
        exclude_appointment_id=exclude_appointment_id,
    )
    if clash is not None:
        return Conflict(
            kind="practitioner",
            appointment=clash,
            message="The practitioner already has an appointment at this time.",
        )

    if room_id is not None:
        clash = find_conflicting_appointment(
            target_date, start, end,
            room_id=room_id,
            exclude_appointment_id=exclude_appointment_id,
        )
        if clash is not None:
            return Conflict(
                kind="room",
                appointment=clash,
                message="The room is already booked at this time.",
            )
    return None
