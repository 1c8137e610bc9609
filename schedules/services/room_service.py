"""
Room availability and room day views.

Rooms have no hours of their own. A room is free for a window when none
of its blocking appointments overlap it; the same overlap rule as the
practitioner conflict check applies.
"""

import logging
from collections import defaultdict

from appointments.conflicts import booked_ranges, get_blocking_appointments, slot_has_conflict
from clinics.models import Clinic, Room

from ..domain import minutes_to_time, time_to_minutes
from ..exceptions import EntityNotFoundError, ScheduleValidationError

logger = logging.getLogger(__name__)


def room_summary(room):
    return {"id": room.id, "name": room.name, "number": room.number}


def _get_clinic(clinic_id):
    try:
        return Clinic.objects.alive().get(id=clinic_id)
    except Clinic.DoesNotExist:
        raise EntityNotFoundError("Clinic not found.")


def _ranges_by_room(target_date, rooms):
    appointments = get_blocking_appointments(target_date, room_ids=[room.id for room in rooms])
    grouped = defaultdict(list)
    for appointment in appointments:
        grouped[appointment.room_id].append(appointment)
    return {room_id: booked_ranges(items) for room_id, items in grouped.items()}


def get_available_rooms(clinic_id, target_date, start_time, end_time):
    """Active rooms of a clinic with no blocking booking in [start_time, end_time)."""
    start, end = time_to_minutes(start_time), time_to_minutes(end_time)
    if start >= end:
        raise ScheduleValidationError(
            "start_time must be before end_time.",
            errors={"end_time": "Must be after start_time."},
        )
    clinic = _get_clinic(clinic_id)

    rooms = list(Room.objects.active().filter(clinic=clinic).order_by("name"))
    ranges = _ranges_by_room(target_date, rooms)
    return [room for room in rooms if not slot_has_conflict(start, end, ranges.get(room.id, []))]


def free_rooms_per_slot(clinic_id, target_date, slots):
    """
    For each slot, the summaries of the clinic's active rooms free during it.

    Returns a list parallel to `slots`.
    """
    rooms = list(
        Room.objects.active()
        .filter(clinic_id=clinic_id, clinic__deleted_at__isnull=True)
        .order_by("name")
    )
    ranges = _ranges_by_room(target_date, rooms)
    return [
        [
            room_summary(room)
            for room in rooms
            if not slot_has_conflict(slot.start, slot.end, ranges.get(room.id, []))
        ]
        for slot in slots
    ]


def _appointment_projection(appointment):
    return {
        "id": appointment.id,
        "start_time": minutes_to_time(appointment.start_minutes),
        "end_time": minutes_to_time(appointment.end_minutes),
        "duration": appointment.duration_minutes,
        "status": appointment.status,
        "type": appointment.type,
        "practitioner_name": appointment.doctor.name if appointment.doctor else None,
        "patient_name": appointment.patient.name if appointment.patient else None,
    }


def _room_day(room, target_date, appointments):
    return {
        "room": room_summary(room),
        "date": target_date.isoformat(),
        "appointments": [_appointment_projection(appt) for appt in appointments],
    }


def get_room_schedule(room_id, target_date):
    """Display view of one room's bookings on a date, ordered by start time."""
    try:
        room = Room.objects.alive().get(id=room_id)
    except Room.DoesNotExist:
        raise EntityNotFoundError("Room not found.")

    appointments = get_blocking_appointments(target_date, room_id=room.id).select_related("doctor", "patient")
    return _room_day(room, target_date, appointments)


def get_clinic_rooms_schedule(clinic_id, target_date):
    """Day view of every active room of a clinic, rooms ordered by name."""
    clinic = _get_clinic(clinic_id)
    rooms = list(Room.objects.active().filter(clinic=clinic).order_by("name"))

    appointments = get_blocking_appointments(
        target_date, room_ids=[room.id for room in rooms],
    ).select_related("doctor", "patient")
    by_room = defaultdict(list)
    for appointment in appointments:
        by_room[appointment.room_id].append(appointment)

    logger.debug("[ROOMS] clinic_id=%s date=%s rooms=%s", clinic.id, target_date, len(rooms))
    return [_room_day(room, target_date, by_room.get(room.id, [])) for room in rooms]
