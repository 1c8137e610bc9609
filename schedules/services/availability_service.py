"""
Available slots for a practitioner on a date.

1. Resolve the effective schedule (clinic precedence included)
2. Pick the session length: explicit > practitioner preference > schedule default
3. Generate candidate slots from the open intervals
4. Drop slots overlapping the practitioner's blocking appointments
5. Optionally attach the clinic rooms free during each remaining slot
"""

import logging

from appointments.conflicts import booked_ranges, get_blocking_appointments, slot_has_conflict

from ..models import EntityKind
from ..resolvers import get_resolver
from ..slots import generate_time_slots
from .room_service import free_rooms_per_slot

logger = logging.getLogger(__name__)


def get_available_slots(doctor_id, target_date, duration=None, include_rooms=False):
    """
    Returns:
        Closed day: {"slots": [], "is_open": False, "reason": str | None}
        Open day:   {"slots": [{"start_time", "end_time", ["available_rooms"]}],
                     "is_open": True, "reason": None, "session_duration": int}
    """
    resolver = get_resolver(EntityKind.PRACTITIONER)
    profile = resolver.get_entity(doctor_id)
    schedule = resolver.resolve(doctor_id, target_date)

    if not schedule.is_open:
        return {"slots": [], "is_open": False, "reason": schedule.reason}

    session_duration = duration or profile.preferred_session_duration or schedule.default_session_duration

    candidates = generate_time_slots(schedule.intervals, session_duration, schedule.buffer_between_sessions)
    ranges = booked_ranges(get_blocking_appointments(target_date, doctor_id=doctor_id))
    available = [slot for slot in candidates if not slot_has_conflict(slot.start, slot.end, ranges)]

    slots = [slot.to_dict() for slot in available]
    if include_rooms and profile.clinic_id:
        for slot_data, rooms in zip(slots, free_rooms_per_slot(profile.clinic_id, target_date, available)):
            slot_data["available_rooms"] = rooms

    logger.debug(
        "[AVAILABILITY] doctor_id=%s date=%s candidates=%s available=%s",
        doctor_id, target_date, len(candidates), len(available),
    )
    return {
        "slots": slots,
        "is_open": True,
        "reason": None,
        "session_duration": session_duration,
    }
