"""
Occupancy analytics.

available hours  = sum over each date of the entity's effective open minutes
occupied hours   = sum of duration_minutes of blocking appointments in range
occupancy rate   = round(occupied / available * 100), clamped to [0, 100],
                   and 0 whenever nothing was available

Rooms use the hours of their clinic. Entities without a working-hours
record use the default pattern, exactly as schedule resolution does.

The schedule records and the appointment totals are each loaded once per
request; grouping only re-buckets the per-day figures.
"""

import calendar
import logging
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings
from django.db import DatabaseError
from django.db.models import Count, Sum

from appointments.models import Appointment
from clinics.models import Room
from doctors.models import DoctorProfile

from ..exceptions import EntityNotFoundError, OccupancyError, ScheduleValidationError
from ..models import EntityKind, OccupancyEntity
from ..resolvers import get_resolver

logger = logging.getLogger(__name__)

GROUP_BY_CHOICES = ("day", "week", "month")


# ── Arithmetic ───────────────────────────────────────────────────────


def occupancy_rate(occupied_minutes, available_minutes):
    if available_minutes <= 0:
        return 0
    rate = (Decimal(occupied_minutes) * 100 / Decimal(available_minutes)).quantize(
        Decimal("1"), rounding=ROUND_HALF_UP
    )
    return max(0, min(100, int(rate)))


def minutes_to_hours(minutes):
    return float((Decimal(minutes) / 60).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def build_summary(available_minutes, occupied_minutes, total_appointments, start_date, end_date):
    return {
        "available_hours": minutes_to_hours(available_minutes),
        "occupied_hours": minutes_to_hours(occupied_minutes),
        "occupancy_rate": occupancy_rate(occupied_minutes, available_minutes),
        "total_appointments": total_appointments,
        "period": {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
    }


# ── Date ranges ──────────────────────────────────────────────────────


def validate_range(start_date, end_date):
    if start_date > end_date:
        raise ScheduleValidationError(
            "start_date must be on or before end_date.",
            errors={"end_date": "Must be on or after start_date."},
        )
    max_days = settings.SCHEDULING["MAX_OCCUPANCY_RANGE_DAYS"]
    if (end_date - start_date).days + 1 > max_days:
        raise ScheduleValidationError(
            f"Date range cannot exceed {max_days} days.",
            errors={"end_date": f"Range is limited to {max_days} days."},
        )


def iter_dates(start_date, end_date):
    current = start_date
    while current <= end_date:
        yield current
        current += timedelta(days=1)


def split_periods(start_date, end_date, group_by):
    """
    Yield (label, period_start, period_end) covering the range.

    day:   one period per date, label {"date"}
    week:  7-day windows starting at start_date, the last one clipped,
           label {"week_start", "week_end"}
    month: calendar months clipped to the range, label {"month": "YYYY-MM"}
    """
    if group_by == "day":
        for day in iter_dates(start_date, end_date):
            yield {"date": day.isoformat()}, day, day
    elif group_by == "week":
        current = start_date
        while current <= end_date:
            week_end = min(current + timedelta(days=6), end_date)
            yield {"week_start": current.isoformat(), "week_end": week_end.isoformat()}, current, week_end
            current = week_end + timedelta(days=1)
    elif group_by == "month":
        current = start_date
        while current <= end_date:
            last_day = calendar.monthrange(current.year, current.month)[1]
            month_end = min(current.replace(day=last_day), end_date)
            yield {"month": current.strftime("%Y-%m")}, current, month_end
            current = month_end + timedelta(days=1)
    else:
        raise ScheduleValidationError(
            f"Invalid group_by '{group_by}'.",
            errors={"group_by": f"Must be one of: {', '.join(GROUP_BY_CHOICES)}."},
        )


# ── Per-day figures ──────────────────────────────────────────────────


class DailyFigures:
    """Available minutes, booked minutes and booking counts per date."""

    def __init__(self, daily_schedule, appointments, start_date, end_date):
        self.available = {day: daily_schedule(day).open_minutes for day in iter_dates(start_date, end_date)}
        self.occupied = {}
        self.counts = {}
        rows = (
            appointments.filter(appointment_date__range=(start_date, end_date))
            .values("appointment_date")
            .annotate(minutes=Sum("duration_minutes"), total=Count("id"))
            .order_by()
        )
        for row in rows:
            self.occupied[row["appointment_date"]] = row["minutes"] or 0
            self.counts[row["appointment_date"]] = row["total"]

    def summary(self, start_date, end_date):
        days = list(iter_dates(start_date, end_date))
        return build_summary(
            available_minutes=sum(self.available.get(day, 0) for day in days),
            occupied_minutes=sum(self.occupied.get(day, 0) for day in days),
            total_appointments=sum(self.counts.get(day, 0) for day in days),
            start_date=start_date,
            end_date=end_date,
        )


def _clinic_practitioner_ids(clinic_id):
    return DoctorProfile.objects.for_clinic(clinic_id).values("user_id")


def _sources(kind, entity_id):
    """(daily schedule callable, appointment queryset) for an occupancy entity."""
    blocking = Appointment.objects.blocking()

    if kind == OccupancyEntity.CLINIC:
        daily = get_resolver(EntityKind.CLINIC).daily_schedule(entity_id)
        return daily, blocking.filter(doctor_id__in=_clinic_practitioner_ids(entity_id))

    if kind == OccupancyEntity.PRACTITIONER:
        daily = get_resolver(EntityKind.PRACTITIONER).daily_schedule(entity_id)
        return daily, blocking.filter(doctor_id=entity_id)

    if kind == OccupancyEntity.ROOM:
        try:
            room = Room.objects.alive().get(id=entity_id)
        except Room.DoesNotExist:
            raise EntityNotFoundError("Room not found.")
        daily = get_resolver(EntityKind.CLINIC).daily_schedule(room.clinic_id)
        return daily, blocking.filter(room_id=room.id)

    raise ScheduleValidationError(
        f"Unknown entity kind '{kind}'.",
        errors={"kind": f"Must be one of: {', '.join(OccupancyEntity.values)}."},
    )


def _figures(kind, entity_id, start_date, end_date):
    daily, appointments = _sources(kind, entity_id)
    return DailyFigures(daily, appointments, start_date, end_date)


# ── Public API ───────────────────────────────────────────────────────


def calculate_occupancy(kind, entity_id, start_date, end_date, group_by=None):
    """
    Occupancy of a clinic, practitioner or room over [start_date, end_date].

    Returns:
        A summary dict, or with `group_by` a list of summaries each merged
        with its period label.

    Raises:
        EntityNotFoundError, ScheduleValidationError: passed through.
        OccupancyError: the aggregation itself failed.
    """
    validate_range(start_date, end_date)
    try:
        figures = _figures(kind, entity_id, start_date, end_date)
        if not group_by:
            return figures.summary(start_date, end_date)
        return [
            {**label, **figures.summary(period_start, period_end)}
            for label, period_start, period_end in split_periods(start_date, end_date, group_by)
        ]
    except DatabaseError:
        logger.exception(
            "[OCCUPANCY] Failed kind=%s entity_id=%s range=%s..%s",
            kind, entity_id, start_date, end_date,
        )
        raise OccupancyError()


def calculate_detailed_occupancy(clinic_id, start_date, end_date):
    """Clinic summary plus one summary per practitioner and per active room, highest rate first."""
    validate_range(start_date, end_date)
    try:
        overall = _figures(OccupancyEntity.CLINIC, clinic_id, start_date, end_date).summary(start_date, end_date)

        by_practitioner = []
        profiles = DoctorProfile.objects.for_clinic(clinic_id).select_related("user")
        for profile in profiles:
            summary = _figures(
                OccupancyEntity.PRACTITIONER, profile.user_id, start_date, end_date,
            ).summary(start_date, end_date)
            by_practitioner.append({"practitioner_id": profile.user_id, "name": profile.user.name, **summary})

        by_room = []
        for room in Room.objects.active().filter(clinic_id=clinic_id):
            summary = _figures(OccupancyEntity.ROOM, room.id, start_date, end_date).summary(start_date, end_date)
            by_room.append({"room_id": room.id, "name": room.name, "number": room.number, **summary})
    except DatabaseError:
        logger.exception(
            "[OCCUPANCY] Detailed report failed clinic_id=%s range=%s..%s", clinic_id, start_date, end_date,
        )
        raise OccupancyError()

    by_practitioner.sort(key=lambda item: item["occupancy_rate"], reverse=True)
    by_room.sort(key=lambda item: item["occupancy_rate"], reverse=True)
    return {"overall": overall, "by_practitioner": by_practitioner, "by_room": by_room}
