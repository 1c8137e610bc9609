"""
Effective-schedule resolution.

One resolver per EntityKind, picked once through `get_resolver()`:

    resolver = get_resolver("practitioner")
    schedule = resolver.resolve(doctor_id, date(2024, 1, 1))

Precedence, highest first:
1. A date override on the entity's own record (absolute, never merged).
2. The weekly pattern entry for the date's weekday.
3. For practitioners attached to a clinic: a closed clinic closes the
   practitioner too. A clinic never opens a practitioner.

`daily_schedule()` loads the records once and returns a callable, so a
caller iterating over many dates (occupancy) does not hit the database
per day.
"""

import logging

from clinics.models import Clinic
from doctors.models import DoctorProfile

from .domain import ScheduleCalendar
from .exceptions import EntityNotFoundError, ScheduleValidationError
from .models import EntityKind, WorkingHours

logger = logging.getLogger(__name__)

CLINIC_CLOSED_REASON = "Clinic closed"


def load_calendar(**owner):
    """Calendar of the live record matching `owner`, or the default one."""
    record = (
        WorkingHours.objects.alive()
        .filter(**owner)
        .prefetch_related("date_overrides")
        .first()
    )
    if record is None:
        return ScheduleCalendar.default()
    return record.to_calendar()


class ScheduleResolver:
    kind = None

    def get_entity(self, entity_id):
        raise NotImplementedError

    def daily_schedule(self, entity_id, **kwargs):
        raise NotImplementedError

    def resolve(self, entity_id, target_date, **kwargs):
        return self.daily_schedule(entity_id, **kwargs)(target_date)


class ClinicScheduleResolver(ScheduleResolver):
    kind = EntityKind.CLINIC

    def get_entity(self, entity_id):
        try:
            return Clinic.objects.alive().get(id=entity_id)
        except Clinic.DoesNotExist:
            raise EntityNotFoundError("Clinic not found.")

    def daily_schedule(self, entity_id):
        clinic = self.get_entity(entity_id)
        return load_calendar(clinic_id=clinic.id).for_date


class PractitionerScheduleResolver(ScheduleResolver):
    kind = EntityKind.PRACTITIONER

    def get_entity(self, entity_id):
        try:
            return DoctorProfile.objects.alive().select_related("user", "clinic").get(user_id=entity_id)
        except DoctorProfile.DoesNotExist:
            raise EntityNotFoundError("Practitioner not found.")

    def daily_schedule(self, entity_id, clinic_id=None):
        """
        Args:
            entity_id: The practitioner's user ID.
            clinic_id: Clinic whose hours take precedence. Defaults to the
                practitioner's own clinic; independent practitioners have none.
        """
        profile = self.get_entity(entity_id)
        own = load_calendar(doctor_id=profile.user_id).for_date

        clinic_id = clinic_id or profile.clinic_id
        if not clinic_id:
            return own

        try:
            clinic_schedule = ClinicScheduleResolver().daily_schedule(clinic_id)
        except EntityNotFoundError:
            logger.info(
                "[SCHEDULE] Clinic %s of doctor_id=%s is gone, ignoring clinic hours",
                clinic_id, entity_id,
            )
            return own

        def resolve_for(target_date):
            schedule = own(target_date)
            clinic_day = clinic_schedule(target_date)
            if clinic_day.is_open:
                return schedule
            return schedule.force_closed(clinic_day.reason or CLINIC_CLOSED_REASON)

        return resolve_for


_RESOLVERS = {
    EntityKind.CLINIC: ClinicScheduleResolver(),
    EntityKind.PRACTITIONER: PractitionerScheduleResolver(),
}


def get_resolver(kind):
    try:
        return _RESOLVERS[EntityKind(kind)]
    except ValueError:
        raise ScheduleValidationError(
            f"Unknown entity kind '{kind}'.",
            errors={"kind": f"Must be one of: {', '.join(EntityKind.values)}."},
        )


def resolve_effective_schedule(kind, entity_id, target_date, clinic_id=None):
    resolver = get_resolver(kind)
    if resolver.kind == EntityKind.PRACTITIONER:
        return resolver.resolve(entity_id, target_date, clinic_id=clinic_id)
    return resolver.resolve(entity_id, target_date)
