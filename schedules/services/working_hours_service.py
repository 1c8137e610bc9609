"""
Working-hours store.

Every write is a whole-record replace performed inside a transaction with
the record row locked, so concurrent edits of the same entity serialize
instead of silently overwriting each other.
"""

import logging

from django.db import transaction

from ..domain import DayOverride, TimeInterval, WeeklyPattern, parse_date
from ..exceptions import ScheduleValidationError
from ..models import DateOverride, EntityKind, WorkingHours
from ..resolvers import get_resolver

logger = logging.getLogger(__name__)


def _owner_lookup(kind, entity_id):
    """Validate the entity exists and return the WorkingHours owner filter."""
    resolver = get_resolver(kind)
    entity = resolver.get_entity(entity_id)
    if resolver.kind == EntityKind.CLINIC:
        return {"entity_kind": EntityKind.CLINIC, "clinic_id": entity.id}
    return {"entity_kind": EntityKind.PRACTITIONER, "doctor_id": entity.user_id}


def get_or_create_working_hours(kind, entity_id):
    """Return the live record of an entity, creating it with defaults on first access."""
    owner = _owner_lookup(kind, entity_id)
    record, created = WorkingHours.objects.alive().get_or_create(**owner)
    if created:
        logger.info("[SCHEDULE] Created default working hours kind=%s entity_id=%s", kind, entity_id)
    return record


def _locked_record(kind, entity_id):
    record = get_or_create_working_hours(kind, entity_id)
    return WorkingHours.objects.select_for_update().get(pk=record.pk)


def update_working_hours(kind, entity_id, *, weekly_schedule=None, default_session_duration=None,
                         buffer_between_sessions=None):
    """
    Replace the weekly pattern and/or session settings of an entity.

    The weekly pattern is validated as a whole: a single bad day rejects
    the write and nothing is stored.
    """
    pattern = WeeklyPattern.from_json(weekly_schedule) if weekly_schedule is not None else None

    with transaction.atomic():
        record = _locked_record(kind, entity_id)
        if pattern is not None:
            record.weekly_schedule = pattern.to_json()
        if default_session_duration is not None:
            record.default_session_duration = default_session_duration
        if buffer_between_sessions is not None:
            record.buffer_between_sessions = buffer_between_sessions
        record.save()

    logger.info(
        "[SCHEDULE] Updated working hours kind=%s entity_id=%s duration=%s buffer=%s",
        kind, entity_id, record.default_session_duration, record.buffer_between_sessions,
    )
    return record


def add_date_override(kind, entity_id, target_date, *, is_open=False, slots=None, reason=""):
    """Add an override for `target_date`, replacing any existing one for that date."""
    target_date = parse_date(target_date)
    slots = slots or []
    intervals = tuple(TimeInterval.from_dict(item) for item in slots) if is_open else ()
    override = DayOverride(is_open=is_open, intervals=intervals, reason=reason or "")
    if len(override.reason) > DateOverride._meta.get_field("reason").max_length:
        raise ScheduleValidationError(
            "Override reason is too long.",
            errors={"reason": "Ensure this field has no more than 200 characters."},
        )

    with transaction.atomic():
        record = _locked_record(kind, entity_id)
        date_override, _ = DateOverride.objects.update_or_create(
            working_hours=record,
            date=target_date,
            defaults={
                "is_open": override.is_open,
                "slots": [interval.to_dict() for interval in override.intervals],
                "reason": override.reason,
            },
        )

    logger.info(
        "[SCHEDULE] Override set kind=%s entity_id=%s date=%s is_open=%s",
        kind, entity_id, target_date, is_open,
    )
    return date_override


def remove_date_override(kind, entity_id, target_date):
    """Returns True when an override existed for `target_date` and was removed."""
    target_date = parse_date(target_date)
    with transaction.atomic():
        record = _locked_record(kind, entity_id)
        deleted, _ = DateOverride.objects.filter(working_hours=record, date=target_date).delete()

    if deleted:
        logger.info("[SCHEDULE] Override removed kind=%s entity_id=%s date=%s", kind, entity_id, target_date)
    return bool(deleted)


def reset_working_hours(kind, entity_id):
    """
    Soft-delete the entity's record so it falls back to the default
    pattern. Returns False when there was nothing to reset.
    """
    owner = _owner_lookup(kind, entity_id)
    with transaction.atomic():
        record = WorkingHours.objects.alive().select_for_update().filter(**owner).first()
        if record is None:
            return False
        record.soft_delete()

    logger.info("[SCHEDULE] Working hours reset to default kind=%s entity_id=%s", kind, entity_id)
    return True
