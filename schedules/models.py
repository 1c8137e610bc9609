import logging

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from clinics.models import Clinic, SoftDeleteModel, SoftDeleteQuerySet

from .domain import (
    DEFAULT_BUFFER_BETWEEN_SESSIONS,
    DEFAULT_SESSION_DURATION,
    MAX_BUFFER,
    MAX_REASON_LENGTH,
    MAX_SESSION_DURATION,
    MIN_BUFFER,
    MIN_SESSION_DURATION,
    DayOverride,
    ScheduleCalendar,
    TimeInterval,
    WeeklyPattern,
    default_weekly_pattern,
)
from .exceptions import ScheduleValidationError

logger = logging.getLogger(__name__)


def default_weekly_schedule():
    return default_weekly_pattern().to_json()


class EntityKind(models.TextChoices):
    """Entities that own working hours."""

    CLINIC = "clinic", "Clinic"
    PRACTITIONER = "practitioner", "Practitioner"


class OccupancyEntity(models.TextChoices):
    """Entities occupancy can be reported for. Rooms borrow their clinic's hours."""

    CLINIC = "clinic", "Clinic"
    PRACTITIONER = "practitioner", "Practitioner"
    ROOM = "room", "Room"


class WorkingHours(SoftDeleteModel):
    """
    Weekly opening pattern of a clinic or a practitioner.

    `weekly_schedule` stores seven entries:
        [{"day_of_week": 0, "is_open": false, "slots": []},
         {"day_of_week": 1, "is_open": true,
          "slots": [{"start_time": "08:00", "end_time": "18:00"}]}, ...]
    with 0=Sunday. Dated exceptions live in DateOverride.

    At most one live record exists per entity. Entities without a record
    behave as `default_weekly_pattern()`.
    """

    entity_kind = models.CharField(max_length=20, choices=EntityKind.choices)
    clinic = models.ForeignKey(
        Clinic, on_delete=models.CASCADE, null=True, blank=True, related_name="working_hours",
    )
    doctor = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, null=True, blank=True,
        related_name="working_hours",
    )
    weekly_schedule = models.JSONField(default=default_weekly_schedule)
    default_session_duration = models.PositiveIntegerField(
        default=DEFAULT_SESSION_DURATION,
        validators=[MinValueValidator(MIN_SESSION_DURATION), MaxValueValidator(MAX_SESSION_DURATION)],
    )
    buffer_between_sessions = models.PositiveIntegerField(
        default=DEFAULT_BUFFER_BETWEEN_SESSIONS,
        validators=[MinValueValidator(MIN_BUFFER), MaxValueValidator(MAX_BUFFER)],
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = SoftDeleteQuerySet.as_manager()

    class Meta:
        verbose_name = "Working Hours"
        verbose_name_plural = "Working Hours"
        constraints = [
            models.UniqueConstraint(
                fields=["clinic"],
                condition=models.Q(deleted_at__isnull=True, clinic__isnull=False),
                name="unique_live_working_hours_per_clinic",
            ),
            models.UniqueConstraint(
                fields=["doctor"],
                condition=models.Q(deleted_at__isnull=True, doctor__isnull=False),
                name="unique_live_working_hours_per_doctor",
            ),
        ]

    def __str__(self):
        owner = self.clinic if self.entity_kind == EntityKind.CLINIC else self.doctor
        return f"Working hours of {self.get_entity_kind_display().lower()} {owner}"

    @property
    def entity_id(self):
        return self.clinic_id if self.entity_kind == EntityKind.CLINIC else self.doctor_id

    def clean(self):
        if self.entity_kind == EntityKind.CLINIC and (not self.clinic_id or self.doctor_id):
            raise ValidationError("Clinic working hours must reference a clinic and no doctor.")
        if self.entity_kind == EntityKind.PRACTITIONER and (not self.doctor_id or self.clinic_id):
            raise ValidationError("Practitioner working hours must reference a doctor and no clinic.")
        try:
            WeeklyPattern.from_json(self.weekly_schedule)
        except ScheduleValidationError as e:
            raise ValidationError({"weekly_schedule": e.errors.get("weekly_schedule", e.message)})

    def save(self, *args, **kwargs):
        # one-live-record is left to the database so get_or_create can recover from a race
        self.full_clean(validate_constraints=False)
        super().save(*args, **kwargs)

    def to_calendar(self):
        """
        Parse the stored record into a ScheduleCalendar.

        Rows written outside the validated paths may be malformed; those
        resolve under the default weekly pattern instead of failing reads.
        """
        try:
            weekly = WeeklyPattern.from_json(self.weekly_schedule)
            overrides = {
                override.date: override.to_domain() for override in self.date_overrides.all()
            }
        except ScheduleValidationError as e:
            logger.warning(
                "[SCHEDULE] Malformed working hours id=%s kind=%s entity_id=%s, using default: %s",
                self.pk, self.entity_kind, self.entity_id, e.message,
            )
            weekly, overrides = default_weekly_pattern(), {}

        return ScheduleCalendar(
            weekly=weekly,
            overrides=overrides,
            default_session_duration=self.default_session_duration,
            buffer_between_sessions=self.buffer_between_sessions,
        )


class DateOverride(models.Model):
    """A dated exception that replaces the weekly pattern for one day."""

    working_hours = models.ForeignKey(
        WorkingHours, on_delete=models.CASCADE, related_name="date_overrides",
    )
    date = models.DateField()
    is_open = models.BooleanField(default=False)
    slots = models.JSONField(default=list, blank=True)
    reason = models.CharField(max_length=MAX_REASON_LENGTH, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["date"]
        constraints = [
            models.UniqueConstraint(
                fields=["working_hours", "date"],
                name="unique_override_per_date",
            )
        ]

    def __str__(self):
        state = "open" if self.is_open else "closed"
        return f"{self.date} ({state}) {self.reason}".strip()

    def clean(self):
        try:
            self.to_domain()
        except ScheduleValidationError as e:
            raise ValidationError({"slots": e.message})

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)

    def to_domain(self):
        if not isinstance(self.slots, list):
            raise ScheduleValidationError("Override slots must be a list.")
        intervals = tuple(TimeInterval.from_dict(item) for item in self.slots) if self.is_open else ()
        return DayOverride(is_open=self.is_open, intervals=intervals, reason=self.reason)
