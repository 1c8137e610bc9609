from datetime import datetime, timedelta

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from clinics.models import Clinic, Room, SoftDeleteModel, SoftDeleteQuerySet


class AppointmentQuerySet(SoftDeleteQuerySet):
    def blocking(self):
        """Bookings that occupy time: anything live and not cancelled."""
        return self.alive().exclude(status=Appointment.Status.CANCELLED)


class Appointment(SoftDeleteModel):
    """Core appointment booking record."""

    class Status(models.TextChoices):
        SCHEDULED = "SCHEDULED", "Scheduled"
        CONFIRMED = "CONFIRMED", "Confirmed"
        AWAITING_PATIENT = "AWAITING_PATIENT", "Awaiting Patient"
        AWAITING_PRACTITIONER = "AWAITING_PRACTITIONER", "Awaiting Practitioner"
        COMPLETED = "COMPLETED", "Completed"
        CANCELLED = "CANCELLED", "Cancelled"

    class Type(models.TextChoices):
        ONLINE = "ONLINE", "Online"
        IN_PERSON = "IN_PERSON", "In Person"

    DEFAULT_DURATION = 50

    patient = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="appointments_as_patient",
    )
    doctor = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
        related_name="appointments_as_doctor",
    )
    clinic = models.ForeignKey(
        Clinic, on_delete=models.SET_NULL, null=True, blank=True, related_name="appointments",
    )
    room = models.ForeignKey(
        Room, on_delete=models.SET_NULL, null=True, blank=True, related_name="appointments",
    )
    appointment_date = models.DateField()
    appointment_time = models.TimeField()
    duration_minutes = models.PositiveIntegerField(
        default=DEFAULT_DURATION,
        validators=[MinValueValidator(15), MaxValueValidator(240)],
    )
    status = models.CharField(max_length=30, choices=Status.choices, default=Status.SCHEDULED)
    type = models.CharField(max_length=20, choices=Type.choices, default=Type.IN_PERSON)
    notes = models.TextField(blank=True, max_length=1000)
    cancelled_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
        related_name="appointments_cancelled",
    )
    cancelled_reason = models.TextField(blank=True, max_length=500)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
        related_name="appointments_created",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = AppointmentQuerySet.as_manager()

    class Meta:
        ordering = ["-appointment_date", "-appointment_time"]
        verbose_name = "Appointment"
        verbose_name_plural = "Appointments"
        indexes = [
            models.Index(fields=["doctor", "appointment_date"], name="appt_doctor_date_idx"),
            models.Index(fields=["room", "appointment_date"], name="appt_room_date_idx"),
            models.Index(fields=["clinic", "appointment_date"], name="appt_clinic_date_idx"),
        ]

    def __str__(self):
        return f"{self.patient.name} on {self.appointment_date} {self.appointment_time:%H:%M}"

    def clean(self):
        if self.room_id and self.clinic_id and self.room.clinic_id != self.clinic_id:
            raise ValidationError({"room": "Room does not belong to the appointment's clinic."})
        if self.type == self.Type.ONLINE and self.room_id:
            raise ValidationError({"room": "Online appointments cannot reserve a room."})
        if self.appointment_time and self.duration_minutes and self.end_minutes > 24 * 60:
            raise ValidationError({"duration_minutes": "Appointment must end on the day it starts."})

    # ── Interval helpers ─────────────────────────────────────────────

    @property
    def start_minutes(self):
        return self.appointment_time.hour * 60 + self.appointment_time.minute

    @property
    def end_minutes(self):
        return self.start_minutes + self.duration_minutes

    @property
    def start_datetime(self):
        return datetime.combine(self.appointment_date, self.appointment_time)

    @property
    def end_datetime(self):
        return self.start_datetime + timedelta(minutes=self.duration_minutes)

    @property
    def is_blocking(self):
        return self.deleted_at is None and self.status != self.Status.CANCELLED
