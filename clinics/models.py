from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone


class SoftDeleteQuerySet(models.QuerySet):
    """
    Query helpers shared by every soft-deletable model.

    `alive()` is the single "not removed" predicate; call sites never
    filter on `deleted_at` directly.
    """

    def alive(self):
        return self.filter(deleted_at__isnull=True)


class ActiveQuerySet(SoftDeleteQuerySet):
    """For models that can also be switched off without being removed."""

    def active(self):
        return self.alive().filter(is_active=True)


class SoftDeleteModel(models.Model):
    """Abstract base: reversible removal through a `deleted_at` tombstone."""

    deleted_at = models.DateTimeField(null=True, blank=True, db_index=True)

    class Meta:
        abstract = True

    @property
    def is_deleted(self):
        return self.deleted_at is not None

    def soft_delete(self):
        self.deleted_at = timezone.now()
        self.save(update_fields=["deleted_at"])

    def restore(self):
        self.deleted_at = None
        self.save(update_fields=["deleted_at"])


class Clinic(SoftDeleteModel):
    """Clinic model - groups practitioners and the rooms they share"""

    name = models.CharField(max_length=255)
    address = models.TextField(blank=True)
    phone = models.CharField(max_length=20, blank=True)
    email = models.EmailField(blank=True)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    is_active = models.BooleanField(default=True)

    objects = ActiveQuerySet.as_manager()

    def __str__(self):
        return self.name

    class Meta:
        ordering = ["-created_at"]


class Room(SoftDeleteModel):
    """
    A physical consultation room inside a clinic.

    Rooms have no working hours of their own: they borrow the parent
    clinic's schedule. A room is bookable only while it is active and
    not soft-deleted.
    """

    clinic = models.ForeignKey(
        Clinic, on_delete=models.CASCADE, related_name="rooms"
    )
    name = models.CharField(max_length=100)
    number = models.CharField(max_length=20, blank=True)
    description = models.TextField(max_length=500, blank=True)
    capacity = models.PositiveIntegerField(
        default=2,
        validators=[MinValueValidator(1), MaxValueValidator(10)],
        help_text="How many people fit in the room.",
    )
    is_active = models.BooleanField(
        default=True,
        help_text="Temporarily take the room out of service without deleting it.",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    objects = ActiveQuerySet.as_manager()

    class Meta:
        ordering = ["name"]
        constraints = [
            models.UniqueConstraint(
                fields=["clinic", "name"],
                condition=models.Q(deleted_at__isnull=True),
                name="unique_live_room_name_per_clinic",
            )
        ]
        indexes = [
            models.Index(fields=["clinic", "is_active"], name="room_clinic_active_idx"),
        ]

    def __str__(self):
        label = f"{self.name} #{self.number}" if self.number else self.name
        return f"{label} @ {self.clinic.name}"

    def soft_delete(self):
        self.deleted_at = timezone.now()
        self.is_active = False
        self.save(update_fields=["deleted_at", "is_active"])

    def activate(self):
        self.is_active = True
        self.save(update_fields=["is_active"])

    def deactivate(self):
        self.is_active = False
        self.save(update_fields=["is_active"])

    @classmethod
    def belongs_to_clinic(cls, room_id, clinic_id):
        return cls.objects.alive().filter(id=room_id, clinic_id=clinic_id).exists()

    @classmethod
    def count_active_by_clinic(cls, clinic_id):
        return cls.objects.active().filter(clinic_id=clinic_id).count()
