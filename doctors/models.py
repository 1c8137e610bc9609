from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from clinics.models import Clinic, SoftDeleteModel, SoftDeleteQuerySet


class DoctorProfileQuerySet(SoftDeleteQuerySet):
    def for_clinic(self, clinic_id):
        return self.alive().filter(clinic_id=clinic_id, user__is_active=True)


class DoctorProfile(SoftDeleteModel):
    """
    Scheduling profile for practitioner users (DOCTOR role).

        CustomUser (auth/identity) ← OneToOne → DoctorProfile (scheduling data)

    Practitioners are addressed by their user id everywhere in the
    scheduling engine (`doctor_id`), the profile only carries the clinic
    link and the preferred session length.
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="doctor_profile",
        limit_choices_to={"role": "DOCTOR"},
    )
    clinic = models.ForeignKey(
        Clinic,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="practitioners",
        help_text="Leave empty for independent practitioners.",
    )
    bio = models.TextField(blank=True)
    preferred_session_duration = models.PositiveIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(15), MaxValueValidator(240)],
        help_text="Session length in minutes. Overrides the schedule default when set.",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    objects = DoctorProfileQuerySet.as_manager()

    class Meta:
        verbose_name = "Doctor Profile"
        verbose_name_plural = "Doctor Profiles"

    def __str__(self):
        return f"Dr. {self.user.name}"

    def clean(self):
        if self.user_id and not self.user.is_practitioner:
            raise ValidationError({"user": "Only users with the DOCTOR role can have a doctor profile."})

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)

    @property
    def doctor_id(self):
        return self.user_id
