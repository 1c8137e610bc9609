from django.contrib.auth.models import AbstractUser, BaseUserManager
from django.db import models


class CustomUserManager(BaseUserManager):
    """Users log in with their phone number; there is no username."""

    def _create_user(self, phone, password, **extra_fields):
        if not phone:
            raise ValueError("A phone number is required")
        user = self.model(phone=phone.strip(), **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_user(self, phone, password=None, **extra_fields):
        extra_fields.setdefault("is_staff", False)
        extra_fields.setdefault("is_superuser", False)
        return self._create_user(phone, password, **extra_fields)

    def create_superuser(self, phone, password=None, **extra_fields):
        extra_fields.setdefault("is_staff", True)
        extra_fields.setdefault("is_superuser", True)
        extra_fields.setdefault("role", CustomUser.Role.CLINIC_ADMIN)
        if not (extra_fields["is_staff"] and extra_fields["is_superuser"]):
            raise ValueError("A superuser needs is_staff and is_superuser set.")
        return self._create_user(phone, password, **extra_fields)

    def practitioners(self):
        return self.filter(role=CustomUser.Role.DOCTOR, is_active=True)


class CustomUser(AbstractUser):
    """
    Identity record shared by patients, practitioners and clinic staff.

    Credentials and permissions are managed outside the scheduling engine;
    the engine only reads `name` for display and `role` to recognise
    practitioners.
    """

    class Role(models.TextChoices):
        PATIENT = "PATIENT", "Patient"
        DOCTOR = "DOCTOR", "Doctor"
        CLINIC_ADMIN = "CLINIC_ADMIN", "Clinic Admin"
        SECRETARY = "SECRETARY", "Secretary"

    username = None
    first_name = None
    last_name = None
    email = models.EmailField(blank=True, null=True)

    name = models.CharField(max_length=255)
    phone = models.CharField(max_length=20, unique=True)
    role = models.CharField(max_length=20, choices=Role.choices, default=Role.PATIENT)

    USERNAME_FIELD = "phone"
    REQUIRED_FIELDS = ["name"]

    objects = CustomUserManager()

    class Meta:
        verbose_name = "User"
        verbose_name_plural = "Users"

    def __str__(self):
        return f"{self.name} <{self.phone}>"

    @property
    def is_practitioner(self):
        return self.role == self.Role.DOCTOR

    def get_full_name(self):
        return self.name

    def get_short_name(self):
        return self.name
