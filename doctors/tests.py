from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.test import TestCase

from clinics.models import Clinic
from doctors.models import DoctorProfile

User = get_user_model()


class DoctorProfileTests(TestCase):

    def setUp(self):
        self.clinic = Clinic.objects.create(name="Test Clinic")
        self.doctor = User.objects.create_user(
            phone="0591000001",
            password="testpass123",
            name="Dr. Ahmad",
            role="DOCTOR",
        )

    def test_profile_for_doctor(self):
        profile = DoctorProfile.objects.create(user=self.doctor, clinic=self.clinic)
        self.assertEqual(profile.doctor_id, self.doctor.id)
        self.assertEqual(list(DoctorProfile.objects.for_clinic(self.clinic.id)), [profile])

    def test_only_doctors_get_profiles(self):
        patient = User.objects.create_user(
            phone="0591000002",
            password="testpass123",
            name="Patient Ali",
            role="PATIENT",
        )
        with self.assertRaises(ValidationError):
            DoctorProfile.objects.create(user=patient)

    def test_session_duration_bounds(self):
        with self.assertRaises(ValidationError):
            DoctorProfile.objects.create(user=self.doctor, preferred_session_duration=10)

    def test_soft_deleted_profile_leaves_clinic_listing(self):
        profile = DoctorProfile.objects.create(user=self.doctor, clinic=self.clinic)
        profile.soft_delete()
        self.assertFalse(DoctorProfile.objects.for_clinic(self.clinic.id).exists())
