from django.test import TestCase

from accounts.models import CustomUser


class CustomUserManagerTest(TestCase):
    """Phone is the login identifier"""

    def test_create_user(self):
        user = CustomUser.objects.create_user(
            phone=" 0594073157 ",
            password="TestPass123!@#",
            name="Test User",
        )
        self.assertEqual(user.phone, "0594073157")
        self.assertEqual(user.role, CustomUser.Role.PATIENT)
        self.assertTrue(user.check_password("TestPass123!@#"))
        self.assertFalse(user.is_staff)
        self.assertFalse(user.is_practitioner)
        self.assertEqual(user.get_full_name(), "Test User")

    def test_phone_required(self):
        with self.assertRaises(ValueError):
            CustomUser.objects.create_user(phone="", password="x")

    def test_create_superuser(self):
        admin = CustomUser.objects.create_superuser(phone="0594073158", password="x", name="Admin")
        self.assertTrue(admin.is_superuser)
        self.assertEqual(admin.role, CustomUser.Role.CLINIC_ADMIN)

        with self.assertRaises(ValueError):
            CustomUser.objects.create_superuser(phone="0594073159", password="x", is_staff=False)

    def test_practitioners(self):
        doctor = CustomUser.objects.create_user(phone="0594073160", name="Dr. Ahmad", role="DOCTOR")
        CustomUser.objects.create_user(phone="0594073161", name="Dr. Away", role="DOCTOR", is_active=False)
        CustomUser.objects.create_user(phone="0594073162", name="Patient Ali")

        self.assertEqual(list(CustomUser.objects.practitioners()), [doctor])
        self.assertTrue(doctor.is_practitioner)
