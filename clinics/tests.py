"""
Tests for clinics and rooms.

Covers:
- Room model helpers (soft delete, activation, clinic membership)
- Rooms API (list, create, delete)
- Clinic dashboard, including the occupancy failure fallback
"""

from datetime import date, time
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.db import IntegrityError
from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from appointments.models import Appointment
from clinics.models import Clinic, Room
from doctors.models import DoctorProfile
from schedules.exceptions import OccupancyError

User = get_user_model()


class ClinicTestMixin:

    def setUp(self):
        self.admin = User.objects.create_user(
            phone="0591000001",
            password="testpass123",
            name="Clinic Admin",
            role="CLINIC_ADMIN",
        )
        self.doctor = User.objects.create_user(
            phone="0591000002",
            password="testpass123",
            name="Dr. Ahmad",
            role="DOCTOR",
        )
        self.patient = User.objects.create_user(
            phone="0591000003",
            password="testpass123",
            name="Patient Ali",
            role="PATIENT",
        )
        self.clinic = Clinic.objects.create(
            name="Test Clinic",
            address="Test Address",
            phone="0591111111",
            email="test@clinic.com",
        )
        self.room = Room.objects.create(clinic=self.clinic, name="Room A", number="1")
        DoctorProfile.objects.create(user=self.doctor, clinic=self.clinic)


class RoomModelTests(ClinicTestMixin, TestCase):

    def test_soft_delete_also_deactivates(self):
        self.room.soft_delete()
        self.room.refresh_from_db()

        self.assertTrue(self.room.is_deleted)
        self.assertFalse(self.room.is_active)
        self.assertFalse(Room.objects.alive().filter(id=self.room.id).exists())

    def test_restore_clinic(self):
        self.clinic.soft_delete()
        self.assertFalse(Clinic.objects.alive().filter(id=self.clinic.id).exists())

        self.clinic.restore()
        self.assertTrue(Clinic.objects.active().filter(id=self.clinic.id).exists())

    def test_deactivated_room_stays_alive(self):
        self.room.deactivate()
        self.assertTrue(Room.objects.alive().filter(id=self.room.id).exists())
        self.assertFalse(Room.objects.active().filter(id=self.room.id).exists())

        self.room.activate()
        self.assertEqual(Room.count_active_by_clinic(self.clinic.id), 1)

    def test_belongs_to_clinic(self):
        other = Clinic.objects.create(name="Other Clinic")
        self.assertTrue(Room.belongs_to_clinic(self.room.id, self.clinic.id))
        self.assertFalse(Room.belongs_to_clinic(self.room.id, other.id))

    def test_name_reusable_after_soft_delete(self):
        self.room.soft_delete()
        Room.objects.create(clinic=self.clinic, name="Room A")

        with self.assertRaises(IntegrityError):
            Room.objects.create(clinic=self.clinic, name="Room A")


class RoomAPITests(ClinicTestMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.client.force_authenticate(user=self.admin)
        self.url = reverse("clinics:api_rooms", args=[self.clinic.id])

    def test_list_rooms(self):
        Room.objects.create(clinic=self.clinic, name="Room B", is_active=False)

        response = self.client.get(self.url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["active_count"], 1)
        self.assertEqual([r["name"] for r in response.data["results"]], ["Room A", "Room B"])

    def test_create_room(self):
        response = self.client.post(self.url, {"name": "Room C", "number": "3", "capacity": 4}, format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["clinic"], self.clinic.id)
        self.assertTrue(Room.objects.filter(clinic=self.clinic, name="Room C").exists())

    def test_duplicate_name_rejected(self):
        response = self.client.post(self.url, {"name": "room a"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("name", response.data)

    def test_capacity_bounds(self):
        response = self.client.post(self.url, {"name": "Big Room", "capacity": 11}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_delete_room(self):
        detail = reverse("clinics:api_room_detail", args=[self.clinic.id, self.room.id])
        self.assertEqual(self.client.delete(detail).status_code, status.HTTP_204_NO_CONTENT)
        self.assertEqual(self.client.delete(detail).status_code, status.HTTP_404_NOT_FOUND)

    def test_delete_room_of_other_clinic(self):
        other = Clinic.objects.create(name="Other Clinic")
        detail = reverse("clinics:api_room_detail", args=[other.id, self.room.id])
        self.assertEqual(self.client.delete(detail).status_code, status.HTTP_404_NOT_FOUND)

    def test_unknown_clinic(self):
        response = self.client.get(reverse("clinics:api_rooms", args=[99999]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class ClinicDashboardTests(ClinicTestMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.client.force_authenticate(user=self.admin)
        self.url = reverse("clinics:api_dashboard", args=[self.clinic.id])
        self.range = {"start_date": "2024-01-08", "end_date": "2024-01-12"}

        for hour, status_value in (
            (8, Appointment.Status.COMPLETED),
            (10, Appointment.Status.SCHEDULED),
            (12, Appointment.Status.CANCELLED),
        ):
            Appointment.objects.create(
                patient=self.patient,
                doctor=self.doctor,
                clinic=self.clinic,
                appointment_date=date(2024, 1, 8),
                appointment_time=time(hour, 0),
                duration_minutes=60,
                status=status_value,
            )

    def test_dashboard_figures(self):
        response = self.client.get(self.url, self.range)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["total_practitioners"], 1)
        self.assertEqual(response.data["active_rooms"], 1)
        self.assertEqual(response.data["total_appointments"], 2)
        self.assertEqual(response.data["completed_appointments"], 1)
        self.assertEqual(response.data["cancelled_appointments"], 1)
        self.assertEqual(response.data["occupancy_rate"], 4)
        self.assertTrue(response.data["occupancy_available"])

    def test_dashboard_defaults_to_current_month(self):
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["period"]["start_date"].endswith("-01"))

    def test_dashboard_survives_occupancy_failure(self):
        with patch("clinics.api_views.calculate_occupancy", side_effect=OccupancyError()):
            with self.assertLogs("clinics.api_views", level="ERROR"):
                response = self.client.get(self.url, self.range)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["occupancy_rate"], 0)
        self.assertFalse(response.data["occupancy_available"])
        self.assertEqual(response.data["total_appointments"], 2)

    def test_dashboard_rejects_bad_range(self):
        response = self.client.get(self.url, {"start_date": "2024-01-12", "end_date": "2024-01-08"})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
