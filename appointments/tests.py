"""
Tests for appointment booking.

Covers:
- Conflict detection (half-open overlap, practitioner and room calendars)
- Booking service (happy path, duration defaults, validations)
- Reschedule and cancel
- API endpoints (book, reschedule, cancel)
"""

from datetime import time, timedelta
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from appointments.conflicts import check_booking_conflict, has_conflict, intervals_overlap
from appointments.models import Appointment
from appointments.services import (
    AppointmentNotFoundError,
    BookingError,
    InvalidRoomError,
    OutsideWorkingHoursError,
    PastDateError,
    SlotUnavailableError,
    book_appointment,
    cancel_appointment,
    reschedule_appointment,
)
from clinics.models import Clinic, Room
from doctors.models import DoctorProfile
from schedules.services import add_date_override, update_working_hours

User = get_user_model()

STRICT_HOURS = {"MAX_OCCUPANCY_RANGE_DAYS": 366, "ALLOW_OFF_HOURS_BOOKING": False}


class BookingTestMixin:
    """Shared setup for booking tests."""

    def setUp(self):
        # Users
        self.doctor = User.objects.create_user(
            phone="0591000001",
            password="testpass123",
            name="Dr. Ahmad",
            role="DOCTOR",
        )
        self.doctor2 = User.objects.create_user(
            phone="0591000002",
            password="testpass123",
            name="Dr. Lina",
            role="DOCTOR",
        )
        self.patient = User.objects.create_user(
            phone="0591000003",
            password="testpass123",
            name="Patient Ali",
            role="PATIENT",
        )
        self.patient2 = User.objects.create_user(
            phone="0591000004",
            password="testpass123",
            name="Patient Sara",
            role="PATIENT",
        )

        # Clinic with two rooms
        self.clinic = Clinic.objects.create(
            name="Test Clinic",
            address="Test Address",
            phone="0591111111",
            email="test@clinic.com",
        )
        self.other_clinic = Clinic.objects.create(name="Other Clinic")
        self.room = Room.objects.create(clinic=self.clinic, name="Room A", number="1")
        self.room2 = Room.objects.create(clinic=self.clinic, name="Room B", number="2")
        self.foreign_room = Room.objects.create(clinic=self.other_clinic, name="Room X")

        self.profile = DoctorProfile.objects.create(user=self.doctor, clinic=self.clinic)
        self.profile2 = DoctorProfile.objects.create(user=self.doctor2, clinic=self.clinic)

        # Find next Monday for consistent test dates
        today = timezone.localdate()
        days_ahead = 0 - today.weekday()  # Monday is 0
        if days_ahead <= 0:
            days_ahead += 7
        self.next_monday = today + timedelta(days=days_ahead)

    def book(self, **kwargs):
        params = {
            "patient": self.patient,
            "doctor_id": self.doctor.id,
            "appointment_date": self.next_monday,
            "appointment_time": time(10, 0),
        }
        params.update(kwargs)
        return book_appointment(**params)


# ═══════════════════════════════════════════════════════════════════
#  Conflict detection
# ═══════════════════════════════════════════════════════════════════


class IntervalOverlapTests(TestCase):

    def test_half_open_overlap(self):
        self.assertTrue(intervals_overlap(600, 650, 620, 700))
        self.assertTrue(intervals_overlap(600, 700, 620, 640))
        self.assertFalse(intervals_overlap(600, 650, 650, 700))
        self.assertFalse(intervals_overlap(650, 700, 600, 650))


class ConflictCheckTests(BookingTestMixin, TestCase):

    def test_abutting_booking_is_not_a_conflict(self):
        self.book(appointment_time=time(10, 0))
        self.assertFalse(has_conflict(self.next_monday, 650, 700, doctor_id=self.doctor.id))
        self.assertTrue(has_conflict(self.next_monday, 640, 700, doctor_id=self.doctor.id))

    def test_practitioner_checked_before_room(self):
        self.book(appointment_time=time(10, 0), room_id=self.room.id)

        conflict = check_booking_conflict(
            self.next_monday, 600, 650, doctor_id=self.doctor.id, room_id=self.room.id,
        )
        self.assertEqual(conflict.kind, "practitioner")

        conflict = check_booking_conflict(
            self.next_monday, 600, 650, doctor_id=self.doctor2.id, room_id=self.room.id,
        )
        self.assertEqual(conflict.kind, "room")
        self.assertEqual(conflict.message, "The room is already booked at this time.")

    def test_excluded_appointment_is_ignored(self):
        appointment = self.book()
        self.assertIsNone(
            check_booking_conflict(
                self.next_monday, 600, 650,
                doctor_id=self.doctor.id,
                exclude_appointment_id=appointment.id,
            )
        )

    def test_other_day_does_not_conflict(self):
        self.book()
        tuesday = self.next_monday + timedelta(days=1)
        self.assertFalse(has_conflict(tuesday, 600, 650, doctor_id=self.doctor.id))


# ═══════════════════════════════════════════════════════════════════
#  Service Layer Tests
# ═══════════════════════════════════════════════════════════════════


class BookingServiceTests(BookingTestMixin, TestCase):
    """Tests for the book_appointment service function."""

    def test_successful_booking(self):
        """Happy path: patient books a free slot in a room."""
        appointment = self.book(room_id=self.room.id, notes="First session")

        self.assertIsNotNone(appointment.id)
        self.assertEqual(appointment.patient, self.patient)
        self.assertEqual(appointment.doctor, self.doctor)
        self.assertEqual(appointment.clinic, self.clinic)
        self.assertEqual(appointment.room, self.room)
        self.assertEqual(appointment.status, Appointment.Status.SCHEDULED)
        self.assertEqual(appointment.created_by, self.patient)
        self.assertEqual(appointment.notes, "First session")

    def test_duration_defaults_to_schedule(self):
        self.assertEqual(self.book().duration_minutes, 50)

    def test_duration_prefers_practitioner_setting(self):
        self.profile.preferred_session_duration = 30
        self.profile.save()
        self.assertEqual(self.book().duration_minutes, 30)
        self.assertEqual(self.book(appointment_time=time(11, 0), duration_minutes=60).duration_minutes, 60)

    def test_duration_uses_customised_schedule_default(self):
        update_working_hours("practitioner", self.doctor.id, default_session_duration=45)
        self.assertEqual(self.book().duration_minutes, 45)

    def test_practitioner_double_booking_rejected(self):
        self.book()

        with self.assertRaises(SlotUnavailableError) as ctx:
            self.book(patient=self.patient2, appointment_time=time(10, 30))
        self.assertEqual(ctx.exception.code, "slot_unavailable")
        self.assertIn("practitioner", ctx.exception.message)

    def test_room_double_booking_rejected(self):
        self.book(room_id=self.room.id)

        with self.assertRaises(SlotUnavailableError) as ctx:
            self.book(doctor_id=self.doctor2.id, patient=self.patient2, room_id=self.room.id)
        self.assertIn("room", ctx.exception.message)

        # same time, other room is fine
        appointment = self.book(doctor_id=self.doctor2.id, patient=self.patient2, room_id=self.room2.id)
        self.assertEqual(appointment.room, self.room2)

    def test_back_to_back_bookings_allowed(self):
        self.book(appointment_time=time(10, 0))
        appointment = self.book(appointment_time=time(10, 50), patient=self.patient2)
        self.assertEqual(appointment.start_minutes, 650)

    def test_cancelled_slot_can_be_rebooked(self):
        first = self.book()
        cancel_appointment(appointment_id=first.id, cancelled_by=self.patient)

        second = self.book(patient=self.patient2)
        self.assertNotEqual(first.id, second.id)

    def test_past_date_rejected(self):
        with self.assertRaises(PastDateError):
            self.book(appointment_date=timezone.localdate() - timedelta(days=1))

    def test_unknown_practitioner(self):
        with self.assertRaises(BookingError) as ctx:
            self.book(doctor_id=self.patient2.id)
        self.assertEqual(ctx.exception.code, "invalid_practitioner")

    def test_room_must_be_usable(self):
        inactive = Room.objects.create(clinic=self.clinic, name="Closed Room", is_active=False)
        for room_id in (self.foreign_room.id, inactive.id, 99999):
            with self.subTest(room_id=room_id):
                with self.assertRaises(InvalidRoomError):
                    self.book(room_id=room_id)

    def test_online_appointment_cannot_take_room(self):
        with self.assertRaises(InvalidRoomError):
            self.book(room_id=self.room.id, appointment_type=Appointment.Type.ONLINE)

    def test_independent_practitioner_cannot_take_room(self):
        self.profile.clinic = None
        self.profile.save()
        with self.assertRaises(InvalidRoomError):
            self.book(room_id=self.room.id)

    def test_booking_must_end_same_day(self):
        with self.assertRaises(BookingError) as ctx:
            self.book(appointment_time=time(23, 30))
        self.assertEqual(ctx.exception.code, "invalid_time")

    def test_off_hours_booking_allowed_by_default(self):
        appointment = self.book(appointment_time=time(7, 0))
        self.assertEqual(appointment.appointment_time, time(7, 0))

    @override_settings(SCHEDULING=STRICT_HOURS)
    def test_off_hours_booking_rejected_when_disabled(self):
        with self.assertRaises(OutsideWorkingHoursError):
            self.book(appointment_time=time(7, 0))
        with self.assertRaises(OutsideWorkingHoursError):
            self.book(appointment_time=time(17, 30))
        with self.assertRaises(OutsideWorkingHoursError):
            self.book(appointment_date=self.next_monday + timedelta(days=6))

        self.assertIsNotNone(self.book(appointment_time=time(17, 10)).id)

    @override_settings(SCHEDULING=STRICT_HOURS)
    def test_closed_override_blocks_booking_when_strict(self):
        add_date_override("practitioner", self.doctor.id, self.next_monday, is_open=False, reason="Leave")
        with self.assertRaises(OutsideWorkingHoursError):
            self.book()


class RescheduleCancelTests(BookingTestMixin, TestCase):

    def test_reschedule_within_own_slot(self):
        appointment = self.book(appointment_time=time(10, 0))

        moved = reschedule_appointment(
            appointment_id=appointment.id,
            appointment_date=self.next_monday,
            appointment_time=time(10, 20),
        )
        self.assertEqual(moved.appointment_time, time(10, 20))
        self.assertEqual(moved.duration_minutes, 50)

    def test_reschedule_into_taken_slot(self):
        appointment = self.book(appointment_time=time(10, 0))
        self.book(appointment_time=time(12, 0), patient=self.patient2)

        with self.assertRaises(SlotUnavailableError):
            reschedule_appointment(
                appointment_id=appointment.id,
                appointment_date=self.next_monday,
                appointment_time=time(11, 30),
            )
        appointment.refresh_from_db()
        self.assertEqual(appointment.appointment_time, time(10, 0))

    def test_reschedule_keeps_or_releases_room(self):
        appointment = self.book(room_id=self.room.id)

        moved = reschedule_appointment(
            appointment_id=appointment.id,
            appointment_date=self.next_monday,
            appointment_time=time(14, 0),
        )
        self.assertEqual(moved.room_id, self.room.id)

        moved = reschedule_appointment(
            appointment_id=appointment.id,
            appointment_date=self.next_monday,
            appointment_time=time(14, 0),
            room_id=None,
        )
        self.assertIsNone(moved.room_id)

    def test_cannot_reschedule_cancelled(self):
        appointment = self.book()
        cancel_appointment(appointment_id=appointment.id, cancelled_by=self.patient)

        with self.assertRaises(AppointmentNotFoundError):
            reschedule_appointment(
                appointment_id=appointment.id,
                appointment_date=self.next_monday,
                appointment_time=time(11, 0),
            )

    def test_cancel_during_reschedule_is_not_undone(self):
        appointment = self.book()

        def cancel_meanwhile(*args):
            cancel_appointment(appointment_id=appointment.id, cancelled_by=self.doctor)

        with patch("appointments.services._check_working_hours", side_effect=cancel_meanwhile):
            with self.assertRaises(AppointmentNotFoundError):
                reschedule_appointment(
                    appointment_id=appointment.id,
                    appointment_date=self.next_monday,
                    appointment_time=time(14, 0),
                )

        appointment.refresh_from_db()
        self.assertEqual(appointment.status, Appointment.Status.CANCELLED)
        self.assertEqual(appointment.appointment_time, time(10, 0))

    def test_reschedule_writes_only_the_moved_fields(self):
        appointment = self.book()
        Appointment.objects.filter(id=appointment.id).update(
            status=Appointment.Status.CONFIRMED, notes="Bring reports",
        )

        reschedule_appointment(
            appointment_id=appointment.id,
            appointment_date=self.next_monday,
            appointment_time=time(14, 0),
        )

        appointment.refresh_from_db()
        self.assertEqual(appointment.appointment_time, time(14, 0))
        self.assertEqual(appointment.status, Appointment.Status.CONFIRMED)
        self.assertEqual(appointment.notes, "Bring reports")

    def test_cancel_records_who_and_why(self):
        appointment = self.book()
        cancelled = cancel_appointment(appointment_id=appointment.id, cancelled_by=self.doctor, reason="Sick")

        self.assertEqual(cancelled.status, Appointment.Status.CANCELLED)
        self.assertEqual(cancelled.cancelled_by, self.doctor)
        self.assertEqual(cancelled.cancelled_reason, "Sick")
        self.assertFalse(cancelled.is_blocking)

    def test_cancel_twice(self):
        appointment = self.book()
        cancel_appointment(appointment_id=appointment.id, cancelled_by=self.patient)

        with self.assertRaises(BookingError) as ctx:
            cancel_appointment(appointment_id=appointment.id, cancelled_by=self.patient)
        self.assertEqual(ctx.exception.code, "already_cancelled")

    def test_cannot_cancel_completed(self):
        appointment = self.book()
        Appointment.objects.filter(pk=appointment.pk).update(status=Appointment.Status.COMPLETED)

        with self.assertRaises(BookingError) as ctx:
            cancel_appointment(appointment_id=appointment.id, cancelled_by=self.patient)
        self.assertEqual(ctx.exception.code, "not_cancellable")


# ═══════════════════════════════════════════════════════════════════
#  API Tests
# ═══════════════════════════════════════════════════════════════════


class BookAppointmentAPITests(BookingTestMixin, TestCase):
    """Tests for the appointment API endpoints."""

    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.client.force_authenticate(user=self.patient)
        self.url = reverse("appointments:api_book_appointment")

    def payload(self, **overrides):
        data = {
            "doctor_id": self.doctor.id,
            "appointment_date": self.next_monday.isoformat(),
            "appointment_time": "10:00",
        }
        data.update(overrides)
        return data

    def test_successful_api_booking(self):
        response = self.client.post(self.url, self.payload(room_id=self.room.id), format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["appointment_time"], "10:00")
        self.assertEqual(response.data["end_time"], "10:50")
        self.assertEqual(response.data["duration_minutes"], 50)
        self.assertEqual(response.data["room_name"], "Room A")
        self.assertEqual(response.data["doctor_name"], "Dr. Ahmad")
        self.assertEqual(response.data["status"], Appointment.Status.SCHEDULED)

    def test_unauthenticated_returns_401(self):
        response = APIClient().post(self.url, self.payload(), format="json")
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_missing_fields_returns_400(self):
        response = self.client.post(self.url, {"doctor_id": self.doctor.id}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("appointment_date", response.data)

    def test_bad_time_format_returns_400(self):
        response = self.client.post(self.url, self.payload(appointment_time="10am"), format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_slot_unavailable_returns_409(self):
        self.book(patient=self.patient2)

        response = self.client.post(self.url, self.payload(appointment_time="10:20"), format="json")
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["code"], "slot_unavailable")

    def test_room_taken_returns_409(self):
        self.book(doctor_id=self.doctor2.id, patient=self.patient2, room_id=self.room.id)

        response = self.client.post(self.url, self.payload(room_id=self.room.id), format="json")
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_past_date_returns_400(self):
        yesterday = (timezone.localdate() - timedelta(days=1)).isoformat()
        response = self.client.post(self.url, self.payload(appointment_date=yesterday), format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "past_date")

    def test_booking_on_behalf_of_patient(self):
        self.client.force_authenticate(user=self.doctor2)
        response = self.client.post(self.url, self.payload(patient_id=self.patient2.id), format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        appointment = Appointment.objects.get(id=response.data["id"])
        self.assertEqual(appointment.patient, self.patient2)
        self.assertEqual(appointment.created_by, self.doctor2)

    def test_unknown_patient_returns_400(self):
        response = self.client.post(self.url, self.payload(patient_id=99999), format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("patient_id", response.data)

    def test_reschedule_and_cancel_endpoints(self):
        appointment = self.book()

        url = reverse("appointments:api_reschedule_appointment", args=[appointment.id])
        response = self.client.post(
            url, {"appointment_date": self.next_monday.isoformat(), "appointment_time": "15:00"}, format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["appointment_time"], "15:00")

        url = reverse("appointments:api_cancel_appointment", args=[appointment.id])
        response = self.client.post(url, {"reason": "Travelling"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["status"], Appointment.Status.CANCELLED)

        response = self.client.post(url, {}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "already_cancelled")

    def test_unknown_appointment_returns_404(self):
        url = reverse("appointments:api_cancel_appointment", args=[99999])
        response = self.client.post(url, {}, format="json")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
