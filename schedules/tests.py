"""
Tests for the scheduling engine.

Covers:
- Value objects (weekly pattern totality, intervals, time parsing)
- Slot generation
- Effective-schedule resolution (overrides, clinic precedence, defaults)
- Available slots and room annotation
- Room availability and room day views
- Occupancy (rates, grouping, detailed breakdown, failures)
- Working-hours store and the HTTP API
"""

from datetime import date, time
from io import StringIO
import json
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.core.management import call_command
from django.db import DatabaseError, IntegrityError
from django.db.models import QuerySet
from django.test import SimpleTestCase, TestCase, override_settings
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from appointments.models import Appointment
from clinics.models import Clinic, Room
from doctors.models import DoctorProfile
from schedules.domain import (
    DayOfWeek,
    DaySchedule,
    ScheduleCalendar,
    TimeInterval,
    WeeklyPattern,
    default_weekly_pattern,
    minutes_to_time,
    parse_date,
    time_to_minutes,
)
from schedules.exceptions import EntityNotFoundError, OccupancyError, ScheduleValidationError
from schedules.models import DateOverride, WorkingHours
from schedules.resolvers import get_resolver, resolve_effective_schedule
from schedules.services import (
    add_date_override,
    calculate_detailed_occupancy,
    calculate_occupancy,
    get_available_rooms,
    get_available_slots,
    get_clinic_rooms_schedule,
    get_or_create_working_hours,
    get_room_schedule,
    remove_date_override,
    reset_working_hours,
    update_working_hours,
)
from schedules.services.occupancy_service import minutes_to_hours, occupancy_rate, split_periods
from schedules.slots import generate_time_slots

User = get_user_model()

# 2024-01-01 and 2024-01-08 are Mondays, 2024-01-07 is a Sunday.
MONDAY = date(2024, 1, 8)
SUNDAY = date(2024, 1, 7)
SATURDAY = date(2024, 1, 13)


def weekly(open_days):
    """{day_of_week: [("09:00", "13:00"), ...]} -> stored weekly_schedule list"""
    return [
        {
            "day_of_week": day,
            "is_open": day in open_days,
            "slots": [{"start_time": s, "end_time": e} for s, e in open_days.get(day, [])],
        }
        for day in range(7)
    ]


def slot_starts(result):
    return [slot["start_time"] for slot in result["slots"]]


class SchedulingTestMixin:
    """Shared setup: one clinic with two rooms and two practitioners, one independent practitioner."""

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
        self.doctor2 = User.objects.create_user(
            phone="0591000003",
            password="testpass123",
            name="Dr. Lina",
            role="DOCTOR",
        )
        self.independent = User.objects.create_user(
            phone="0591000004",
            password="testpass123",
            name="Dr. Solo",
            role="DOCTOR",
        )
        self.patient = User.objects.create_user(
            phone="0591000005",
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
        self.room_a = Room.objects.create(clinic=self.clinic, name="Room A", number="1")
        self.room_b = Room.objects.create(clinic=self.clinic, name="Room B", number="2")

        self.profile = DoctorProfile.objects.create(user=self.doctor, clinic=self.clinic)
        self.profile2 = DoctorProfile.objects.create(user=self.doctor2, clinic=self.clinic)
        self.independent_profile = DoctorProfile.objects.create(user=self.independent)

    def book(self, doctor, day, start, duration=50, room=None, status=Appointment.Status.SCHEDULED):
        return Appointment.objects.create(
            patient=self.patient,
            doctor=doctor,
            clinic=self.clinic if room else None,
            room=room,
            appointment_date=day,
            appointment_time=start,
            duration_minutes=duration,
            status=status,
        )


# ═══════════════════════════════════════════════════════════════════
#  Value objects
# ═══════════════════════════════════════════════════════════════════


class DomainTests(SimpleTestCase):

    def test_time_conversions(self):
        self.assertEqual(time_to_minutes("09:30"), 570)
        self.assertEqual(time_to_minutes("9:05"), 545)
        self.assertEqual(time_to_minutes(time(23, 59)), 1439)
        self.assertEqual(minutes_to_time(570), "09:30")
        self.assertEqual(minutes_to_time(0), "00:00")

    def test_invalid_time_rejected(self):
        for value in ("24:00", "12:60", "noon", "", None):
            with self.subTest(value=value):
                with self.assertRaises(ScheduleValidationError):
                    time_to_minutes(value)

    def test_parse_date_is_strict(self):
        self.assertEqual(parse_date("2024-01-08"), MONDAY)
        for value in ("2024-1-8", "08/01/2024", "2024-02-30"):
            with self.subTest(value=value):
                with self.assertRaises(ScheduleValidationError):
                    parse_date(value)

    def test_day_of_week_counts_from_sunday(self):
        self.assertEqual(DayOfWeek.for_date(SUNDAY), DayOfWeek.SUNDAY)
        self.assertEqual(DayOfWeek.for_date(MONDAY), DayOfWeek.MONDAY)
        self.assertEqual(DayOfWeek.for_date(SATURDAY), DayOfWeek.SATURDAY)

    def test_interval_must_start_before_end(self):
        with self.assertRaises(ScheduleValidationError):
            TimeInterval.from_strings("10:00", "10:00")
        with self.assertRaises(ScheduleValidationError):
            TimeInterval.from_strings("11:00", "10:00")

    def test_open_day_needs_intervals(self):
        with self.assertRaises(ScheduleValidationError):
            DaySchedule(is_open=True, intervals=())

    def test_overlapping_intervals_rejected(self):
        with self.assertRaises(ScheduleValidationError):
            DaySchedule(
                is_open=True,
                intervals=(TimeInterval(540, 720), TimeInterval(700, 800)),
            )

    def test_abutting_intervals_allowed_and_sorted(self):
        day = DaySchedule(is_open=True, intervals=(TimeInterval(720, 800), TimeInterval(540, 720)))
        self.assertEqual([i.start for i in day.intervals], [540, 720])

    def test_weekly_pattern_requires_all_days(self):
        with self.assertRaises(ScheduleValidationError):
            WeeklyPattern({DayOfWeek.MONDAY: DaySchedule.closed()})

    def test_weekly_pattern_from_json_rejects_six_days(self):
        with self.assertRaises(ScheduleValidationError) as ctx:
            WeeklyPattern.from_json(weekly({})[:6])
        self.assertIn("weekly_schedule", ctx.exception.errors)

    def test_weekly_pattern_from_json_rejects_duplicate_day(self):
        entries = weekly({})
        entries[6]["day_of_week"] = 0
        with self.assertRaises(ScheduleValidationError):
            WeeklyPattern.from_json(entries)

    def test_weekly_pattern_json_round_trip_keeps_days(self):
        pattern = WeeklyPattern.from_json(weekly({2: [("09:00", "12:00")]}))
        self.assertTrue(pattern[DayOfWeek.TUESDAY].is_open)
        self.assertFalse(pattern[DayOfWeek.MONDAY].is_open)
        self.assertEqual(WeeklyPattern.from_json(pattern.to_json()), pattern)

    def test_default_pattern(self):
        pattern = default_weekly_pattern()
        for day in (DayOfWeek.SATURDAY, DayOfWeek.SUNDAY):
            self.assertFalse(pattern[day].is_open)
        for day in range(1, 6):
            self.assertEqual(
                [i.to_dict() for i in pattern[day].intervals],
                [{"start_time": "08:00", "end_time": "18:00"}],
            )

    def test_weekly_lookup_matches_weekday(self):
        calendar_ = ScheduleCalendar(weekly=WeeklyPattern.from_json(weekly({d: [("09:00", "10:00")] for d in (0, 3)})))
        for offset in range(14):
            target = date(2024, 1, 7 + offset)
            expected_open = DayOfWeek.for_date(target) in (DayOfWeek.SUNDAY, DayOfWeek.WEDNESDAY)
            self.assertEqual(calendar_.for_date(target).is_open, expected_open)


# ═══════════════════════════════════════════════════════════════════
#  Slot generation
# ═══════════════════════════════════════════════════════════════════


class SlotGenerationTests(SimpleTestCase):

    def test_full_day_with_buffer(self):
        slots = generate_time_slots([TimeInterval(480, 1080)], 50, 10)
        self.assertEqual(len(slots), 10)
        self.assertEqual(slots[0].to_dict(), {"start_time": "08:00", "end_time": "08:50"})
        self.assertEqual(slots[-1].to_dict(), {"start_time": "17:00", "end_time": "17:50"})

    def test_short_interval_yields_nothing(self):
        self.assertEqual(generate_time_slots([TimeInterval(480, 520)], 50, 10), [])

    def test_exact_duration_no_overlap_and_idempotent(self):
        intervals = [TimeInterval(840, 1000), TimeInterval(480, 720)]
        first = generate_time_slots(intervals, 45, 5)
        self.assertEqual(first, generate_time_slots(intervals, 45, 5))
        self.assertEqual(first, sorted(first))
        for slot in first:
            self.assertEqual(slot.end - slot.start, 45)
        for previous, current in zip(first, first[1:]):
            self.assertLessEqual(previous.end, current.start)

    def test_zero_buffer_packs_slots(self):
        slots = generate_time_slots([TimeInterval(540, 660)], 30, 0)
        self.assertEqual([s.start_time for s in slots], ["09:00", "09:30", "10:00", "10:30"])

    def test_non_positive_duration_rejected(self):
        with self.assertRaises(ValueError):
            generate_time_slots([TimeInterval(540, 660)], 0, 0)


# ═══════════════════════════════════════════════════════════════════
#  Effective schedule
# ═══════════════════════════════════════════════════════════════════


class EffectiveScheduleTests(SchedulingTestMixin, TestCase):

    def test_entity_without_record_uses_default(self):
        monday = resolve_effective_schedule("clinic", self.clinic.id, MONDAY)
        self.assertTrue(monday.is_open)
        self.assertEqual(monday.open_minutes, 600)
        self.assertEqual(monday.default_session_duration, 50)
        self.assertEqual(monday.buffer_between_sessions, 10)
        self.assertFalse(resolve_effective_schedule("clinic", self.clinic.id, SATURDAY).is_open)

    def test_override_forces_closed_on_weekday(self):
        add_date_override("practitioner", self.independent.id, date(2024, 1, 1), is_open=False, reason="Holiday")

        schedule = resolve_effective_schedule("practitioner", self.independent.id, date(2024, 1, 1))
        self.assertFalse(schedule.is_open)
        self.assertTrue(schedule.is_override)
        self.assertEqual(schedule.reason, "Holiday")

    def test_override_forces_open_on_weekend(self):
        add_date_override(
            "practitioner", self.independent.id, SATURDAY,
            is_open=True, slots=[{"start_time": "10:00", "end_time": "12:00"}], reason="Extra day",
        )

        schedule = resolve_effective_schedule("practitioner", self.independent.id, SATURDAY)
        self.assertTrue(schedule.is_open)
        self.assertEqual([i.to_dict() for i in schedule.intervals], [{"start_time": "10:00", "end_time": "12:00"}])

    def test_clinic_closed_forces_practitioner_closed(self):
        WorkingHours.objects.create(
            entity_kind="practitioner",
            doctor=self.doctor,
            weekly_schedule=weekly({0: [("09:00", "13:00")]}),
        )

        schedule = resolve_effective_schedule("practitioner", self.doctor.id, SUNDAY)
        self.assertFalse(schedule.is_open)
        self.assertEqual(schedule.reason, "Clinic closed")
        self.assertEqual(schedule.intervals, ())

    def test_clinic_override_reason_surfaces(self):
        add_date_override("clinic", self.clinic.id, MONDAY, is_open=False, reason="Renovation")

        schedule = resolve_effective_schedule("practitioner", self.doctor.id, MONDAY)
        self.assertFalse(schedule.is_open)
        self.assertEqual(schedule.reason, "Renovation")

    def test_clinic_never_forces_practitioner_open(self):
        WorkingHours.objects.create(
            entity_kind="practitioner",
            doctor=self.doctor,
            weekly_schedule=weekly({}),
        )
        self.assertFalse(resolve_effective_schedule("practitioner", self.doctor.id, MONDAY).is_open)

    def test_practitioner_keeps_own_intervals_when_clinic_open(self):
        WorkingHours.objects.create(
            entity_kind="practitioner",
            doctor=self.doctor,
            weekly_schedule=weekly({1: [("13:00", "17:00")]}),
            default_session_duration=30,
            buffer_between_sessions=0,
        )
        schedule = resolve_effective_schedule("practitioner", self.doctor.id, MONDAY)
        self.assertTrue(schedule.is_open)
        self.assertEqual(schedule.open_minutes, 240)
        self.assertEqual(schedule.default_session_duration, 30)

    def test_deleted_clinic_is_ignored(self):
        self.clinic.soft_delete()
        WorkingHours.objects.create(
            entity_kind="practitioner",
            doctor=self.doctor,
            weekly_schedule=weekly({0: [("09:00", "13:00")]}),
        )
        self.assertTrue(resolve_effective_schedule("practitioner", self.doctor.id, SUNDAY).is_open)

    def test_malformed_record_falls_back_to_default(self):
        record = WorkingHours.objects.create(entity_kind="clinic", clinic=self.clinic, weekly_schedule=weekly({}))
        WorkingHours.objects.filter(pk=record.pk).update(weekly_schedule=[{"day_of_week": 9}])

        with self.assertLogs("schedules.models", level="WARNING"):
            schedule = resolve_effective_schedule("clinic", self.clinic.id, MONDAY)
        self.assertTrue(schedule.is_open)
        self.assertEqual(schedule.open_minutes, 600)

    def test_record_with_wrongly_typed_entries_falls_back_to_default(self):
        record = WorkingHours.objects.create(entity_kind="clinic", clinic=self.clinic, weekly_schedule=weekly({}))
        bad_slots = [{"day_of_week": d, "is_open": True, "slots": 5} for d in range(7)]
        for stored in (bad_slots, ["monday"] * 7):
            WorkingHours.objects.filter(pk=record.pk).update(weekly_schedule=stored)

            with self.assertLogs("schedules.models", level="WARNING"):
                schedule = resolve_effective_schedule("clinic", self.clinic.id, MONDAY)
            self.assertTrue(schedule.is_open)
            self.assertEqual(schedule.open_minutes, 600)

    def test_soft_deleted_record_is_ignored(self):
        record = WorkingHours.objects.create(entity_kind="clinic", clinic=self.clinic, weekly_schedule=weekly({}))
        self.assertFalse(resolve_effective_schedule("clinic", self.clinic.id, MONDAY).is_open)

        record.soft_delete()
        self.assertTrue(resolve_effective_schedule("clinic", self.clinic.id, MONDAY).is_open)

    def test_unknown_entity(self):
        with self.assertRaises(EntityNotFoundError):
            resolve_effective_schedule("practitioner", self.patient.id, MONDAY)
        with self.assertRaises(EntityNotFoundError):
            resolve_effective_schedule("clinic", 99999, MONDAY)

    def test_unknown_kind(self):
        with self.assertRaises(ScheduleValidationError):
            get_resolver("room")


# ═══════════════════════════════════════════════════════════════════
#  Working-hours store
# ═══════════════════════════════════════════════════════════════════


class WorkingHoursServiceTests(SchedulingTestMixin, TestCase):

    def test_record_created_lazily_once(self):
        first = get_or_create_working_hours("clinic", self.clinic.id)
        second = get_or_create_working_hours("clinic", self.clinic.id)
        self.assertEqual(first.pk, second.pk)
        self.assertEqual(first.weekly_schedule, default_weekly_pattern().to_json())

    def test_concurrent_first_access_returns_existing_record(self):
        existing = WorkingHours.objects.create(entity_kind="clinic", clinic=self.clinic)
        real_get = QuerySet.get
        missed = []

        def get_after_other_writer(queryset, *args, **kwargs):
            # the first lookup misses because the other request has not committed yet
            if queryset.model is WorkingHours and not missed:
                missed.append(True)
                raise WorkingHours.DoesNotExist
            return real_get(queryset, *args, **kwargs)

        with patch.object(QuerySet, "get", get_after_other_writer):
            record = get_or_create_working_hours("clinic", self.clinic.id)
        self.assertEqual(record.pk, existing.pk)
        self.assertEqual(WorkingHours.objects.alive().filter(clinic=self.clinic).count(), 1)

    def test_second_live_record_rejected_by_database(self):
        WorkingHours.objects.create(entity_kind="clinic", clinic=self.clinic)
        with self.assertRaises(IntegrityError):
            WorkingHours.objects.create(entity_kind="clinic", clinic=self.clinic)

    def test_wrongly_typed_day_entries_are_form_errors(self):
        bad_slots = [{"day_of_week": d, "is_open": True, "slots": 5} for d in range(7)]
        for stored in (bad_slots, ["monday"] * 7):
            record = WorkingHours(entity_kind="clinic", clinic=self.clinic, weekly_schedule=stored)
            with self.assertRaises(ValidationError) as ctx:
                record.full_clean()
            self.assertIn("weekly_schedule", ctx.exception.message_dict)

    def test_update_replaces_pattern_and_settings(self):
        record = update_working_hours(
            "practitioner", self.doctor.id,
            weekly_schedule=weekly({2: [("09:00", "12:00")]}),
            default_session_duration=30,
        )
        self.assertEqual(record.default_session_duration, 30)
        self.assertEqual(record.buffer_between_sessions, 10)
        self.assertFalse(resolve_effective_schedule("practitioner", self.doctor.id, MONDAY).is_open)

    def test_invalid_pattern_rejects_whole_write(self):
        update_working_hours("clinic", self.clinic.id, default_session_duration=40)
        bad = weekly({1: [("12:00", "09:00")]})

        with self.assertRaises(ScheduleValidationError):
            update_working_hours("clinic", self.clinic.id, weekly_schedule=bad, default_session_duration=60)

        record = WorkingHours.objects.alive().get(clinic=self.clinic)
        self.assertEqual(record.default_session_duration, 40)
        self.assertEqual(record.weekly_schedule, default_weekly_pattern().to_json())

    def test_override_replaces_same_date(self):
        add_date_override("clinic", self.clinic.id, MONDAY, is_open=False, reason="First")
        add_date_override("clinic", self.clinic.id, MONDAY, is_open=False, reason="Second")

        overrides = DateOverride.objects.filter(working_hours__clinic=self.clinic)
        self.assertEqual(overrides.count(), 1)
        self.assertEqual(overrides.get().reason, "Second")

    def test_open_override_requires_intervals(self):
        with self.assertRaises(ScheduleValidationError):
            add_date_override("clinic", self.clinic.id, SATURDAY, is_open=True, slots=[])

    def test_remove_override(self):
        add_date_override("clinic", self.clinic.id, MONDAY, is_open=False)
        self.assertTrue(remove_date_override("clinic", self.clinic.id, MONDAY))
        self.assertFalse(remove_date_override("clinic", self.clinic.id, MONDAY))
        self.assertTrue(resolve_effective_schedule("clinic", self.clinic.id, MONDAY).is_open)

    def test_reset_falls_back_to_default(self):
        update_working_hours("clinic", self.clinic.id, weekly_schedule=weekly({}))
        self.assertTrue(reset_working_hours("clinic", self.clinic.id))
        self.assertFalse(reset_working_hours("clinic", self.clinic.id))
        self.assertTrue(resolve_effective_schedule("clinic", self.clinic.id, MONDAY).is_open)

        # a new record can be created after the reset
        record = get_or_create_working_hours("clinic", self.clinic.id)
        self.assertIsNone(record.deleted_at)


# ═══════════════════════════════════════════════════════════════════
#  Available slots
# ═══════════════════════════════════════════════════════════════════


class AvailableSlotsTests(SchedulingTestMixin, TestCase):

    def test_monday_default_day(self):
        result = get_available_slots(self.independent.id, MONDAY)

        self.assertTrue(result["is_open"])
        self.assertIsNone(result["reason"])
        self.assertEqual(result["session_duration"], 50)
        self.assertEqual(len(result["slots"]), 10)
        self.assertEqual(result["slots"][0], {"start_time": "08:00", "end_time": "08:50"})
        self.assertEqual(result["slots"][-1], {"start_time": "17:00", "end_time": "17:50"})

    def test_booking_removes_its_slot(self):
        self.book(self.independent, MONDAY, time(10, 0))

        result = get_available_slots(self.independent.id, MONDAY)
        self.assertEqual(len(result["slots"]), 9)
        self.assertNotIn("10:00", slot_starts(result))

    def test_partial_overlap_removes_both_neighbours(self):
        self.book(self.independent, MONDAY, time(9, 30), duration=60)

        starts = slot_starts(get_available_slots(self.independent.id, MONDAY))
        self.assertNotIn("09:00", starts)
        self.assertNotIn("10:00", starts)
        self.assertIn("11:00", starts)

    def test_cancelled_and_deleted_bookings_do_not_block(self):
        self.book(self.independent, MONDAY, time(10, 0), status=Appointment.Status.CANCELLED)
        removed = self.book(self.independent, MONDAY, time(11, 0))
        removed.soft_delete()

        self.assertEqual(len(get_available_slots(self.independent.id, MONDAY)["slots"]), 10)

    def test_every_non_cancelled_status_blocks(self):
        blocking = [s for s in Appointment.Status.values if s != Appointment.Status.CANCELLED]
        for hour, status_value in zip(range(8, 18), blocking):
            self.book(self.independent, MONDAY, time(hour, 0), status=status_value)

        result = get_available_slots(self.independent.id, MONDAY)
        self.assertEqual(len(result["slots"]), 10 - len(blocking))

    def test_holiday_override(self):
        add_date_override("practitioner", self.independent.id, date(2024, 1, 1), is_open=False, reason="Holiday")

        result = get_available_slots(self.independent.id, date(2024, 1, 1))
        self.assertEqual(result, {"slots": [], "is_open": False, "reason": "Holiday"})

    def test_open_override_reports_no_reason(self):
        add_date_override(
            "practitioner", self.independent.id, SATURDAY,
            is_open=True, slots=[{"start_time": "10:00", "end_time": "12:00"}], reason="Extra day",
        )

        result = get_available_slots(self.independent.id, SATURDAY)
        self.assertTrue(result["is_open"])
        self.assertIsNone(result["reason"])
        self.assertEqual(slot_starts(result), ["10:00", "11:00"])

    def test_clinic_closed_sunday(self):
        WorkingHours.objects.create(
            entity_kind="practitioner",
            doctor=self.doctor,
            weekly_schedule=weekly({0: [("09:00", "13:00")]}),
        )

        result = get_available_slots(self.doctor.id, SUNDAY)
        self.assertFalse(result["is_open"])
        self.assertEqual(result["reason"], "Clinic closed")
        self.assertEqual(result["slots"], [])

    def test_duration_precedence(self):
        self.assertEqual(get_available_slots(self.independent.id, MONDAY, duration=30)["session_duration"], 30)

        self.independent_profile.preferred_session_duration = 45
        self.independent_profile.save()
        self.assertEqual(get_available_slots(self.independent.id, MONDAY)["session_duration"], 45)
        self.assertEqual(get_available_slots(self.independent.id, MONDAY, duration=60)["session_duration"], 60)

    def test_schedule_default_duration(self):
        update_working_hours("practitioner", self.independent.id, default_session_duration=30, buffer_between_sessions=0)

        result = get_available_slots(self.independent.id, MONDAY)
        self.assertEqual(result["session_duration"], 30)
        self.assertEqual(len(result["slots"]), 20)

    def test_room_annotation(self):
        self.book(self.doctor2, MONDAY, time(8, 0), room=self.room_a)
        Room.objects.create(clinic=self.clinic, name="Room C", number="3", is_active=False)

        result = get_available_slots(self.doctor.id, MONDAY, include_rooms=True)
        first, second = result["slots"][0], result["slots"][1]
        self.assertEqual(first["available_rooms"], [{"id": self.room_b.id, "name": "Room B", "number": "2"}])
        self.assertEqual([r["name"] for r in second["available_rooms"]], ["Room A", "Room B"])

    def test_no_room_annotation_by_default_or_without_clinic(self):
        self.assertNotIn("available_rooms", get_available_slots(self.doctor.id, MONDAY)["slots"][0])
        result = get_available_slots(self.independent.id, MONDAY, include_rooms=True)
        self.assertNotIn("available_rooms", result["slots"][0])

    def test_unknown_practitioner(self):
        with self.assertRaises(EntityNotFoundError):
            get_available_slots(self.patient.id, MONDAY)


# ═══════════════════════════════════════════════════════════════════
#  Rooms
# ═══════════════════════════════════════════════════════════════════


class RoomAvailabilityTests(SchedulingTestMixin, TestCase):

    def test_free_rooms_for_window(self):
        self.book(self.doctor, MONDAY, time(10, 0), room=self.room_a)

        rooms = get_available_rooms(self.clinic.id, MONDAY, "10:30", "11:00")
        self.assertEqual([r.id for r in rooms], [self.room_b.id])

        rooms = get_available_rooms(self.clinic.id, MONDAY, "10:50", "11:40")
        self.assertEqual([r.id for r in rooms], [self.room_a.id, self.room_b.id])

    def test_inactive_and_deleted_rooms_excluded(self):
        self.room_a.deactivate()
        self.room_b.soft_delete()
        self.assertEqual(get_available_rooms(self.clinic.id, MONDAY, "10:00", "11:00"), [])

    def test_invalid_window(self):
        with self.assertRaises(ScheduleValidationError):
            get_available_rooms(self.clinic.id, MONDAY, "11:00", "10:00")
        with self.assertRaises(ScheduleValidationError):
            get_available_rooms(self.clinic.id, MONDAY, "25:00", "26:00")

    def test_unknown_clinic(self):
        with self.assertRaises(EntityNotFoundError):
            get_available_rooms(99999, MONDAY, "10:00", "11:00")

    def test_room_schedule_projection(self):
        self.book(self.doctor, MONDAY, time(14, 0), room=self.room_a)
        self.book(self.doctor2, MONDAY, time(9, 0), duration=60, room=self.room_a)
        self.book(self.doctor, MONDAY, time(11, 0), room=self.room_a, status=Appointment.Status.CANCELLED)

        schedule = get_room_schedule(self.room_a.id, MONDAY)
        self.assertEqual(schedule["room"], {"id": self.room_a.id, "name": "Room A", "number": "1"})
        self.assertEqual(schedule["date"], "2024-01-08")
        self.assertEqual([a["start_time"] for a in schedule["appointments"]], ["09:00", "14:00"])

        first = schedule["appointments"][0]
        self.assertEqual(first["end_time"], "10:00")
        self.assertEqual(first["duration"], 60)
        self.assertEqual(first["practitioner_name"], "Dr. Lina")
        self.assertEqual(first["patient_name"], "Patient Ali")
        self.assertEqual(first["status"], Appointment.Status.SCHEDULED)
        self.assertEqual(first["type"], Appointment.Type.IN_PERSON)

    def test_clinic_rooms_schedule_sorted_by_name(self):
        Room.objects.create(clinic=self.clinic, name="Alpha", number="0")
        self.book(self.doctor, MONDAY, time(9, 0), room=self.room_b)

        schedules = get_clinic_rooms_schedule(self.clinic.id, MONDAY)
        self.assertEqual([s["room"]["name"] for s in schedules], ["Alpha", "Room A", "Room B"])
        self.assertEqual(len(schedules[2]["appointments"]), 1)
        self.assertEqual(schedules[1]["appointments"], [])

    def test_unknown_room(self):
        self.room_a.soft_delete()
        with self.assertRaises(EntityNotFoundError):
            get_room_schedule(self.room_a.id, MONDAY)


# ═══════════════════════════════════════════════════════════════════
#  Occupancy
# ═══════════════════════════════════════════════════════════════════


class OccupancyArithmeticTests(SimpleTestCase):

    def test_rate_rounding_and_bounds(self):
        self.assertEqual(occupancy_rate(1, 8), 13)
        self.assertEqual(occupancy_rate(1, 3), 33)
        self.assertEqual(occupancy_rate(0, 600), 0)
        self.assertEqual(occupancy_rate(900, 600), 100)
        self.assertEqual(occupancy_rate(50, 0), 0)

    def test_hours_rounded_to_one_decimal(self):
        self.assertEqual(minutes_to_hours(50), 0.8)
        self.assertEqual(minutes_to_hours(3000), 50.0)
        self.assertEqual(minutes_to_hours(45), 0.8)

    def test_week_periods_aligned_to_range_start(self):
        labels = [label for label, _, _ in split_periods(date(2024, 1, 3), date(2024, 1, 12), "week")]
        self.assertEqual(
            labels,
            [
                {"week_start": "2024-01-03", "week_end": "2024-01-09"},
                {"week_start": "2024-01-10", "week_end": "2024-01-12"},
            ],
        )

    def test_month_periods_clipped(self):
        periods = list(split_periods(date(2024, 1, 20), date(2024, 2, 10), "month"))
        self.assertEqual([label for label, _, _ in periods], [{"month": "2024-01"}, {"month": "2024-02"}])
        self.assertEqual(periods[0][1:], (date(2024, 1, 20), date(2024, 1, 31)))
        self.assertEqual(periods[1][1:], (date(2024, 2, 1), date(2024, 2, 10)))

    def test_unknown_grouping(self):
        with self.assertRaises(ScheduleValidationError):
            list(split_periods(MONDAY, MONDAY, "year"))


class OccupancyTests(SchedulingTestMixin, TestCase):

    def fill_week(self, doctor, per_day=6, room=None):
        for offset in range(5):
            for hour in range(8, 8 + per_day):
                self.book(doctor, date(2024, 1, 8 + offset), time(hour, 0), room=room)

    def test_half_booked_week(self):
        self.fill_week(self.independent)

        summary = calculate_occupancy("practitioner", self.independent.id, MONDAY, date(2024, 1, 12))
        self.assertEqual(
            summary,
            {
                "available_hours": 50.0,
                "occupied_hours": 25.0,
                "occupancy_rate": 50,
                "total_appointments": 30,
                "period": {"start_date": "2024-01-08", "end_date": "2024-01-12"},
            },
        )

    def test_nothing_available_gives_zero_rate(self):
        self.book(self.independent, SATURDAY, time(10, 0))

        summary = calculate_occupancy("practitioner", self.independent.id, SATURDAY, date(2024, 1, 14))
        self.assertEqual(summary["available_hours"], 0.0)
        self.assertEqual(summary["occupied_hours"], 0.8)
        self.assertEqual(summary["occupancy_rate"], 0)

    def test_cancelled_bookings_not_counted(self):
        self.book(self.independent, MONDAY, time(8, 0), duration=60, status=Appointment.Status.CANCELLED)
        summary = calculate_occupancy("practitioner", self.independent.id, MONDAY, MONDAY)
        self.assertEqual(summary["total_appointments"], 0)
        self.assertEqual(summary["occupied_hours"], 0.0)

    def test_clinic_counts_all_practitioners(self):
        self.book(self.doctor, MONDAY, time(8, 0), duration=60)
        self.book(self.doctor2, MONDAY, time(8, 0), duration=60)
        self.book(self.independent, MONDAY, time(8, 0), duration=60)

        summary = calculate_occupancy("clinic", self.clinic.id, MONDAY, MONDAY)
        self.assertEqual(summary["occupied_hours"], 2.0)
        self.assertEqual(summary["available_hours"], 10.0)
        self.assertEqual(summary["occupancy_rate"], 20)

    def test_room_uses_clinic_hours(self):
        update_working_hours("clinic", self.clinic.id, weekly_schedule=weekly({1: [("08:00", "12:00")]}))
        self.book(self.doctor, MONDAY, time(8, 0), duration=120, room=self.room_a)

        summary = calculate_occupancy("room", self.room_a.id, MONDAY, date(2024, 1, 14))
        self.assertEqual(summary["available_hours"], 4.0)
        self.assertEqual(summary["occupancy_rate"], 50)

    def test_group_by_day(self):
        self.book(self.independent, MONDAY, time(8, 0), duration=60)

        rows = calculate_occupancy("practitioner", self.independent.id, date(2024, 1, 6), MONDAY, group_by="day")
        self.assertEqual([row["date"] for row in rows], ["2024-01-06", "2024-01-07", "2024-01-08"])
        self.assertEqual([row["occupancy_rate"] for row in rows], [0, 0, 10])
        self.assertEqual(rows[2]["period"], {"start_date": "2024-01-08", "end_date": "2024-01-08"})

    def test_group_by_week_sums_match_total(self):
        self.fill_week(self.independent, per_day=2)
        rows = calculate_occupancy(
            "practitioner", self.independent.id, date(2024, 1, 1), date(2024, 1, 10), group_by="week",
        )
        self.assertEqual(len(rows), 2)
        self.assertEqual(rows[0]["week_start"], "2024-01-01")
        self.assertEqual(rows[1]["week_end"], "2024-01-10")
        self.assertEqual(sum(row["total_appointments"] for row in rows), 6)

    def test_detailed_breakdown_sorted_by_rate(self):
        self.book(self.doctor, MONDAY, time(8, 0), duration=60, room=self.room_b)
        for hour in (8, 10, 12):
            self.book(self.doctor2, MONDAY, time(hour, 0), duration=60)

        report = calculate_detailed_occupancy(self.clinic.id, MONDAY, MONDAY)
        self.assertEqual(report["overall"]["occupied_hours"], 4.0)
        self.assertEqual(
            [row["practitioner_id"] for row in report["by_practitioner"]],
            [self.doctor2.id, self.doctor.id],
        )
        self.assertEqual(report["by_practitioner"][0]["occupancy_rate"], 30)
        self.assertEqual([row["room_id"] for row in report["by_room"]], [self.room_b.id, self.room_a.id])
        self.assertEqual(report["by_room"][0]["name"], "Room B")

    def test_invalid_range(self):
        with self.assertRaises(ScheduleValidationError):
            calculate_occupancy("clinic", self.clinic.id, date(2024, 1, 10), MONDAY)

    @override_settings(SCHEDULING={"MAX_OCCUPANCY_RANGE_DAYS": 7, "ALLOW_OFF_HOURS_BOOKING": True})
    def test_range_cap(self):
        with self.assertRaises(ScheduleValidationError):
            calculate_occupancy("clinic", self.clinic.id, date(2024, 1, 1), date(2024, 1, 8))
        calculate_occupancy("clinic", self.clinic.id, date(2024, 1, 1), date(2024, 1, 7))

    def test_unknown_room(self):
        with self.assertRaises(EntityNotFoundError):
            calculate_occupancy("room", 99999, MONDAY, MONDAY)

    def test_database_failure_becomes_occupancy_error(self):
        with patch(
            "schedules.services.occupancy_service.DailyFigures",
            side_effect=DatabaseError("connection lost"),
        ):
            with self.assertLogs("schedules.services.occupancy_service", level="ERROR"):
                with self.assertRaises(OccupancyError):
                    calculate_occupancy("clinic", self.clinic.id, MONDAY, MONDAY)

    def test_report_command(self):
        self.fill_week(self.independent)
        out = StringIO()
        call_command(
            "occupancy_report", "practitioner", str(self.independent.id), "2024-01-08", "2024-01-12",
            stdout=out,
        )
        self.assertEqual(json.loads(out.getvalue())["occupancy_rate"], 50)


# ═══════════════════════════════════════════════════════════════════
#  API
# ═══════════════════════════════════════════════════════════════════


class SchedulingAPITests(SchedulingTestMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.client.force_authenticate(user=self.admin)

    def working_hours_url(self, kind="practitioner", entity_id=None):
        return reverse("schedules:api_working_hours", args=[kind, entity_id or self.independent.id])

    def test_authentication_required(self):
        response = APIClient().get(self.working_hours_url())
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_get_working_hours_creates_default(self):
        response = self.client.get(self.working_hours_url())
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["entity_kind"], "practitioner")
        self.assertEqual(response.data["entity_id"], self.independent.id)
        self.assertEqual(len(response.data["weekly_schedule"]), 7)
        self.assertEqual(response.data["default_session_duration"], 50)

    def test_put_working_hours(self):
        payload = {"weekly_schedule": weekly({1: [("09:00", "12:00"), ("13:00", "17:00")]}), "buffer_between_sessions": 0}
        response = self.client.put(self.working_hours_url(), payload, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["buffer_between_sessions"], 0)
        schedule = resolve_effective_schedule("practitioner", self.independent.id, MONDAY)
        self.assertEqual(schedule.open_minutes, 420)

    def test_put_rejects_six_days(self):
        response = self.client.put(
            self.working_hours_url(), {"weekly_schedule": weekly({})[:6]}, format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("weekly_schedule", response.data)

    def test_put_rejects_bad_intervals(self):
        cases = {
            "reversed": weekly({1: [("12:00", "09:00")]}),
            "bad format": weekly({1: [("9am", "12:00")]}),
            "overlap": weekly({1: [("09:00", "12:00"), ("11:00", "13:00")]}),
        }
        for name, schedule in cases.items():
            with self.subTest(name):
                response = self.client.put(self.working_hours_url(), {"weekly_schedule": schedule}, format="json")
                self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        open_without_slots = weekly({})
        open_without_slots[1]["is_open"] = True
        response = self.client.put(self.working_hours_url(), {"weekly_schedule": open_without_slots}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_put_rejects_out_of_range_settings(self):
        response = self.client.put(self.working_hours_url(), {"default_session_duration": 10}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.put(self.working_hours_url(), {"buffer_between_sessions": 61}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_unknown_kind_and_entity(self):
        response = self.client.get(self.working_hours_url(kind="room"))
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "invalid")

        response = self.client.get(self.working_hours_url(entity_id=self.patient.id))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data["code"], "not_found")

    def test_override_endpoints(self):
        url = reverse("schedules:api_date_overrides", args=["clinic", self.clinic.id])
        response = self.client.post(url, {"date": "2024-01-08", "is_open": False, "reason": "Holiday"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["reason"], "Holiday")

        effective = self.client.get(
            reverse("schedules:api_effective_schedule", args=["clinic", self.clinic.id]), {"date": "2024-01-08"},
        )
        self.assertFalse(effective.data["is_open"])
        self.assertTrue(effective.data["is_override"])

        detail = reverse("schedules:api_date_override_detail", args=["clinic", self.clinic.id, "2024-01-08"])
        self.assertEqual(self.client.delete(detail).status_code, status.HTTP_204_NO_CONTENT)
        self.assertEqual(self.client.delete(detail).status_code, status.HTTP_404_NOT_FOUND)

    def test_override_validation(self):
        url = reverse("schedules:api_date_overrides", args=["clinic", self.clinic.id])
        response = self.client.post(url, {"date": "2024-1-8", "is_open": False}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.post(url, {"date": "2024-01-13", "is_open": True, "slots": []}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.post(url, {"date": "2024-01-13", "reason": "x" * 201}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_reset_endpoint(self):
        self.assertEqual(self.client.delete(self.working_hours_url()).status_code, status.HTTP_404_NOT_FOUND)
        self.client.get(self.working_hours_url())
        self.assertEqual(self.client.delete(self.working_hours_url()).status_code, status.HTTP_204_NO_CONTENT)

    def test_effective_schedule_requires_valid_date(self):
        url = reverse("schedules:api_effective_schedule", args=["clinic", self.clinic.id])
        self.assertEqual(self.client.get(url).status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(self.client.get(url, {"date": "2024-02-30"}).status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.get(url, {"date": "2024-01-08"})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["intervals"], [{"start_time": "08:00", "end_time": "18:00"}])

    def test_available_slots_endpoint(self):
        self.book(self.independent, MONDAY, time(10, 0))
        url = reverse("schedules:api_available_slots")

        response = self.client.get(url, {"doctor_id": self.independent.id, "date": "2024-01-08"})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data["slots"]), 9)
        self.assertEqual(response.data["session_duration"], 50)

    def test_available_slots_with_rooms(self):
        url = reverse("schedules:api_available_slots")
        response = self.client.get(url, {"doctor_id": self.doctor.id, "date": "2024-01-08", "include_rooms": "true"})
        self.assertEqual(len(response.data["slots"][0]["available_rooms"]), 2)

    def test_available_slots_validation(self):
        url = reverse("schedules:api_available_slots")
        for params in (
            {"date": "2024-01-08"},
            {"doctor_id": self.independent.id, "date": "08-01-2024"},
            {"doctor_id": self.independent.id, "date": "2024-01-08", "duration": 5},
        ):
            with self.subTest(params=params):
                self.assertEqual(self.client.get(url, params).status_code, status.HTTP_400_BAD_REQUEST)

    def test_available_rooms_endpoint(self):
        self.book(self.doctor, MONDAY, time(10, 0), room=self.room_a)
        url = reverse("schedules:api_available_rooms")

        response = self.client.get(
            url, {"clinic_id": self.clinic.id, "date": "2024-01-08", "start_time": "10:00", "end_time": "10:50"},
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["results"], [{"id": self.room_b.id, "name": "Room B", "number": "2"}])

        response = self.client.get(
            url, {"clinic_id": self.clinic.id, "date": "2024-01-08", "start_time": "11:00", "end_time": "10:00"},
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_room_schedule_endpoints(self):
        self.book(self.doctor, MONDAY, time(9, 0), room=self.room_a)

        response = self.client.get(reverse("schedules:api_room_schedule", args=[self.room_a.id]), {"date": "2024-01-08"})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data["appointments"]), 1)

        response = self.client.get(
            reverse("schedules:api_clinic_rooms_schedule", args=[self.clinic.id]), {"date": "2024-01-08"},
        )
        self.assertEqual(len(response.data["results"]), 2)

        response = self.client.get(reverse("schedules:api_room_schedule", args=[99999]), {"date": "2024-01-08"})
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_occupancy_endpoint(self):
        self.book(self.doctor, MONDAY, time(8, 0), duration=60)
        url = reverse("schedules:api_occupancy", args=["clinic", self.clinic.id])

        response = self.client.get(url, {"start_date": "2024-01-08", "end_date": "2024-01-08"})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["occupancy_rate"], 10)

        response = self.client.get(url, {"start_date": "2024-01-08", "end_date": "2024-01-09", "group_by": "day"})
        self.assertEqual(len(response.data), 2)

        response = self.client.get(url, {"start_date": "2024-01-08", "end_date": "2024-01-08", "detailed": "true"})
        self.assertEqual(set(response.data), {"overall", "by_practitioner", "by_room"})

    def test_occupancy_validation(self):
        url = reverse("schedules:api_occupancy", args=["clinic", self.clinic.id])
        for params in (
            {"start_date": "2024-01-08"},
            {"start_date": "2024-01-09", "end_date": "2024-01-08"},
            {"start_date": "2024-01-08", "end_date": "2024-01-09", "group_by": "year"},
        ):
            with self.subTest(params=params):
                self.assertEqual(self.client.get(url, params).status_code, status.HTTP_400_BAD_REQUEST)

        detailed_room = reverse("schedules:api_occupancy", args=["room", self.room_a.id])
        response = self.client.get(
            detailed_room, {"start_date": "2024-01-08", "end_date": "2024-01-08", "detailed": "true"},
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        bad_kind = reverse("schedules:api_occupancy", args=["hospital", 1])
        response = self.client.get(bad_kind, {"start_date": "2024-01-08", "end_date": "2024-01-08"})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_occupancy_failure_propagates(self):
        url = reverse("schedules:api_occupancy", args=["clinic", self.clinic.id])
        with patch("schedules.api_views.services.calculate_occupancy", side_effect=OccupancyError()):
            response = self.client.get(url, {"start_date": "2024-01-08", "end_date": "2024-01-08"})
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data["code"], "occupancy_failed")

    def test_unexpected_error_is_generic_500(self):
        url = reverse("schedules:api_available_slots")
        with patch("schedules.api_views.services.get_available_slots", side_effect=RuntimeError("boom")):
            with self.assertLogs("schedules.api_views", level="ERROR"):
                response = self.client.get(url, {"doctor_id": self.independent.id, "date": "2024-01-08"})
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data["code"], "internal_error")
