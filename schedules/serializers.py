from rest_framework import serializers

from .domain import DATE_PATTERN, TIME_PATTERN, DaySchedule, TimeInterval, time_to_minutes
from .exceptions import ScheduleValidationError
from .models import DateOverride, WorkingHours
from .services.occupancy_service import GROUP_BY_CHOICES


class StrictDateField(serializers.DateField):
    """DateField that only accepts zero-padded YYYY-MM-DD."""

    def __init__(self, **kwargs):
        kwargs.setdefault("input_formats", ["%Y-%m-%d"])
        super().__init__(**kwargs)

    def to_internal_value(self, value):
        if isinstance(value, str) and not DATE_PATTERN.match(value):
            self.fail("invalid", format="YYYY-MM-DD")
        return super().to_internal_value(value)


class TimeStringField(serializers.RegexField):
    """24h "HH:MM" kept as a string."""

    def __init__(self, **kwargs):
        kwargs.setdefault("error_messages", {"invalid": "Invalid time. Use HH:MM (24h)."})
        super().__init__(TIME_PATTERN, **kwargs)


def _check_intervals(slots, is_open):
    try:
        intervals = tuple(TimeInterval.from_strings(s["start_time"], s["end_time"]) for s in slots)
        DaySchedule(is_open=is_open, intervals=intervals)
    except ScheduleValidationError as e:
        raise serializers.ValidationError({"slots": e.message})


# ── Working hours input ──────────────────────────────────────────────


class TimeIntervalSerializer(serializers.Serializer):
    start_time = TimeStringField()
    end_time = TimeStringField()

    def validate(self, attrs):
        if time_to_minutes(attrs["start_time"]) >= time_to_minutes(attrs["end_time"]):
            raise serializers.ValidationError({"end_time": "end_time must be after start_time."})
        return attrs


class DayScheduleSerializer(serializers.Serializer):
    day_of_week = serializers.IntegerField(min_value=0, max_value=6, help_text="0=Sunday ... 6=Saturday")
    is_open = serializers.BooleanField()
    slots = TimeIntervalSerializer(many=True, required=False, default=list)

    def validate(self, attrs):
        _check_intervals(attrs["slots"], attrs["is_open"])
        return attrs


class WorkingHoursUpdateSerializer(serializers.Serializer):
    """
    PUT body for a working-hours record. Any subset of the fields may be
    sent, but a weekly schedule is always replaced as a whole.
    """

    weekly_schedule = DayScheduleSerializer(many=True, required=False)
    default_session_duration = serializers.IntegerField(min_value=15, max_value=240, required=False)
    buffer_between_sessions = serializers.IntegerField(min_value=0, max_value=60, required=False)

    def validate_weekly_schedule(self, value):
        days = sorted(entry["day_of_week"] for entry in value)
        if len(value) != 7 or days != list(range(7)):
            raise serializers.ValidationError(
                "Weekly schedule must contain exactly 7 days with day_of_week 0-6, each once."
            )
        return value

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("Nothing to update.")
        return attrs


class DateOverrideSerializer(serializers.Serializer):
    date = StrictDateField()
    is_open = serializers.BooleanField(default=False)
    slots = TimeIntervalSerializer(many=True, required=False, default=list)
    reason = serializers.CharField(max_length=200, required=False, allow_blank=True, default="")

    def validate(self, attrs):
        if attrs["is_open"]:
            _check_intervals(attrs["slots"], True)
        return attrs


# ── Working hours output ─────────────────────────────────────────────


class DateOverrideOutputSerializer(serializers.ModelSerializer):
    class Meta:
        model = DateOverride
        fields = ["date", "is_open", "slots", "reason"]


class WorkingHoursSerializer(serializers.ModelSerializer):
    entity_id = serializers.IntegerField(read_only=True)
    date_overrides = DateOverrideOutputSerializer(many=True, read_only=True)

    class Meta:
        model = WorkingHours
        fields = [
            "id",
            "entity_kind",
            "entity_id",
            "weekly_schedule",
            "default_session_duration",
            "buffer_between_sessions",
            "date_overrides",
            "updated_at",
        ]
        read_only_fields = fields


# ── Query parameters ─────────────────────────────────────────────────


class DateQuerySerializer(serializers.Serializer):
    date = StrictDateField()


class AvailableSlotsQuerySerializer(DateQuerySerializer):
    doctor_id = serializers.IntegerField()
    duration = serializers.IntegerField(min_value=15, max_value=240, required=False)
    include_rooms = serializers.BooleanField(default=False)


class AvailableRoomsQuerySerializer(DateQuerySerializer):
    clinic_id = serializers.IntegerField()
    start_time = TimeStringField()
    end_time = TimeStringField()

    def validate(self, attrs):
        if time_to_minutes(attrs["start_time"]) >= time_to_minutes(attrs["end_time"]):
            raise serializers.ValidationError({"end_time": "end_time must be after start_time."})
        return attrs


class DateRangeQuerySerializer(serializers.Serializer):
    start_date = StrictDateField()
    end_date = StrictDateField()

    def validate(self, attrs):
        if attrs["start_date"] > attrs["end_date"]:
            raise serializers.ValidationError({"end_date": "end_date must be on or after start_date."})
        return attrs


class OccupancyQuerySerializer(DateRangeQuerySerializer):
    group_by = serializers.ChoiceField(choices=GROUP_BY_CHOICES, required=False)
    detailed = serializers.BooleanField(default=False)
