from rest_framework import serializers

from .models import Appointment


class BookAppointmentSerializer(serializers.Serializer):
    """
    Request serializer for booking an appointment.

    Validates incoming data before passing to the booking service for
    business-logic validation.
    """

    patient_id = serializers.IntegerField(
        required=False,
        help_text="Defaults to the requesting user.",
    )
    doctor_id = serializers.IntegerField()
    appointment_date = serializers.DateField(
        input_formats=["%Y-%m-%d"],
        help_text="Desired date in YYYY-MM-DD format.",
    )
    appointment_time = serializers.TimeField(
        input_formats=["%H:%M"],
        help_text="Desired start time in HH:MM format.",
    )
    duration_minutes = serializers.IntegerField(min_value=15, max_value=240, required=False)
    room_id = serializers.IntegerField(required=False, allow_null=True, default=None)
    type = serializers.ChoiceField(choices=Appointment.Type.choices, default=Appointment.Type.IN_PERSON)
    notes = serializers.CharField(required=False, allow_blank=True, default="", max_length=1000)


class RescheduleAppointmentSerializer(serializers.Serializer):
    appointment_date = serializers.DateField(input_formats=["%Y-%m-%d"])
    appointment_time = serializers.TimeField(input_formats=["%H:%M"])
    duration_minutes = serializers.IntegerField(min_value=15, max_value=240, required=False)
    room_id = serializers.IntegerField(required=False, allow_null=True)


class CancelAppointmentSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="", max_length=500)


class AppointmentResponseSerializer(serializers.ModelSerializer):
    """Full appointment details returned after a write."""

    doctor_name = serializers.CharField(source="doctor.name", read_only=True, default=None)
    patient_name = serializers.CharField(source="patient.name", read_only=True)
    clinic_name = serializers.CharField(source="clinic.name", read_only=True, default=None)
    room_name = serializers.CharField(source="room.name", read_only=True, default=None)
    appointment_time = serializers.TimeField(format="%H:%M", read_only=True)
    end_time = serializers.SerializerMethodField()
    status_display = serializers.CharField(source="get_status_display", read_only=True)

    class Meta:
        model = Appointment
        fields = [
            "id",
            "patient",
            "patient_name",
            "doctor",
            "doctor_name",
            "clinic",
            "clinic_name",
            "room",
            "room_name",
            "appointment_date",
            "appointment_time",
            "end_time",
            "duration_minutes",
            "type",
            "status",
            "status_display",
            "notes",
            "cancelled_reason",
            "created_at",
        ]
        read_only_fields = fields

    def get_end_time(self, obj):
        return obj.end_datetime.strftime("%H:%M")
