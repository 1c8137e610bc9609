from rest_framework import serializers

from schedules.serializers import StrictDateField
from .models import Room


class RoomSerializer(serializers.ModelSerializer):
    """Serializer for clinic rooms (list and create)."""

    class Meta:
        model = Room
        fields = [
            "id",
            "clinic",
            "name",
            "number",
            "description",
            "capacity",
            "is_active",
            "created_at",
        ]
        read_only_fields = ["id", "clinic", "created_at"]

    def validate_name(self, value):
        clinic = self.context["clinic"]
        clash = Room.objects.alive().filter(clinic=clinic, name__iexact=value)
        if self.instance is not None:
            clash = clash.exclude(pk=self.instance.pk)
        if clash.exists():
            raise serializers.ValidationError("A room with this name already exists in this clinic.")
        return value


class DashboardQuerySerializer(serializers.Serializer):
    """Defaults to the current calendar month when no range is given."""

    start_date = StrictDateField(required=False)
    end_date = StrictDateField(required=False)

    def validate(self, attrs):
        start, end = attrs.get("start_date"), attrs.get("end_date")
        if start and end and start > end:
            raise serializers.ValidationError({"end_date": "end_date must be on or after start_date."})
        return attrs
