from django.contrib import admin
from .models import Appointment


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "patient",
        "doctor",
        "clinic",
        "room",
        "appointment_date",
        "appointment_time",
        "duration_minutes",
        "type",
        "status",
    ]
    list_filter = ["status", "type", "clinic", "appointment_date"]
    search_fields = ["patient__name", "doctor__name", "clinic__name", "room__name"]
    raw_id_fields = ["patient", "doctor", "clinic", "room", "created_by", "cancelled_by"]
    readonly_fields = ["created_at", "updated_at", "deleted_at"]
    date_hierarchy = "appointment_date"

    fieldsets = (
        (None, {"fields": ("patient", "doctor", "clinic", "room")}),
        ("When", {"fields": ("appointment_date", "appointment_time", "duration_minutes")}),
        ("Details", {"fields": ("type", "status", "notes")}),
        ("Cancellation", {"fields": ("cancelled_by", "cancelled_reason")}),
        ("Metadata", {"fields": ("created_by", "created_at", "updated_at", "deleted_at")}),
    )
