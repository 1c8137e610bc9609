from django.contrib import admin
from .models import DateOverride, WorkingHours


class DateOverrideInline(admin.TabularInline):
    model = DateOverride
    extra = 0
    fields = ["date", "is_open", "slots", "reason"]


@admin.register(WorkingHours)
class WorkingHoursAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "entity_kind",
        "clinic",
        "doctor",
        "default_session_duration",
        "buffer_between_sessions",
        "deleted_at",
        "updated_at",
    ]
    list_filter = ["entity_kind"]
    search_fields = ["clinic__name", "doctor__name"]
    raw_id_fields = ["clinic", "doctor"]
    readonly_fields = ["created_at", "updated_at", "deleted_at"]
    inlines = [DateOverrideInline]

    fieldsets = (
        (None, {"fields": ("entity_kind", "clinic", "doctor")}),
        ("Schedule", {"fields": ("weekly_schedule", "default_session_duration", "buffer_between_sessions")}),
        ("Metadata", {"fields": ("created_at", "updated_at", "deleted_at")}),
    )
