from django.contrib import admin
from .models import Clinic, Room


class RoomInline(admin.TabularInline):
    model = Room
    extra = 0
    fields = ['name', 'number', 'capacity', 'is_active', 'deleted_at']
    readonly_fields = ['deleted_at']


@admin.register(Clinic)
class ClinicAdmin(admin.ModelAdmin):
    list_display = ['name', 'phone', 'email', 'is_active', 'deleted_at', 'created_at']
    list_filter = ['is_active', 'created_at']
    search_fields = ['name', 'email', 'phone']
    readonly_fields = ['created_at', 'deleted_at']
    inlines = [RoomInline]

    fieldsets = (
        ('Clinic Information', {
            'fields': ('name', 'address', 'phone', 'email', 'description')
        }),
        ('Status', {
            'fields': ('is_active', 'deleted_at')
        }),
        ('Metadata', {
            'fields': ('created_at',)
        }),
    )


@admin.register(Room)
class RoomAdmin(admin.ModelAdmin):
    list_display = ['name', 'number', 'clinic', 'capacity', 'is_active', 'deleted_at']
    list_filter = ['is_active', 'clinic']
    search_fields = ['name', 'number', 'clinic__name']
    readonly_fields = ['created_at', 'deleted_at']
    actions = ['activate_rooms', 'deactivate_rooms']

    @admin.action(description="Activate selected rooms")
    def activate_rooms(self, request, queryset):
        updated = queryset.alive().update(is_active=True)
        self.message_user(request, f"{updated} room(s) activated.")

    @admin.action(description="Deactivate selected rooms")
    def deactivate_rooms(self, request, queryset):
        updated = queryset.update(is_active=False)
        self.message_user(request, f"{updated} room(s) deactivated.")
