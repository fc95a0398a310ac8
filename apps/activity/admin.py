from django.contrib import admin

from .models import ActivityLog


@admin.register(ActivityLog)
class ActivityLogAdmin(admin.ModelAdmin):
    list_display = ('created_at', 'user', 'action', 'activity_type', 'short_description', 'ip_address')
    list_filter = ('action', 'activity_type')
    search_fields = ('description', 'user__username')
    readonly_fields = [f.name for f in ActivityLog._meta.fields]

    def short_description(self, obj):
        return obj.description[:80]
    short_description.short_description = 'Description'

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
