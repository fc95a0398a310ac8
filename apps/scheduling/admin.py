from django.contrib import admin

from .models import Attendance, Event, Session, TimetableSlot


class AttendanceInline(admin.TabularInline):
    model = Attendance
    extra = 0


@admin.register(Session)
class SessionAdmin(admin.ModelAdmin):
    list_display = ['subject', 'teacher_profile', 'room', 'start_time', 'end_time', 'type']
    list_filter = ['type', 'room']
    date_hierarchy = 'start_time'
    inlines = [AttendanceInline]


@admin.register(TimetableSlot)
class TimetableSlotAdmin(admin.ModelAdmin):
    list_display = ['subject', 'teacher_profile', 'day', 'start_time', 'end_time', 'room']
    list_filter = ['day']


@admin.register(Event)
class EventAdmin(admin.ModelAdmin):
    list_display = ['title', 'type', 'start_date', 'end_date', 'status', 'deleted_at']
    list_filter = ['type', 'status']
    search_fields = ['title', 'location']

    def get_queryset(self, request):
        return Event.all_objects.all()
