from django.contrib import admin

from .models import AcademicYear, Curriculum, Room, Subject


@admin.register(AcademicYear)
class AcademicYearAdmin(admin.ModelAdmin):
    list_display = ['name', 'start_date', 'end_date', 'is_current']


class SubjectInline(admin.TabularInline):
    model = Subject
    extra = 0


@admin.register(Curriculum)
class CurriculumAdmin(admin.ModelAdmin):
    list_display = ['name', 'code', 'is_active']
    search_fields = ['name', 'code']
    inlines = [SubjectInline]


@admin.register(Subject)
class SubjectAdmin(admin.ModelAdmin):
    list_display = ['name', 'code', 'curriculum', 'level']
    list_filter = ['curriculum']
    search_fields = ['name', 'code']


@admin.register(Room)
class RoomAdmin(admin.ModelAdmin):
    list_display = ['name', 'capacity', 'building', 'floor', 'has_projector', 'has_computers', 'is_accessible']
    list_filter = ['is_accessible', 'has_projector', 'has_computers']
