from django.contrib import admin

from .models import TeacherProfile


@admin.register(TeacherProfile)
class TeacherProfileAdmin(admin.ModelAdmin):
    list_display = ('full_name', 'employee_id', 'department', 'status', 'subjects_count')
    list_filter = ('status', 'department')
    search_fields = ('user__first_name', 'user__last_name', 'employee_id')
    filter_horizontal = ('subjects',)
