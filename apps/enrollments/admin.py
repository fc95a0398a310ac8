from django.contrib import admin

from .models import ProgramEnrollment, SubjectEnrollment


class SubjectEnrollmentInline(admin.TabularInline):
    model = SubjectEnrollment
    extra = 0


@admin.register(ProgramEnrollment)
class ProgramEnrollmentAdmin(admin.ModelAdmin):
    list_display = ['child_profile', 'curriculum', 'academic_year', 'status', 'payment_plan', 'created_at']
    list_filter = ['status', 'curriculum', 'academic_year']
    search_fields = ['child_profile__first_name', 'child_profile__last_name', 'curriculum__name']
    raw_id_fields = ['child_profile']
    inlines = [SubjectEnrollmentInline]
