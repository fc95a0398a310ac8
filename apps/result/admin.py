from django.contrib import admin

from .models import Exam, ExamResult


class ExamResultInline(admin.TabularInline):
    model = ExamResult
    extra = 0


@admin.register(Exam)
class ExamAdmin(admin.ModelAdmin):
    list_display = ['title', 'subject', 'teacher_profile', 'academic_year', 'exam_date', 'type', 'max_score']
    list_filter = ['type', 'academic_year']
    inlines = [ExamResultInline]
