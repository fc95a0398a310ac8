from django.contrib import messages
from django.contrib.auth import get_user_model
from django.contrib.auth.mixins import LoginRequiredMixin, PermissionRequiredMixin
from django.contrib.messages.views import SuccessMessageMixin
from django.db import transaction
from django.shortcuts import redirect
from django.urls import reverse
from django.utils import timezone
from django.utils.translation import gettext_lazy as _
from django.views.generic import DetailView, ListView, TemplateView
from django.views.generic.edit import CreateView, UpdateView

from apps.activity.models import ActivityLog
from apps.corecode.utils import ROLE_TEACHER, TeacherRequiredMixin, assign_role
from apps.students.utils import generate_username
from .forms import TeacherProfileForm
from .models import TeacherProfile


class TeacherListView(LoginRequiredMixin, PermissionRequiredMixin, ListView):
    model = TeacherProfile
    template_name = 'staffs/teacher_list.html'
    permission_required = 'staffs.view_teacherprofile'
    context_object_name = 'teachers'
    paginate_by = 50

    def get_queryset(self):
        queryset = TeacherProfile.objects.select_related('user').prefetch_related('subjects')

        status = self.request.GET.get('status')
        if status:
            queryset = queryset.filter(status=status)

        department = self.request.GET.get('department')
        if department:
            queryset = queryset.by_department(department)

        search = self.request.GET.get('search')
        if search:
            queryset = queryset.search(search)

        return queryset


class TeacherDetailView(LoginRequiredMixin, PermissionRequiredMixin, DetailView):
    model = TeacherProfile
    template_name = 'staffs/teacher_detail.html'
    permission_required = 'staffs.view_teacherprofile'
    context_object_name = 'teacher'

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['subjects'] = self.object.subjects.select_related('curriculum')
        context['current_students'] = self.object.current_students
        context['timetable'] = self.object.timetable_slots.select_related('subject', 'room')
        return context


class TeacherCreateView(LoginRequiredMixin, PermissionRequiredMixin, CreateView):
    """Create a teacher login together with the profile"""
    model = TeacherProfile
    form_class = TeacherProfileForm
    template_name = 'staffs/teacher_form.html'
    permission_required = 'staffs.add_teacherprofile'

    def form_valid(self, form):
        data = form.cleaned_data
        User = get_user_model()

        with transaction.atomic():
            user = User.objects.create_user(
                username=generate_username(data['email']),
                email=data['email'],
                first_name=data['first_name'],
                last_name=data['last_name'],
            )
            user.set_unusable_password()
            user.save(update_fields=['password'])
            assign_role(user, ROLE_TEACHER)

            form.instance.user = user
            self.object = form.save()

        ActivityLog.log(
            self.request.user,
            ActivityLog.Action.CREATE,
            f"Created teacher profile: {self.object.full_name}",
            subject=self.object,
            request=self.request,
        )
        messages.success(self.request, _("Teacher %(name)s created.") % {'name': self.object.full_name})
        return redirect('staffs:teacher_detail', pk=self.object.pk)


class TeacherUpdateView(LoginRequiredMixin, PermissionRequiredMixin, SuccessMessageMixin, UpdateView):
    model = TeacherProfile
    form_class = TeacherProfileForm
    template_name = 'staffs/teacher_form.html'
    permission_required = 'staffs.change_teacherprofile'
    success_message = _("Record successfully updated.")

    def form_valid(self, form):
        user = form.instance.user
        user.first_name = form.cleaned_data['first_name']
        user.last_name = form.cleaned_data['last_name']
        user.email = form.cleaned_data['email']
        user.save(update_fields=['first_name', 'last_name', 'email'])
        return super().form_valid(form)

    def get_success_url(self):
        return reverse('staffs:teacher_detail', kwargs={'pk': self.object.pk})


class TeacherDashboardView(TeacherRequiredMixin, TemplateView):
    """Teacher landing page"""
    template_name = 'staffs/teacher_dashboard.html'

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        teacher = self.request.user.teacher_profile
        now = timezone.now()

        context.update({
            'teacher': teacher,
            'subjects': teacher.subjects.select_related('curriculum'),
            'upcoming_sessions': teacher.sessions.filter(start_time__gte=now).select_related(
                'subject', 'room'
            ).order_by('start_time')[:10],
            'students_count': teacher.students_count,
            'timetable': teacher.timetable_slots.select_related('subject', 'room'),
        })
        return context
