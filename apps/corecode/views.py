import logging

from django.contrib import messages
from django.contrib.auth.decorators import login_required, user_passes_test
from django.db.models import Count, ProtectedError, RestrictedError
from django.http import Http404
from django.shortcuts import get_object_or_404, redirect, render
from django.urls import reverse_lazy
from django.utils.translation import gettext_lazy as _
from django.views.generic import ListView, TemplateView
from django.views.generic.edit import CreateView, UpdateView

from apps.activity.models import ActivityLog
from .forms import AcademicYearForm, CurriculumForm, RoomForm, SubjectForm
from .models import AcademicYear, Curriculum, Room, Subject
from .utils import AdminRequiredMixin, get_user_role, is_admin

logger = logging.getLogger(__name__)


class HomeView(TemplateView):
    """Role-aware landing page"""
    template_name = 'corecode/home.html'

    def get(self, request, *args, **kwargs):
        if not request.user.is_authenticated:
            return redirect('login')

        role = get_user_role(request.user)
        if role == 'teacher':
            return redirect('staffs:teacher_dashboard')
        if role == 'parent':
            return redirect('students:parent_dashboard')

        return super().get(request, *args, **kwargs)

    def get_context_data(self, **kwargs):
        from apps.enrollments.models import ProgramEnrollment
        from apps.finance.models import Invoice
        from apps.scheduling.models import Event
        from apps.scheduling.views import upcoming_for_dashboard
        from apps.staffs.models import TeacherProfile
        from apps.students.models import ChildProfile

        context = super().get_context_data(**kwargs)
        user = self.request.user

        context['upcoming_sessions'] = upcoming_for_dashboard(user)
        context['upcoming_events'] = Event.objects.upcoming().active()[:5]

        if get_user_role(user) == 'admin':
            context['stats'] = {
                'students': ChildProfile.objects.count(),
                'teachers': TeacherProfile.objects.count(),
                'active_enrollments': ProgramEnrollment.objects.filter(
                    status=ProgramEnrollment.Status.ACTIVE
                ).count(),
                'overdue_invoices': Invoice.objects.overdue().count(),
            }
            context['recent_activity'] = ActivityLog.objects.select_related('user')[:10]
        return context


class CorecodeFormMixin:
    """Flash and record create/update of reference data"""
    success_message = ''

    def form_valid(self, form):
        is_new = form.instance.pk is None
        response = super().form_valid(form)

        ActivityLog.log(
            self.request.user,
            ActivityLog.Action.CREATE if is_new else ActivityLog.Action.UPDATE,
            f"{'Created' if is_new else 'Updated'} {self.object._meta.verbose_name}: {self.object}",
            subject=self.object,
            request=self.request,
        )
        messages.success(self.request, self.success_message % {'name': self.object})
        return response


def _delete_reference(request, model, pk, success_url, template_name='corecode/confirm_delete.html'):
    obj = get_object_or_404(model, pk=pk)

    if request.method == 'POST':
        try:
            obj.delete()
        except (ProtectedError, RestrictedError):
            messages.error(
                request,
                _("%(name)s is still in use and cannot be deleted") % {'name': obj}
            )
            return redirect(success_url)

        ActivityLog.log(
            request.user,
            ActivityLog.Action.DELETE,
            f"Deleted {model._meta.verbose_name}: {obj}",
            activity_type=model._meta.model_name,
            request=request,
        )
        messages.success(request, _("%(name)s deleted") % {'name': obj})
        return redirect(success_url)

    return render(request, template_name, {'object': obj, 'cancel_url': success_url})


# ---------------------------------------------------------------------------
# Academic years
# ---------------------------------------------------------------------------

class AcademicYearListView(AdminRequiredMixin, ListView):
    model = AcademicYear
    template_name = 'corecode/academicyear_list.html'
    context_object_name = 'academic_years'


class AcademicYearCreateView(AdminRequiredMixin, CorecodeFormMixin, CreateView):
    model = AcademicYear
    form_class = AcademicYearForm
    template_name = 'corecode/mgt_form.html'
    success_url = reverse_lazy('corecode:academic_year_list')
    success_message = _("Academic year %(name)s saved")


class AcademicYearUpdateView(AdminRequiredMixin, CorecodeFormMixin, UpdateView):
    model = AcademicYear
    form_class = AcademicYearForm
    template_name = 'corecode/mgt_form.html'
    success_url = reverse_lazy('corecode:academic_year_list')
    success_message = _("Academic year %(name)s saved")


# ---------------------------------------------------------------------------
# Curricula and subjects
# ---------------------------------------------------------------------------

class CurriculumListView(AdminRequiredMixin, ListView):
    template_name = 'corecode/curriculum_list.html'
    context_object_name = 'curricula'

    def get_queryset(self):
        return Curriculum.objects.annotate(subject_count=Count('subjects'))


class CurriculumCreateView(AdminRequiredMixin, CorecodeFormMixin, CreateView):
    model = Curriculum
    form_class = CurriculumForm
    template_name = 'corecode/mgt_form.html'
    success_url = reverse_lazy('corecode:curriculum_list')
    success_message = _("Curriculum %(name)s saved")


class CurriculumUpdateView(AdminRequiredMixin, CorecodeFormMixin, UpdateView):
    model = Curriculum
    form_class = CurriculumForm
    template_name = 'corecode/mgt_form.html'
    success_url = reverse_lazy('corecode:curriculum_list')
    success_message = _("Curriculum %(name)s saved")


class SubjectListView(AdminRequiredMixin, ListView):
    template_name = 'corecode/subject_list.html'
    context_object_name = 'subjects'

    def get_queryset(self):
        queryset = Subject.objects.select_related('curriculum')
        curriculum_id = self.request.GET.get('curriculum')
        if curriculum_id:
            queryset = queryset.filter(curriculum_id=curriculum_id)
        return queryset

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['curricula'] = Curriculum.objects.all()
        return context


class SubjectCreateView(AdminRequiredMixin, CorecodeFormMixin, CreateView):
    model = Subject
    form_class = SubjectForm
    template_name = 'corecode/mgt_form.html'
    success_url = reverse_lazy('corecode:subject_list')
    success_message = _("Subject %(name)s saved")

    def get_initial(self):
        initial = super().get_initial()
        if self.request.GET.get('curriculum'):
            initial['curriculum'] = self.request.GET['curriculum']
        return initial


class SubjectUpdateView(AdminRequiredMixin, CorecodeFormMixin, UpdateView):
    model = Subject
    form_class = SubjectForm
    template_name = 'corecode/mgt_form.html'
    success_url = reverse_lazy('corecode:subject_list')
    success_message = _("Subject %(name)s saved")


# ---------------------------------------------------------------------------
# Rooms
# ---------------------------------------------------------------------------

class RoomListView(AdminRequiredMixin, ListView):
    template_name = 'corecode/room_list.html'
    context_object_name = 'rooms'

    def get_queryset(self):
        queryset = Room.objects.all()
        if self.request.GET.get('accessible') == '1':
            queryset = queryset.accessible()
        capacity = self.request.GET.get('capacity')
        if capacity and capacity.isdigit():
            queryset = queryset.with_capacity(int(capacity))
        return queryset


class RoomCreateView(AdminRequiredMixin, CorecodeFormMixin, CreateView):
    model = Room
    form_class = RoomForm
    template_name = 'corecode/mgt_form.html'
    success_url = reverse_lazy('corecode:room_list')
    success_message = _("Room %(name)s saved")


class RoomUpdateView(AdminRequiredMixin, CorecodeFormMixin, UpdateView):
    model = Room
    form_class = RoomForm
    template_name = 'corecode/mgt_form.html'
    success_url = reverse_lazy('corecode:room_list')
    success_message = _("Room %(name)s saved")


DELETABLE = {
    'academic-year': (AcademicYear, 'corecode:academic_year_list'),
    'curriculum': (Curriculum, 'corecode:curriculum_list'),
    'subject': (Subject, 'corecode:subject_list'),
    'room': (Room, 'corecode:room_list'),
}


@login_required
@user_passes_test(is_admin)
def delete_reference(request, kind, pk):
    """Confirm and delete an academic year, curriculum, subject or room"""
    if kind not in DELETABLE:
        raise Http404
    model, list_url = DELETABLE[kind]
    return _delete_reference(request, model, pk, reverse_lazy(list_url))
