import logging

from django.contrib import messages
from django.contrib.auth.decorators import login_required, permission_required
from django.contrib.auth.mixins import LoginRequiredMixin, PermissionRequiredMixin
from django.db.models import Count, Q
from django.http import JsonResponse
from django.shortcuts import get_object_or_404, redirect, render
from django.urls import reverse_lazy
from django.utils.translation import gettext_lazy as _
from django.views.generic import DetailView, ListView, View
from django.views.generic.edit import DeleteView, UpdateView
from formtools.wizard.views import SessionWizardView

from apps.corecode.models import AcademicYear, Curriculum, Subject
from .forms import (
    EnrollmentPlanForm,
    EnrollmentProgramForm,
    EnrollmentStudentForm,
    ProgramEnrollmentForm,
    SubjectEnrollmentForm,
    payment_plan_choices,
)
from .models import ProgramEnrollment
from .services import (
    DuplicateEnrollmentError,
    EnrollmentError,
    EnrollmentService,
    SubjectEnrollmentService,
)

logger = logging.getLogger(__name__)

ENROLLMENT_WIZARD_FORMS = [
    ('student', EnrollmentStudentForm),
    ('program', EnrollmentProgramForm),
    ('plan', EnrollmentPlanForm),
]

ENROLLMENT_WIZARD_STEP_NAMES = {
    'student': _('Student'),
    'program': _('Curriculum & Year'),
    'plan': _('Payment & Status'),
}


class EnrollmentListView(LoginRequiredMixin, PermissionRequiredMixin, ListView):
    """List enrollments with filtering"""
    model = ProgramEnrollment
    template_name = 'enrollments/enrollment_list.html'
    permission_required = 'enrollments.view_programenrollment'
    paginate_by = 50
    context_object_name = 'enrollments'

    def get_queryset(self):
        queryset = ProgramEnrollment.objects.select_related(
            'child_profile', 'curriculum', 'academic_year', 'payment_plan'
        ).annotate(subject_count=Count('subject_enrollments'))

        status = self.request.GET.get('status')
        if status:
            queryset = queryset.filter(status=status)

        curriculum_id = self.request.GET.get('curriculum')
        if curriculum_id:
            queryset = queryset.filter(curriculum_id=curriculum_id)

        year_id = self.request.GET.get('academic_year')
        if year_id:
            queryset = queryset.filter(academic_year_id=year_id)

        search = self.request.GET.get('search')
        if search:
            queryset = queryset.filter(
                Q(child_profile__first_name__icontains=search) |
                Q(child_profile__last_name__icontains=search) |
                Q(curriculum__name__icontains=search)
            )

        return queryset

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['statuses'] = ProgramEnrollment.Status.choices
        context['curricula'] = Curriculum.objects.all()
        context['academic_years'] = AcademicYear.objects.all()
        return context


class EnrollmentCreateWizard(LoginRequiredMixin, PermissionRequiredMixin, SessionWizardView):
    """
    Multi-step wizard for creating a program enrollment.

    Steps:
    1. Student
    2. Curriculum and academic year (current year pre-selected)
    3. Payment plan and status
    """

    form_list = ENROLLMENT_WIZARD_FORMS
    template_name = 'enrollments/enrollment_wizard.html'
    permission_required = 'enrollments.add_programenrollment'

    def get_form_kwargs(self, step=None):
        kwargs = super().get_form_kwargs(step)

        if step == 'program':
            student_data = self.get_cleaned_data_for_step('student') or {}
            kwargs['child_profile'] = student_data.get('child_profile')
        elif step == 'plan':
            program_data = self.get_cleaned_data_for_step('program') or {}
            kwargs['curriculum'] = program_data.get('curriculum')

        return kwargs

    def get_form_initial(self, step):
        initial = super().get_form_initial(step)
        if step == 'student' and self.request.GET.get('child'):
            initial['child_profile'] = self.request.GET['child']
        return initial

    def get_context_data(self, form, **kwargs):
        context = super().get_context_data(form=form, **kwargs)
        context.update({
            'step_names': ENROLLMENT_WIZARD_STEP_NAMES,
            'current_step_name': ENROLLMENT_WIZARD_STEP_NAMES.get(self.steps.current, _('Step')),
        })
        return context

    def done(self, form_list, **kwargs):
        data = {}
        for form in form_list:
            data.update(form.cleaned_data)

        try:
            enrollment = EnrollmentService.create_enrollment(
                child_profile=data['child_profile'],
                curriculum=data['curriculum'],
                academic_year=data['academic_year'],
                status=data.get('status') or ProgramEnrollment.Status.PENDING,
                payment_plan=data.get('payment_plan'),
                notes=data.get('notes', ''),
                user=self.request.user,
                request=self.request,
            )
        except EnrollmentError as e:
            messages.error(self.request, str(e))
            return redirect('enrollments:enrollment_create')

        messages.success(
            self.request,
            _("Enrolled %(student)s in %(curriculum)s") % {
                'student': enrollment.child_profile.full_name,
                'curriculum': enrollment.curriculum.name,
            }
        )
        return redirect('enrollments:enrollment_detail', pk=enrollment.pk)


class EnrollmentDetailView(LoginRequiredMixin, PermissionRequiredMixin, DetailView):
    model = ProgramEnrollment
    template_name = 'enrollments/enrollment_detail.html'
    permission_required = 'enrollments.view_programenrollment'
    context_object_name = 'enrollment'

    def get_queryset(self):
        return ProgramEnrollment.objects.select_related(
            'child_profile', 'curriculum', 'academic_year', 'payment_plan'
        )

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['subject_enrollments'] = self.object.subject_enrollments.select_related('subject')
        context['available_subjects'] = self.object.available_subjects
        context['subject_form'] = SubjectEnrollmentForm(enrollment=self.object)
        context['invoices'] = self.object.invoices.order_by('-invoice_date')
        return context


class EnrollmentUpdateView(LoginRequiredMixin, PermissionRequiredMixin, UpdateView):
    model = ProgramEnrollment
    form_class = ProgramEnrollmentForm
    template_name = 'enrollments/enrollment_form.html'
    permission_required = 'enrollments.change_programenrollment'
    context_object_name = 'enrollment'

    def form_valid(self, form):
        # form.instance already carries the new values; update a fresh copy
        enrollment = ProgramEnrollment.objects.get(pk=self.object.pk)
        changes = {
            field: form.cleaned_data[field]
            for field in ('child_profile', 'curriculum', 'academic_year', 'payment_plan', 'status', 'notes')
        }

        try:
            EnrollmentService.update_enrollment(
                enrollment, user=self.request.user, request=self.request, **changes
            )
        except DuplicateEnrollmentError as e:
            form.add_error(None, str(e))
            return self.form_invalid(form)
        except EnrollmentError as e:
            form.add_error('payment_plan', str(e))
            return self.form_invalid(form)

        messages.success(self.request, _("Enrollment updated successfully"))
        return redirect('enrollments:enrollment_detail', pk=enrollment.pk)


class EnrollmentDeleteView(LoginRequiredMixin, PermissionRequiredMixin, DeleteView):
    model = ProgramEnrollment
    template_name = 'enrollments/enrollment_confirm_delete.html'
    permission_required = 'enrollments.delete_programenrollment'
    success_url = reverse_lazy('enrollments:enrollment_list')
    context_object_name = 'enrollment'

    def form_valid(self, form):
        EnrollmentService.delete_enrollment(self.object, user=self.request.user, request=self.request)
        messages.success(self.request, _("Enrollment deleted"))
        return redirect(self.success_url)


class SubjectEnrollmentAddView(LoginRequiredMixin, PermissionRequiredMixin, View):
    """Enroll the student into curriculum subjects"""
    permission_required = 'enrollments.add_subjectenrollment'
    template_name = 'enrollments/subject_enrollment_form.html'

    def get(self, request, pk):
        enrollment = get_object_or_404(ProgramEnrollment, pk=pk)
        form = SubjectEnrollmentForm(enrollment=enrollment)
        return render(request, self.template_name, {'form': form, 'enrollment': enrollment})

    def post(self, request, pk):
        enrollment = get_object_or_404(ProgramEnrollment, pk=pk)
        form = SubjectEnrollmentForm(request.POST, enrollment=enrollment)

        if not form.is_valid():
            return render(request, self.template_name, {'form': form, 'enrollment': enrollment})

        try:
            created = SubjectEnrollmentService.add_subjects(
                enrollment, form.cleaned_data['subjects'], user=request.user, request=request
            )
        except EnrollmentError as e:
            messages.error(request, str(e))
        else:
            messages.success(
                request,
                _("%(count)s subject(s) added") % {'count': len(created)}
            )

        return redirect('enrollments:enrollment_detail', pk=enrollment.pk)


@login_required
@permission_required('enrollments.delete_subjectenrollment', raise_exception=True)
def remove_subject_enrollment(request, pk, subject_id):
    """Remove one subject from an enrollment"""
    enrollment = get_object_or_404(ProgramEnrollment, pk=pk)
    subject = get_object_or_404(Subject, pk=subject_id)

    if request.method == 'POST':
        try:
            SubjectEnrollmentService.remove_subject(enrollment, subject, user=request.user, request=request)
            messages.success(request, _("Removed %(subject)s") % {'subject': subject.name})
        except EnrollmentError as e:
            messages.error(request, str(e))

    return redirect('enrollments:enrollment_detail', pk=enrollment.pk)


# AJAX endpoints
@login_required
@permission_required('enrollments.add_programenrollment', raise_exception=True)
def payment_plans_for_curriculum(request, curriculum_id):
    """Payment plans offered for a curriculum (AJAX)"""
    curriculum = get_object_or_404(Curriculum, pk=curriculum_id)
    plans = payment_plan_choices(curriculum)

    return JsonResponse({
        'success': True,
        'plans': [
            {
                'id': plan.id,
                'name': plan.name,
                'type': plan.type,
                'amount': str(plan.amount),
                'formatted_amount': plan.formatted_amount,
                'is_default': plan.is_default,
            }
            for plan in plans
        ],
    })
