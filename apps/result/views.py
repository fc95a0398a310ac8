from django.contrib import messages
from django.contrib.auth.decorators import login_required
from django.contrib.auth.mixins import LoginRequiredMixin
from django.core.exceptions import PermissionDenied, ValidationError
from django.db import transaction
from django.http import JsonResponse
from django.shortcuts import get_object_or_404, redirect, render
from django.urls import reverse
from django.utils.translation import gettext_lazy as _
from django.views.generic import DetailView, ListView
from django.views.generic.edit import CreateView, UpdateView

from apps.activity.models import ActivityLog
from apps.corecode.utils import TeacherRequiredMixin, is_admin
from apps.students.models import ChildProfile
from .forms import BulkResultForm, ExamForm, ExamResultForm
from .models import Exam, ExamResult
from .utils import grade_distribution, validate_student_for_exam


def _exam_for_user(user, pk):
    queryset = Exam.objects.select_related('subject', 'academic_year', 'teacher_profile')
    if is_admin(user):
        return get_object_or_404(queryset, pk=pk)
    teacher = getattr(user, 'teacher_profile', None)
    if teacher is None:
        raise PermissionDenied
    return get_object_or_404(queryset, pk=pk, teacher_profile=teacher)


class ExamListView(TeacherRequiredMixin, ListView):
    template_name = 'result/exam_list.html'
    context_object_name = 'exams'
    paginate_by = 30

    def get_queryset(self):
        queryset = Exam.objects.for_teacher(self.request.user.teacher_profile).select_related(
            'subject', 'academic_year'
        )
        exam_type = self.request.GET.get('type')
        if exam_type:
            queryset = queryset.filter(type=exam_type)
        return queryset


class ExamCreateView(TeacherRequiredMixin, CreateView):
    model = Exam
    form_class = ExamForm
    template_name = 'result/exam_form.html'

    def get_form_kwargs(self):
        kwargs = super().get_form_kwargs()
        kwargs['teacher_profile'] = self.request.user.teacher_profile
        return kwargs

    def form_valid(self, form):
        form.instance.teacher_profile = self.request.user.teacher_profile
        response = super().form_valid(form)
        ActivityLog.log(
            self.request.user,
            ActivityLog.Action.CREATE,
            f"Created {self.object.get_type_display()} exam: {self.object.title}",
            subject=self.object,
            request=self.request,
        )
        messages.success(self.request, _("Exam created successfully"))
        return response

    def get_success_url(self):
        return reverse('result:exam_detail', kwargs={'pk': self.object.pk})


class ExamUpdateView(TeacherRequiredMixin, UpdateView):
    model = Exam
    form_class = ExamForm
    template_name = 'result/exam_form.html'

    def get_queryset(self):
        return Exam.objects.for_teacher(self.request.user.teacher_profile)

    def get_form_kwargs(self):
        kwargs = super().get_form_kwargs()
        kwargs['teacher_profile'] = self.request.user.teacher_profile
        return kwargs

    def form_valid(self, form):
        response = super().form_valid(form)
        ActivityLog.log(
            self.request.user,
            ActivityLog.Action.UPDATE,
            f"Updated exam: {self.object.title}",
            subject=self.object,
            additional_data={'changed_fields': form.changed_data},
            request=self.request,
        )
        messages.success(self.request, _("Exam updated successfully"))
        return response

    def get_success_url(self):
        return reverse('result:exam_detail', kwargs={'pk': self.object.pk})


class ExamDetailView(LoginRequiredMixin, DetailView):
    template_name = 'result/exam_detail.html'
    context_object_name = 'exam'

    def get_object(self, queryset=None):
        return _exam_for_user(self.request.user, self.kwargs['pk'])

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        results = list(self.object.results.select_related('child_profile'))
        context['results'] = results
        context['distribution'] = grade_distribution(results)
        context['eligible_count'] = self.object.eligible_students.count()
        return context


@login_required
def create_result(request, exam_id):
    """Create or replace one student's result"""
    exam = _exam_for_user(request.user, exam_id)

    if request.method == 'POST':
        child = ChildProfile.objects.filter(pk=request.POST.get('child_profile')).first()
        existing = ExamResult.objects.filter(exam=exam, child_profile=child).first() if child else None
        form = ExamResultForm(request.POST, exam=exam, instance=existing)
        if form.is_valid():
            result = form.save()
            ActivityLog.log(
                request.user,
                ActivityLog.Action.UPDATE if existing else ActivityLog.Action.CREATE,
                f"Recorded {result.score} for {result.child_profile.full_name} in {exam.title}",
                subject=result,
                activity_type='exam_result',
                request=request,
            )
            messages.success(request, _("Result saved"))
            return redirect('result:exam_detail', pk=exam.pk)
    else:
        form = ExamResultForm(exam=exam)

    return render(request, 'result/result_form.html', {'form': form, 'exam': exam})


@login_required
def enter_bulk_results(request, exam_id):
    """Enter results for every eligible student of an exam"""
    exam = _exam_for_user(request.user, exam_id)

    if request.method == 'POST':
        form = BulkResultForm(request.POST, exam=exam)
        if form.is_valid():
            results_created = 0
            results_updated = 0

            with transaction.atomic():
                for child, (score, remarks) in form.scores().items():
                    result, created = ExamResult.objects.update_or_create(
                        exam=exam,
                        child_profile=child,
                        defaults={'score': score, 'remarks': remarks},
                    )
                    if created:
                        results_created += 1
                    else:
                        results_updated += 1

            ActivityLog.log(
                request.user,
                ActivityLog.Action.UPDATE,
                f"Entered results for {exam.title}",
                subject=exam,
                activity_type='exam_result',
                additional_data={'created': results_created, 'updated': results_updated},
                request=request,
            )
            messages.success(
                request,
                _("Created %(created)s new results, updated %(updated)s results") % {
                    'created': results_created,
                    'updated': results_updated,
                }
            )
            return redirect('result:exam_detail', pk=exam.pk)
    else:
        form = BulkResultForm(exam=exam)

    return render(request, 'result/bulk_result_form.html', {'form': form, 'exam': exam})


@login_required
def check_student_eligibility(request, exam_id):
    """AJAX: can this student receive a result for the exam"""
    exam = _exam_for_user(request.user, exam_id)
    child = get_object_or_404(ChildProfile, pk=request.GET.get('student_id'))

    try:
        validate_student_for_exam(exam, child)
    except ValidationError as e:
        return JsonResponse({'eligible': False, 'error': ' '.join(e.messages)})

    return JsonResponse({'eligible': True, 'student': child.full_name})
