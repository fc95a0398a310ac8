from django.contrib import messages
from django.contrib.auth.decorators import login_required, permission_required
from django.contrib.auth.mixins import LoginRequiredMixin, PermissionRequiredMixin
from django.contrib.messages.views import SuccessMessageMixin
from django.db.models import Count
from django.shortcuts import get_object_or_404, redirect
from django.urls import reverse, reverse_lazy
from django.utils import timezone
from django.utils.translation import gettext_lazy as _
from django.views.generic import DetailView, ListView, TemplateView
from django.views.generic.edit import CreateView, DeleteView, UpdateView

from apps.activity.models import ActivityLog
from apps.corecode.utils import ParentRequiredMixin
from .forms import ChildProfileForm, ParentProfileForm
from .models import ChildProfile, ParentProfile
from .utils import create_parent_account


class ChildProfileListView(LoginRequiredMixin, PermissionRequiredMixin, ListView):
    """List students with search and age filters"""
    model = ChildProfile
    template_name = "students/child_list.html"
    permission_required = 'students.view_childprofile'
    paginate_by = 50
    context_object_name = 'children'

    def get_queryset(self):
        queryset = ChildProfile.objects.select_related('parent').annotate(
            enrollment_count=Count('program_enrollments')
        )

        search = self.request.GET.get('search')
        if search:
            queryset = queryset.search(search)

        min_age = self.request.GET.get('min_age')
        max_age = self.request.GET.get('max_age')
        if (min_age and min_age.isdigit()) or (max_age and max_age.isdigit()):
            queryset = queryset.by_age(
                int(min_age) if min_age and min_age.isdigit() else None,
                int(max_age) if max_age and max_age.isdigit() else None,
            )

        return queryset


class ChildProfileDetailView(LoginRequiredMixin, PermissionRequiredMixin, DetailView):
    model = ChildProfile
    template_name = "students/child_detail.html"
    permission_required = 'students.view_childprofile'
    context_object_name = 'child'

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        child = self.object
        context['enrollments'] = child.program_enrollments.select_related(
            'curriculum', 'academic_year', 'payment_plan'
        )
        context['invoices'] = child.invoices.order_by('-invoice_date')[:10]
        context['payments'] = child.payments.order_by('-payment_date')[:10]
        context['attendances'] = child.attendances.select_related(
            'session__subject'
        ).order_by('-session__start_time')[:10]
        context['activities'] = ActivityLog.objects.for_object(child)[:10]
        return context


class ChildProfileCreateView(LoginRequiredMixin, PermissionRequiredMixin, SuccessMessageMixin, CreateView):
    model = ChildProfile
    form_class = ChildProfileForm
    template_name = "students/child_form.html"
    permission_required = 'students.add_childprofile'
    success_message = _("New student successfully added.")

    def form_valid(self, form):
        response = super().form_valid(form)
        ActivityLog.log(
            self.request.user,
            ActivityLog.Action.CREATE,
            f"Created student profile: {self.object.full_name}",
            subject=self.object,
            request=self.request,
        )
        return response

    def get_success_url(self):
        return reverse('students:child_detail', kwargs={'pk': self.object.pk})


class ChildProfileUpdateView(LoginRequiredMixin, PermissionRequiredMixin, SuccessMessageMixin, UpdateView):
    model = ChildProfile
    form_class = ChildProfileForm
    template_name = "students/child_form.html"
    permission_required = 'students.change_childprofile'
    success_message = _("Record successfully updated.")

    def form_valid(self, form):
        old_values = {field: form.initial.get(field) for field in form.changed_data}
        response = super().form_valid(form)
        new_values = {field: form.cleaned_data.get(field) for field in form.changed_data}
        ActivityLog.log(
            self.request.user,
            ActivityLog.Action.UPDATE,
            f"Updated student profile: {self.object.full_name}",
            subject=self.object,
            additional_data={'changed_fields': form.changed_data,
                             'changes': _stringify_changes(old_values, new_values)},
            request=self.request,
        )
        return response

    def get_success_url(self):
        return reverse('students:child_detail', kwargs={'pk': self.object.pk})


class ChildProfileDeleteView(LoginRequiredMixin, PermissionRequiredMixin, DeleteView):
    """Soft delete a student profile"""
    model = ChildProfile
    template_name = "students/child_confirm_delete.html"
    permission_required = 'students.delete_childprofile'
    success_url = reverse_lazy("students:child_list")

    def form_valid(self, form):
        child = self.get_object()
        child.delete()
        ActivityLog.log(
            self.request.user,
            ActivityLog.Action.DELETE,
            f"Deleted student profile: {child.full_name}",
            subject=child,
            request=self.request,
        )
        messages.success(self.request, _("Student %(name)s removed.") % {'name': child.full_name})
        return redirect(self.success_url)


@login_required
@permission_required('students.delete_childprofile', raise_exception=True)
def restore_child_profile(request, pk):
    """Restore a soft-deleted student"""
    child = get_object_or_404(ChildProfile.all_objects.dead(), pk=pk)

    if request.method == 'POST':
        child.restore()
        ActivityLog.log(
            request.user,
            ActivityLog.Action.RESTORE,
            f"Restored student profile: {child.full_name}",
            subject=child,
            request=request,
        )
        messages.success(request, _("Student %(name)s restored.") % {'name': child.full_name})

    return redirect('students:child_detail', pk=child.pk)


class ParentProfileListView(LoginRequiredMixin, PermissionRequiredMixin, ListView):
    model = ParentProfile
    template_name = 'students/parent_list.html'
    permission_required = 'students.view_parentprofile'
    context_object_name = 'parents'
    paginate_by = 50

    def get_queryset(self):
        queryset = ParentProfile.objects.select_related('user')
        search = self.request.GET.get('search')
        if search:
            queryset = queryset.search(search)
        return queryset


class ParentProfileDetailView(LoginRequiredMixin, PermissionRequiredMixin, DetailView):
    model = ParentProfile
    template_name = 'students/parent_detail.html'
    permission_required = 'students.view_parentprofile'
    context_object_name = 'parent'

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['children'] = self.object.children
        context['enrollments'] = self.object.program_enrollments.select_related(
            'child_profile', 'curriculum', 'academic_year'
        )
        context['invoices'] = self.object.invoices.order_by('-invoice_date')[:20]
        return context


class ParentProfileCreateView(LoginRequiredMixin, PermissionRequiredMixin, CreateView):
    """Create a parent login together with the profile"""
    model = ParentProfile
    form_class = ParentProfileForm
    template_name = 'students/parent_form.html'
    permission_required = 'students.add_parentprofile'

    def form_valid(self, form):
        data = form.cleaned_data
        profile_fields = {field: data[field] for field in form._meta.fields}
        self.object = create_parent_account(
            data['first_name'], data['last_name'], data['email'], **profile_fields
        )
        ActivityLog.log(
            self.request.user,
            ActivityLog.Action.CREATE,
            f"Created parent profile: {self.object.full_name}",
            subject=self.object,
            request=self.request,
        )
        messages.success(self.request, _("Parent %(name)s created.") % {'name': self.object.full_name})
        return redirect('students:parent_detail', pk=self.object.pk)


class ParentProfileUpdateView(LoginRequiredMixin, PermissionRequiredMixin, SuccessMessageMixin, UpdateView):
    model = ParentProfile
    form_class = ParentProfileForm
    template_name = 'students/parent_form.html'
    permission_required = 'students.change_parentprofile'
    success_message = _("Record successfully updated.")

    def form_valid(self, form):
        user = form.instance.user
        user.first_name = form.cleaned_data['first_name']
        user.last_name = form.cleaned_data['last_name']
        user.email = form.cleaned_data['email']
        user.save(update_fields=['first_name', 'last_name', 'email'])
        return super().form_valid(form)

    def get_success_url(self):
        return reverse('students:parent_detail', kwargs={'pk': self.object.pk})


class ParentDashboardView(ParentRequiredMixin, TemplateView):
    """Parent portal landing page"""
    template_name = 'students/parent_dashboard.html'

    def get_context_data(self, **kwargs):
        from apps.finance.models import Invoice
        from apps.scheduling.models import Session

        context = super().get_context_data(**kwargs)
        parent = self.request.user.parent_profile
        children = parent.children

        context.update({
            'parent': parent,
            'children': children,
            'enrollments': parent.program_enrollments.select_related('curriculum', 'academic_year'),
            'unpaid_invoices': Invoice.objects.filter(child_profile__in=children).unpaid().order_by('due_date')[:10],
            'upcoming_sessions': Session.objects.filter(
                subject__subject_enrollments__program_enrollment__child_profile__in=children,
                start_time__gte=timezone.now(),
            ).select_related('subject', 'room').distinct().order_by('start_time')[:10],
        })
        return context


def _stringify_changes(old_values, new_values):
    return {
        field: {'old': str(old_values.get(field)), 'new': str(new_values.get(field))}
        for field in new_values
    }
