import logging

from django.contrib import messages
from django.contrib.auth.decorators import login_required
from django.contrib.auth.mixins import LoginRequiredMixin
from django.core.exceptions import PermissionDenied, ValidationError
from django.shortcuts import get_object_or_404, redirect, render
from django.urls import reverse, reverse_lazy
from django.utils import timezone
from django.utils.translation import gettext_lazy as _
from django.views.generic import DetailView, ListView, View
from django.views.generic.edit import CreateView, FormView, UpdateView

from apps.activity.models import ActivityLog
from apps.corecode.utils import AdminRequiredMixin, TeacherRequiredMixin, is_admin
from .forms import (
    AttendanceForm,
    EventForm,
    EventRegistrationForm,
    SessionForm,
    TimetableSlotForm,
)
from .models import Event, Session, TimetableSlot
from .services import AttendanceService, SchedulingError, SchedulingService, TimetableService

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

class SessionListView(LoginRequiredMixin, ListView):
    template_name = 'scheduling/session_list.html'
    context_object_name = 'sessions'
    paginate_by = 50

    def get_queryset(self):
        queryset = Session.objects.select_related('subject', 'teacher_profile__user', 'room')

        if not is_admin(self.request.user):
            teacher = getattr(self.request.user, 'teacher_profile', None)
            if teacher is None:
                return queryset.none()
            queryset = queryset.for_teacher(teacher)

        when = self.request.GET.get('when', 'upcoming')
        if when == 'upcoming':
            queryset = queryset.upcoming()
        elif when == 'past':
            queryset = queryset.past().order_by('-start_time')

        room_id = self.request.GET.get('room')
        if room_id:
            queryset = queryset.filter(room_id=room_id)

        return queryset


class SessionDetailView(LoginRequiredMixin, DetailView):
    model = Session
    template_name = 'scheduling/session_detail.html'
    context_object_name = 'session'

    def get_queryset(self):
        queryset = Session.objects.select_related('subject', 'teacher_profile__user', 'room')
        if is_admin(self.request.user):
            return queryset
        teacher = getattr(self.request.user, 'teacher_profile', None)
        if teacher is None:
            return queryset.none()
        return queryset.for_teacher(teacher)

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['attendances'] = self.object.attendances.select_related('child_profile')
        context['expected_students'] = self.object.expected_students
        return context


class SessionCreateView(TeacherRequiredMixin, FormView):
    form_class = SessionForm
    template_name = 'scheduling/session_form.html'

    def get_form_kwargs(self):
        kwargs = super().get_form_kwargs()
        kwargs['teacher_profile'] = self.request.user.teacher_profile
        return kwargs

    def form_valid(self, form):
        teacher = self.request.user.teacher_profile
        data = {field: form.cleaned_data[field] for field in form.Meta.fields}
        repeat = form.cleaned_data.get('repeat')

        try:
            if repeat:
                sessions = SchedulingService.create_repeating_sessions(
                    teacher,
                    repeat=repeat,
                    repeat_until=form.cleaned_data['repeat_until'],
                    weekdays=form.cleaned_data.get('weekdays'),
                    user=self.request.user,
                    request=self.request,
                    **data,
                )
                messages.success(
                    self.request,
                    _("%(count)s sessions scheduled") % {'count': len(sessions)}
                )
            else:
                SchedulingService.schedule_session(
                    teacher, user=self.request.user, request=self.request, **data
                )
                messages.success(self.request, _("Session scheduled successfully"))
        except ValidationError as e:
            form.add_error(None, e)
            return self.form_invalid(form)

        return redirect('scheduling:session_list')


class SessionUpdateView(TeacherRequiredMixin, UpdateView):
    model = Session
    form_class = SessionForm
    template_name = 'scheduling/session_form.html'
    context_object_name = 'session'

    def get_queryset(self):
        return Session.objects.for_teacher(self.request.user.teacher_profile)

    def get_form_kwargs(self):
        kwargs = super().get_form_kwargs()
        kwargs['teacher_profile'] = self.request.user.teacher_profile
        kwargs['allow_repeat'] = False
        return kwargs

    def form_valid(self, form):
        changes = {field: form.cleaned_data[field] for field in form.Meta.fields}

        try:
            SchedulingService.update_session(
                self.object,
                self.request.user.teacher_profile,
                user=self.request.user,
                request=self.request,
                **changes,
            )
        except ValidationError as e:
            form.add_error(None, e)
            return self.form_invalid(form)
        except SchedulingError as e:
            messages.error(self.request, str(e))
            return redirect('scheduling:session_detail', pk=self.object.pk)

        messages.success(self.request, _("Session updated successfully"))
        return redirect('scheduling:session_detail', pk=self.object.pk)


@login_required
def cancel_session(request, pk):
    teacher = getattr(request.user, 'teacher_profile', None)
    if teacher is None:
        raise PermissionDenied
    session = get_object_or_404(Session, pk=pk)

    if request.method == 'POST':
        SchedulingService.cancel_session(session, teacher, user=request.user, request=request)
        messages.success(request, _("Session cancelled"))
        return redirect('scheduling:session_list')

    return render(request, 'scheduling/session_confirm_cancel.html', {'session': session})


class AttendanceView(TeacherRequiredMixin, View):
    template_name = 'scheduling/attendance_form.html'

    def get_session(self, pk):
        return get_object_or_404(
            Session.objects.select_related('subject'),
            pk=pk,
            teacher_profile=self.request.user.teacher_profile,
        )

    def get(self, request, pk):
        session = self.get_session(pk)
        form = AttendanceForm(session=session)
        return render(request, self.template_name, {'form': form, 'session': session})

    def post(self, request, pk):
        session = self.get_session(pk)
        form = AttendanceForm(request.POST, session=session)

        if form.is_valid():
            try:
                AttendanceService.record_attendance(
                    session, form.entries(), user=request.user, request=request
                )
            except ValidationError as e:
                messages.error(request, ' '.join(e.messages))
            else:
                messages.success(request, _("Attendance saved"))
                return redirect('scheduling:session_detail', pk=session.pk)

        return render(request, self.template_name, {'form': form, 'session': session})


# ---------------------------------------------------------------------------
# Timetable
# ---------------------------------------------------------------------------

class TimetableSlotListView(LoginRequiredMixin, ListView):
    template_name = 'scheduling/timetable.html'
    context_object_name = 'slots'

    def get_queryset(self):
        queryset = TimetableSlot.objects.select_related('subject', 'teacher_profile__user', 'room')
        teacher_id = self.request.GET.get('teacher')
        if teacher_id:
            queryset = queryset.filter(teacher_profile_id=teacher_id)
        elif not is_admin(self.request.user) and hasattr(self.request.user, 'teacher_profile'):
            queryset = queryset.filter(teacher_profile=self.request.user.teacher_profile)
        return queryset

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        week = {day: [] for day, _label in TimetableSlot.Day.choices}
        for slot in context['slots']:
            week[slot.day].append(slot)
        context['week'] = [
            (label, week[day]) for day, label in TimetableSlot.Day.choices
        ]
        return context


class TimetableSlotSaveMixin:
    form_class = TimetableSlotForm
    template_name = 'scheduling/timetable_slot_form.html'
    success_url = reverse_lazy('scheduling:timetable')

    def form_valid(self, form):
        try:
            self.object = TimetableService.save_slot(
                form.instance, user=self.request.user, request=self.request
            )
        except ValidationError as e:
            form.add_error(None, e)
            return self.form_invalid(form)

        messages.success(self.request, _("Timetable slot saved"))
        return redirect(self.success_url)


class TimetableSlotCreateView(AdminRequiredMixin, TimetableSlotSaveMixin, CreateView):
    model = TimetableSlot


class TimetableSlotUpdateView(AdminRequiredMixin, TimetableSlotSaveMixin, UpdateView):
    model = TimetableSlot


@login_required
def delete_timetable_slot(request, pk):
    if not is_admin(request.user):
        raise PermissionDenied
    slot = get_object_or_404(TimetableSlot, pk=pk)

    if request.method == 'POST':
        description = f"Deleted timetable slot: {slot}"
        teacher = slot.teacher_profile
        slot.delete()
        ActivityLog.log(
            request.user,
            ActivityLog.Action.DELETE,
            description,
            subject=teacher,
            activity_type='timetable_slot',
            request=request,
        )
        messages.success(request, _("Timetable slot deleted"))

    return redirect('scheduling:timetable')


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

class EventListView(LoginRequiredMixin, ListView):
    template_name = 'scheduling/event_list.html'
    context_object_name = 'events'
    paginate_by = 30

    def get_queryset(self):
        queryset = Event.objects.select_related('academic_year')

        event_type = self.request.GET.get('type')
        if event_type:
            queryset = queryset.of_type(event_type)

        when = self.request.GET.get('when')
        if when == 'upcoming':
            queryset = queryset.upcoming()
        elif when == 'past':
            queryset = queryset.past().order_by('-start_date')
        elif when == 'today':
            queryset = queryset.today()

        if not is_admin(self.request.user):
            queryset = queryset.active()

        return queryset

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['types'] = Event.Type.choices
        return context


class EventDetailView(LoginRequiredMixin, DetailView):
    model = Event
    template_name = 'scheduling/event_detail.html'
    context_object_name = 'event'

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['is_registered'] = self.object.is_user_registered(self.request.user)
        context['registration_form'] = EventRegistrationForm()
        return context


class EventCreateView(AdminRequiredMixin, CreateView):
    model = Event
    form_class = EventForm
    template_name = 'scheduling/event_form.html'

    def form_valid(self, form):
        form.instance.created_by = self.request.user
        response = super().form_valid(form)
        ActivityLog.log(
            self.request.user,
            ActivityLog.Action.CREATE,
            f"Created event: {self.object.title}",
            subject=self.object,
            request=self.request,
        )
        messages.success(self.request, _("Event created"))
        return response

    def get_success_url(self):
        return reverse('scheduling:event_detail', kwargs={'pk': self.object.pk})


class EventUpdateView(AdminRequiredMixin, UpdateView):
    model = Event
    form_class = EventForm
    template_name = 'scheduling/event_form.html'

    def form_valid(self, form):
        response = super().form_valid(form)
        ActivityLog.log(
            self.request.user,
            ActivityLog.Action.UPDATE,
            f"Updated event: {self.object.title}",
            subject=self.object,
            additional_data={'changed_fields': form.changed_data},
            request=self.request,
        )
        messages.success(self.request, _("Event updated"))
        return response

    def get_success_url(self):
        return reverse('scheduling:event_detail', kwargs={'pk': self.object.pk})


@login_required
def delete_event(request, pk):
    if not is_admin(request.user):
        raise PermissionDenied
    event = get_object_or_404(Event, pk=pk)

    if request.method == 'POST':
        event.delete()
        ActivityLog.log(
            request.user,
            ActivityLog.Action.DELETE,
            f"Deleted event: {event.title}",
            subject=event,
            request=request,
        )
        messages.success(request, _("Event deleted"))
        return redirect('scheduling:event_list')

    return render(request, 'scheduling/event_confirm_delete.html', {'event': event})


@login_required
def register_for_event(request, pk):
    event = get_object_or_404(Event.objects.active(), pk=pk)

    if request.method == 'POST':
        form = EventRegistrationForm(request.POST)
        note = form.cleaned_data['note'] if form.is_valid() else None

        if event.register_user(request.user, note=note or None):
            messages.success(request, _("You are registered for %(event)s") % {'event': event.title})
        elif event.is_user_registered(request.user):
            messages.info(request, _("You are already registered for this event"))
        else:
            messages.error(request, _("Registration for this event is closed"))

    return redirect('scheduling:event_detail', pk=event.pk)


@login_required
def unregister_from_event(request, pk):
    event = get_object_or_404(Event, pk=pk)

    if request.method == 'POST':
        if event.unregister_user(request.user):
            messages.success(request, _("Your registration was cancelled"))
        else:
            messages.error(request, _("You are not registered for this event"))

    return redirect('scheduling:event_detail', pk=event.pk)


def upcoming_for_dashboard(user, limit=5):
    """Upcoming sessions relevant to the user"""
    now = timezone.now()
    queryset = Session.objects.filter(start_time__gte=now).select_related('subject', 'room')
    teacher = getattr(user, 'teacher_profile', None)
    if teacher is not None and not is_admin(user):
        queryset = queryset.for_teacher(teacher)
    return queryset.order_by('start_time')[:limit]
