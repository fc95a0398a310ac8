from django.contrib.auth.mixins import LoginRequiredMixin, PermissionRequiredMixin
from django.db.models import Q
from django.views.generic import ListView

from .models import ActivityLog


class ActivityLogListView(LoginRequiredMixin, PermissionRequiredMixin, ListView):
    """Activity feed with filtering"""
    model = ActivityLog
    template_name = 'activity/activity_list.html'
    permission_required = 'activity.view_activitylog'
    paginate_by = 50
    context_object_name = 'activities'

    def get_queryset(self):
        queryset = ActivityLog.objects.select_related('user', 'content_type')

        action = self.request.GET.get('action')
        if action:
            queryset = queryset.with_action(action)

        activity_type = self.request.GET.get('type')
        if activity_type:
            queryset = queryset.of_type(activity_type)

        search = self.request.GET.get('search')
        if search:
            queryset = queryset.filter(
                Q(description__icontains=search) |
                Q(user__username__icontains=search)
            )

        return queryset

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['actions'] = ActivityLog.Action.choices
        context['activity_types'] = (
            ActivityLog.objects.exclude(activity_type='')
            .values_list('activity_type', flat=True)
            .distinct()
            .order_by('activity_type')
        )
        return context
