import logging

from django.contrib import messages
from django.contrib.auth.decorators import login_required, user_passes_test
from django.http import FileResponse, Http404, JsonResponse
from django.shortcuts import redirect
from django.utils.translation import gettext_lazy as _
from django.views.decorators.http import require_POST
from django.views.generic import TemplateView

from apps.activity.models import ActivityLog
from apps.corecode.utils import AdminRequiredMixin, is_admin
from . import backups, health, logs, maintenance, updates
from .forms import (
    BackupForm,
    BackupSettingsForm,
    LogFilterForm,
    MaintenanceForm,
    MaintenanceTasksForm,
    ScheduleMaintenanceForm,
    UpdateSettingsForm,
)

logger = logging.getLogger(__name__)


def _log_system_action(request, description, **data):
    ActivityLog.log(
        request.user,
        ActivityLog.Action.SYSTEM,
        description,
        activity_type='system',
        additional_data=data,
        request=request,
    )


class SystemDashboardView(AdminRequiredMixin, TemplateView):
    template_name = 'system/dashboard.html'

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['health'] = health.get_system_health()
        context['current_version'] = updates.get_current_version()
        context['maintenance'] = maintenance.get_maintenance_info()
        context['backup_stats'] = backups.get_backup_stats()
        context['log_files'] = logs.list_log_files()
        return context


@login_required
@user_passes_test(is_admin)
def health_json(request):
    """System health as JSON; 503 when critical"""
    report = health.get_system_health()
    status = 503 if report['status'] == 'critical' else 200
    return JsonResponse(report, status=status)


# ---------------------------------------------------------------------------
# Backups
# ---------------------------------------------------------------------------

class BackupView(AdminRequiredMixin, TemplateView):
    template_name = 'system/backups.html'

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        backup_list = backups.list_backups()
        context['backups'] = backup_list
        context['stats'] = backups.get_backup_stats(backup_list)
        context.setdefault('form', BackupForm())
        context.setdefault('settings_form', BackupSettingsForm(initial=backups.get_backup_settings()))
        return context

    def post(self, request, *args, **kwargs):
        action = request.POST.get('action')

        if action == 'create':
            form = BackupForm(request.POST)
            if not form.is_valid():
                return self.render_to_response(self.get_context_data(form=form))
            try:
                backup = backups.create_backup(
                    form.cleaned_data['type'],
                    include_logs=form.cleaned_data['include_logs'],
                )
            except backups.BackupError as e:
                messages.error(request, str(e))
            else:
                _log_system_action(request, f"Created backup {backup['name']}", backup=backup['name'])
                messages.success(request, _("Backup %(name)s created") % {'name': backup['name']})

        elif action == 'cleanup':
            deleted = backups.cleanup_old_backups()
            _log_system_action(request, f"Cleaned up {len(deleted)} old backups", deleted=deleted)
            messages.success(request, _("%(count)d old backup(s) removed") % {'count': len(deleted)})

        elif action == 'settings':
            form = BackupSettingsForm(request.POST)
            if not form.is_valid():
                return self.render_to_response(self.get_context_data(settings_form=form))
            backups.update_backup_settings(**form.cleaned_data)
            _log_system_action(request, "Updated backup settings", **form.cleaned_data)
            messages.success(request, _("Backup settings saved"))

        else:
            messages.error(request, _("Unknown action"))

        return redirect('system:backups')


@login_required
@user_passes_test(is_admin)
def download_backup(request, filename):
    try:
        path = backups.get_backup_path(filename)
    except backups.BackupError:
        raise Http404(_("Backup not found"))

    _log_system_action(request, f"Downloaded backup {filename}", backup=filename)
    return FileResponse(open(path, 'rb'), as_attachment=True, filename=filename)


@login_required
@user_passes_test(is_admin)
@require_POST
def delete_backup(request, filename):
    try:
        backups.delete_backup(filename)
    except backups.BackupError as e:
        messages.error(request, str(e))
    else:
        _log_system_action(request, f"Deleted backup {filename}", backup=filename)
        messages.success(request, _("Backup deleted"))
    return redirect('system:backups')


# ---------------------------------------------------------------------------
# Logs
# ---------------------------------------------------------------------------

class LogView(AdminRequiredMixin, TemplateView):
    template_name = 'system/logs.html'

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        files = logs.list_log_files()
        context['log_files'] = files

        selected = self.request.GET.get('file') or (files[0]['name'] if files else None)
        form = LogFilterForm(self.request.GET or None)
        context['filter_form'] = form
        context['selected_file'] = selected

        if selected:
            filters = form.cleaned_data if form.is_bound and form.is_valid() else {}
            try:
                context['entries'] = logs.read_log(
                    selected,
                    level=filters.get('level'),
                    search=filters.get('search'),
                    date=filters.get('date'),
                )
            except logs.LogFileError as e:
                messages.error(self.request, str(e))
                context['entries'] = []
        return context

    def post(self, request, *args, **kwargs):
        action = request.POST.get('action')
        name = request.POST.get('file', '')

        try:
            if action == 'clear':
                logs.clear_log(name)
                messages.success(request, _("Log file cleared"))
            elif action == 'delete':
                logs.delete_log(name)
                messages.success(request, _("Log file deleted"))
            elif action == 'clear_all':
                count = logs.clear_all_logs()
                messages.success(request, _("%(count)d log file(s) cleared") % {'count': count})
            else:
                messages.error(request, _("Unknown action"))
                return redirect('system:logs')
        except logs.LogFileError as e:
            messages.error(request, str(e))
        else:
            _log_system_action(request, f"Log action {action}", file=name)

        return redirect('system:logs')


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------

class MaintenanceView(AdminRequiredMixin, TemplateView):
    template_name = 'system/maintenance.html'

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['maintenance'] = maintenance.get_maintenance_info()
        context['schedule'] = maintenance.get_scheduled_maintenance()
        context.setdefault('form', MaintenanceForm())
        context.setdefault('schedule_form', ScheduleMaintenanceForm())
        context.setdefault('tasks_form', MaintenanceTasksForm())
        return context

    def post(self, request, *args, **kwargs):
        action = request.POST.get('action')

        try:
            if action == 'enable':
                form = MaintenanceForm(request.POST)
                if not form.is_valid():
                    return self.render_to_response(self.get_context_data(form=form))
                maintenance.enable_maintenance(**form.cleaned_data)
                _log_system_action(request, "Enabled maintenance mode", **form.cleaned_data)
                messages.success(request, _("Maintenance mode enabled"))

            elif action == 'disable':
                maintenance.disable_maintenance()
                _log_system_action(request, "Disabled maintenance mode")
                messages.success(request, _("Maintenance mode disabled"))

            elif action == 'schedule':
                form = ScheduleMaintenanceForm(request.POST)
                if not form.is_valid():
                    return self.render_to_response(self.get_context_data(schedule_form=form))
                window = maintenance.schedule_maintenance(**form.cleaned_data)
                _log_system_action(request, "Scheduled maintenance", start=window['start'], end=window['end'])
                messages.success(request, _("Maintenance scheduled"))

            elif action == 'cancel':
                maintenance.cancel_scheduled_maintenance(request.POST.get('window_id'))
                messages.success(request, _("Scheduled maintenance cancelled"))

            elif action == 'run_tasks':
                form = MaintenanceTasksForm(request.POST)
                if not form.is_valid():
                    return self.render_to_response(self.get_context_data(tasks_form=form))
                results = maintenance.run_maintenance_tasks(form.cleaned_data['tasks'])
                _log_system_action(request, "Ran maintenance tasks", results=results)
                for task, result in results.items():
                    level = messages.SUCCESS if result['status'] else messages.ERROR
                    messages.add_message(request, level, f"{task}: {result['message']}")

            else:
                messages.error(request, _("Unknown action"))

        except maintenance.MaintenanceError as e:
            messages.error(request, str(e))

        return redirect('system:maintenance')


# ---------------------------------------------------------------------------
# Updates
# ---------------------------------------------------------------------------

class UpdateView(AdminRequiredMixin, TemplateView):
    template_name = 'system/updates.html'

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['current_version'] = updates.get_current_version()
        context['available_updates'] = updates.get_available_updates()
        context['history'] = updates.get_update_history()
        context.setdefault('settings_form', UpdateSettingsForm(initial=updates.get_update_settings()))
        return context

    def post(self, request, *args, **kwargs):
        action = request.POST.get('action')

        try:
            if action == 'check':
                available = updates.check_for_updates()
                messages.info(request, _("%(count)d update(s) available") % {'count': len(available)})

            elif action == 'install':
                entry = updates.install_update(request.POST.get('version', ''), user=request.user)
                _log_system_action(request, f"Installed update {entry['version']}", **entry)
                messages.success(request, _("Updated to version %(version)s") % {'version': entry['version']})

            elif action == 'rollback':
                entry = updates.rollback_update(request.POST.get('version') or None, user=request.user)
                _log_system_action(request, f"Rolled back update {entry['version']}", **entry)
                messages.success(
                    request,
                    _("Rolled back to version %(version)s") % {'version': entry['previous_version']}
                )

            elif action == 'settings':
                form = UpdateSettingsForm(request.POST)
                if not form.is_valid():
                    return self.render_to_response(self.get_context_data(settings_form=form))
                updates.update_update_settings(**form.cleaned_data)
                messages.success(request, _("Update settings saved"))

            else:
                messages.error(request, _("Unknown action"))

        except updates.UpdateError as e:
            messages.error(request, str(e))

        return redirect('system:updates')
