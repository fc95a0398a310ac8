from django.urls import path
from . import views

app_name = "system"

urlpatterns = [
    path("", views.SystemDashboardView.as_view(), name="dashboard"),
    path("health/", views.health_json, name="health"),
    path("backups/", views.BackupView.as_view(), name="backups"),
    path("backups/<str:filename>/download/", views.download_backup, name="backup_download"),
    path("backups/<str:filename>/delete/", views.delete_backup, name="backup_delete"),
    path("logs/", views.LogView.as_view(), name="logs"),
    path("maintenance/", views.MaintenanceView.as_view(), name="maintenance"),
    path("updates/", views.UpdateView.as_view(), name="updates"),
]
