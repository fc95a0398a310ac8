from django.apps import AppConfig


class ActivityConfig(AppConfig):
    default_auto_field = "django.db.models.AutoField"
    name = "apps.activity"
    verbose_name = "Activity Log"
