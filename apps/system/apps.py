from django.apps import AppConfig


class SystemConfig(AppConfig):
    default_auto_field = "django.db.models.AutoField"
    name = "apps.system"
    verbose_name = "System"
