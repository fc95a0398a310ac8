from django.apps import AppConfig


class EnrollmentsConfig(AppConfig):
    default_auto_field = "django.db.models.AutoField"
    name = "apps.enrollments"

    def ready(self):
        from . import signals  # noqa: F401
