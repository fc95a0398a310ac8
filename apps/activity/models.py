import logging

from django.conf import settings
from django.contrib.contenttypes.fields import GenericForeignKey
from django.contrib.contenttypes.models import ContentType
from django.core.exceptions import ValidationError
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from django.utils.translation import gettext_lazy as _

logger = logging.getLogger(__name__)


class ActivityLogQuerySet(models.QuerySet):
    def for_object(self, obj):
        return self.filter(
            content_type=ContentType.objects.get_for_model(obj),
            object_id=obj.pk,
        )

    def by_user(self, user):
        return self.filter(user=user)

    def of_type(self, activity_type):
        return self.filter(activity_type=activity_type)

    def with_action(self, action):
        return self.filter(action=action)


class ActivityLog(models.Model):
    """Append-only audit entry"""

    class Action(models.TextChoices):
        CREATE = 'create', _('Create')
        UPDATE = 'update', _('Update')
        DELETE = 'delete', _('Delete')
        RESTORE = 'restore', _('Restore')
        VIEW = 'view', _('View')
        LOGIN = 'login', _('Login')
        SYSTEM = 'system', _('System')

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='activity_logs',
        verbose_name=_("User")
    )
    action = models.CharField(max_length=50, db_index=True, verbose_name=_("Action"))
    description = models.TextField(blank=True, verbose_name=_("Description"))
    activity_type = models.CharField(max_length=100, blank=True, db_index=True)

    # Polymorphic subject
    content_type = models.ForeignKey(
        ContentType,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    object_id = models.PositiveBigIntegerField(null=True, blank=True)
    subject = GenericForeignKey('content_type', 'object_id')

    ip_address = models.GenericIPAddressField(null=True, blank=True)
    additional_data = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    objects = ActivityLogQuerySet.as_manager()

    class Meta:
        ordering = ['-created_at', '-id']
        verbose_name = _('Activity Log')
        verbose_name_plural = _('Activity Logs')
        indexes = [
            models.Index(fields=['content_type', 'object_id']),
        ]

    def __str__(self):
        actor = self.user.get_username() if self.user else 'system'
        return f"{actor} {self.action}: {self.description[:60]}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError(_("Activity log entries cannot be modified"))
        super().save(*args, **kwargs)

    @classmethod
    def log(cls, user, action, description, subject=None, activity_type='',
            additional_data=None, request=None):
        """
        Record an activity entry.

        Args:
            user: acting user (None for system actions)
            action: verb such as 'create' or 'update'
            description: free text shown in the activity feed
            subject: model instance the entry is about
            activity_type: grouping key, defaults to the subject's model name
            additional_data: JSON-serialisable details
            request: used to capture the client IP
        """
        from apps.corecode.utils import get_client_ip

        if user is not None and not user.is_authenticated:
            user = None

        entry = cls(
            user=user,
            action=action,
            description=description,
            activity_type=activity_type or (subject._meta.model_name if subject is not None else ''),
            additional_data=additional_data or {},
            ip_address=get_client_ip(request),
        )
        if subject is not None:
            entry.content_type = ContentType.objects.get_for_model(subject)
            entry.object_id = subject.pk
        entry.save()

        logger.info(
            "Activity recorded: %s %s",
            action,
            description,
            extra={"activity_id": entry.pk, "user_id": getattr(user, 'pk', None)},
        )
        return entry

    @staticmethod
    def diff(old_values, new_values):
        """Build a {'field': {'old', 'new'}} map of changed values"""
        changes = {}
        for field, old in old_values.items():
            new = new_values.get(field)
            if old != new:
                changes[field] = {'old': old, 'new': new}
        return changes
