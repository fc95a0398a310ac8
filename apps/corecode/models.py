from django.db import models, transaction
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from .managers import SoftDeleteManager


class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class SoftDeleteModel(TimeStampedModel):
    """Rows are stamped with deleted_at instead of being removed"""

    deleted_at = models.DateTimeField(null=True, blank=True, editable=False, db_index=True)

    objects = SoftDeleteManager()
    all_objects = SoftDeleteManager(alive_only=False)

    class Meta:
        abstract = True

    def delete(self, using=None, keep_parents=False):
        self.deleted_at = timezone.now()
        self.save(update_fields=['deleted_at'])

    def hard_delete(self, using=None, keep_parents=False):
        return super().delete(using=using, keep_parents=keep_parents)

    def restore(self):
        self.deleted_at = None
        self.save(update_fields=['deleted_at'])

    @property
    def is_deleted(self):
        return self.deleted_at is not None


class AcademicYear(models.Model):
    """Academic Year"""

    name = models.CharField(max_length=200, unique=True)
    start_date = models.DateField(null=True, blank=True)
    end_date = models.DateField(null=True, blank=True)
    is_current = models.BooleanField(default=False)

    class Meta:
        ordering = ["-name"]

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        with transaction.atomic():
            if self.is_current:
                AcademicYear.objects.filter(is_current=True).exclude(pk=self.pk).update(
                    is_current=False
                )
            super().save(*args, **kwargs)

    @classmethod
    def get_current(cls):
        return cls.objects.filter(is_current=True).first()


class Curriculum(models.Model):
    """A named program of study"""

    name = models.CharField(max_length=200, verbose_name=_("Name"))
    code = models.CharField(max_length=50, unique=True, verbose_name=_("Code"))
    description = models.TextField(blank=True, verbose_name=_("Description"))
    is_active = models.BooleanField(default=True, verbose_name=_("Is Active"))

    class Meta:
        ordering = ["name"]
        verbose_name_plural = _("Curricula")

    def __str__(self):
        return self.name


class Subject(models.Model):
    """Subject"""

    curriculum = models.ForeignKey(
        Curriculum,
        on_delete=models.CASCADE,
        related_name='subjects',
        verbose_name=_("Curriculum")
    )
    name = models.CharField(max_length=200, verbose_name=_("Name"))
    code = models.CharField(max_length=50, verbose_name=_("Code"))
    level = models.CharField(max_length=50, blank=True, verbose_name=_("Level"))
    description = models.TextField(blank=True)

    class Meta:
        ordering = ["name"]
        constraints = [
            models.UniqueConstraint(
                fields=['curriculum', 'code'], name='unique_subject_code_per_curriculum'
            ),
        ]

    def __str__(self):
        return f"{self.name} ({self.code})"


class RoomQuerySet(models.QuerySet):
    def accessible(self):
        return self.filter(is_accessible=True)

    def with_capacity(self, minimum):
        return self.filter(capacity__gte=minimum)

    def available_between(self, start, end, exclude_session=None):
        """Rooms with no session overlapping [start, end)"""
        from apps.scheduling.models import Session

        clashes = Session.objects.overlapping(start, end).filter(room__isnull=False)
        if exclude_session is not None:
            clashes = clashes.exclude(pk=exclude_session.pk)
        return self.exclude(pk__in=clashes.values("room_id"))


class Room(models.Model):
    """Physical teaching room"""

    name = models.CharField(max_length=100, unique=True, verbose_name=_("Name"))
    capacity = models.PositiveIntegerField(default=0, verbose_name=_("Capacity"))
    location = models.CharField(max_length=200, blank=True)
    description = models.TextField(blank=True)
    has_projector = models.BooleanField(default=False)
    has_computers = models.BooleanField(default=False)
    is_accessible = models.BooleanField(default=True)
    floor = models.CharField(max_length=20, blank=True)
    building = models.CharField(max_length=100, blank=True)

    objects = RoomQuerySet.as_manager()

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name

    @property
    def features(self):
        features = []
        if self.has_projector:
            features.append(_("Projector"))
        if self.has_computers:
            features.append(_("Computers"))
        if self.is_accessible:
            features.append(_("Accessible"))
        return features
