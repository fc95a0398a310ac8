from django.conf import settings
from django.db import models
from django.db.models import Q, Sum
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from apps.corecode.managers import SoftDeleteManager, SoftDeleteQuerySet
from apps.corecode.models import SoftDeleteModel, TimeStampedModel


def _years_ago(years):
    today = timezone.now().date()
    try:
        return today.replace(year=today.year - years)
    except ValueError:
        # 29 February in a non-leap target year
        return today.replace(year=today.year - years, day=28)


class ChildProfileQuerySet(SoftDeleteQuerySet):
    def active(self):
        return self.alive()

    def by_age(self, min_age=None, max_age=None):
        queryset = self
        if min_age is not None:
            queryset = queryset.filter(date_of_birth__lte=_years_ago(min_age))
        if max_age is not None:
            queryset = queryset.filter(date_of_birth__gt=_years_ago(max_age + 1))
        return queryset

    def search(self, term):
        return self.filter(
            Q(first_name__icontains=term) |
            Q(last_name__icontains=term) |
            Q(email__icontains=term)
        )

    def for_parent(self, user):
        return self.filter(
            Q(parent=user) | Q(parent_profile__user=user)
        ).distinct()


class ChildProfileManager(SoftDeleteManager.from_queryset(ChildProfileQuerySet)):
    pass


class ChildProfile(SoftDeleteModel):
    """Student profile"""

    class Gender(models.TextChoices):
        MALE = 'male', _('Male')
        FEMALE = 'female', _('Female')
        OTHER = 'other', _('Other')

    # Student Information
    first_name = models.CharField(max_length=100, verbose_name=_("First Name"))
    last_name = models.CharField(max_length=100, verbose_name=_("Last Name"))
    date_of_birth = models.DateField(null=True, blank=True, verbose_name=_("Date of Birth"))
    gender = models.CharField(
        max_length=10,
        choices=Gender.choices,
        blank=True,
        verbose_name=_("Gender")
    )

    # Contact Information
    email = models.EmailField(blank=True, verbose_name=_("Email"))
    phone = models.CharField(max_length=20, blank=True, verbose_name=_("Phone"))
    address = models.TextField(blank=True, verbose_name=_("Address"))
    emergency_contact_name = models.CharField(max_length=200, blank=True)
    emergency_contact_phone = models.CharField(max_length=20, blank=True)

    # Guardianship
    parent = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='children',
        verbose_name=_("Parent")
    )
    parent_profile = models.ForeignKey(
        'students.ParentProfile',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='linked_children',
        verbose_name=_("Parent Profile")
    )
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='child_profile',
        verbose_name=_("Student Account")
    )

    # Medical and support information
    medical_conditions = models.TextField(blank=True, verbose_name=_("Medical Conditions"))
    allergies = models.TextField(blank=True, verbose_name=_("Allergies"))
    special_needs = models.TextField(blank=True, verbose_name=_("Special Needs"))
    additional_needs = models.TextField(blank=True, verbose_name=_("Additional Needs"))
    notes = models.TextField(blank=True, verbose_name=_("Notes"))

    photo = models.ImageField(
        upload_to='students/photos/',
        blank=True,
        verbose_name=_("Photo")
    )

    objects = ChildProfileManager()
    all_objects = ChildProfileManager(alive_only=False)

    class Meta:
        ordering = ['last_name', 'first_name']
        verbose_name = _('Child Profile')
        verbose_name_plural = _('Child Profiles')

    def __str__(self):
        return self.full_name

    @property
    def full_name(self):
        """Get full name"""
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or str(_("Unknown Student"))

    @property
    def initials(self):
        letters = [part[0] for part in (self.first_name, self.last_name) if part]
        return "".join(letters).upper() or "?"

    @property
    def age(self):
        """Calculate age from date of birth"""
        if not self.date_of_birth:
            return None
        today = timezone.now().date()
        born = self.date_of_birth
        return today.year - born.year - ((today.month, today.day) < (born.month, born.day))

    @property
    def guardian_user(self):
        if self.parent_id:
            return self.parent
        if self.parent_profile_id:
            return self.parent_profile.user
        return None

    @property
    def active_enrollments(self):
        from apps.enrollments.models import ProgramEnrollment
        return self.program_enrollments.filter(status=ProgramEnrollment.Status.ACTIVE)


class ParentProfileQuerySet(models.QuerySet):
    def search(self, term):
        return self.filter(
            Q(user__first_name__icontains=term) |
            Q(user__last_name__icontains=term) |
            Q(user__email__icontains=term) |
            Q(phone__icontains=term)
        )


class ParentProfile(TimeStampedModel):
    """Parent/Guardian profile"""

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='parent_profile'
    )
    phone = models.CharField(max_length=20, blank=True)
    address = models.TextField(blank=True)
    emergency_contact = models.CharField(max_length=200, blank=True)
    occupation = models.CharField(max_length=200, blank=True)
    company = models.CharField(max_length=200, blank=True)
    notes = models.TextField(blank=True)

    objects = ParentProfileQuerySet.as_manager()

    class Meta:
        ordering = ['user__last_name', 'user__first_name']
        verbose_name = _('Parent Profile')
        verbose_name_plural = _('Parent Profiles')

    def __str__(self):
        return self.full_name

    @property
    def full_name(self):
        return self.user.get_full_name() or self.user.get_username()

    @property
    def children(self):
        return ChildProfile.objects.filter(
            Q(parent=self.user) | Q(parent_profile=self)
        ).distinct()

    @property
    def program_enrollments(self):
        from apps.enrollments.models import ProgramEnrollment
        return ProgramEnrollment.objects.filter(child_profile__in=self.children)

    @property
    def invoices(self):
        from apps.finance.models import Invoice
        return Invoice.objects.filter(child_profile__in=self.children)

    @property
    def full_contact(self):
        parts = [self.full_name]
        if self.user.email:
            parts.append(self.user.email)
        if self.phone:
            parts.append(self.phone)
        return " | ".join(parts)


class ClientProfileQuerySet(models.QuerySet):
    def with_active_children(self):
        from apps.enrollments.models import ProgramEnrollment
        return self.filter(
            user__children__program_enrollments__status=ProgramEnrollment.Status.ACTIVE,
            user__children__deleted_at__isnull=True,
        ).distinct()

    def search(self, term):
        return self.filter(
            Q(user__first_name__icontains=term) |
            Q(user__last_name__icontains=term) |
            Q(user__email__icontains=term) |
            Q(phone__icontains=term) |
            Q(company__icontains=term)
        )

    def by_contact_method(self, method):
        return self.filter(preferred_contact_method=method)


class ClientProfile(TimeStampedModel):
    """Fee-paying client (parent or sponsor) with billing helpers"""

    class ContactMethod(models.TextChoices):
        EMAIL = 'email', _('Email')
        PHONE = 'phone', _('Phone')
        SMS = 'sms', _('SMS')

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='client_profile'
    )
    phone = models.CharField(max_length=20, blank=True)
    address = models.TextField(blank=True)
    emergency_contact_name = models.CharField(max_length=200, blank=True)
    emergency_contact_phone = models.CharField(max_length=20, blank=True)
    relationship_to_children = models.CharField(max_length=100, blank=True)
    occupation = models.CharField(max_length=200, blank=True)
    company = models.CharField(max_length=200, blank=True)
    preferred_contact_method = models.CharField(
        max_length=10,
        choices=ContactMethod.choices,
        default=ContactMethod.EMAIL
    )
    notes = models.TextField(blank=True)

    objects = ClientProfileQuerySet.as_manager()

    class Meta:
        ordering = ['user__last_name', 'user__first_name']

    def __str__(self):
        return self.user.get_full_name() or self.user.get_username()

    @property
    def children(self):
        return ChildProfile.objects.filter(parent=self.user)

    @property
    def children_enrollments(self):
        from apps.enrollments.models import ProgramEnrollment
        return ProgramEnrollment.objects.filter(child_profile__in=self.children)

    @property
    def active_children_enrollments(self):
        from apps.enrollments.models import ProgramEnrollment
        return self.children_enrollments.filter(
            status=ProgramEnrollment.Status.ACTIVE,
            academic_year__is_current=True,
        )

    @property
    def total_outstanding(self):
        from apps.finance.models import Invoice
        total = Invoice.objects.filter(child_profile__in=self.children).exclude(
            status__in=[Invoice.Status.PAID, Invoice.Status.CANCELLED]
        ).aggregate(total=Sum('amount'))['total']
        return total or 0

    @property
    def total_paid(self):
        from apps.finance.models import Payment
        total = Payment.objects.filter(
            child_profile__in=self.children,
            status=Payment.Status.COMPLETED,
        ).aggregate(total=Sum('amount'))['total']
        return total or 0

    @property
    def has_active_enrollments(self):
        return self.active_children_enrollments.exists()

    @property
    def enrolled_curricula(self):
        from apps.corecode.models import Curriculum
        return Curriculum.objects.filter(
            enrollments__in=self.children_enrollments
        ).distinct()
