"""
Role helpers and access mixins shared across apps
"""
from django.contrib import messages
from django.contrib.auth.mixins import LoginRequiredMixin
from django.contrib.auth.models import Group
from django.shortcuts import redirect
from django.utils.translation import gettext_lazy as _

ROLE_ADMIN = 'Admins'
ROLE_TEACHER = 'Teachers'
ROLE_PARENT = 'Parents'
ROLE_STUDENT = 'Students'

ROLES = (ROLE_ADMIN, ROLE_TEACHER, ROLE_PARENT, ROLE_STUDENT)


def has_role(user, role):
    """Check if an authenticated user belongs to a role group"""
    if not user or not user.is_authenticated:
        return False
    if role == ROLE_ADMIN and user.is_superuser:
        return True
    return user.groups.filter(name=role).exists()


def is_admin(user):
    return has_role(user, ROLE_ADMIN)


def is_teacher(user):
    return hasattr(user, 'teacher_profile') or has_role(user, ROLE_TEACHER)


def is_parent(user):
    return hasattr(user, 'parent_profile') or has_role(user, ROLE_PARENT)


def assign_role(user, role):
    """Add user to the role group, creating the group on first use"""
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role}")
    group, _created = Group.objects.get_or_create(name=role)
    user.groups.add(group)
    return group


def get_user_role(user):
    """Primary role used for navigation and login redirects"""
    if not user or not user.is_authenticated:
        return 'public'
    if is_admin(user):
        return 'admin'
    if is_teacher(user):
        return 'teacher'
    if is_parent(user):
        return 'parent'
    if has_role(user, ROLE_STUDENT) or hasattr(user, 'child_profile'):
        return 'student'
    return 'public'


def get_client_ip(request):
    """Client IP, honouring the left-most X-Forwarded-For entry"""
    if request is None:
        return None
    forwarded = request.META.get('HTTP_X_FORWARDED_FOR', '')
    if forwarded:
        for part in forwarded.split(','):
            ip = part.strip()
            if ip:
                return ip
    return request.META.get('REMOTE_ADDR')


class RoleRequiredMixin(LoginRequiredMixin):
    """Mixin to restrict a view to users holding a role"""

    role_check = None
    denied_message = _("Access denied.")

    def dispatch(self, request, *args, **kwargs):
        if not request.user.is_authenticated:
            return self.handle_no_permission()

        if not self.role_check(request.user):
            messages.error(request, self.denied_message)
            return redirect('home')

        return super().dispatch(request, *args, **kwargs)


class AdminRequiredMixin(RoleRequiredMixin):
    role_check = staticmethod(is_admin)
    denied_message = _("Access denied. Administrators only.")


class TeacherRequiredMixin(RoleRequiredMixin):
    role_check = staticmethod(lambda user: hasattr(user, 'teacher_profile'))
    denied_message = _("Access denied. Teacher profile required.")


class ParentRequiredMixin(RoleRequiredMixin):
    role_check = staticmethod(lambda user: hasattr(user, 'parent_profile'))
    denied_message = _("Access denied. Parent portal only.")
