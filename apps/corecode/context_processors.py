from django.conf import settings

from .utils import get_user_role


def site_defaults(request):
    from apps.system.maintenance import is_maintenance_mode

    return {
        'school_name': getattr(settings, 'SCHOOL_NAME', 'School Back Office'),
        'current_academic_year': getattr(request, 'current_academic_year', None),
        'user_role': get_user_role(getattr(request, 'user', None)),
        'maintenance_mode': is_maintenance_mode(),
    }
