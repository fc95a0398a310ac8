from django.conf import settings
from django.http import HttpResponse
from django.template.loader import render_to_string

from .models import AcademicYear
from .utils import get_client_ip


class SiteWideConfigs:
    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        request.current_academic_year = AcademicYear.get_current()

        response = self.get_response(request)

        return response


class MaintenanceModeMiddleware:
    """
    Serve a 503 page while the maintenance flag file exists.

    Superusers, allowed IPs and exempt paths pass through.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        from apps.system.maintenance import get_maintenance_info

        info = get_maintenance_info()
        if info is None or self.is_exempt(request, info):
            return self.get_response(request)

        content = render_to_string(
            'maintenance.html',
            {'message': info.get('message'), 'retry': info.get('retry')},
            request=request,
        )
        response = HttpResponse(content, status=503)
        if info.get('retry'):
            response['Retry-After'] = str(info['retry'])
        return response

    def is_exempt(self, request, info):
        user = getattr(request, 'user', None)
        if user is not None and user.is_authenticated and user.is_superuser:
            return True

        if get_client_ip(request) in info.get('allow', []):
            return True

        exempt_paths = getattr(settings, 'MAINTENANCE_EXEMPT_PATHS', [])
        return any(request.path.startswith(path) for path in exempt_paths)
