from django import template
from django.urls import NoReverseMatch, reverse

from apps.corecode import utils

register = template.Library()

ADMIN_NAV = [
    {
        'title': 'Dashboard',
        'url': 'home',
        'icon': 'fas fa-tachometer-alt',
    },
    {
        'title': 'Students',
        'url': '#',
        'icon': 'fas fa-user-graduate',
        'children': [
            {'title': 'All Students', 'url': 'students:child_list'},
            {'title': 'Parents', 'url': 'students:parent_list'},
            {'title': 'Enrollments', 'url': 'enrollments:enrollment_list'},
        ],
    },
    {
        'title': 'Academic',
        'url': '#',
        'icon': 'fas fa-graduation-cap',
        'children': [
            {'title': 'Academic Years', 'url': 'corecode:academic_year_list'},
            {'title': 'Curricula', 'url': 'corecode:curriculum_list'},
            {'title': 'Subjects', 'url': 'corecode:subject_list'},
            {'title': 'Rooms', 'url': 'corecode:room_list'},
            {'title': 'Exams', 'url': 'result:exam_list'},
        ],
    },
    {
        'title': 'Scheduling',
        'url': '#',
        'icon': 'fas fa-calendar-alt',
        'children': [
            {'title': 'Sessions', 'url': 'scheduling:session_list'},
            {'title': 'Timetable', 'url': 'scheduling:timetable'},
            {'title': 'Events', 'url': 'scheduling:event_list'},
        ],
    },
    {
        'title': 'Staff',
        'url': '#',
        'icon': 'fas fa-chalkboard-teacher',
        'children': [
            {'title': 'Teachers', 'url': 'staffs:teacher_list'},
        ],
    },
    {
        'title': 'Finance',
        'url': '#',
        'icon': 'fas fa-money-bill-wave',
        'children': [
            {'title': 'Payment Plans', 'url': 'finance:payment_plan_list'},
            {'title': 'Invoices', 'url': 'finance:invoice_list'},
            {'title': 'Payments', 'url': 'finance:payment_list'},
            {'title': 'Reports', 'url': 'finance:financial_report'},
        ],
    },
    {
        'title': 'System',
        'url': '#',
        'icon': 'fas fa-cog',
        'children': [
            {'title': 'Overview', 'url': 'system:dashboard'},
            {'title': 'Backups', 'url': 'system:backups'},
            {'title': 'Logs', 'url': 'system:logs'},
            {'title': 'Maintenance', 'url': 'system:maintenance'},
            {'title': 'Updates', 'url': 'system:updates'},
            {'title': 'Activity Log', 'url': 'activity:activity_list'},
        ],
    },
]

TEACHER_NAV = [
    {'title': 'Dashboard', 'url': 'staffs:teacher_dashboard', 'icon': 'fas fa-tachometer-alt'},
    {'title': 'My Sessions', 'url': 'scheduling:session_list', 'icon': 'fas fa-chalkboard'},
    {'title': 'Timetable', 'url': 'scheduling:timetable', 'icon': 'fas fa-calendar-week'},
    {'title': 'Exams', 'url': 'result:exam_list', 'icon': 'fas fa-chart-line'},
    {'title': 'Events', 'url': 'scheduling:event_list', 'icon': 'fas fa-bullhorn'},
]

PARENT_NAV = [
    {'title': 'Dashboard', 'url': 'students:parent_dashboard', 'icon': 'fas fa-tachometer-alt'},
    {'title': 'Events', 'url': 'scheduling:event_list', 'icon': 'fas fa-bullhorn'},
]


def _resolve(items):
    """Attach hrefs, dropping entries whose URL name does not resolve"""
    resolved = []
    for item in items:
        item = dict(item)
        if item.get('children'):
            children = _resolve(item['children'])
            if not children:
                continue
            item['children'] = children
            item['href'] = '#'
        elif item['url'] == '#':
            item['href'] = '#'
        else:
            try:
                item['href'] = reverse(item['url'])
            except NoReverseMatch:
                continue
        resolved.append(item)
    return resolved


@register.inclusion_tag('corecode/navigation/nav.html', takes_context=True)
def role_navigation(context):
    """Navigation menu for the signed-in user's role"""
    request = context.get('request')
    role = utils.get_user_role(request.user if request else None)

    items = {
        'admin': ADMIN_NAV,
        'teacher': TEACHER_NAV,
        'parent': PARENT_NAV,
    }.get(role, [])

    return {'nav_items': _resolve(items), 'request': request, 'role': role}


@register.simple_tag(takes_context=True)
def get_user_role(context):
    """Determine user role for navigation"""
    request = context.get('request')
    return utils.get_user_role(request.user if request else None)
