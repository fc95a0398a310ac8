from django.contrib import admin
from django.utils.html import format_html

from .models import ChildProfile, ParentProfile, ClientProfile


@admin.register(ChildProfile)
class ChildProfileAdmin(admin.ModelAdmin):
    list_display = ('full_name', 'email', 'age', 'parent', 'deleted_badge')
    list_filter = ('gender',)
    search_fields = ('first_name', 'last_name', 'email')

    def get_queryset(self, request):
        return ChildProfile.all_objects.select_related('parent')

    def deleted_badge(self, obj):
        if obj.deleted_at:
            return format_html(
                '<span style="color:#c0392b;font-weight:bold;">Deleted {}</span>',
                obj.deleted_at.strftime('%Y-%m-%d')
            )
        return "-"
    deleted_badge.short_description = 'Deleted'


@admin.register(ParentProfile)
class ParentProfileAdmin(admin.ModelAdmin):
    list_display = ('full_name', 'phone', 'occupation', 'children_count')
    search_fields = ('user__first_name', 'user__last_name', 'user__email', 'phone')

    def children_count(self, obj):
        return obj.children.count()
    children_count.short_description = 'Children'


@admin.register(ClientProfile)
class ClientProfileAdmin(admin.ModelAdmin):
    list_display = ('__str__', 'phone', 'preferred_contact_method', 'relationship_to_children')
    list_filter = ('preferred_contact_method',)
