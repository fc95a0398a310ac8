from django.urls import path
from . import views

app_name = "students"

urlpatterns = [
    # Student URLs
    path("", views.ChildProfileListView.as_view(), name="child_list"),
    path("create/", views.ChildProfileCreateView.as_view(), name="child_create"),
    path("<int:pk>/", views.ChildProfileDetailView.as_view(), name="child_detail"),
    path("<int:pk>/update/", views.ChildProfileUpdateView.as_view(), name="child_update"),
    path("<int:pk>/delete/", views.ChildProfileDeleteView.as_view(), name="child_delete"),
    path("<int:pk>/restore/", views.restore_child_profile, name="child_restore"),

    # Parent URLs
    path("parents/", views.ParentProfileListView.as_view(), name="parent_list"),
    path("parents/create/", views.ParentProfileCreateView.as_view(), name="parent_create"),
    path("parents/<int:pk>/", views.ParentProfileDetailView.as_view(), name="parent_detail"),
    path("parents/<int:pk>/update/", views.ParentProfileUpdateView.as_view(), name="parent_update"),

    # Parent portal
    path("portal/", views.ParentDashboardView.as_view(), name="parent_dashboard"),
]
