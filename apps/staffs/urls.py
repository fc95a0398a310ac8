from django.urls import path
from . import views

app_name = "staffs"

urlpatterns = [
    path("", views.TeacherListView.as_view(), name="teacher_list"),
    path("create/", views.TeacherCreateView.as_view(), name="teacher_create"),
    path("<int:pk>/", views.TeacherDetailView.as_view(), name="teacher_detail"),
    path("<int:pk>/update/", views.TeacherUpdateView.as_view(), name="teacher_update"),
    path("dashboard/", views.TeacherDashboardView.as_view(), name="teacher_dashboard"),
]
