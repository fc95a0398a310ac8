from django.urls import path
from . import views

app_name = "corecode"

urlpatterns = [
    # Academic years
    path("academic-years/", views.AcademicYearListView.as_view(), name="academic_year_list"),
    path("academic-years/create/", views.AcademicYearCreateView.as_view(), name="academic_year_create"),
    path("academic-years/<int:pk>/update/", views.AcademicYearUpdateView.as_view(), name="academic_year_update"),

    # Curricula
    path("curricula/", views.CurriculumListView.as_view(), name="curriculum_list"),
    path("curricula/create/", views.CurriculumCreateView.as_view(), name="curriculum_create"),
    path("curricula/<int:pk>/update/", views.CurriculumUpdateView.as_view(), name="curriculum_update"),

    # Subjects
    path("subjects/", views.SubjectListView.as_view(), name="subject_list"),
    path("subjects/create/", views.SubjectCreateView.as_view(), name="subject_create"),
    path("subjects/<int:pk>/update/", views.SubjectUpdateView.as_view(), name="subject_update"),

    # Rooms
    path("rooms/", views.RoomListView.as_view(), name="room_list"),
    path("rooms/create/", views.RoomCreateView.as_view(), name="room_create"),
    path("rooms/<int:pk>/update/", views.RoomUpdateView.as_view(), name="room_update"),

    path("<slug:kind>/<int:pk>/delete/", views.delete_reference, name="delete"),
]
