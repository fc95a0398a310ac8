from django.urls import path

from . import views

app_name = 'scheduling'

urlpatterns = [
    # Sessions
    path('sessions/', views.SessionListView.as_view(), name='session_list'),
    path('sessions/create/', views.SessionCreateView.as_view(), name='session_create'),
    path('sessions/<int:pk>/', views.SessionDetailView.as_view(), name='session_detail'),
    path('sessions/<int:pk>/edit/', views.SessionUpdateView.as_view(), name='session_update'),
    path('sessions/<int:pk>/cancel/', views.cancel_session, name='session_cancel'),
    path('sessions/<int:pk>/attendance/', views.AttendanceView.as_view(), name='session_attendance'),

    # Timetable
    path('timetable/', views.TimetableSlotListView.as_view(), name='timetable'),
    path('timetable/create/', views.TimetableSlotCreateView.as_view(), name='timetable_slot_create'),
    path('timetable/<int:pk>/edit/', views.TimetableSlotUpdateView.as_view(), name='timetable_slot_update'),
    path('timetable/<int:pk>/delete/', views.delete_timetable_slot, name='timetable_slot_delete'),

    # Events
    path('events/', views.EventListView.as_view(), name='event_list'),
    path('events/create/', views.EventCreateView.as_view(), name='event_create'),
    path('events/<int:pk>/', views.EventDetailView.as_view(), name='event_detail'),
    path('events/<int:pk>/edit/', views.EventUpdateView.as_view(), name='event_update'),
    path('events/<int:pk>/delete/', views.delete_event, name='event_delete'),
    path('events/<int:pk>/register/', views.register_for_event, name='event_register'),
    path('events/<int:pk>/unregister/', views.unregister_from_event, name='event_unregister'),
]
