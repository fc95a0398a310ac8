from django.urls import path

from . import views

app_name = 'enrollments'

urlpatterns = [
    path('', views.EnrollmentListView.as_view(), name='enrollment_list'),
    path('create/', views.EnrollmentCreateWizard.as_view(), name='enrollment_create'),
    path('<int:pk>/', views.EnrollmentDetailView.as_view(), name='enrollment_detail'),
    path('<int:pk>/edit/', views.EnrollmentUpdateView.as_view(), name='enrollment_update'),
    path('<int:pk>/delete/', views.EnrollmentDeleteView.as_view(), name='enrollment_delete'),
    path('<int:pk>/subjects/add/', views.SubjectEnrollmentAddView.as_view(), name='subject_add'),
    path(
        '<int:pk>/subjects/<int:subject_id>/remove/',
        views.remove_subject_enrollment,
        name='subject_remove'
    ),

    # AJAX
    path(
        'ajax/curriculum/<int:curriculum_id>/payment-plans/',
        views.payment_plans_for_curriculum,
        name='payment_plans_for_curriculum'
    ),
]
