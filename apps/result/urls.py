from django.urls import path

from . import views

app_name = 'result'

urlpatterns = [
    path('exams/', views.ExamListView.as_view(), name='exam_list'),
    path('exams/create/', views.ExamCreateView.as_view(), name='exam_create'),
    path('exams/<int:pk>/', views.ExamDetailView.as_view(), name='exam_detail'),
    path('exams/<int:pk>/edit/', views.ExamUpdateView.as_view(), name='exam_update'),
    path('exams/<int:exam_id>/results/add/', views.create_result, name='result_create'),
    path('exams/<int:exam_id>/results/bulk/', views.enter_bulk_results, name='bulk_results'),
    path('exams/<int:exam_id>/check-eligibility/', views.check_student_eligibility, name='check_eligibility'),
]
