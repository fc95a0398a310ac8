from django.urls import path
from . import views

app_name = "activity"

urlpatterns = [
    path("", views.ActivityLogListView.as_view(), name="activity_list"),
]
