from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.contrib.auth import views as auth_views
from django.urls import include, path

from apps.corecode.views import HomeView
from apps.corecode.views_auth import CustomLoginView

urlpatterns = [
    path("admin/", admin.site.urls),
    path("accounts/login/", CustomLoginView.as_view(), name="login"),
    path("accounts/logout/", auth_views.LogoutView.as_view(), name="logout"),
    path("", HomeView.as_view(), name="home"),
    path("academic/", include("apps.corecode.urls")),
    path("students/", include("apps.students.urls")),
    path("staff/", include("apps.staffs.urls")),
    path("enrollments/", include("apps.enrollments.urls")),
    path("scheduling/", include("apps.scheduling.urls")),
    path("results/", include("apps.result.urls")),
    path("finance/", include("apps.finance.urls")),
    path("activity/", include("apps.activity.urls")),
    path("system/", include("apps.system.urls")),
]

if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
