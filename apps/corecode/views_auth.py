from django.contrib.auth.views import LoginView
from django.urls import reverse_lazy

from apps.activity.models import ActivityLog
from .utils import get_user_role

ROLE_HOME = {
    'admin': 'home',
    'teacher': 'staffs:teacher_dashboard',
    'parent': 'students:parent_dashboard',
}


class CustomLoginView(LoginView):
    """Custom login view to redirect based on user role"""
    template_name = 'registration/login.html'
    redirect_authenticated_user = True

    def form_valid(self, form):
        response = super().form_valid(form)
        ActivityLog.log(
            form.get_user(),
            ActivityLog.Action.LOGIN,
            "Logged in",
            activity_type='auth',
            request=self.request,
        )
        return response

    def get_success_url(self):
        redirect_to = self.get_redirect_url()
        if redirect_to:
            return redirect_to

        role = get_user_role(self.request.user)
        return reverse_lazy(ROLE_HOME.get(role, 'home'))
