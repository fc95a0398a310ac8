from django.urls import path
from . import views

app_name = "finance"

urlpatterns = [
    # Payment plan URLs
    path("payment-plans/", views.PaymentPlanListView.as_view(), name="payment_plan_list"),
    path("payment-plans/create/", views.PaymentPlanCreateView.as_view(), name="payment_plan_create"),
    path("payment-plans/<int:pk>/", views.PaymentPlanDetailView.as_view(), name="payment_plan_detail"),
    path("payment-plans/<int:pk>/update/", views.PaymentPlanUpdateView.as_view(), name="payment_plan_update"),
    path("payment-plans/<int:pk>/delete/", views.delete_payment_plan, name="payment_plan_delete"),

    # Invoice URLs
    path("invoices/", views.InvoiceListView.as_view(), name="invoice_list"),
    path("invoices/create/", views.InvoiceCreateView.as_view(), name="invoice_create"),
    path("invoices/<int:pk>/", views.InvoiceDetailView.as_view(), name="invoice_detail"),
    path("invoices/<int:invoice_id>/payment/", views.add_payment, name="add_payment"),
    path("invoices/<int:pk>/<str:action>/", views.change_invoice_status, name="invoice_status"),

    # Payments
    path("payments/", views.PaymentListView.as_view(), name="payment_list"),
    path("payments/<int:pk>/", views.PaymentDetailView.as_view(), name="payment_detail"),
    path("payments/<int:pk>/complete/", views.complete_payment, name="payment_complete"),

    # Reports
    path("reports/", views.FinancialReportView.as_view(), name="financial_report"),
    path("reports/export/", views.export_financial_report, name="export_financial_report"),

    # AJAX endpoints
    path("ajax/student/<int:student_id>/balance/", views.student_balance_ajax, name="student_balance_ajax"),
]
