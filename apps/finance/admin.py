from django.contrib import admin

from .models import Invoice, InvoiceItem, Payment, PaymentPlan


@admin.register(PaymentPlan)
class PaymentPlanAdmin(admin.ModelAdmin):
    list_display = ['name', 'code', 'type', 'amount', 'currency', 'curriculum', 'is_active', 'is_default']
    list_filter = ['type', 'currency', 'is_active', 'curriculum']
    search_fields = ['name', 'code']
    readonly_fields = ['code']


class InvoiceItemInline(admin.TabularInline):
    model = InvoiceItem
    extra = 0


class PaymentInline(admin.TabularInline):
    model = Payment
    extra = 0
    fields = ['reference_number', 'amount', 'status', 'payment_method', 'payment_date']
    readonly_fields = ['reference_number']


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ['invoice_number', 'child_profile', 'curriculum', 'amount', 'due_date', 'status']
    list_filter = ['status', 'academic_year', 'curriculum']
    search_fields = ['invoice_number', 'child_profile__first_name', 'child_profile__last_name']
    raw_id_fields = ['child_profile', 'program_enrollment']
    inlines = [InvoiceItemInline, PaymentInline]


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ['reference_number', 'child_profile', 'amount', 'status', 'payment_method', 'payment_date']
    list_filter = ['status', 'payment_method']
    search_fields = ['reference_number', 'transaction_id']
    raw_id_fields = ['child_profile', 'invoice']
