# lis_core/billing/admin.py
from django.contrib import admin

from lis_core.billing.models import Payment, ReferredLabPayment


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("order", "amount", "method", "paid_at", "recorded_by")
    list_filter = ("method",)
    search_fields = ("order__order_code",)
    ordering = ("-paid_at",)
    list_select_related = ("order",)
    readonly_fields = ("created_at", "updated_at")


@admin.register(ReferredLabPayment)
class ReferredLabPaymentAdmin(admin.ModelAdmin):
    list_display = ("order", "referred_lab", "amount", "paid_at", "recorded_by")
    list_filter = ("referred_lab",)
    search_fields = ("order__order_code",)
    ordering = ("-paid_at",)
    list_select_related = ("order", "referred_lab")
    readonly_fields = ("created_at", "updated_at")
