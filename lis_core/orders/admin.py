# lis_core/orders/admin.py
from __future__ import annotations

from django.contrib import admin

from lis_core.orders.models import LabOrder, LabOrderItem


class LabOrderItemInline(admin.TabularInline):
    model = LabOrderItem
    extra = 0
    fields = (
        "position",
        "lab_test",
        "price_snapshot",
        "price_convention_snapshot",
        "referred_lab",
        "external_lab_cost_snapshot",
        "promotion_name",
        "status",
    )
    readonly_fields = ("price_snapshot", "price_convention_snapshot", "external_lab_cost_snapshot")
    raw_id_fields = ("lab_test",)


@admin.register(LabOrder)
class LabOrderAdmin(admin.ModelAdmin):
    list_display = (
        "order_code",
        "patient",
        "status",
        "order_source",
        "total_price",
        "admission_settled_at",
        "created_at",
    )
    list_filter = ("status", "order_source", "patient_type", "branch")
    search_fields = ("order_code", "patient__dni", "patient__last_name")
    ordering = ("-created_at",)
    readonly_fields = ("order_code", "total_price", "admission_request", "updated_at")
    list_select_related = ("patient",)
    raw_id_fields = ("patient",)
    inlines = [LabOrderItemInline]
