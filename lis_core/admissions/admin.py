# lis_core/admissions/admin.py
from __future__ import annotations

from django.contrib import admin

from lis_core.admissions.models import AdmissionRequest, AdmissionRequestItem


class AdmissionRequestItemInline(admin.TabularInline):
    model = AdmissionRequestItem
    extra = 0
    fields = ("position", "lab_test", "price_base", "price_applied", "adjustment_reason", "promotion_name")
    readonly_fields = ("price_base",)
    raw_id_fields = ("lab_test",)


@admin.register(AdmissionRequest)
class AdmissionRequestAdmin(admin.ModelAdmin):
    list_display = ("request_code", "patient", "status", "total_price", "converted_order", "created_at")
    list_filter = ("status", "patient_type", "branch")
    search_fields = ("request_code", "patient__dni", "patient__last_name")
    ordering = ("-created_at",)
    readonly_fields = ("request_code", "total_price", "converted_order", "converted_at", "updated_at")
    list_select_related = ("patient", "converted_order")
    raw_id_fields = ("patient",)
    inlines = [AdmissionRequestItemInline]
