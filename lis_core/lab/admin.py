from django.contrib import admin

from lis_core.lab.models import LabResult


@admin.register(LabResult)
class LabResultAdmin(admin.ModelAdmin):
    list_display = ("order_item", "reported_by", "reported_at")
    search_fields = ("order_item__order__order_code",)
    ordering = ("-reported_at",)
    readonly_fields = ("created_at", "updated_at")
