# lis_core/branches/admin.py
from __future__ import annotations

from django.contrib import admin

from lis_core.branches.models import Branch


@admin.register(Branch)
class BranchAdmin(admin.ModelAdmin):
    list_display = ("name", "code", "is_active", "updated_at")
    list_filter = ("is_active",)
    search_fields = ("name", "code")
    readonly_fields = ("id", "created_at", "updated_at")
    ordering = ("name",)
