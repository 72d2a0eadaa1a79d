# lis_core/patients/admin.py
from __future__ import annotations

from django.contrib import admin

from lis_core.patients.models import Patient


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ("code", "dni", "last_name", "first_name", "birth_date", "sex", "deleted_at")
    search_fields = ("code", "dni", "first_name", "last_name")
    readonly_fields = ("id", "code", "created_at", "updated_at")
    ordering = ("-created_at",)
