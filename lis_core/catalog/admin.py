# lis_core/catalog/admin.py
from __future__ import annotations

from django.contrib import admin

from lis_core.catalog.models import (
    LabTest,
    LabTestReferredLabOption,
    Profile,
    ProfileItem,
    ReferenceRange,
    ReferredLab,
    ResultTemplate,
    Section,
    TemplateParameter,
)


@admin.register(Section)
class SectionAdmin(admin.ModelAdmin):
    list_display = ("name", "code", "order", "is_active")
    search_fields = ("name", "code")


@admin.register(ReferredLab)
class ReferredLabAdmin(admin.ModelAdmin):
    list_display = ("name", "is_active", "updated_at")
    search_fields = ("name",)


class ReferredLabOptionInline(admin.TabularInline):
    model = LabTestReferredLabOption
    extra = 0


@admin.register(LabTest)
class LabTestAdmin(admin.ModelAdmin):
    list_display = (
        "code",
        "name",
        "section",
        "price",
        "price_to_admission",
        "is_referred",
        "referred_lab",
        "external_lab_cost",
        "is_active",
        "deleted_at",
    )
    list_filter = ("is_active", "is_referred", "section")
    search_fields = ("code", "name")
    list_select_related = ("section", "referred_lab")
    inlines = [ReferredLabOptionInline]


class ProfileItemInline(admin.TabularInline):
    model = ProfileItem
    extra = 0


@admin.register(Profile)
class ProfileAdmin(admin.ModelAdmin):
    list_display = ("name", "package_price", "is_active")
    search_fields = ("name",)
    inlines = [ProfileItemInline]


class TemplateParameterInline(admin.TabularInline):
    model = TemplateParameter
    extra = 0


@admin.register(ResultTemplate)
class ResultTemplateAdmin(admin.ModelAdmin):
    list_display = ("lab_test", "title", "updated_at")
    search_fields = ("lab_test__name", "title")
    inlines = [TemplateParameterInline]


@admin.register(ReferenceRange)
class ReferenceRangeAdmin(admin.ModelAdmin):
    list_display = ("parameter", "age_group", "sex", "ref_range_text", "ref_min", "ref_max")
    list_filter = ("age_group", "sex")
