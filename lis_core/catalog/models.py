# lis_core/catalog/models.py
from __future__ import annotations

from django.db import models

from lis_core.common.models import UUIDModel


class Sex(models.TextChoices):
    MALE = "M", "Male"
    FEMALE = "F", "Female"
    OTHER = "O", "Other"


class AgeGroup(models.TextChoices):
    CHILDREN = "NIÑOS", "Children"
    YOUTH = "JOVENES", "Youth"
    ADULTS = "ADULTOS", "Adults"


class ValueType(models.TextChoices):
    NUMBER = "NUMBER", "Number"
    DECIMAL = "DECIMAL", "Decimal"
    PERCENTAGE = "PERCENTAGE", "Percentage"
    TEXT = "TEXT", "Text"
    SELECT = "SELECT", "Select"


class Section(UUIDModel):
    code = models.SlugField(max_length=64, unique=True)
    name = models.CharField(max_length=128)
    order = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = "catalog_section"
        ordering = ["order", "name"]

    def __str__(self) -> str:
        return self.name


class ReferredLab(UUIDModel):
    """External laboratory that processes referred analyses."""
    name = models.CharField(max_length=255)
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = "catalog_referred_lab"
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name


class LabTest(UUIDModel):
    """
    Orderable analysis.

    ``price`` is the public price charged to the patient. ``price_to_admission``
    is the convention price owed by the referring admission desk; when unset the
    public price applies. Referred tests carry a default external lab and cost.
    """
    code = models.CharField(max_length=64, unique=True)
    name = models.CharField(max_length=255)
    section = models.ForeignKey(Section, on_delete=models.PROTECT, null=True, blank=True, related_name="tests")

    price = models.DecimalField(max_digits=12, decimal_places=2)
    price_to_admission = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    is_referred = models.BooleanField(default=False)
    referred_lab = models.ForeignKey(
        ReferredLab,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="default_tests",
    )
    external_lab_cost = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    is_active = models.BooleanField(default=True, db_index=True)
    deleted_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "catalog_lab_test"
        ordering = ["name"]
        indexes = [
            models.Index(fields=["is_active", "deleted_at"]),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.code})"

    @property
    def is_available(self) -> bool:
        return self.is_active and self.deleted_at is None


class LabTestReferredLabOption(UUIDModel):
    """Alternative external labs a referred test may be sent to."""
    lab_test = models.ForeignKey(LabTest, on_delete=models.CASCADE, related_name="referred_lab_options")
    referred_lab = models.ForeignKey(ReferredLab, on_delete=models.CASCADE, related_name="test_options")
    external_lab_cost = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    is_default = models.BooleanField(default=False)

    class Meta:
        db_table = "catalog_lab_test_referred_lab_option"
        constraints = [
            models.UniqueConstraint(fields=["lab_test", "referred_lab"], name="uq_test_referred_lab_option"),
        ]


class Profile(UUIDModel):
    """
    Bundle of tests sold together. ``package_price``, when set, is spread
    evenly across the active member tests.
    """
    name = models.CharField(max_length=255)
    package_price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = "catalog_profile"
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name


class ProfileItem(UUIDModel):
    profile = models.ForeignKey(Profile, on_delete=models.CASCADE, related_name="items")
    lab_test = models.ForeignKey(LabTest, on_delete=models.CASCADE, related_name="profile_items")
    order = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "catalog_profile_item"
        ordering = ["order"]
        constraints = [
            models.UniqueConstraint(fields=["profile", "lab_test"], name="uq_profile_item_test"),
        ]


class ResultTemplate(UUIDModel):
    lab_test = models.OneToOneField(LabTest, on_delete=models.CASCADE, related_name="template")
    title = models.CharField(max_length=255, blank=True, default="")
    notes = models.TextField(blank=True, default="")

    class Meta:
        db_table = "catalog_result_template"


class TemplateParameter(UUIDModel):
    template = models.ForeignKey(ResultTemplate, on_delete=models.CASCADE, related_name="parameters")
    group_name = models.CharField(max_length=128, blank=True, default="")
    param_name = models.CharField(max_length=128)
    unit = models.CharField(max_length=32, blank=True, default="")
    ref_range_text = models.CharField(max_length=255, blank=True, default="")
    ref_min = models.DecimalField(max_digits=12, decimal_places=4, null=True, blank=True)
    ref_max = models.DecimalField(max_digits=12, decimal_places=4, null=True, blank=True)
    value_type = models.CharField(max_length=16, choices=ValueType.choices, default=ValueType.NUMBER)
    select_options = models.JSONField(default=list, blank=True)
    order = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "catalog_template_parameter"
        ordering = ["order"]


class ReferenceRange(UUIDModel):
    """Age/sex specific variant of a parameter's reference range."""
    parameter = models.ForeignKey(TemplateParameter, on_delete=models.CASCADE, related_name="reference_ranges")
    age_group = models.CharField(max_length=16, choices=AgeGroup.choices, null=True, blank=True)
    sex = models.CharField(max_length=1, choices=Sex.choices, null=True, blank=True)
    ref_range_text = models.CharField(max_length=255, blank=True, default="")
    ref_min = models.DecimalField(max_digits=12, decimal_places=4, null=True, blank=True)
    ref_max = models.DecimalField(max_digits=12, decimal_places=4, null=True, blank=True)
    order = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "catalog_reference_range"
        ordering = ["order"]
