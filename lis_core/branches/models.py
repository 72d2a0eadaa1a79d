# lis_core/branches/models.py
from __future__ import annotations

from django.db import models

from lis_core.common.models import UUIDModel


class Branch(UUIDModel):
    """
    A clinic site where admissions and lab orders are taken.
    """
    code = models.SlugField(max_length=64, unique=True)
    name = models.CharField(max_length=255)
    address = models.CharField(max_length=255, blank=True, default="")
    is_active = models.BooleanField(default=True, db_index=True)

    class Meta:
        db_table = "branches_branch"
        ordering = ["name"]

    def __str__(self) -> str:
        return f"{self.name} ({self.code})"
