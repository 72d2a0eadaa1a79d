# lis_core/common/permissions.py

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Set

from rest_framework.permissions import BasePermission, SAFE_METHODS

# Group/role names (Django auth Group names)
ROLE_ADMIN = "ADMIN"
ROLE_ADMISSION = "ADMISSION"
ROLE_ADMISSION_SUPERVISOR = "ADMISSION_SUPERVISOR"
ROLE_LAB = "LAB"
ROLE_CASHIER = "CASHIER"
ROLE_READONLY = "READONLY"

ALL_ROLES = (
    ROLE_ADMIN,
    ROLE_ADMISSION,
    ROLE_ADMISSION_SUPERVISOR,
    ROLE_LAB,
    ROLE_CASHIER,
    ROLE_READONLY,
)


@dataclass(frozen=True)
class Capabilities:
    """
    Pre-resolved booleans handed to services. Services never look at roles.
    """
    manage_admissions: bool = False
    adjust_admission_price: bool = False
    convert_admissions: bool = False
    purge_admissions: bool = False
    manage_orders: bool = False
    register_payments: bool = False
    register_referred_lab_payments: bool = False
    view_payments: bool = False

    @classmethod
    def everything(cls) -> "Capabilities":
        return cls(**{f.name: True for f in fields(cls)})

    def has(self, name: str) -> bool:
        return bool(getattr(self, name, False))


_ROLE_CAPABILITIES: dict[str, set[str]] = {
    ROLE_ADMISSION: {"manage_admissions", "convert_admissions", "view_payments"},
    ROLE_ADMISSION_SUPERVISOR: {
        "manage_admissions",
        "adjust_admission_price",
        "convert_admissions",
        "view_payments",
    },
    ROLE_LAB: {"manage_orders", "convert_admissions", "view_payments"},
    ROLE_CASHIER: {"register_payments", "register_referred_lab_payments", "view_payments"},
    ROLE_READONLY: set(),
}


def _user_roles(user) -> Set[str]:
    """
    Resolve roles from Django groups (superuser counts as ADMIN).
    Authenticated users without groups are READONLY.
    """
    roles: Set[str] = set()

    if not user or not getattr(user, "is_authenticated", False):
        return roles

    if getattr(user, "is_superuser", False):
        roles.add(ROLE_ADMIN)
        return roles

    if hasattr(user, "groups"):
        roles.update(user.groups.values_list("name", flat=True))

    if not roles:
        roles.add(ROLE_READONLY)

    return roles


def capabilities_for(user) -> Capabilities:
    roles = _user_roles(user)
    if ROLE_ADMIN in roles:
        return Capabilities.everything()

    granted: set[str] = set()
    for role in roles:
        granted |= _ROLE_CAPABILITIES.get(role, set())
    return Capabilities(**{name: True for name in granted})


def request_capabilities(request) -> Capabilities:
    caps = getattr(request, "_lis_capabilities", None)
    if caps is None:
        caps = capabilities_for(getattr(request, "user", None))
        setattr(request, "_lis_capabilities", caps)
    return caps


# Marker: any authenticated user may perform the action.
AUTHENTICATED = "authenticated"


class CapabilityPermission(BasePermission):
    """
    Base permission class mapping view actions to a capability.

    - Requires authentication.
    - Uses required_capability_per_action; AUTHENTICATED allows any signed-in user.
    - If the action is unknown and the request is SAFE, falls back to list/retrieve.
    - Unknown unsafe actions are denied.
    """
    message = "You do not have permission to perform this action."

    required_capability_per_action: dict[str, str] = {
        "list": AUTHENTICATED,
        "retrieve": AUTHENTICATED,
    }

    def _infer_action(self, request, view) -> str | None:
        action = getattr(view, "action", None)
        if action:
            return action

        kwargs = getattr(view, "kwargs", {}) or {}
        is_detail = "pk" in kwargs or "id" in kwargs

        method = request.method.upper()
        if method in ("GET", "HEAD", "OPTIONS"):
            return "retrieve" if is_detail else "list"
        if method == "POST":
            return "create"
        if method == "PUT":
            return "update"
        if method == "PATCH":
            return "partial_update"
        if method == "DELETE":
            return "destroy"
        return None

    def has_permission(self, request, view) -> bool:
        user = request.user
        if not user or not getattr(user, "is_authenticated", False):
            return False

        action = self._infer_action(request, view)
        required = self.required_capability_per_action.get(action)

        if required is None and request.method in SAFE_METHODS:
            kwargs = getattr(view, "kwargs", {}) or {}
            is_detail = "pk" in kwargs or "id" in kwargs
            required = self.required_capability_per_action.get("retrieve" if is_detail else "list")

        if required is None:
            return False
        if required == AUTHENTICATED:
            return True

        return request_capabilities(request).has(required)

    def has_object_permission(self, request, view, obj) -> bool:
        return self.has_permission(request, view)


class AdmissionPermission(CapabilityPermission):
    required_capability_per_action = {
        "list": "manage_admissions",
        "retrieve": "manage_admissions",
        "create": "manage_admissions",
        "partial_update": "manage_admissions",
        "destroy": "manage_admissions",
        "convert": "convert_admissions",
        "purge": "purge_admissions",
    }


class OrderPermission(CapabilityPermission):
    required_capability_per_action = {
        "list": AUTHENTICATED,
        "retrieve": AUTHENTICATED,
        "create": "manage_orders",
        "update": "manage_orders",
        "partial_update": "manage_orders",
        "destroy": "manage_orders",
        "items": "manage_orders",
        "remove_item": "manage_orders",
        "template_snapshot": "manage_orders",
        "referred_lab": "manage_orders",
        "repeat": "manage_orders",
    }


class PaymentPermission(CapabilityPermission):
    required_capability_per_action = {
        "list": "view_payments",
        "retrieve": "view_payments",
        "create": "register_payments",
    }


class ReferredLabPaymentPermission(CapabilityPermission):
    required_capability_per_action = {
        "list": "view_payments",
        "retrieve": "view_payments",
        "create": "register_referred_lab_payments",
    }


class AuditPermission(BasePermission):
    """Audit trail is read by administrators only."""

    def has_permission(self, request, view) -> bool:
        return request.method in SAFE_METHODS and ROLE_ADMIN in _user_roles(request.user)
