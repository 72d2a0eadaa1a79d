# lis_core/api/urls.py
from __future__ import annotations

from django.urls import path
from rest_framework.routers import DefaultRouter
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from lis_core.admissions.api.views import AdmissionRequestViewSet
from lis_core.alerts.api.views import NotificationViewSet
from lis_core.audit.api.views import AuditEventViewSet
from lis_core.billing.api.views import (
    OrderPaymentsView,
    OrderReferredLabPaymentsView,
    PendingPaymentsView,
    ReferredLabBalanceView,
    SettleAdmissionBatchView,
)
from lis_core.common.api.me import MeView
from lis_core.lab.api.views import OrderItemResultView
from lis_core.orders.api.views import OrderViewSet

router = DefaultRouter()

router.register(r"admissions", AdmissionRequestViewSet, basename="admissions")
router.register(r"orders", OrderViewSet, basename="orders")
router.register(r"audit/events", AuditEventViewSet, basename="audit-events")
router.register(r"notifications", NotificationViewSet, basename="notifications")

urlpatterns = [
    # Auth
    path("auth/token/", TokenObtainPairView.as_view(), name="token-obtain"),
    path("auth/refresh/", TokenRefreshView.as_view(), name="token-refresh"),
    path("me/", MeView.as_view(), name="me"),

    # Per-order ledgers (non-ViewSet endpoints)
    path("orders/<uuid:order_id>/payments/", OrderPaymentsView.as_view(), name="order-payments"),
    path(
        "orders/<uuid:order_id>/referred-lab-payments/",
        OrderReferredLabPaymentsView.as_view(),
        name="order-referred-lab-payments",
    ),
    path(
        "orders/<uuid:order_id>/items/<uuid:item_id>/result/",
        OrderItemResultView.as_view(),
        name="order-item-result",
    ),

    # Billing reports and batch settlement
    path("billing/pending-payments/", PendingPaymentsView.as_view(), name="billing-pending-payments"),
    path(
        "billing/settle-admission-batch/",
        SettleAdmissionBatchView.as_view(),
        name="billing-settle-admission-batch",
    ),
    path(
        "billing/referred-labs/<uuid:lab_id>/balance/",
        ReferredLabBalanceView.as_view(),
        name="billing-referred-lab-balance",
    ),

    # Router URLs last (so explicit paths win if ever overlapping)
    *router.urls,
]
