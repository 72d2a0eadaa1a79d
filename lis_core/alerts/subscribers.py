from __future__ import annotations

from lis_core.alerts.services import NotificationService
from lis_core.common.events import subscribe


@subscribe("admission.converted")
def on_admission_converted(payload: dict) -> None:
    NotificationService.notify_admission_converted(
        order_id=payload["order_id"],
        order_code=payload["order_code"],
        admission_request_id=payload.get("admission_request_id"),
    )
