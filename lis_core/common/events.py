# lis_core/common/events.py
import logging
from collections import defaultdict
from typing import Callable, Dict, List, Any

from django.db import transaction

logger = logging.getLogger(__name__)

Handler = Callable[[Dict[str, Any]], None]

_registry: Dict[str, List[Handler]] = defaultdict(list)


def subscribe(event_name: str):
    """
    Decorator to register an event handler.
    Usage:
        @subscribe("admission.converted")
        def handler(payload): ...
    """
    def _decorator(fn: Handler) -> Handler:
        _registry[event_name].append(fn)
        return fn
    return _decorator


def _deliver_isolated(event_name: str, payload: Dict[str, Any]) -> None:
    for handler in list(_registry.get(event_name, [])):
        try:
            handler(payload)
        except Exception:
            logger.exception(
                "Event handler %s failed for %s",
                getattr(handler, "__name__", handler),
                event_name,
                extra={"event": event_name, "payload": payload},
            )


def publish_on_commit(event_name: str, payload: Dict[str, Any]) -> None:
    """
    Deliver after the surrounding transaction commits.
    A failing subscriber is logged and never affects the committed write.
    """
    transaction.on_commit(lambda: _deliver_isolated(event_name, payload))
