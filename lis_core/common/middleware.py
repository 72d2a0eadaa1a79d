from __future__ import annotations

from django.utils.deprecation import MiddlewareMixin

from lis_core.common.api.exceptions import ensure_request_id


class RequestIdMiddleware(MiddlewareMixin):
    """
    Attaches ``request.request_id`` (taken from ``X-Request-Id`` when the client
    sends one) and echoes it back, so error envelopes and log lines correlate.
    """

    HEADER = "HTTP_X_REQUEST_ID"

    def process_request(self, request):
        incoming = (request.META.get(self.HEADER) or "").strip()
        if incoming:
            request.request_id = incoming[:64]
        ensure_request_id(request)
        return None

    def process_response(self, request, response):
        rid = getattr(request, "request_id", None)
        if rid and not response.has_header("X-Request-Id"):
            response["X-Request-Id"] = rid
        return response
