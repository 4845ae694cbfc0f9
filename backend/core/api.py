from rest_framework.response import Response

from core.exceptions import BookingEngineError


class EngineErrorMixin:
    """Render service-layer errors as ``{"detail", "code"}`` responses."""

    def handle_exception(self, exc):
        if isinstance(exc, BookingEngineError):
            return Response(exc.as_payload(), status=exc.status_code)
        return super().handle_exception(exc)
