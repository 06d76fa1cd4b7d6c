"""Engine-facing services."""

from meeting_context.services.context_service import (
    MeetingContextService,
    create_context_service,
)

__all__ = ["MeetingContextService", "create_context_service"]
