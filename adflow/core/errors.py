"""ADFLOW — Domain Error Taxonomy.

Every failure the campaign lifecycle can surface maps to one of these.
The HTTP layer turns them into JSON responses via a single handler.
"""


class AdflowError(Exception):
    """Base class for all domain errors."""

    code = "adflow_error"
    http_status = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFound(AdflowError):
    """Entity absent, or owned by another tenant. The two are indistinguishable."""

    code = "not_found"
    http_status = 404

    def __init__(self, entity: str, entity_id=None):
        self.entity = entity
        self.entity_id = entity_id
        label = entity.replace("_", " ").capitalize()
        super().__init__(
            f"{label} not found" if entity_id is None else f"{label} {entity_id} not found"
        )


class PreconditionFailed(AdflowError):
    """A state-machine guard or validation rule rejected the request."""

    code = "precondition_failed"
    http_status = 422

    def __init__(self, message: str, problems: list[str] | None = None):
        self.problems = problems or [message]
        super().__init__(message)


class InvalidTransition(PreconditionFailed):
    """The requested event has no edge from the campaign's current status."""

    code = "invalid_transition"

    def __init__(self, current: str, event: str):
        self.current = current
        self.event = event
        super().__init__(f"Cannot {event} a campaign in status '{current}'")


class ConflictError(AdflowError):
    """Concurrent or in-flight work blocks the request."""

    code = "conflict"
    http_status = 409


class StaleCallback(AdflowError):
    """Callback does not match any active automation record."""

    code = "stale_callback"
    http_status = 200


class TransportFailure(AdflowError):
    """Webhook delivery failed. The campaign status is left untouched."""

    code = "transport_failure"
    http_status = 502

    def __init__(self, message: str, status_code: int = 0, automation_id: int | None = None):
        self.status_code = status_code
        self.automation_id = automation_id
        super().__init__(message)
