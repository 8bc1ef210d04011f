class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class ValidationError(AppError):
    """Raised when an event payload is malformed (bad time window, scope/target mismatch)."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=422, details=details)

class ConflictError(AppError):
    """Raised when a proposed event overlaps another event of the same creator."""
    def __init__(self, event_id: str, title: str, details: dict = None):
        payload = {"conflicting_event_id": event_id, "conflicting_event_title": title}
        payload.update(details or {})
        super().__init__(
            f"This event conflicts with an existing schedule: {title}",
            status_code=409,
            details=payload,
        )
        self.event_id = event_id
        self.title = title

class AuthorizationError(AppError):
    """Raised when a write is not permitted for the acting user."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=403, details=details)

class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""
    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(f"{resource_type} with id {resource_id} not found", status_code=404)
