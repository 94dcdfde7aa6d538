class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class ValidationError(AppError):
    """Raised when a request is well-formed but semantically invalid."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=422, details=details)

class AuthorizationError(AppError):
    """Raised when the caller's role does not permit the action."""
    def __init__(self, message: str = "Insufficient permissions", details: dict = None):
        super().__init__(message, status_code=403, details=details)

class SubmissionWindowClosedError(AppError):
    """Raised when a self-service leave is submitted outside the daily window."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=403, details=details)

class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""
    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} with id {resource_id} not found",
            status_code=404,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )

class NoEligibleCandidateError(AppError):
    """Soft outcome: nobody passed the hard filters for a period.

    Assignment catches it and leaves the period unassigned; it never reaches
    the HTTP handler.
    """
    def __init__(self, period_number: int, details: dict = None):
        self.period_number = period_number
        super().__init__(f"No eligible substitute for period {period_number}", status_code=409, details=details)

class InvalidStateError(AppError):
    """Raised on an illegal substitution lifecycle transition."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=409, details=details)

class ConflictError(AppError):
    """Raised when an active record already exists for the same teacher/date/period."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=409, details=details)

class PersistenceError(AppError):
    """Raised when the data store fails."""
    def __init__(self, message: str = "Data store unavailable", details: dict = None):
        super().__init__(message, status_code=503, details=details)
