"""Planwise-Engine exception hierarchy."""


class PlanwiseError(Exception):
    """Base exception for all Planwise errors."""

    def __init__(self, message: str = "", code: str = "PLANWISE_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class DomainError(PlanwiseError):
    """Raised when a business rule would be violated."""

    def __init__(self, message: str = "Operation not allowed"):
        super().__init__(message, code="DOMAIN_ERROR")


class ValidationError(PlanwiseError):
    """Raised when input data fails validation on the write path."""

    def __init__(self, message: str = "Invalid data", errors: list | None = None):
        self.errors = errors or []
        super().__init__(message, code="VALIDATION_ERROR")


class NotFoundError(PlanwiseError):
    """Raised when a referenced entity does not exist."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, code="NOT_FOUND")


class ConflictError(PlanwiseError):
    """Raised when a unique key is already taken."""

    def __init__(self, message: str = "Resource already exists"):
        super().__init__(message, code="CONFLICT")
