"""
Service layer exceptions.
"""


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, service_id: str | None = None):
        self.service_id = service_id
        super().__init__(message)


class StoreError(ServiceError):
    """Key/value store operation failed."""

    pass


class StoreTimeoutError(StoreError):
    """Store call timed out."""

    def __init__(self, service_id: str, timeout: float):
        self.timeout = timeout
        super().__init__(
            f"Store '{service_id}' timed out after {timeout}s",
            service_id=service_id,
        )


class CircuitOpenError(StoreError):
    """Circuit breaker is open, request blocked."""

    def __init__(self, service_id: str, reset_after_seconds: float):
        self.reset_after_seconds = reset_after_seconds
        super().__init__(
            f"Circuit breaker open for service '{service_id}', "
            f"retry after {reset_after_seconds:.1f}s",
            service_id=service_id,
        )


class BaselineValidationError(ServiceError, ValueError):
    """Baseline input rejected (unknown type, non-finite count)."""

    def __init__(self, message: str):
        super().__init__(message, service_id="baseline")


class BatchTooLargeError(BaselineValidationError):
    """Baseline batch exceeds the per-call limit."""

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f"Batch of {size} updates exceeds limit of {limit}")
