"""
HTTP-facing exceptions for the baseline query surface
"""

from fastapi import HTTPException, status


class ValidationError(HTTPException):
    """Validation error exception"""

    def __init__(self, detail: str = "Validation error"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class PayloadTooLargeError(HTTPException):
    """Request body exceeds the configured size limit"""

    def __init__(self, detail: str = "Payload too large"):
        super().__init__(status_code=413, detail=detail)
