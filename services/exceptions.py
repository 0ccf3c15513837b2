"""
Exceptions raised by the academic records services.
"""

from typing import Optional, Any, Dict


class AcademicRecordsError(Exception):
    """Base exception for all academic records errors."""

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}


class ValidationError(AcademicRecordsError):
    """Raised when a request cannot be interpreted (unknown exam type, bad payload)."""
    pass


class NotFoundError(AcademicRecordsError):
    """Raised when a requested student, teacher or subject does not exist."""
    pass


class AuthorizationError(AcademicRecordsError):
    """Raised when the caller may not read or write the requested marks."""
    pass


class StoreUnavailableError(AcademicRecordsError):
    """Raised when the entity store cannot be reached or rejects a statement."""
    pass


class StudentHasMarksError(AcademicRecordsError):
    """Raised when deleting a student that historical marks still reference."""
    pass
