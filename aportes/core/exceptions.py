"""Custom exception hierarchy."""

from typing import Any, List, Optional


class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class APIClientError(AppError):
    """Raised when a call to the inference service fails."""
    def __init__(
        self,
        message: str,
        original_error: Exception = None,
        status_code: Optional[int] = None,
        retryable: bool = False,
    ):
        super().__init__(message, original_error)
        self.status_code = status_code
        self.retryable = retryable


class APITimeoutError(APIClientError):
    """Raised when a call to the inference service times out."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message, original_error, retryable=True)


class DatabaseError(AppError):
    """Raised when a database operation fails."""
    pass


class ValidationError(AppError):
    """Raised when input validation fails."""
    pass


class InvalidDocumentError(ValidationError):
    """Raised when uploaded bytes are not a PDF or a readable roster CSV."""
    pass


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass


class StorageError(AppError):
    """Raised when a stored file cannot be written or read."""
    pass


class DuplicateDocumentError(AppError):
    """Raised when a content hash is already registered.

    ``existing`` is whatever the registry knows about the first upload: a
    ``HashIndexEntry`` from the legacy index or a ``Document`` row.
    """
    def __init__(self, content_hash: str, existing: Any = None):
        super().__init__(f"Document with hash {content_hash} already exists")
        self.content_hash = content_hash
        self.existing = existing


class PipelineError(AppError):
    """Base exception for document pipeline errors."""
    pass


class ExtractionError(PipelineError):
    """No usable text or page image could be obtained from the document."""
    pass


class SchemaViolationError(PipelineError):
    """An inference reply did not match the expected output schema."""
    pass


class ReconciliationError(PipelineError):
    """Extracted values broke a business rule."""
    def __init__(self, message: str, findings: Optional[List[Any]] = None):
        super().__init__(message)
        self.findings = findings or []


class TransientError(PipelineError):
    """Temporary failure that is safe to retry."""
    pass


class ConstraintRaceError(PipelineError):
    """A concurrent create kept winning the unique constraint race."""
    pass


class InstitutionNotFoundError(PipelineError):
    """No institution is registered under the document's tax ID."""
    def __init__(self, cuit: Optional[str]):
        super().__init__(f"Institution with CUIT {cuit or '<missing>'} not found")
        self.cuit = cuit


class PeriodUnresolvedError(PipelineError):
    """The document period could not be determined."""
    pass


class UnknownDocumentKindError(PipelineError):
    """The document is neither a roster nor a transfer receipt."""
    pass


class DocumentNotFoundError(AppError):
    """Raised when a document is not found."""
    pass
