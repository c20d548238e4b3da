"""
Exceptions raised by the batch import engine.

Only pre-flight errors and the single-run guard ever reach callers of
``BatchImporter``; transport errors are raised by processors and recorded
per batch inside the scheduler loop.
"""


class BatchImportError(Exception):
    """Base exception for batch import failures."""
    pass


class ImportPreflightError(BatchImportError):
    """Raised before any batch is dispatched when a run cannot start."""
    pass


class EmptyInputError(ImportPreflightError):
    """Raised when the input normalizes to zero data lines."""
    pass


class MissingRunParameterError(ImportPreflightError):
    """Raised when a required run parameter (target, batch size) is missing."""
    pass


class InvalidBatchSizeError(ImportPreflightError, ValueError):
    """Raised when the batch size is not a positive integer."""
    pass


class ImportAlreadyRunningError(BatchImportError):
    """Raised when start is requested while the importer has an active run."""
    pass


class BatchTransportError(BatchImportError):
    """Raised by a batch processor when the remote call itself fails."""

    def __init__(self, message: str, status_code=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
