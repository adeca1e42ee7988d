"""
FeedPipe Custom Exceptions
==========================

Exception hierarchy for FeedPipe with error codes, context information
and user-friendly messages.
"""

from typing import Optional, Dict, Any
from enum import Enum


class ErrorCode(str, Enum):
    """Error codes for categorizing exceptions."""

    # Configuration errors (C001-C099)
    CONFIG_INVALID = "C001"
    CONFIG_MISSING = "C002"
    CONFIG_NOT_EXISTING = "C003"

    # Argument errors (A001-A099)
    INVALID_ARGUMENT = "A001"
    UNKNOWN_PLUGIN = "A002"

    # Database errors (D001-D099)
    DATABASE_CONNECTION = "D001"
    DATABASE_SCHEMA = "D002"
    DATABASE_ERROR = "D003"

    # Source errors (F001-F099)
    SOURCE_UNAVAILABLE = "F001"
    SOURCE_FETCH_TIMEOUT = "F002"
    SOURCE_NETWORK_ERROR = "F003"
    SOURCE_NOT_FOUND = "F004"
    SOURCE_PARSE_ERROR = "F005"

    # Parsing errors (P001-P099)
    ENCODING_CONVERSION = "P001"
    PARSE_ERROR = "P002"
    PROCESSING_FAILED = "P003"

    # Validation errors (V001-V099)
    VALIDATION_REQUIRED_FIELD = "V001"
    VALIDATION_INVALID_FORMAT = "V002"
    VALIDATION_OUT_OF_RANGE = "V003"

    # System errors (S001-S099)
    SYSTEM_PERMISSION_DENIED = "S001"
    SYSTEM_MEMORY_ERROR = "S002"


class FeedPipeError(Exception):
    """Base exception for all FeedPipe errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorCode] = None,
        context: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        recoverable: bool = False,
    ):
        """Initialize FeedPipe error.

        Args:
            message: Technical error message for logging
            error_code: Categorized error code
            context: Additional context information
            user_message: User-friendly error message
            recoverable: Whether the error is recoverable
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}
        self.user_message = user_message or message
        self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code.value if self.error_code else None,
            "error_message": str(self),
            "user_message": self.user_message,
            "context": self.context,
            "recoverable": self.recoverable,
        }

    def __str__(self) -> str:
        """String representation with error code."""
        if self.error_code:
            return f"[{self.error_code.value}] {super().__str__()}"
        return super().__str__()


def _forward(kwargs: Dict[str, Any], *consumed: str) -> Dict[str, Any]:
    return {k: v for k, v in kwargs.items() if k not in consumed}


class ConfigurationError(FeedPipeError):
    """Application settings errors."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if config_key:
            context["config_key"] = config_key

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.CONFIG_INVALID),
            context=context,
            user_message=kwargs.get("user_message", f"Configuration error: {message}"),
            **_forward(kwargs, "context", "error_code", "user_message"),
        )


class InvalidArgumentError(FeedPipeError):
    """Malformed identity or configuration input. Caller bug, never retried."""

    def __init__(self, message: str, argument: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if argument:
            context["argument"] = argument

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.INVALID_ARGUMENT),
            context=context,
            user_message=kwargs.get("user_message", f"Invalid argument: {message}"),
            recoverable=False,
            **_forward(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class SourceUnavailableError(FeedPipeError):
    """Byte source cannot be opened, fetched or seeked.

    Recoverable: the import keeps its cursor and the next tick retries.
    """

    def __init__(self, message: str, source: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if source:
            context["source"] = source

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.SOURCE_UNAVAILABLE),
            context=context,
            user_message=kwargs.get("user_message", f"Source unavailable: {message}"),
            recoverable=kwargs.get("recoverable", True),
            **_forward(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class EncodingConversionError(FeedPipeError):
    """Declared source encoding does not match the actual bytes.

    The whole parse call is aborted. The user has to fix the declared
    encoding, so this is not retried automatically.
    """

    def __init__(
        self,
        message: str,
        encoding: Optional[str] = None,
        position: Optional[int] = None,
        **kwargs,
    ):
        context = kwargs.get("context", {})
        if encoding:
            context["encoding"] = encoding
        if position is not None:
            context["position"] = position

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.ENCODING_CONVERSION),
            context=context,
            user_message=kwargs.get(
                "user_message",
                f"Source could not be converted from {encoding or 'its encoding'}: {message}",
            ),
            recoverable=False,
            **_forward(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class NotExistingError(FeedPipeError):
    """A disabled configurable was used in a live pipeline."""

    def __init__(self, message: str, configurable_id: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if configurable_id:
            context["configurable_id"] = configurable_id

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.CONFIG_NOT_EXISTING),
            context=context,
            user_message=kwargs.get("user_message", message),
            recoverable=False,
            **_forward(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class DatabaseError(FeedPipeError):
    """Database-related errors."""

    def __init__(self, message: str, query: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if query:
            context["query"] = query

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.DATABASE_CONNECTION),
            context=context,
            user_message=kwargs.get("user_message", "Database operation failed"),
            recoverable=kwargs.get("recoverable", True),
            **_forward(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class ProcessingError(FeedPipeError):
    """Parser or processor stage failures that are not source related."""

    def __init__(self, message: str, importer_id: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if importer_id:
            context["importer_id"] = importer_id

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.PROCESSING_FAILED),
            context=context,
            user_message=kwargs.get("user_message", "Import processing failed"),
            recoverable=kwargs.get("recoverable", True),
            **_forward(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class ValidationError(FeedPipeError):
    """Data validation errors."""

    def __init__(self, message: str, field_name: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if field_name:
            context["field_name"] = field_name

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.VALIDATION_INVALID_FORMAT),
            context=context,
            user_message=kwargs.get(
                "user_message", f"Invalid {field_name or 'input'}: {message}"
            ),
            recoverable=kwargs.get("recoverable", False),
            **_forward(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


# Exception handling utilities


def handle_exception(
    exception: Exception,
    logger,
    operation: str,
    context: Optional[Dict[str, Any]] = None,
) -> FeedPipeError:
    """Convert generic exceptions to FeedPipe exceptions with proper logging.

    Args:
        exception: Original exception
        logger: Logger instance for error logging
        operation: Operation that was being performed
        context: Additional context information

    Returns:
        FeedPipe exception with proper categorization
    """
    context = context or {}
    context["operation"] = operation
    context["original_exception_type"] = type(exception).__name__

    if isinstance(exception, FeedPipeError):
        logger.error(f"Operation '{operation}' failed", extra=exception.to_dict())
        return exception

    elif isinstance(exception, (ConnectionError, TimeoutError)):
        error = SourceUnavailableError(
            f"Network error during {operation}: {str(exception)}",
            error_code=ErrorCode.SOURCE_NETWORK_ERROR,
            context=context,
            user_message="Network connection failed",
        )

    elif isinstance(exception, PermissionError):
        error = FeedPipeError(
            message=f"Permission denied during {operation}: {str(exception)}",
            error_code=ErrorCode.SYSTEM_PERMISSION_DENIED,
            context=context,
            user_message="Access denied",
            recoverable=False,
        )

    elif isinstance(exception, FileNotFoundError):
        error = SourceUnavailableError(
            f"Required file not found during {operation}: {str(exception)}",
            error_code=ErrorCode.SOURCE_NOT_FOUND,
            context=context,
            user_message="Source file missing",
        )

    elif isinstance(exception, MemoryError):
        error = FeedPipeError(
            message=f"Memory exhausted during {operation}: {str(exception)}",
            error_code=ErrorCode.SYSTEM_MEMORY_ERROR,
            context=context,
            user_message="System resources exhausted",
            recoverable=True,
        )

    else:
        error = ProcessingError(
            f"Unexpected error during {operation}: {str(exception)}",
            context=context,
            user_message="An unexpected error occurred",
        )

    logger.error(f"Operation '{operation}' failed", extra=error.to_dict())
    return error


def is_retryable_error(exception: FeedPipeError) -> bool:
    """Check if an error is worth retrying on the next tick.

    Args:
        exception: FeedPipe exception to check

    Returns:
        True if the error is potentially retryable
    """
    if not exception.recoverable:
        return False

    retryable_codes = {
        ErrorCode.SOURCE_UNAVAILABLE,
        ErrorCode.SOURCE_FETCH_TIMEOUT,
        ErrorCode.SOURCE_NETWORK_ERROR,
        ErrorCode.SOURCE_NOT_FOUND,
        ErrorCode.DATABASE_CONNECTION,
        ErrorCode.PROCESSING_FAILED,
    }

    return exception.error_code in retryable_codes


def get_user_friendly_message(exception: Exception) -> str:
    """Get user-friendly error message for any exception."""
    if isinstance(exception, FeedPipeError):
        return exception.user_message

    return "An unexpected error occurred. Please try again later."
