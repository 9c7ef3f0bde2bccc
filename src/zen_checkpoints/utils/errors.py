"""
Error handling framework for the checkpoint engine.

This module provides:
- Hierarchical exception classes
- Error context preservation
- Structured error responses for the host layer
"""

from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from contextlib import contextmanager
import traceback

from .logging import get_logger


logger = get_logger("zen-checkpoints.errors")


class ErrorSeverity(Enum):
    """Error severity levels."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories for classification."""
    STORAGE = "storage"
    NOT_FOUND = "not_found"
    INTEGRITY = "integrity"
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    INTERNAL = "internal"
    UNKNOWN = "unknown"


@dataclass
class ErrorContext:
    """Context information for an error."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    component: Optional[str] = None
    operation: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    stack_trace: Optional[str] = None


class CheckpointEngineError(Exception):
    """Base exception for all checkpoint engine errors."""

    code: str = "CHECKPOINT_ERROR"
    default_message: str = "An error occurred in the checkpoint engine"
    severity: ErrorSeverity = ErrorSeverity.ERROR
    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
        **kwargs
    ):
        """Initialize checkpoint engine error."""
        self.message = message or self.default_message
        self.context = context or ErrorContext()
        self.cause = cause
        self.kwargs = kwargs

        if not self.context.stack_trace and cause is not None:
            self.context.stack_trace = "".join(
                traceback.format_exception(type(cause), cause, cause.__traceback__)
            )

        super().__init__(self.message)

    def get_suggestions(self) -> List[str]:
        """Get error resolution suggestions."""
        return []

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "severity": self.severity.value,
                "category": self.category.value,
                "suggestions": self.get_suggestions(),
                "cause": str(self.cause) if self.cause else None,
                "context": {
                    "timestamp": self.context.timestamp.isoformat(),
                    "component": self.context.component,
                    "operation": self.context.operation,
                    "metadata": self.context.metadata
                }
            }
        }


class ConfigurationError(CheckpointEngineError):
    """Configuration errors."""
    code = "CONFIG_ERROR"
    default_message = "Configuration error"
    category = ErrorCategory.CONFIGURATION

    def get_suggestions(self) -> List[str]:
        return [
            "Check your configuration file syntax",
            "Ensure project_root points at an existing directory"
        ]


class ValidationError(CheckpointEngineError):
    """Input validation errors."""
    code = "VALIDATION_ERROR"
    default_message = "Validation error"
    category = ErrorCategory.VALIDATION
    severity = ErrorSeverity.WARNING

    def __init__(self, field: str, value: Any, constraint: str, **kwargs):
        self.field = field
        self.value = value
        self.constraint = constraint
        message = f"Validation failed for field '{field}': {constraint}"
        super().__init__(message, **kwargs)

    def get_suggestions(self) -> List[str]:
        return [
            f"Check the value of field '{self.field}'",
            f"Ensure it meets the constraint: {self.constraint}"
        ]


class StorageError(CheckpointEngineError):
    """Fatal I/O errors: unreadable scan root, failed manifest or blob writes."""
    code = "STORAGE_ERROR"
    default_message = "Checkpoint storage I/O failed"
    category = ErrorCategory.STORAGE
    severity = ErrorSeverity.CRITICAL


class CheckpointNotFoundError(CheckpointEngineError):
    """A checkpoint id does not resolve to any storage directory."""
    code = "CHECKPOINT_NOT_FOUND"
    default_message = "Checkpoint not found"
    category = ErrorCategory.NOT_FOUND

    def __init__(self, checkpoint_id: str, message: Optional[str] = None, **kwargs):
        self.checkpoint_id = checkpoint_id
        super().__init__(message or f"Checkpoint {checkpoint_id} not found", **kwargs)

    def get_suggestions(self) -> List[str]:
        return ["List available checkpoints and retry with an existing id"]


class ManifestCorruptError(CheckpointEngineError):
    """A manifest exists but cannot be parsed."""
    code = "MANIFEST_CORRUPT"
    default_message = "Checkpoint manifest is corrupt"
    category = ErrorCategory.INTEGRITY

    def __init__(self, directory: str, message: Optional[str] = None, **kwargs):
        self.directory = directory
        super().__init__(message or f"Manifest in {directory} cannot be parsed", **kwargs)


@contextmanager
def error_context(
    component: str,
    operation: str,
    reraise: bool = True,
    **metadata
):
    """
    Context manager for error handling with context.

    Engine errors get the component/operation filled in; anything else is
    wrapped in a CheckpointEngineError.

    Args:
        component: Component name
        operation: Operation name
        reraise: Whether to reraise exceptions
        **metadata: Additional context metadata
    """
    context = ErrorContext(
        component=component,
        operation=operation,
        metadata=metadata
    )

    try:
        yield context
    except CheckpointEngineError as e:
        e.context.component = e.context.component or component
        e.context.operation = e.context.operation or operation
        e.context.metadata.update(metadata)
        logger.error(
            "checkpoint_error_in_context",
            code=e.code,
            error=e.message,
            component=component,
            operation=operation
        )
        if reraise:
            raise
    except Exception as e:
        wrapped = CheckpointEngineError(
            message=str(e),
            context=context,
            cause=e
        )
        logger.error(
            "unexpected_error_in_context",
            error=wrapped.to_dict(),
            exc_info=True
        )
        if reraise:
            raise wrapped from e


__all__ = [
    'CheckpointEngineError',
    'ErrorContext',
    'ErrorSeverity',
    'ErrorCategory',
    'ConfigurationError',
    'ValidationError',
    'StorageError',
    'CheckpointNotFoundError',
    'ManifestCorruptError',
    'error_context',
]
