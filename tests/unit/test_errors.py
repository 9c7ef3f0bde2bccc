"""
Unit tests for the error hierarchy.
"""

import pytest

from zen_checkpoints.utils.errors import (
    CheckpointEngineError,
    CheckpointNotFoundError,
    ErrorCategory,
    ErrorSeverity,
    ManifestCorruptError,
    StorageError,
    ValidationError,
    error_context,
)


class TestErrorTypes:

    def test_to_dict(self):
        error = CheckpointNotFoundError("abc")
        data = error.to_dict()["error"]

        assert data["code"] == "CHECKPOINT_NOT_FOUND"
        assert data["message"] == "Checkpoint abc not found"
        assert data["category"] == "not_found"
        assert data["severity"] == "error"
        assert data["suggestions"]
        assert data["cause"] is None

    def test_validation_error_fields(self):
        error = ValidationError("kind", "partial", "must be one of: full, incremental")

        assert error.field == "kind"
        assert error.severity is ErrorSeverity.WARNING
        assert "kind" in error.message
        assert any("full, incremental" in s for s in error.get_suggestions())

    def test_cause_keeps_traceback(self):
        try:
            raise OSError("disk full")
        except OSError as e:
            error = StorageError("write failed", cause=e)

        assert error.category is ErrorCategory.STORAGE
        assert "disk full" in error.context.stack_trace
        assert error.to_dict()["error"]["cause"] == "disk full"

    def test_hierarchy(self):
        assert issubclass(ManifestCorruptError, CheckpointEngineError)
        assert ManifestCorruptError("1_full_a").directory == "1_full_a"


class TestErrorContext:

    def test_engine_errors_pass_through_with_context(self):
        with pytest.raises(CheckpointNotFoundError) as exc_info:
            with error_context("service", "restore", checkpoint_id="x"):
                raise CheckpointNotFoundError("x")

        context = exc_info.value.context
        assert context.component == "service"
        assert context.operation == "restore"
        assert context.metadata["checkpoint_id"] == "x"

    def test_foreign_errors_are_wrapped(self):
        with pytest.raises(CheckpointEngineError) as exc_info:
            with error_context("service", "create"):
                raise KeyError("boom")

        error = exc_info.value
        assert type(error) is CheckpointEngineError
        assert isinstance(error.cause, KeyError)
        assert error.context.operation == "create"

    def test_no_reraise(self):
        with error_context("service", "create", reraise=False):
            raise RuntimeError("ignored")
