# SPDX-License-Identifier: Apache-2.0
"""Tests for the error taxonomy."""

from __future__ import annotations

from repoguard.domain.errors import (
    AppError,
    DatabaseError,
    DomainError,
    EntityNotFoundError,
    ErrorKind,
    HandlerError,
    PermanentDatabaseError,
    TransientDatabaseError,
    ValidationError,
)


class TestAppError:
    """Test the base error class."""

    def test_defaults(self):
        """Test class defaults apply when nothing is passed."""
        error = AppError("boom")

        assert error.message == "boom"
        assert str(error) == "boom"
        assert error.status_code == 500
        assert error.error_code == "INTERNAL_ERROR"
        assert error.metadata == {}
        assert error.kind is ErrorKind.UNKNOWN

    def test_cause_is_chained(self):
        """Test the cause is kept and chained as __cause__."""
        original = RuntimeError("driver failure")
        error = AppError("wrapped", cause=original)

        assert error.cause is original
        assert error.__cause__ is original

    def test_explicit_codes_override_defaults(self):
        """Test explicit status and error codes win over class defaults."""
        error = AppError("teapot", status_code=418, error_code="TEAPOT")

        assert error.status_code == 418
        assert error.error_code == "TEAPOT"

    def test_to_dict(self):
        """Test the serializable form."""
        error = ValidationError("bad input", entity_type="user", validation_errors=["email"])

        assert error.to_dict() == {
            "error": "ValidationError",
            "message": "bad input",
            "error_code": "USER_VALIDATION_ERROR",
            "status_code": 400,
            "metadata": {"entity_type": "user", "validation_errors": ["email"]},
        }


class TestGenericErrors:
    """Test the generic error kinds."""

    def test_not_found_with_entity(self):
        """Test not-found errors derive their code from the entity type."""
        error = EntityNotFoundError("missing", entity_type="challenge", entity_id="c1")

        assert error.status_code == 404
        assert error.error_code == "CHALLENGE_NOT_FOUND"
        assert error.metadata["entity_id"] == "c1"
        assert error.entity_type == "challenge"

    def test_not_found_without_entity(self):
        """Test the generic code is used when the entity type is unknown."""
        error = EntityNotFoundError()

        assert error.message == "Entity not found"
        assert error.error_code == "NOT_FOUND"

    def test_transient_database_error(self):
        """Test transient errors are retryable database errors."""
        error = TransientDatabaseError("connection reset", operation="find_by_id")

        assert isinstance(error, DatabaseError)
        assert error.transient is True
        assert error.status_code == 503
        assert error.kind is ErrorKind.TRANSIENT_DATABASE
        assert error.metadata["operation"] == "find_by_id"

    def test_permanent_database_error(self):
        """Test constraint violations are not retryable."""
        error = PermanentDatabaseError("UNIQUE constraint failed: progress.user_id")

        assert isinstance(error, DatabaseError)
        assert error.transient is False
        assert error.status_code == 409
        assert error.error_code == "DATABASE_CONSTRAINT_VIOLATION"

    def test_only_transient_errors_are_transient(self):
        """Test the transient flag on every generic class."""
        assert not ValidationError.transient
        assert not EntityNotFoundError.transient
        assert not DatabaseError.transient
        assert not HandlerError.transient
        assert TransientDatabaseError.transient

    def test_metadata_is_merged(self):
        """Test extra metadata is merged with the class-specific fields."""
        error = DatabaseError("failed", operation="save", metadata={"table": "progress"})

        assert error.metadata == {
            "operation": "save",
            "entity_type": "unknown",
            "table": "progress",
        }

    def test_handler_error(self):
        """Test handler errors carry the event and handler ids."""
        error = HandlerError("handler blew up", event_type="UserCreated", handler_id="h1")

        assert error.kind is ErrorKind.HANDLER
        assert error.metadata["event_type"] == "UserCreated"
        assert error.handler_id == "h1"

    def test_domain_error_is_app_error(self):
        """Test domain errors are part of the hierarchy."""
        assert issubclass(DomainError, AppError)
        assert DomainError.domain == "generic"
