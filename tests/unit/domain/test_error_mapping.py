# SPDX-License-Identifier: Apache-2.0
"""Tests for mapping generic errors onto domain error families."""

from __future__ import annotations

import pytest

from repoguard.domain.error_mapping import create_error_mapper, make_error_family
from repoguard.domain.errors import (
    AppError,
    DatabaseError,
    DomainError,
    EntityNotFoundError,
    ErrorKind,
    PermanentDatabaseError,
    TransientDatabaseError,
    ValidationError,
)


@pytest.fixture
def progress():
    return make_error_family("progress")


class TestErrorFamily:
    """Test generated per-domain error families."""

    def test_class_names(self, progress):
        """Test family classes are named after the domain."""
        assert progress.base.__name__ == "ProgressError"
        assert progress.not_found.__name__ == "ProgressNotFoundError"
        assert progress.validation.__name__ == "ProgressValidationError"
        assert progress.processing.__name__ == "ProgressProcessingError"

    def test_variants_share_the_family_base(self, progress):
        """Test one except clause catches the whole family."""
        for variant in (progress.not_found, progress.validation, progress.processing):
            assert issubclass(variant, progress.base)
        assert issubclass(progress.base, DomainError)

    def test_codes_and_status(self, progress):
        """Test error codes and status codes per variant."""
        assert progress.base("x").error_code == "PROGRESS_ERROR"
        assert progress.not_found("x").error_code == "PROGRESS_NOT_FOUND"
        assert progress.not_found("x").status_code == 404
        assert progress.validation("x").error_code == "PROGRESS_VALIDATION_ERROR"
        assert progress.validation("x").status_code == 400
        assert progress.processing("x").error_code == "PROGRESS_PROCESSING_ERROR"
        assert progress.processing("x").status_code == 500

    def test_variants_record_generic_kind(self, progress):
        """Test each variant declares the generic kind it stands for."""
        assert progress.not_found.kind is ErrorKind.NOT_FOUND
        assert progress.validation.kind is ErrorKind.VALIDATION
        assert progress.processing.kind is ErrorKind.DATABASE

    def test_multi_word_domain(self):
        """Test snake and kebab case domains produce CamelCase names."""
        family = make_error_family("personality-profile")

        assert family.base.__name__ == "PersonalityProfileError"
        assert family.not_found("x").error_code == "PERSONALITY_PROFILE_NOT_FOUND"


class TestMapper:
    """Test the mapper produced by a family."""

    def test_maps_not_found(self, progress):
        """Test a generic not-found error becomes the domain not-found error."""
        original = EntityNotFoundError("Progress row missing")

        mapped = progress.mapper()(original)

        assert type(mapped) is progress.not_found
        assert mapped.message == "Progress row missing"
        assert mapped.cause is original
        assert mapped.__cause__ is original

    def test_maps_validation(self, progress):
        """Test a validation error becomes the domain validation error."""
        mapped = progress.mapper()(ValidationError("user_id is required"))

        assert type(mapped) is progress.validation
        assert mapped.status_code == 400

    def test_maps_database_subclasses_through_mro(self, progress):
        """Test transient and permanent errors fall back to the database mapping."""
        mapper = progress.mapper()

        assert type(mapper(DatabaseError("failed"))) is progress.processing
        assert type(mapper(TransientDatabaseError("timeout"))) is progress.processing
        assert type(mapper(PermanentDatabaseError("constraint"))) is progress.processing

    def test_unmapped_error_uses_default(self, progress):
        """Test an error without a mapping becomes the family base error."""
        mapped = progress.mapper()(KeyError("weird"))

        assert type(mapped) is progress.base
        assert isinstance(mapped, AppError)

    def test_default_error_instance_is_returned_unchanged(self, progress):
        """Test an error that already belongs to the family is not wrapped again."""
        error = progress.not_found("already mapped")

        assert progress.mapper()(error) is error

    def test_context_is_merged_into_metadata(self, progress):
        """Test the call context ends up in the mapped error's metadata."""
        original = EntityNotFoundError("missing", entity_type="progress", entity_id="p1")

        mapped = progress.mapper()(original, {"method": "get_by_id"})

        assert mapped.metadata["entity_id"] == "p1"
        assert mapped.metadata["method"] == "get_by_id"

    def test_empty_message_gets_placeholder(self, progress):
        """Test errors without a message still produce a readable message."""
        mapped = progress.mapper()(RuntimeError())

        assert mapped.message == "An error occurred"

    def test_foreign_domain_error_is_mapped_by_kind(self, progress):
        """Test another domain's not-found error maps onto this domain's variant."""
        user = make_error_family("user")

        mapped = progress.mapper()(user.not_found("user u1 not found"))

        assert type(mapped) is progress.not_found


class TestCreateErrorMapper:
    """Test hand-written mapping tables."""

    def test_string_keys(self):
        """Test mapping tables may be keyed by class name."""

        class ChallengeError(DomainError):
            default_error_code = "CHALLENGE_ERROR"

        class ChallengeMissing(ChallengeError):
            kind = ErrorKind.NOT_FOUND
            default_status_code = 404

        mapper = create_error_mapper({"EntityNotFoundError": ChallengeMissing}, ChallengeError)

        assert type(mapper(EntityNotFoundError("gone"))) is ChallengeMissing
        assert type(mapper(ValidationError("bad"))) is ChallengeError

    def test_mapper_is_pure(self):
        """Test mapping the same error twice yields equal, distinct results."""
        family = make_error_family("evaluation")
        mapper = family.mapper()
        original = ValidationError("score out of range")

        first = mapper(original)
        second = mapper(original)

        assert first is not second
        assert type(first) is type(second)
        assert first.message == second.message
        assert original.metadata == {"entity_type": "unknown", "validation_errors": None}
