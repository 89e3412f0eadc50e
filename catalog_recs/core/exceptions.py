"""Ranking error taxonomy.

Only the I/O boundaries of a ranking request can fail; the scoring steps are
pure. Nothing here is retried internally, ``retryable`` tells the caller
whether repeating the same request may succeed.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Structured error kinds reported to callers."""

    PROJECTION_UNAVAILABLE = "PROJECTION_UNAVAILABLE"
    REFERENCE_NOT_FOUND = "REFERENCE_NOT_FOUND"
    PROFILE_BUILD_FAILURE = "PROFILE_BUILD_FAILURE"
    HYDRATION_FAILURE = "HYDRATION_FAILURE"


class RankingError(Exception):
    """Base class for ranking failures."""

    error_code: ErrorCode
    retryable: bool = True

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ProjectionUnavailable(RankingError):
    """Catalog store (or the visibility predicate) could not be read."""

    error_code = ErrorCode.PROJECTION_UNAVAILABLE


class ReferenceNotFound(RankingError):
    """Similarity reference item is absent from the user's visible catalog."""

    error_code = ErrorCode.REFERENCE_NOT_FOUND
    retryable = False

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Item {item_id} not found")


class ProfileBuildFailure(RankingError):
    """Signal store failed while building the preference profile."""

    error_code = ErrorCode.PROFILE_BUILD_FAILURE


class HydrationFailure(RankingError):
    """Final page could not be fetched; computed scores are discarded."""

    error_code = ErrorCode.HYDRATION_FAILURE
