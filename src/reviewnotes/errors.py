"""Exception types raised by the review notes engine.

Every failure is scoped to one unit of work: a single ref update or a single
repository's batch. Callers at those boundaries catch ``ReviewNotesError``,
log it and carry on with the next unit.
"""

from typing import Optional


class ReviewNotesError(Exception):
    """Base class for all review notes errors."""


class RepositoryUnavailable(ReviewNotesError):
    """The repository does not exist or cannot be opened."""

    def __init__(self, project: str, reason: Optional[str] = None) -> None:
        self.project = project
        message = f"Repository not available: {project}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class MetadataUnavailable(ReviewNotesError):
    """The review metadata store cannot be read."""


class MalformedRefRange(ReviewNotesError):
    """The old or new tip of a ref update is not a parseable commit."""


class AmbiguousRevisionMapping(ReviewNotesError):
    """Several review records map to one commit and none matches the branch."""

    def __init__(self, revision: str, branch: str, candidates: int) -> None:
        self.revision = revision
        self.branch = branch
        self.candidates = candidates
        super().__init__(
            f"{candidates} review records map to {revision} and none targets {branch}"
        )


class ConcurrencyConflictExceeded(ReviewNotesError):
    """The notes ref kept moving and the compare-and-swap retries ran out."""

    def __init__(self, ref_name: str, attempts: int) -> None:
        self.ref_name = ref_name
        self.attempts = attempts
        super().__init__(f"Failed to update {ref_name} after {attempts} attempts")
