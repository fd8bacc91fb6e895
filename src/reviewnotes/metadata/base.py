"""Abstract review metadata store.

The note engine depends on MetadataStore, not on a concrete backend, so
review databases can be plugged in without touching the engine. Backends
translate their own schema into ``ReviewRecord`` at this boundary.
"""

from abc import ABC, abstractmethod
from typing import List

from reviewnotes.models.review import ReviewRecord


class MetadataStore(ABC):
    """Read-only view of the review database."""

    @abstractmethod
    def all_review_records(self) -> List[ReviewRecord]:
        """Return the current revision record of every change, in any state.

        Raises:
            MetadataUnavailable: If the store cannot be read
        """

    @abstractmethod
    def records_for_revision(self, project: str, branch: str, revision: str) -> List[ReviewRecord]:
        """Return the records whose revision is the given commit.

        ``branch`` is the branch the commit was pushed to. Backends may use
        it to narrow the result, but several records can still be returned
        when the same commit was reviewed for more than one branch.

        Raises:
            MetadataUnavailable: If the store cannot be read
        """

    def close(self) -> None:
        """Release any resources held by the store.

        Default is a no-op so callers can always call close() safely.
        """

    def __enter__(self) -> "MetadataStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
