"""In-memory review metadata store."""

from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple

from reviewnotes.metadata.base import MetadataStore
from reviewnotes.models.review import ReviewRecord


class InMemoryMetadataStore(MetadataStore):
    """Metadata store backed by a list of records held in memory."""

    def __init__(self, records: Optional[Iterable[ReviewRecord]] = None) -> None:
        self._records: List[ReviewRecord] = []
        self._by_revision: Dict[Tuple[str, str], List[ReviewRecord]] = defaultdict(list)
        for record in records or []:
            self.add(record)

    def add(self, record: ReviewRecord) -> None:
        self._records.append(record)
        self._by_revision[(record.project, record.revision)].append(record)

    def all_review_records(self) -> List[ReviewRecord]:
        return list(self._records)

    def records_for_revision(self, project: str, branch: str, revision: str) -> List[ReviewRecord]:
        return list(self._by_revision.get((project, revision), []))
