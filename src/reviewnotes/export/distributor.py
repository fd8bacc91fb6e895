"""Concurrent export of review notes for all merged changes."""

import threading
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

import git
import structlog

from reviewnotes.errors import MetadataUnavailable, ReviewNotesError
from reviewnotes.export.progress import ExportProgress, WorkItemProgress
from reviewnotes.metadata.base import MetadataStore
from reviewnotes.models.config import Settings
from reviewnotes.models.review import ReviewRecord
from reviewnotes.notes.committer import CommitStatus, NoteMapCommitter
from reviewnotes.notes.creator import ReviewNoteCreator
from reviewnotes.repository.manager import RepositoryManager

logger = structlog.get_logger(__name__)

StoreFactory = Callable[[], MetadataStore]


@dataclass
class WorkItem:
    """The merged review records of one repository."""

    project: str
    records: List[ReviewRecord]


@dataclass
class RepositoryOutcome:
    """What happened to one work item."""

    project: str
    records: int
    notes: int = 0
    status: Optional[CommitStatus] = None
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass
class ExportResult:
    """Summary of a bulk export."""

    total_records: int = 0
    outcomes: List[RepositoryOutcome] = field(default_factory=list)
    without_records: List[str] = field(default_factory=list)
    cancelled: bool = False
    error: Optional[str] = None

    @property
    def repositories(self) -> int:
        return len(self.outcomes)

    @property
    def failed(self) -> List[RepositoryOutcome]:
        return [o for o in self.outcomes if o.failed]

    @property
    def notes_written(self) -> int:
        return sum(
            o.notes for o in self.outcomes
            if o.status in (CommitStatus.COMMITTED, CommitStatus.UNCHANGED)
        )

    def by_status(self) -> Dict[str, int]:
        counts = Counter(o.status.value for o in self.outcomes if o.status is not None)
        counts["failed"] = len(self.failed)
        return dict(counts)


class WorkQueue:
    """Work items keyed by repository, handed out whole to one worker each."""

    def __init__(self, items: Dict[str, List[ReviewRecord]]) -> None:
        self._items = dict(items)
        self._lock = threading.Lock()

    def take(self) -> Optional[WorkItem]:
        """Remove and return one work item, or None when the queue is drained."""
        with self._lock:
            if not self._items:
                return None
            project = next(iter(self._items))
            return WorkItem(project, self._items.pop(project))

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class WorkDistributor:
    """Exports review notes for every merged change across all repositories.

    Records are clustered by repository and consumed by a fixed number of
    worker threads. Each worker owns its metadata store and repository
    handles; only the work queue and the progress tracker are shared.
    """

    def __init__(
        self,
        repo_manager: RepositoryManager,
        store_factory: StoreFactory,
        settings: Optional[Settings] = None,
        progress: Optional[ExportProgress] = None,
    ):
        """Initialize the distributor.

        Args:
            repo_manager: Opens project repositories
            store_factory: Creates one metadata store per worker
            settings: Application settings (threads, notes ref, formatting)
            progress: Progress tracker, a silent one is used if omitted
        """
        self.repo_manager = repo_manager
        self.store_factory = store_factory
        self.settings = settings or Settings()
        self.progress = progress or ExportProgress()
        self.note_format = self.settings.note_format()
        self._cancel = threading.Event()

    @property
    def threads(self) -> int:
        return max(self.settings.threads, 1)

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def cancel(self) -> None:
        """Stop handing out work items; in-flight items still finish."""
        self._cancel.set()

    def run(self) -> ExportResult:
        """Run the export and block until all workers are done.

        Raises:
            KeyboardInterrupt: Re-raised after the workers stopped
        """
        try:
            with self.store_factory() as store:
                records = store.all_review_records()
        except MetadataUnavailable as e:
            logger.error("review_records_unavailable", error=str(e))
            return ExportResult(error=str(e))

        self.progress.begin(len(records))
        clusters = self.cluster(records)
        queue = WorkQueue(clusters)
        logger.info("export_started", records=len(records), repositories=len(queue), threads=self.threads)

        workers = [_ExportWorker(self, queue, n) for n in range(self.threads)]
        self.progress.start_workers(len(workers))
        for worker in workers:
            worker.start()

        try:
            self.progress.wait_for_completion()
        except KeyboardInterrupt:
            logger.warning("export_interrupted")
            self.cancel()
            self.progress.wait_for_completion()
            raise

        result = ExportResult(total_records=len(records), cancelled=self.cancelled)
        result.without_records = self.repositories_without_records(clusters)
        for worker in workers:
            worker.join()
            result.outcomes.extend(worker.outcomes)

        logger.info(
            "export_finished",
            repositories=result.repositories,
            notes=result.notes_written,
            failed=len(result.failed),
        )
        return result

    def cluster(self, records: Iterable[ReviewRecord]) -> Dict[str, List[ReviewRecord]]:
        """Group merged records by repository.

        Records that are not merged are dropped and counted as done.
        """
        clusters: Dict[str, List[ReviewRecord]] = {}
        for record in records:
            if record.is_merged:
                clusters.setdefault(record.project, []).append(record)
            else:
                self.progress.update(1)
        return clusters

    def repositories_without_records(self, clusters: Dict[str, List[ReviewRecord]]) -> List[str]:
        """List the repositories under the base directory that get no notes."""
        idle = [p for p in self.repo_manager.list_projects() if p not in clusters]
        if idle:
            logger.warning("repositories_without_records", count=len(idle), projects=idle)
        return idle

    def export(self, store: MetadataStore, item: WorkItem) -> RepositoryOutcome:
        """Write the notes of one work item. Failures are logged, not raised."""
        outcome = RepositoryOutcome(item.project, len(item.records))
        item_progress = WorkItemProgress(self.progress, len(item.records))
        try:
            with self.repo_manager.open_repository(item.project) as repo:
                creator = ReviewNoteCreator(
                    repo,
                    item.project,
                    store,
                    note_format=self.note_format,
                    committer=NoteMapCommitter.from_settings(repo, self.settings),
                )
                outcome.notes = creator.create_notes_for_records(item.records, item_progress)
                result = creator.commit_notes()
            outcome.status = result.status
            if result.status == CommitStatus.CONFLICT:
                outcome.error = result.error
        except (ReviewNotesError, git.GitCommandError) as e:
            logger.error("repository_export_failed", project=item.project, error=str(e))
            outcome.error = str(e)
        finally:
            item_progress.complete()
        return outcome


class _ExportWorker(threading.Thread):
    """Takes work items until the queue is drained or the export is cancelled."""

    def __init__(self, distributor: WorkDistributor, queue: WorkQueue, number: int):
        super().__init__(name=f"reviewnotes-export-{number}", daemon=True)
        self.distributor = distributor
        self.queue = queue
        self.outcomes: List[RepositoryOutcome] = []

    def run(self) -> None:
        try:
            with self.distributor.store_factory() as store:
                while not self.distributor.cancelled:
                    item = self.queue.take()
                    if item is None:
                        break
                    self.outcomes.append(self._export(store, item))
        except MetadataUnavailable as e:
            logger.error("worker_store_unavailable", worker=self.name, error=str(e))
        finally:
            self.distributor.progress.end_worker()

    def _export(self, store: MetadataStore, item: WorkItem) -> RepositoryOutcome:
        try:
            return self.distributor.export(store, item)
        except Exception as e:
            # Keep the worker alive for the remaining repositories
            logger.exception("repository_export_crashed", project=item.project)
            return RepositoryOutcome(item.project, len(item.records), error=str(e))
