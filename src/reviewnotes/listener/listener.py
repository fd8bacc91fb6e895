"""Incremental note creation for pushed branch updates."""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional

import git
import structlog

from reviewnotes.errors import ReviewNotesError
from reviewnotes.metadata.base import MetadataStore
from reviewnotes.models.config import Settings
from reviewnotes.models.events import RefUpdateEvent
from reviewnotes.notes.committer import CommitResult, CommitStatus, NoteMapCommitter
from reviewnotes.notes.creator import ReviewNoteCreator
from reviewnotes.repository.manager import RepositoryManager

logger = structlog.get_logger(__name__)


class RefUpdateListener:
    """Creates review notes whenever a branch is updated.

    In synchronous mode the notes are committed before ``on_ref_updated``
    returns. In asynchronous mode the update is queued on a small thread
    pool; at most ``listener_queue_size`` updates wait at a time and further
    callers block until a slot frees up.

    Updates are not ordered. Every run recomputes its range from the refs
    as they are now, and the notes ref is updated with compare-and-swap, so
    late or reordered runs converge on the same notes.
    """

    def __init__(
        self,
        repo_manager: RepositoryManager,
        store_factory: Callable[[], MetadataStore],
        settings: Optional[Settings] = None,
    ):
        """Initialize the listener.

        Args:
            repo_manager: Opens project repositories
            store_factory: Creates a metadata store per handled update
            settings: Application settings (async mode, notes ref, formatting)
        """
        self.repo_manager = repo_manager
        self.store_factory = store_factory
        self.settings = settings or Settings()
        self.note_format = self.settings.note_format()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._slots: Optional[threading.BoundedSemaphore] = None
        if self.settings.async_listener:
            self._executor = ThreadPoolExecutor(
                max_workers=self.settings.listener_workers,
                thread_name_prefix="reviewnotes-listener",
            )
            self._slots = threading.BoundedSemaphore(
                self.settings.listener_workers + max(self.settings.listener_queue_size, 0)
            )

    @property
    def is_async(self) -> bool:
        return self._executor is not None

    def on_ref_updated(self, event: RefUpdateEvent) -> Optional["Future[Optional[CommitResult]]"]:
        """Handle one ref update.

        Returns:
            A future in asynchronous mode, None otherwise
        """
        if self._executor is None:
            self.create_review_notes(event)
            return None

        self._slots.acquire()
        try:
            future = self._executor.submit(self.create_review_notes, event)
        except RuntimeError:
            self._slots.release()
            raise
        future.add_done_callback(lambda _: self._slots.release())
        return future

    def create_review_notes(self, event: RefUpdateEvent) -> Optional[CommitResult]:
        """Create and commit the notes for one ref update.

        Only branches are considered; other refs and deletions are a no-op.
        Failures are logged and reported as None.
        """
        if not event.is_branch or event.is_delete:
            logger.debug("ref_update_ignored", update=str(event))
            return CommitResult(CommitStatus.NO_OP)

        try:
            with self.store_factory() as store, self.repo_manager.open_repository(event.project) as repo:
                creator = ReviewNoteCreator(
                    repo,
                    event.project,
                    store,
                    note_format=self.note_format,
                    committer=NoteMapCommitter.from_settings(repo, self.settings),
                )
                queued = creator.create_notes_for_update(event.ref_name, event.old_id, event.new_id)
                result = creator.commit_notes()
        except (ReviewNotesError, git.GitCommandError) as e:
            logger.error("review_notes_failed", update=str(event), error=str(e))
            return None
        except Exception:
            # Keep the remaining ref updates of the push going
            logger.exception("review_notes_crashed", update=str(event))
            return None

        if result.status == CommitStatus.CONFLICT:
            logger.error("review_notes_dropped", update=str(event), error=result.error)
        else:
            logger.info("review_notes_created", update=str(event), notes=queued, status=result.status.value)
        return result

    def close(self, wait: bool = True) -> None:
        """Stop the background pool, waiting for queued updates by default."""
        if self._executor is not None:
            self._executor.shutdown(wait=wait)

    def __enter__(self) -> "RefUpdateListener":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
