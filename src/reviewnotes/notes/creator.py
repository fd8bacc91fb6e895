"""Creation of review notes for one repository."""

from typing import Iterable, Optional, Protocol

import git
import structlog
from gitdb.exc import ODBError

from reviewnotes.errors import AmbiguousRevisionMapping
from reviewnotes.metadata.base import MetadataStore
from reviewnotes.models.config import NoteFormat
from reviewnotes.models.review import ReviewRecord, short_branch_name
from reviewnotes.notes.committer import CommitResult, NoteMapCommitter
from reviewnotes.notes.formatter import build_note
from reviewnotes.notes.walker import RefRangeWalker

logger = structlog.get_logger(__name__)


class ProgressMonitor(Protocol):
    def update(self, completed: int = 1) -> None:
        ...


class ReviewNoteCreator:
    """Builds review notes for the commits of one repository.

    Two entry points feed the same committer: ``create_notes_for_update``
    for a pushed ref (commits discovered by walking the update) and
    ``create_notes_for_records`` for a known list of merged changes.
    ``commit_notes`` writes everything collected so far.
    """

    def __init__(
        self,
        repo: git.Repo,
        project: str,
        store: MetadataStore,
        note_format: Optional[NoteFormat] = None,
        committer: Optional[NoteMapCommitter] = None,
    ):
        """Initialize the creator.

        Args:
            repo: GitPython repository object
            project: Project name used for metadata lookups
            store: Review metadata store
            note_format: Note rendering settings
            committer: Committer collecting the notes (created if omitted)
        """
        self.repo = repo
        self.project = project
        self.store = store
        self.note_format = note_format or NoteFormat()
        self.committer = committer or NoteMapCommitter(repo)

    def create_notes_for_update(
        self,
        ref_name: str,
        old_id: str,
        new_id: str,
        progress: Optional[ProgressMonitor] = None,
    ) -> int:
        """Queue notes for the commits a ref update introduced.

        Commits without a review record were pushed directly and get no note.

        Returns:
            Number of notes queued
        """
        branch = short_branch_name(ref_name)
        queued = 0
        for commit in RefRangeWalker(self.repo).walk(ref_name, old_id, new_id):
            record = self.load_record(commit.hexsha, branch)
            if record is None:
                continue
            self.committer.add(commit.hexsha, build_note(record, self.note_format), commit.summary)
            queued += 1
            if progress is not None:
                progress.update(1)
        return queued

    def create_notes_for_records(
        self,
        records: Iterable[ReviewRecord],
        progress: Optional[ProgressMonitor] = None,
    ) -> int:
        """Queue notes for review records whose revision is already known.

        Records whose revision is missing from the repository are skipped.

        Returns:
            Number of notes queued
        """
        queued = 0
        for record in records:
            if progress is not None:
                progress.update(1)
            try:
                commit = self.repo.commit(record.revision)
            except (ValueError, ODBError, git.GitCommandError) as e:
                logger.warning(
                    "revision_not_found",
                    project=self.project,
                    change=record.change_id,
                    revision=record.revision,
                    error=str(e),
                )
                continue
            self.committer.add(commit.hexsha, build_note(record, self.note_format), commit.summary)
            queued += 1
        return queued

    def commit_notes(self) -> CommitResult:
        return self.committer.commit()

    def load_record(self, revision: str, branch: str) -> Optional[ReviewRecord]:
        """Find the review record for a commit reaching ``branch``.

        When several changes share the revision (cherry-picks onto other
        branches), the one targeting ``branch`` wins. Returns None when there
        is no record or the mapping stays ambiguous.
        """
        records = self.store.records_for_revision(self.project, branch, revision)
        if not records:
            return None
        if len(records) == 1:
            return records[0]

        for record in records:
            if short_branch_name(record.branch) == branch:
                return record

        error = AmbiguousRevisionMapping(revision, branch, len(records))
        logger.warning("ambiguous_revision_mapping", project=self.project, error=str(error))
        return None
