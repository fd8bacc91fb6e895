"""Batched, optimistic-concurrency commits onto the notes ref."""

import re
import time
from enum import Enum
from io import BytesIO
from typing import Dict, List, Optional

import git
import structlog
from git.objects.fun import tree_to_stream
from gitdb import IStream

from reviewnotes.errors import ConcurrencyConflictExceeded
from reviewnotes.models.config import REFS_NOTES_REVIEW, Settings
from reviewnotes.models.events import ZERO_ID

logger = structlog.get_logger(__name__)

COMMIT_HEADER = "Update notes for submitted changes"
NOTE_MODE = 0o100644
_NOTE_NAME = re.compile(r"^[0-9a-f]{40}$")


class CommitStatus(str, Enum):
    """Outcome of committing a note batch."""

    NO_OP = "no_op"
    UNCHANGED = "unchanged"
    COMMITTED = "committed"
    CONFLICT = "conflict"


class CommitResult:
    """Result of a ``NoteMapCommitter.commit()`` call."""

    def __init__(
        self,
        status: CommitStatus,
        notes_count: int = 0,
        commit_id: Optional[str] = None,
        attempts: int = 0,
        error: Optional[str] = None,
    ):
        self.status = status
        self.notes_count = notes_count
        self.commit_id = commit_id
        self.attempts = attempts
        self.error = error

    @property
    def success(self) -> bool:
        return self.status != CommitStatus.CONFLICT

    def __repr__(self) -> str:
        return (
            f"CommitResult(status={self.status.value}, notes={self.notes_count}, "
            f"commit={self.commit_id}, attempts={self.attempts})"
        )


class NoteMapCommitter:
    """Accumulates notes in memory and writes them in one atomic update.

    ``add()`` never touches the repository. ``commit()`` stores the note
    blobs, then loops over: read the notes tip, merge the batch into the
    tip's note tree, write a candidate commit parented on the tip and
    compare-and-swap the ref. When another writer moved the ref in between,
    the loop starts over from the new tip, so notes written concurrently are
    kept. After ``max_retries`` lost races the batch is dropped and a
    ``CommitStatus.CONFLICT`` result is returned.

    A committer and its batch belong to one thread.
    """

    def __init__(
        self,
        repo: git.Repo,
        notes_ref: str = REFS_NOTES_REVIEW,
        author: Optional[git.Actor] = None,
        max_retries: int = 10,
        retry_backoff: float = 0.025,
    ):
        """Initialize the committer.

        Args:
            repo: GitPython repository object
            notes_ref: Name of the notes ref to update
            author: Identity recorded on notes commits
            max_retries: Compare-and-swap retries after the first attempt
            retry_backoff: Base delay in seconds between attempts
        """
        self.repo = repo
        self.notes_ref = notes_ref
        self.author = author or git.Actor("Code Review", "review@localhost")
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self._notes: Dict[str, bytes] = {}
        self._summaries: List[str] = []

    @classmethod
    def from_settings(cls, repo: git.Repo, settings: Settings) -> "NoteMapCommitter":
        return cls(
            repo,
            notes_ref=settings.notes_ref,
            author=git.Actor(settings.server_name, settings.server_email),
            max_retries=settings.max_retries,
            retry_backoff=settings.retry_backoff,
        )

    def __len__(self) -> int:
        return len(self._notes)

    def add(self, commit_id: str, content: bytes, summary: str) -> None:
        """Queue a note for a commit.

        A second note for the same commit replaces the first one; the
        summary line keeps its original position.

        Args:
            commit_id: Full hex SHA of the annotated commit
            content: Note content
            summary: One line describing the commit, used in the commit message
        """
        if commit_id not in self._notes:
            self._summaries.append(summary)
        self._notes[commit_id] = content

    @property
    def message(self) -> str:
        lines = "".join(f"* {summary}\n" for summary in self._summaries)
        return f"{COMMIT_HEADER}\n\n{lines}"

    def commit(self) -> CommitResult:
        """Write all queued notes onto the notes ref.

        The batch is discarded afterwards, whatever the outcome.

        Returns:
            CommitResult describing what happened
        """
        if not self._notes:
            return CommitResult(CommitStatus.NO_OP)

        try:
            return self._commit_all(self.message)
        finally:
            self._notes = {}
            self._summaries = []

    def _commit_all(self, message: str) -> CommitResult:
        batch = {
            commit_id: self._store(git.Blob.type, content)
            for commit_id, content in self._notes.items()
        }

        attempts = 0
        while True:
            attempts += 1
            tip = self.read_tip()
            current = self.read_notes(tip)
            merged = dict(current)
            merged.update(batch)

            if tip is not None and merged == current:
                logger.debug("notes_unchanged", ref=self.notes_ref, tip=tip)
                return CommitResult(CommitStatus.UNCHANGED, len(batch), tip, attempts)

            tree = git.Tree(self.repo, self.write_tree(merged))
            parents = [self.repo.commit(tip)] if tip is not None else []
            candidate = git.Commit.create_from_tree(
                self.repo,
                tree,
                message,
                parent_commits=parents,
                head=False,
                author=self.author,
                committer=self.author,
            )

            if self._compare_and_swap(tip, candidate.hexsha):
                logger.info(
                    "notes_committed",
                    ref=self.notes_ref,
                    commit=candidate.hexsha,
                    notes=len(batch),
                    attempts=attempts,
                )
                return CommitResult(CommitStatus.COMMITTED, len(batch), candidate.hexsha, attempts)

            if attempts > self.max_retries:
                error = ConcurrencyConflictExceeded(self.notes_ref, attempts)
                logger.error("notes_conflict_exceeded", ref=self.notes_ref, error=str(error))
                return CommitResult(CommitStatus.CONFLICT, len(batch), None, attempts, str(error))

            logger.info("notes_ref_moved", ref=self.notes_ref, expected=tip, attempt=attempts)
            time.sleep(self.retry_backoff * attempts)

    def read_tip(self) -> Optional[str]:
        """Return the current commit of the notes ref, or None if it does not exist."""
        try:
            return self.repo.git.rev_parse("--verify", "--quiet", f"{self.notes_ref}^{{commit}}")
        except git.GitCommandError:
            return None

    def read_notes(self, tip: Optional[str]) -> Dict[str, bytes]:
        """Map annotated commit ids to note blob ids for a notes commit.

        Fan-out directories (``ab/cdef...``) are flattened.
        """
        if tip is None:
            return {}

        notes: Dict[str, bytes] = {}
        for item in self.repo.commit(tip).tree.traverse():
            if item.type != "blob":
                continue
            name = item.path.replace("/", "")
            if _NOTE_NAME.match(name):
                notes[name] = item.binsha
            else:
                logger.warning("non_note_entry_ignored", ref=self.notes_ref, path=item.path)
        return notes

    def write_tree(self, notes: Dict[str, bytes]) -> bytes:
        """Store a flat note tree and return its binary SHA."""
        entries = [(binsha, NOTE_MODE, name) for name, binsha in sorted(notes.items())]
        stream = BytesIO()
        tree_to_stream(entries, stream.write)
        return self._store(git.Tree.type, stream.getvalue())

    def _store(self, obj_type: str, data: bytes) -> bytes:
        istream = self.repo.odb.store(IStream(obj_type, len(data), BytesIO(data)))
        return istream.binsha

    def _compare_and_swap(self, expected: Optional[str], new_id: str) -> bool:
        """Move the notes ref to ``new_id`` if it still points at ``expected``.

        Returns:
            True on success, False if another writer got there first
        """
        try:
            self.repo.git.update_ref(
                "-m", f"reviewnotes: {COMMIT_HEADER}", self.notes_ref, new_id, expected or ZERO_ID
            )
            return True
        except git.GitCommandError as e:
            if self.read_tip() != expected or "lock" in str(e.stderr):
                return False
            raise
