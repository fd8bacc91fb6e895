"""Note synthesis and commit engine."""

from reviewnotes.notes.committer import CommitResult, CommitStatus, NoteMapCommitter
from reviewnotes.notes.creator import ReviewNoteCreator
from reviewnotes.notes.formatter import NoteContentBuilder, build_note
from reviewnotes.notes.walker import RefRangeWalker

__all__ = [
    "NoteContentBuilder",
    "build_note",
    "RefRangeWalker",
    "NoteMapCommitter",
    "CommitResult",
    "CommitStatus",
    "ReviewNoteCreator",
]
