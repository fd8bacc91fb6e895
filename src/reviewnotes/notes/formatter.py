"""Rendering of review metadata into note content."""

from datetime import datetime, timezone
from email.utils import format_datetime
from typing import List, Optional
from zoneinfo import ZoneInfo

from reviewnotes.models.config import NoteFormat
from reviewnotes.models.review import Account, ReviewRecord


class NoteContentBuilder:
    """Builds the text of a code review note.

    Call as many ``append_*`` methods as necessary and finish with
    ``to_string()`` or ``to_bytes()``. For a whole ``ReviewRecord`` use
    ``build()``, which appends every header in the canonical order.

    The output only depends on the appended values and the ``NoteFormat``,
    so identical input always produces byte-identical notes.
    """

    def __init__(self, note_format: Optional[NoteFormat] = None) -> None:
        """Initialize the builder.

        Args:
            note_format: Formatting settings. Defaults to UTC and no web URL.
        """
        self.note_format = note_format or NoteFormat()
        self.tz = ZoneInfo(self.note_format.timezone)
        self._lines: List[str] = []

    def build(self, record: ReviewRecord) -> str:
        """Render all headers for a review record.

        Args:
            record: Review metadata of the revision

        Returns:
            Note content, one header per line
        """
        for approval in record.approvals:
            if approval.value == 0 or approval.is_submit:
                continue
            self.append_approval(approval.label, approval.value, approval.account)

        submit = record.submit_approval
        if submit is not None:
            self.append_submitted_by(submit.account)
            self.append_submitted_at(submit.granted)

        url = self.review_url(record)
        if url:
            self.append_reviewed_on(url)

        self.append_comment_count(record.comments_total, record.comments_unresolved)
        self.append_project(record.project)
        self.append_branch(record.branch)
        return self.to_string()

    def review_url(self, record: ReviewRecord) -> Optional[str]:
        """Return the explicit review URL or derive one from the web URL."""
        if record.review_url:
            return record.review_url
        web_url = self.note_format.canonical_web_url
        if not web_url:
            return None
        if not web_url.endswith("/"):
            web_url += "/"
        return f"{web_url}c/{record.project}/+/{record.change_id}"

    def append_approval(self, label: str, value: int, account: Account) -> None:
        self._lines.append(f"{label}{format_value(value)}: {self.format_identity(account)}")

    def append_submitted_by(self, account: Account) -> None:
        self._lines.append(f"Submitted-by: {self.format_identity(account)}")

    def append_submitted_at(self, when: datetime) -> None:
        self._lines.append(f"Submitted-at: {self.format_date(when)}")

    def append_reviewed_on(self, url: str) -> None:
        self._lines.append(f"Reviewed-on: {url}")

    def append_comment_count(self, total: int, unresolved: int) -> None:
        if total > 0:
            self._lines.append(f"Comments-Total: {total}")
        if unresolved > 0:
            self._lines.append(f"Comments-Unresolved: {unresolved}")

    def append_project(self, project: str) -> None:
        self._lines.append(f"Project: {project}")

    def append_branch(self, branch: str) -> None:
        self._lines.append(f"Branch: {branch}")

    def format_identity(self, account: Account) -> str:
        """Render an account as ``Name <email>``, degrading gracefully.

        Accounts with neither name nor email render as the anonymous
        coward name followed by the account id.
        """
        parts = []
        if account.full_name:
            parts.append(account.full_name)
        if account.email:
            parts.append(f"<{account.email}>")
        if not parts:
            return f"{self.note_format.anonymous_coward_name} #{account.account_id}"
        return " ".join(parts)

    def format_date(self, when: datetime) -> str:
        """Format a timestamp as an RFC 2822 date in the configured timezone."""
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        return format_datetime(when.astimezone(self.tz))

    def to_string(self) -> str:
        return "".join(f"{line}\n" for line in self._lines)

    def to_bytes(self) -> bytes:
        return self.to_string().encode("utf-8")


def format_value(value: int) -> str:
    """Format a vote value with an explicit sign, e.g. ``+2`` or ``-1``."""
    if value == 0:
        return " 0"
    return f"{value:+d}"


def build_note(record: ReviewRecord, note_format: Optional[NoteFormat] = None) -> bytes:
    """Render the note content for a review record as UTF-8 bytes."""
    builder = NoteContentBuilder(note_format)
    builder.build(record)
    return builder.to_bytes()
