"""Shared fixtures for review notes tests."""

from datetime import datetime, timezone
from pathlib import Path

import git
import pytest

from reviewnotes.models import Account, Approval, ChangeStatus, ReviewRecord

T0 = datetime(2024, 1, 15, 10, 30, 0, tzinfo=timezone.utc)


def init_repo(path: Path) -> git.Repo:
    """Create a Git repository with a configured identity."""
    repo = git.Repo.init(path)
    repo.config_writer().set_value("user", "name", "Test User").release()
    repo.config_writer().set_value("user", "email", "test@example.com").release()
    return repo


def make_commit(repo: git.Repo, message: str, filename: str = None) -> git.Commit:
    """Commit a file change on the current branch."""
    filename = filename or f"{message.split()[0].lower()}.txt"
    path = Path(repo.working_tree_dir) / filename
    path.write_text(f"{message}\n")
    repo.index.add([filename])
    return repo.index.commit(message)


def make_record(
    revision: str,
    project: str = "demo",
    branch: str = "master",
    change_id: int = 1,
    status: ChangeStatus = ChangeStatus.MERGED,
    **kwargs,
) -> ReviewRecord:
    """Create a review record approved and submitted by account 7."""
    jane = Account(account_id=7, full_name="Jane Doe", email="jane@example.com")
    approvals = kwargs.pop(
        "approvals",
        [
            Approval(label="Code-Review", value=2, account=jane, granted=T0),
            Approval(label="Verified", value=1, account=jane, granted=T0),
            Approval(label="SUBM", value=1, account=jane, granted=T0, is_submit=True),
        ],
    )
    return ReviewRecord(
        change_id=change_id,
        project=project,
        branch=branch,
        revision=revision,
        status=status,
        approvals=approvals,
        **kwargs,
    )


@pytest.fixture
def test_repo(tmp_path):
    """A repository with a linear history C0 <- C1 on the default branch."""
    repo = init_repo(tmp_path / "demo")
    make_commit(repo, "Initial commit", "README.md")
    make_commit(repo, "Add feature", "feature.py")
    yield repo
    repo.close()


@pytest.fixture
def branch(test_repo):
    """Full ref name of the default branch of ``test_repo``."""
    return test_repo.active_branch.path


def read_note(repo: git.Repo, commit: str, ref: str = "refs/notes/review") -> str:
    """Return the note of a commit as shown by git itself."""
    return repo.git.notes("--ref", ref, "show", commit)
