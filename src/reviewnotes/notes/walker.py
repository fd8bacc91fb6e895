"""Discovery of the commits introduced by a ref update."""

import tempfile
from typing import Dict, Iterator, List

import git
import structlog
from gitdb.exc import ODBError

from reviewnotes.errors import MalformedRefRange
from reviewnotes.models.events import ZERO_ID

logger = structlog.get_logger(__name__)

BOUNDARY_NAMESPACES = ("refs/heads/", "refs/tags/")


class RefRangeWalker:
    """Walks the commits that a ref update made reachable for the first time.

    A fast-forward by one commit is bounded by the old tip alone. Any other
    update (a new branch, a longer push, a force push, a merge) is bounded
    by every branch and tag in the repository, so commits already reachable
    from elsewhere are not visited again.
    """

    def __init__(self, repo: git.Repo):
        """Initialize the walker.

        Args:
            repo: GitPython repository object
        """
        self.repo = repo

    def walk(self, ref_name: str, old_id: str, new_id: str) -> Iterator[git.Commit]:
        """Yield the commits introduced by updating ``ref_name``.

        Commits are yielded lazily, newest first, in topological order.
        Deletions yield nothing. Malformed ranges and traversal errors are
        logged and end the walk without raising.

        Args:
            ref_name: Full name of the updated ref
            old_id: Previous tip, zero id for a new ref
            new_id: New tip, zero id for a deleted ref

        Yields:
            GitPython commit objects
        """
        if new_id == ZERO_ID:
            return

        try:
            revisions = self.revisions(ref_name, old_id, new_id)
        except MalformedRefRange as e:
            logger.error("malformed_ref_range", ref=ref_name, old=old_id, new=new_id, error=str(e))
            return

        try:
            # Boundaries go through stdin, there can be more than fit on a command line
            with tempfile.TemporaryFile() as boundaries:
                boundaries.write("".join(f"{rev}\n" for rev in revisions[1:]).encode("ascii"))
                boundaries.seek(0)
                commits = self.repo.iter_commits(revisions[0], topo_order=True, stdin=True, istream=boundaries)
                for commit in commits:
                    yield commit
        except (git.GitCommandError, ODBError, ValueError) as e:
            logger.error("ref_walk_failed", ref=ref_name, old=old_id, new=new_id, error=str(e))

    def revisions(self, ref_name: str, old_id: str, new_id: str) -> List[str]:
        """Build the rev-list arguments: the new tip first, then negated boundaries.

        Boundaries are unique by commit, so refs sharing a tip appear once.

        Raises:
            MalformedRefRange: If the old or new tip is not a commit
        """
        new_commit = self._parse_commit(new_id)
        revisions: Dict[str, None] = {new_commit.hexsha: None}

        parents = new_commit.parents
        if len(parents) == 1 and parents[0].hexsha == old_id:
            revisions[f"^{old_id}"] = None
            return list(revisions)

        if old_id != ZERO_ID:
            old_commit = self._parse_commit(old_id)
            revisions[f"^{old_commit.hexsha}"] = None

        for boundary in self.boundaries(ref_name):
            revisions[f"^{boundary}"] = None
        return list(revisions)

    def boundaries(self, ref_name: str) -> Iterator[str]:
        """Yield the tips of all other branches and tags.

        Refs that do not resolve to a commit are skipped.
        """
        for ref in self.repo.references:
            if ref.path == ref_name or not ref.path.startswith(BOUNDARY_NAMESPACES):
                continue
            try:
                yield ref.commit.hexsha
            except (ValueError, ODBError, git.GitCommandError) as e:
                logger.debug("boundary_ref_skipped", ref=ref.path, error=str(e))

    def _parse_commit(self, object_id: str) -> git.Commit:
        try:
            return self.repo.commit(object_id)
        except (ValueError, ODBError, git.GitCommandError) as e:
            raise MalformedRefRange(f"{object_id} is not a commit: {e}") from e
