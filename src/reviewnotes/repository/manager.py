"""Opening project repositories below a base directory."""

import os
from pathlib import Path
from typing import List, Optional

import git

from reviewnotes.errors import RepositoryUnavailable


class RepositoryManager:
    """Maps project names to git repositories under one base directory.

    A project ``platform/build`` lives at ``<base>/platform/build.git``
    (bare) or ``<base>/platform/build`` (bare or with a work tree).
    """

    def __init__(self, base_dir: Path) -> None:
        """Initialize the manager.

        Args:
            base_dir: Directory holding all project repositories
        """
        self.base_dir = Path(base_dir)

    def resolve(self, project: str) -> Optional[Path]:
        """Return the repository path of a project, or None if it does not exist."""
        parts = Path(project).parts
        if not parts or ".." in parts or Path(project).is_absolute():
            return None

        for candidate in (self.base_dir / f"{project}.git", self.base_dir / project):
            if candidate.is_dir():
                return candidate
        return None

    def open_repository(self, project: str) -> git.Repo:
        """Open the repository of a project.

        The caller owns the returned handle and must close it.

        Raises:
            RepositoryUnavailable: If the repository is missing or invalid
        """
        path = self.resolve(project)
        if path is None:
            raise RepositoryUnavailable(project, "not found")
        try:
            return git.Repo(path)
        except (git.InvalidGitRepositoryError, git.NoSuchPathError) as e:
            raise RepositoryUnavailable(project, str(e)) from e

    def list_projects(self) -> List[str]:
        """List the project names of all repositories under the base directory."""
        projects = []
        for root, dirs, _files in os.walk(self.base_dir):
            path = Path(root)
            if path != self.base_dir and _is_repository(path):
                name = path.relative_to(self.base_dir).as_posix()
                if name.endswith(".git"):
                    name = name[: -len(".git")]
                projects.append(name)
                dirs[:] = []
                continue
            dirs[:] = sorted(d for d in dirs if not d.startswith("."))
        return sorted(projects)


def _is_repository(path: Path) -> bool:
    if (path / ".git").exists():
        return True
    return (path / "HEAD").is_file() and (path / "objects").is_dir() and (path / "refs").is_dir()
