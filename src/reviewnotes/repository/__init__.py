"""Access to the git repositories of all projects."""

from reviewnotes.repository.manager import RepositoryManager

__all__ = ["RepositoryManager"]
