"""Review notes: attach code review metadata to git commits as git notes."""

__version__ = "0.1.0"
