"""Listener for pushed ref updates."""

from reviewnotes.listener.listener import RefUpdateListener

__all__ = ["RefUpdateListener"]
