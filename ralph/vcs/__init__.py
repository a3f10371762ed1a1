"""Version-control helpers used for branch setup and checkpoints."""

from .commits import format_checkpoint_message
from .git import Git

__all__ = ["Git", "format_checkpoint_message"]
