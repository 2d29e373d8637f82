"""Git operations module for history replay."""

from .operations import GitRepository
from .runner import CommandError, CommandResult, CommandRunner

__all__ = ['GitRepository', 'CommandError', 'CommandResult', 'CommandRunner']
