"""Vault client exceptions."""

from typing import List, Optional


class VaultError(Exception):
    """Base exception for Vault client errors."""

    def __init__(
        self,
        message: str,
        command: Optional[str] = None,
        output: Optional[str] = None,
    ):
        """Initialize Vault error.

        Args:
            message: Error message
            command: Vault command that failed
            output: Output returned by the Vault client
        """
        super().__init__(message)
        self.command = command
        self.output = output


class VaultAuthenticationError(VaultError):
    """Login to the Vault server failed."""

    pass


class VaultFetchError(VaultError):
    """Retrieving files or history from Vault failed."""

    pass


class WorkingFolderConflictError(VaultError):
    """A working folder assignment clashes with existing assignments."""

    def __init__(self, message: str, conflicts: Optional[List[str]] = None, **kwargs):
        """Initialize working folder conflict error.

        Args:
            message: Error message
            conflicts: Vault paths whose assignments conflict
            **kwargs: Additional arguments for base class
        """
        super().__init__(message, **kwargs)
        self.conflicts = conflicts or []
