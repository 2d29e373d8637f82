"""Vault source repository access."""

from .client import SourceClient, VaultClientFactory, VaultCommandClient
from .exceptions import (
    VaultAuthenticationError,
    VaultError,
    VaultFetchError,
    WorkingFolderConflictError,
)

__all__ = [
    'SourceClient',
    'VaultClientFactory',
    'VaultCommandClient',
    'VaultAuthenticationError',
    'VaultError',
    'VaultFetchError',
    'WorkingFolderConflictError',
]
