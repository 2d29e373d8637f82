"""Vault Migration Tool

Replays the history of SourceGear Vault folders into git branches, one commit
per Vault transaction, and recreates Vault labels as git tags.
"""

__version__ = '0.1.0'
__author__ = 'Vault Migration Team'
__email__ = 'team@example.com'
