"""Provenance tag embedded in every migrated commit message.

The last line of each commit message created by the migration reads::

    [git-vault-id] {repository}{vault path}@{version}/{transaction id}

It is the only record of what has been migrated: restart points and label
resolution are both derived from it.
"""

from dataclasses import dataclass
from typing import Optional

from ..models.transaction import TransactionRecord

PROVENANCE_MARKER = '[git-vault-id]'


@dataclass(frozen=True)
class ProvenanceTag:
    """Parsed provenance tag."""

    source: str
    revision: int
    transaction_id: int


def format_provenance_tag(
    repository: str, source_path: str, revision: int, transaction_id: int
) -> str:
    return f'{PROVENANCE_MARKER} {repository}{source_path}@{revision}/{transaction_id}'


def build_commit_message(
    repository: str, source_path: str, record: TransactionRecord
) -> str:
    """Build a commit message from a Vault transaction.

    Args:
        repository: Vault repository name
        source_path: Vault folder of the branch
        record: Transaction being committed

    Returns:
        The Vault comment followed by the provenance tag line
    """
    tag = format_provenance_tag(
        repository, source_path, record.source_revision, record.transaction_id
    )
    return f'{record.comment}\n{tag}\n'


def parse_provenance_tag(message: str) -> Optional[ProvenanceTag]:
    """Extract the provenance tag from the last line of a commit message.

    Returns:
        The tag, or None if the message carries no parseable tag
    """
    lines = [line for line in message.splitlines() if line.strip()]
    if not lines or PROVENANCE_MARKER not in lines[-1]:
        return None

    tagged = lines[-1].split(PROVENANCE_MARKER)[-1].strip()
    source, sep, version_part = tagged.rpartition('@')
    if not sep:
        return None

    revision, _, transaction = version_part.partition('/')
    try:
        return ProvenanceTag(
            source=source,
            revision=int(revision),
            transaction_id=int(transaction) if transaction else 0,
        )
    except ValueError:
        return None
