"""Git tags from Vault labels."""

import re
import time
from dataclasses import dataclass, field
from typing import List

from loguru import logger

from ..git.operations import GitRepository
from ..git.runner import CommandError
from ..models.transaction import LabelRecord
from ..vault.client import SourceClient
from .committer import ProvenanceMap

_NON_WORD = re.compile(r'\W')


def tag_name(label: LabelRecord) -> str:
    """Git tag name for a label: ``{txid}_{label}`` with non-word characters as ``_``."""
    return f'{label.transaction_id}_{_NON_WORD.sub("_", label.label)}'


@dataclass
class TagSummary:
    """Outcome of tag creation."""

    created: List[str] = field(default_factory=list)
    skipped: int = 0
    failed: List[str] = field(default_factory=list)
    elapsed_ms: int = 0


class TagSynthesizer:
    """Creates annotated tags for labels on transactions migrated in this run.

    Labels on transactions committed by an earlier run are not in the
    provenance map and are skipped.
    """

    def __init__(
        self,
        client: SourceClient,
        git: GitRepository,
        provenance: ProvenanceMap,
        root_path: str = '$',
    ):
        self.client = client
        self.git = git
        self.provenance = provenance
        self.root_path = root_path
        self.logger = logger.bind(component='TagSynthesizer')

    def create_tags(self) -> TagSummary:
        """Query all labels and tag the matching commits.

        Returns:
            Tag creation summary
        """
        started = time.monotonic()
        self.logger.info('Creating tags from labels...')

        summary = TagSummary()
        seen = set()
        for label in self.client.list_labels(self.root_path):
            commit_id = self.provenance.get(label.transaction_id)
            if not commit_id:
                summary.skipped += 1
                continue

            name = tag_name(label)
            if name in seen:
                continue
            seen.add(name)

            try:
                self.git.tag(name, commit_id, label.comment)
            except CommandError as e:
                self.logger.warning(f'Cannot create tag {name} on {commit_id}: {e}')
                summary.failed.append(name)
                continue
            summary.created.append(name)
            self.logger.debug(f'Tag {name} -> {commit_id}')

        summary.elapsed_ms = int((time.monotonic() - started) * 1000)
        self.logger.info(
            f'{len(summary.created)} tags created, {summary.skipped} labels skipped'
        )
        return summary
