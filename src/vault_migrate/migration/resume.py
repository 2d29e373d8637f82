"""Restart point detection from migrated git history."""

import time
from dataclasses import dataclass
from typing import Callable, Optional

from loguru import logger

from ..git.operations import GitRepository
from ..git.runner import CommandError
from .exceptions import ResumePointError
from .provenance import parse_provenance_tag

ConfirmCallback = Callable[[str], bool]


@dataclass
class ResumePoint:
    """Where the migration of a branch continues from."""

    revision: int
    commits_searched: int = 0
    found: bool = False
    elapsed_ms: int = 0


class ResumeResolver:
    """Finds the last Vault version already migrated into a branch.

    The search walks back from the branch head, reading commit messages until
    one carries a provenance tag. It is a heuristic: rewritten history or a
    changed tag format will mislead it.
    """

    def __init__(
        self,
        git: GitRepository,
        repository: str,
        confirm: Optional[ConfirmCallback] = None,
        assume_first_revision: bool = False,
        validate_path: bool = True,
    ):
        """Initialize resume resolver.

        Args:
            git: Target repository
            repository: Vault repository name written into provenance tags
            confirm: Asks the operator whether to start from the first version
            assume_first_revision: Start from the first version without asking
            validate_path: Ignore tags written for another Vault folder
        """
        self.git = git
        self.repository = repository
        self.confirm = confirm
        self.assume_first_revision = assume_first_revision
        self.validate_path = validate_path
        self.logger = logger.bind(component='ResumeResolver')

    def resolve(self, branch: str, source_path: str, depth: int) -> ResumePoint:
        """Find the restart point of a branch.

        Args:
            branch: Git branch to inspect
            source_path: Vault folder the branch is built from
            depth: Maximum commits to inspect; zero or less starts from the
                first version without searching

        Returns:
            Restart point; revision 0 means replay everything

        Raises:
            ResumePointError: If no tag was found and starting over was refused
        """
        started = time.monotonic()

        if depth <= 0:
            self.logger.info(f'Restart search disabled for {branch}, starting from version 1')
            return ResumePoint(revision=0)

        expected_source = f'{self.repository}{source_path}'.lower()
        exhausted = False
        searched = 0

        for offset in range(depth):
            try:
                message = self.git.commit_message(branch, offset)
            except CommandError:
                exhausted = True
                break
            searched += 1

            tag = parse_provenance_tag(message)
            if tag is None or tag.revision == 0:
                continue

            if self.validate_path and tag.source.lower() != expected_source:
                self.logger.warning(
                    f'{branch}~{offset} was migrated from {tag.source}, '
                    f'not {self.repository}{source_path}; ignoring it'
                )
                continue

            self.logger.info(
                f'Branch {branch} was migrated up to version {tag.revision} '
                f'(found {offset} commits behind HEAD)'
            )
            return ResumePoint(
                revision=tag.revision,
                commits_searched=searched,
                found=True,
                elapsed_ms=int((time.monotonic() - started) * 1000),
            )

        if exhausted:
            question = (
                f'Searched all {searched} commits of {branch} and failed to find a '
                'restart point. Conversion will start from version 1. Is this correct?'
            )
        else:
            question = (
                f'Restart limit of {depth} commits exceeded on {branch}. '
                'Conversion will start from version 1. Is this correct?'
            )

        if not self.assume_first_revision:
            if self.confirm is None or not self.confirm(question):
                raise ResumePointError(branch, depth)

        self.logger.warning(f'No restart point on {branch}; starting from version 1')
        return ResumePoint(
            revision=0,
            commits_searched=searched,
            elapsed_ms=int((time.monotonic() - started) * 1000),
        )
