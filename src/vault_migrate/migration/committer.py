"""Creation of git commits from replayed Vault transactions."""

import time
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterator, Optional, Tuple

from loguru import logger

from ..git.operations import GitRepository


class ProvenanceMap:
    """Vault transaction id to git commit id, for the commits of one run."""

    def __init__(self):
        self._commits: Dict[int, str] = {}

    def record(self, transaction_id: int, commit_id: str) -> None:
        self._commits[transaction_id] = commit_id

    def get(self, transaction_id: int) -> Optional[str]:
        return self._commits.get(transaction_id)

    def items(self) -> Iterator[Tuple[int, str]]:
        return iter(self._commits.items())

    def __contains__(self, transaction_id: int) -> bool:
        return transaction_id in self._commits

    def __len__(self) -> int:
        return len(self._commits)


@dataclass
class CommitResult:
    """Result of committing one transaction."""

    created: bool
    commit_id: Optional[str] = None
    elapsed_ms: int = 0


class CommitSynthesizer:
    """Stages the working folder and commits it as a Vault user."""

    def __init__(
        self,
        git: GitRepository,
        provenance: ProvenanceMap,
        skip_empty_commits: bool = False,
    ):
        """Initialize commit synthesizer.

        Args:
            git: Target repository
            provenance: Map receiving the id of every new commit
            skip_empty_commits: Make no commit when nothing changed
        """
        self.git = git
        self.provenance = provenance
        self.skip_empty_commits = skip_empty_commits
        self.logger = logger.bind(component='CommitSynthesizer')

    def commit(
        self,
        login: str,
        transaction_id: int,
        domain_name: str,
        message: str,
        timestamp: datetime,
    ) -> CommitResult:
        """Commit the working folder.

        Args:
            login: Vault login, used as author name and email local part
            transaction_id: Vault transaction being committed
            domain_name: Email domain of the author
            message: Commit message including the provenance tag
            timestamp: Author date

        Returns:
            Commit result; ``created`` is False when an empty commit was skipped
        """
        started = time.monotonic()

        branch = self.git.current_branch()
        self.git.add_all()

        if self.skip_empty_commits and not self.git.status():
            self.logger.info(f'Transaction {transaction_id} changes nothing; no commit')
            return CommitResult(
                created=False, elapsed_ms=int((time.monotonic() - started) * 1000)
            )

        result = self.git.commit(login, f'{login}@{domain_name}', timestamp, message)

        commit_id = None
        line = result.first_line
        parsed = GitRepository.parse_commit_line(line)
        if branch and line.startswith(f'[{branch}') and parsed:
            commit_id = parsed[1]
            self.provenance.record(transaction_id, commit_id)
            self.logger.debug(f'Transaction {transaction_id} committed as {commit_id}')
        else:
            self.logger.debug(
                f'Cannot read commit id of transaction {transaction_id} from {line!r}'
            )

        return CommitResult(
            created=True,
            commit_id=commit_id,
            elapsed_ms=int((time.monotonic() - started) * 1000),
        )
