"""Per-branch migration loop."""

import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from loguru import logger

from ..config.config import Config
from ..git.operations import GitRepository
from ..git.runner import CommandError
from ..models.transaction import BranchMapping, TransactionRecord
from ..utils.fs import clear_working_folder
from ..vault.client import SourceClient
from ..vault.exceptions import VaultError, WorkingFolderConflictError
from .committer import CommitSynthesizer
from .exceptions import BranchCheckoutError
from .provenance import build_commit_message
from .replayer import ChangesetReplayer
from .resume import ResumeResolver

# Progress markers reported instead of a version number
PROGRESS_INIT = 0
PROGRESS_GC = -1
PROGRESS_FINALIZE = -2
PROGRESS_TAGS = -3

# Receives a version number (or marker) and elapsed milliseconds;
# returning True asks the migration to stop.
ProgressCallback = Callable[[int, int], bool]
PauseCallback = Callable[[TransactionRecord], None]


class BranchState(str, Enum):
    """Stage reached by a branch."""

    PENDING = 'pending'
    RESUME_RESOLVED = 'resume_resolved'
    CHECKED_OUT = 'checked_out'
    REPLAYING = 'replaying'
    FINALIZED = 'finalized'


@dataclass
class BranchResult:
    """Outcome of migrating one branch."""

    branch: str
    source_path: str
    state: BranchState = BranchState.PENDING
    resume_revision: int = 0
    pending: int = 0
    processed: int = 0
    commits: int = 0
    last_revision: Optional[int] = None
    cancelled: bool = False


@dataclass
class OrchestrationResult:
    """Outcome of migrating every branch."""

    branches: List[BranchResult] = field(default_factory=list)
    cancelled: bool = False

    @property
    def processed(self) -> int:
        return sum(branch.processed for branch in self.branches)

    @property
    def commits(self) -> int:
        return sum(branch.commits for branch in self.branches)


def order_mappings(
    mappings: Sequence[BranchMapping], current_branch: Optional[str]
) -> List[BranchMapping]:
    """Put the mapping of the checked-out branch first, keeping the others in order."""
    if not current_branch:
        return list(mappings)
    current = current_branch.lower()
    first = [m for m in mappings if m.target_branch.lower() == current]
    rest = [m for m in mappings if m.target_branch.lower() != current]
    return first + rest


class BranchOrchestrator:
    """Migrates each Vault folder into its git branch, one transaction at a time."""

    def __init__(
        self,
        config: Config,
        client: SourceClient,
        git: GitRepository,
        resolver: ResumeResolver,
        replayer: ChangesetReplayer,
        committer: CommitSynthesizer,
        progress: Optional[ProgressCallback] = None,
        pause: Optional[PauseCallback] = None,
    ):
        """Initialize branch orchestrator.

        Args:
            config: Migration configuration
            client: Vault client, already logged in
            git: Target repository
            resolver: Restart point finder
            replayer: Applies transactions to the working folder
            committer: Commits the working folder
            progress: Progress callback; may request cancellation
            pause: Called before every commit when pausing is enabled
        """
        self.config = config
        self.client = client
        self.git = git
        self.resolver = resolver
        self.replayer = replayer
        self.committer = committer
        self.progress = progress
        self.pause = pause
        self.working_folder = Path(config.git.working_folder)
        self.logger = logger.bind(component='BranchOrchestrator')

    def run(self, mappings: Sequence[BranchMapping]) -> OrchestrationResult:
        """Migrate every mapping in turn.

        The branch checked out when the run starts is migrated first, which
        saves one checkout. Cancellation stops after the current transaction.

        Returns:
            Per-branch results
        """
        result = OrchestrationResult()
        original_branch = self.git.current_branch()

        for mapping in order_mappings(mappings, original_branch):
            branch_result = self.migrate_branch(mapping, original_branch)
            result.branches.append(branch_result)
            if branch_result.cancelled:
                result.cancelled = True
                self.logger.warning('Migration cancelled')
                break

        return result

    def migrate_branch(
        self, mapping: BranchMapping, original_branch: Optional[str] = None
    ) -> BranchResult:
        """Migrate the pending transactions of one branch.

        Args:
            mapping: Branch and Vault folder to migrate
            original_branch: Branch to return to afterwards

        Returns:
            Branch result
        """
        branch = mapping.target_branch
        source_path = mapping.source_path
        migration = self.config.migration
        result = BranchResult(branch=branch, source_path=source_path)

        self.logger.info(f'Migrating {source_path} into branch {branch}')

        resume = self.resolver.resolve(branch, source_path, migration.restart_limit)
        result.resume_revision = resume.revision
        result.state = BranchState.RESUME_RESOLVED

        pending = self.pending_transactions(source_path, resume.revision)
        result.pending = len(pending)
        if not pending:
            self.logger.info(f'Branch {branch} is up to date with {source_path}')
            result.state = BranchState.FINALIZED
            return result

        self.logger.info(
            f'{len(pending)} transactions to migrate into {branch}, '
            f'versions {pending[0].source_revision} to {pending[-1].source_revision}'
        )

        started = time.monotonic()
        prior_binding = self.bind_working_folder(source_path)
        try:
            self.checkout(branch)
            result.state = BranchState.CHECKED_OUT
            if self._report(PROGRESS_INIT, int((time.monotonic() - started) * 1000)):
                result.cancelled = True
            else:
                result.state = BranchState.REPLAYING
                self._replay(mapping, pending, result)
        except BaseException:
            self._finalize_quietly(source_path, prior_binding, original_branch)
            raise

        self.finalize_branch(source_path, prior_binding, original_branch)
        result.state = BranchState.FINALIZED
        return result

    def pending_transactions(
        self, source_path: str, resume_revision: int
    ) -> List[TransactionRecord]:
        """History of a folder after the restart point, capped by the limit."""
        since = datetime.combine(self.config.vault.oldest_commit_date, datetime.min.time())
        history = self.client.list_history(source_path, since, datetime.now())

        pending = sorted(
            (r for r in history if r.source_revision > resume_revision),
            key=lambda r: r.source_revision,
        )
        limit = self.config.migration.limit
        if limit is not None:
            pending = pending[:limit]
        return pending

    def _replay(
        self,
        mapping: BranchMapping,
        pending: List[TransactionRecord],
        result: BranchResult,
    ) -> None:
        gc_interval = self.config.git.gc_interval
        repository = self.config.vault.repository
        domain_name = self.config.git.domain_name

        for record in pending:
            self.logger.info(
                f'{mapping.target_branch}: version {record.source_revision} '
                f'(transaction {record.transaction_id}) by {record.author_login}'
            )
            elapsed = self.replayer.replay(mapping.source_path, record)

            if self.config.migration.pause and self.pause:
                self.pause(record)

            message = build_commit_message(repository, mapping.source_path, record)
            commit = self.committer.commit(
                record.author_login,
                record.transaction_id,
                domain_name,
                message,
                record.timestamp,
            )
            result.processed += 1
            result.last_revision = record.source_revision
            if commit.created:
                result.commits += 1

            if self._report(record.source_revision, elapsed + commit.elapsed_ms):
                result.cancelled = True
                return

            if commit.created and result.commits % gc_interval == 0:
                gc_ms = self.git.gc()
                if self._report(PROGRESS_GC, gc_ms):
                    result.cancelled = True
                    return

    def bind_working_folder(self, source_path: str) -> Optional[str]:
        """Bind the branch folder to the git work tree.

        A conflicting binding is removed and the binding retried once.

        Returns:
            Local folder the Vault folder was bound to before, if any
        """
        prior = self._binding_of(source_path)
        working_folder = str(self.working_folder)
        try:
            self.client.set_working_folder(source_path, working_folder)
        except WorkingFolderConflictError as e:
            if not e.conflicts:
                raise
            conflict = e.conflicts[0]
            self.logger.warning(
                f'Working folder of {conflict} conflicts with {source_path}; removing it'
            )
            self.client.remove_working_folder(conflict)
            self.client.set_working_folder(source_path, working_folder)
        return prior

    def checkout(self, branch: str) -> None:
        """Switch the work tree to ``branch``, creating it when it does not exist.

        Raises:
            BranchCheckoutError: If git still reports another branch after
                every attempt
        """
        if self._is_current(branch):
            return

        if not self.git.branch_exists(branch):
            self.logger.info(f'Branch {branch} does not exist; starting a new history')
            self.git.start_orphan_branch(branch)
            clear_working_folder(
                self.working_folder, self.config.migration.preserved_names
            )
            return

        attempts = self.config.migration.checkout_attempts
        for attempt in range(1, attempts + 1):
            try:
                self.git.checkout(branch)
            except CommandError as e:
                self.logger.warning(
                    f'Checkout of {branch} failed (attempt {attempt}/{attempts}): {e}'
                )
            if self._is_current(branch):
                return
        raise BranchCheckoutError(branch, attempts)

    def finalize_branch(
        self, source_path: str, prior_binding: Optional[str], original_branch: Optional[str]
    ) -> None:
        """Restore the Vault binding and switch back to the original branch."""
        self.unbind_working_folder(source_path, prior_binding)
        if (
            original_branch
            and not self._is_current(original_branch)
            and self.git.branch_exists(original_branch)
        ):
            self.git.checkout(original_branch)

    def unbind_working_folder(self, source_path: str, prior_binding: Optional[str]) -> None:
        bound = next(
            (path for path in self.client.get_working_folders()
             if path.lower() == source_path.lower()),
            None,
        )
        if bound:
            self.client.remove_working_folder(bound)
        if prior_binding:
            self.client.set_working_folder(source_path, prior_binding)

    def _finalize_quietly(
        self, source_path: str, prior_binding: Optional[str], original_branch: Optional[str]
    ) -> None:
        # Keeps the original error as the one that propagates
        try:
            self.finalize_branch(source_path, prior_binding, original_branch)
        except (VaultError, CommandError) as e:
            self.logger.error(f'Cleanup of {source_path} failed: {e}')

    def _binding_of(self, source_path: str) -> Optional[str]:
        for path, local in self.client.get_working_folders().items():
            if path.lower() == source_path.lower():
                return local
        return None

    def _is_current(self, branch: str) -> bool:
        current = self.git.current_branch()
        return current is not None and current.lower() == branch.lower()

    def _report(self, marker: int, elapsed_ms: int) -> bool:
        if self.progress is None:
            return False
        return bool(self.progress(marker, elapsed_ms))
