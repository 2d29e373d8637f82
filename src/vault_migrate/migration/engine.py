"""Migration engine - main entry point for migration operations."""

import time
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from ..config.config import Config
from ..git.operations import GitRepository
from ..git.runner import CommandError, CommandRunner
from ..models.transaction import BranchMapping
from ..sanitize.sanitizer import WorkingTreeSanitizer
from ..vault.client import SourceClient, VaultClientFactory
from ..vault.exceptions import VaultError
from .committer import CommitSynthesizer, ProvenanceMap
from .exceptions import MigrationError, RootWorkingFolderError
from .orchestrator import (
    PROGRESS_FINALIZE,
    PROGRESS_TAGS,
    BranchOrchestrator,
    BranchResult,
    PauseCallback,
    ProgressCallback,
)
from .replayer import ChangesetReplayer
from .resume import ConfirmCallback, ResumeResolver
from .tags import TagSynthesizer


class MigrationSummary(BaseModel):
    """Summary of migration results."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    started_at: datetime = Field(..., description='Migration start time')
    completed_at: Optional[datetime] = Field(
        default=None, description='Migration completion time'
    )
    transactions_processed: int = Field(default=0, description='Transactions replayed')
    commits_created: int = Field(default=0, description='Commits created')
    tags_created: List[str] = Field(default_factory=list, description='Tags created')
    tags_failed: List[str] = Field(
        default_factory=list, description='Tags git refused to create'
    )
    cancelled: bool = Field(default=False, description='Stopped by the operator')
    branches: List[BranchResult] = Field(
        default_factory=list, description='Per-branch results'
    )


class MigrationEngine:
    """Main migration engine that coordinates the entire migration process."""

    def __init__(
        self,
        config: Config,
        client: Optional[SourceClient] = None,
        git: Optional[GitRepository] = None,
        progress: Optional[ProgressCallback] = None,
        confirm: Optional[ConfirmCallback] = None,
        pause: Optional[PauseCallback] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize migration engine.

        Args:
            config: Migration configuration
            client: Vault client (built from the configuration if omitted)
            git: Target repository (built from the configuration if omitted)
            progress: Receives each migrated version or progress marker with
                its elapsed milliseconds; returning True stops the run
            confirm: Asks the operator a yes/no question
            pause: Called before every commit when pausing is enabled
            sleep: Delay function used between Vault retries
        """
        self.config = config
        self.progress = progress
        self.logger = logger.bind(component='MigrationEngine')

        self.client = client or VaultClientFactory.create_client(config.vault)
        self.git = git or GitRepository(
            CommandRunner(
                config.git.command,
                cwd=config.git.working_folder,
                timeout=config.git.timeout,
            ),
            config.git.user_name,
            config.git.user_email,
        )
        self.provenance = ProvenanceMap()

        migration = config.migration
        self.orchestrator = BranchOrchestrator(
            config,
            self.client,
            self.git,
            resolver=ResumeResolver(
                self.git,
                config.vault.repository,
                confirm=confirm,
                assume_first_revision=migration.assume_first_revision,
                validate_path=migration.validate_resume_path,
            ),
            replayer=ChangesetReplayer(
                self.client,
                config.git.working_folder,
                sanitizer=WorkingTreeSanitizer(),
                force_full_folder_get=migration.force_full_folder_get,
                retry_delay=migration.retry_delay_seconds,
                preserved_names=migration.preserved_names,
                sleep=sleep,
            ),
            committer=CommitSynthesizer(
                self.git, self.provenance, migration.skip_empty_commits
            ),
            progress=progress,
            pause=pause,
        )
        self.tagger = TagSynthesizer(
            self.client, self.git, self.provenance, config.vault.root_path
        )

    def mappings(self, branches: Optional[Sequence[str]] = None) -> List[BranchMapping]:
        """Branch mappings to migrate.

        Args:
            branches: Restrict the run to these branches

        Raises:
            MigrationError: If nothing is configured or a branch is unknown
        """
        paths = self.config.migration.paths
        if not paths:
            raise MigrationError('No Vault paths configured for migration')

        if branches:
            unknown = [b for b in branches if b not in paths]
            if unknown:
                raise MigrationError(f'Unknown branches: {", ".join(unknown)}')
            selected = [b for b in paths if b in branches]
        else:
            selected = list(paths)

        return [
            BranchMapping(target_branch=branch, source_path=paths[branch])
            for branch in selected
        ]

    def run(self, branches: Optional[Sequence[str]] = None) -> MigrationSummary:
        """Migrate the configured branches and create tags from labels.

        Args:
            branches: Restrict the run to these branches

        Returns:
            Migration summary
        """
        mappings = self.mappings(branches)
        summary = MigrationSummary(started_at=datetime.now())

        self.logger.info(
            f'Starting migration of {len(mappings)} branches from '
            f'{self.config.vault.url} ({self.config.vault.repository})'
        )

        try:
            self.client.login()
            self.check_root_binding()

            result = self.orchestrator.run(mappings)
            summary.branches = result.branches
            summary.transactions_processed = result.processed
            summary.commits_created = result.commits
            summary.cancelled = result.cancelled

            if self.config.migration.ignore_labels:
                self.logger.info('Skipping labels')
            elif result.cancelled:
                self.logger.info('Migration cancelled; not creating tags')
            else:
                tags = self.tagger.create_tags()
                summary.tags_created = tags.created
                summary.tags_failed = tags.failed
                self._report(PROGRESS_TAGS, tags.elapsed_ms)

        except Exception as e:
            self.logger.error(f'Migration failed: {e}')
            raise
        finally:
            self._finish()

        summary.completed_at = datetime.now()
        self.logger.info(
            f'Migration finished: {summary.transactions_processed} transactions, '
            f'{summary.commits_created} commits, {len(summary.tags_created)} tags'
        )
        return summary

    def check_root_binding(self) -> None:
        """Make sure the repository root has a working folder.

        Raises:
            RootWorkingFolderError: If the root folder is not bound
        """
        root = self.config.vault.root_path
        folders = self.client.get_working_folders()
        if not any(path.rstrip('/').lower() == root.lower() for path in folders):
            raise RootWorkingFolderError(
                f'Working folder of {root} is not set. Set it to a folder outside '
                f'{self.config.git.working_folder} before migrating.'
            )

    def _finish(self) -> None:
        """Log out and refresh the repository info files; never raises."""
        started = time.monotonic()
        try:
            self.client.logout()
        except VaultError as e:
            self.logger.warning(f'Vault logout failed: {e}')

        try:
            self.git.update_server_info()
        except CommandError as e:
            self.logger.warning(f'git update-server-info failed: {e}')

        self._report(PROGRESS_FINALIZE, int((time.monotonic() - started) * 1000))

    def _report(self, marker: int, elapsed_ms: int) -> bool:
        if self.progress is None:
            return False
        return bool(self.progress(marker, elapsed_ms))
