"""Replay of Vault transactions onto the git work tree."""

import shutil
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, List, Optional, TypeVar

from loguru import logger

from ..models.transaction import OperationKind, TransactionRecord, TxDetailItem
from ..sanitize.sanitizer import WorkingTreeSanitizer
from ..utils.fs import clear_working_folder, copy_tree, move_path, remove_path
from ..vault.client import SourceClient
from ..vault.exceptions import VaultError
from .exceptions import ReplayError

T = TypeVar('T')

# Operations whose primary path no longer exists after the transaction
_REMOVING_OPERATIONS = (OperationKind.DELETE, OperationKind.MOVE, OperationKind.RENAME)


class ApplyStatus(str, Enum):
    """Result of applying a transaction file by file."""

    APPLIED = 'applied'
    FALLBACK = 'fallback'


@dataclass(frozen=True)
class ApplyOutcome:
    """Outcome of the per-file apply; tells the replayer whether to refetch."""

    status: ApplyStatus
    reason: Optional[str] = None

    @classmethod
    def applied(cls) -> 'ApplyOutcome':
        return cls(ApplyStatus.APPLIED)

    @classmethod
    def fallback(cls, reason: str) -> 'ApplyOutcome':
        return cls(ApplyStatus.FALLBACK, reason)

    @property
    def needs_fallback(self) -> bool:
        return self.status is ApplyStatus.FALLBACK


def in_branch(path: str, source_path: str) -> bool:
    """Tell whether a Vault path lies inside a branch folder (case-insensitive)."""
    path = path.rstrip('/').lower()
    root = source_path.rstrip('/').lower()
    return path == root or path.startswith(root + '/')


class ChangesetReplayer:
    """Brings the working folder to the state of one Vault transaction.

    The fast path applies the transaction item by item: deletes, moves, renames
    and shares are done locally and every other item is fetched on its own. When
    that cannot be trusted, the whole branch folder is wiped and fetched again.
    """

    def __init__(
        self,
        client: SourceClient,
        working_folder: Path,
        sanitizer: Optional[WorkingTreeSanitizer] = None,
        force_full_folder_get: bool = False,
        retry_delay: float = 5.0,
        preserved_names: Iterable[str] = (),
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize changeset replayer.

        Args:
            client: Vault client
            working_folder: git work tree bound to the branch folder
            sanitizer: Cleaner for solution and project files
            force_full_folder_get: Always fetch the whole branch folder
            retry_delay: Seconds to wait before retrying a failed Vault call
            preserved_names: Top-level names kept when the folder is wiped
            sleep: Delay function, replaceable in tests
        """
        self.client = client
        self.working_folder = Path(working_folder)
        self.sanitizer = sanitizer or WorkingTreeSanitizer()
        self.force_full_folder_get = force_full_folder_get
        self.retry_delay = retry_delay
        self.preserved_names = list(preserved_names)
        self.sleep = sleep
        self.logger = logger.bind(component='ChangesetReplayer')

    def replay(self, source_path: str, record: TransactionRecord) -> int:
        """Apply one transaction to the working folder.

        Args:
            source_path: Vault folder of the branch
            record: Transaction to apply

        Returns:
            Elapsed milliseconds

        Raises:
            ReplayError: If even the whole-folder fetch fails
        """
        started = time.monotonic()

        if self.force_full_folder_get:
            outcome = ApplyOutcome.fallback('full folder get forced')
        else:
            outcome = self.apply_changes(source_path, record)

        if outcome.needs_fallback:
            self.logger.info(
                f'Version {record.source_revision}: {outcome.reason}; '
                f'getting whole folder {source_path}'
            )
            self.refresh_folder(source_path, record)

        return int((time.monotonic() - started) * 1000)

    def apply_changes(self, source_path: str, record: TransactionRecord) -> ApplyOutcome:
        """Apply a transaction item by item.

        Returns:
            ``applied``, or ``fallback`` with the reason the whole folder
            must be fetched instead
        """
        try:
            items = self._with_retry(
                lambda: self.client.get_transaction_detail(record.transaction_id),
                f'Getting details of transaction {record.transaction_id}',
            )
        except VaultError as e:
            return ApplyOutcome.fallback(f'transaction details unavailable ({e})')

        for item in items:
            try:
                outcome = self.apply_item(source_path, item)
            except (VaultError, OSError) as e:
                outcome = ApplyOutcome.fallback(
                    f'{item.operation.value} of {item.item_path_primary} failed ({e})'
                )
            if outcome.needs_fallback:
                return outcome

        return ApplyOutcome.applied()

    def apply_item(self, source_path: str, item: TxDetailItem) -> ApplyOutcome:
        """Apply one file-level operation."""
        operation = item.operation

        if operation is OperationKind.DELETE:
            if in_branch(item.item_path_primary, source_path):
                self._remove(source_path, item.item_path_primary)
            return ApplyOutcome.applied()

        if operation in (OperationKind.MOVE, OperationKind.RENAME):
            return self._relocate(source_path, item, move=True)

        if operation is OperationKind.SHARE:
            return self._relocate(source_path, item, move=False)

        if operation in (OperationKind.ADD_FOLDER, OperationKind.BRANCH_COPY):
            # git does not track empty folders; branch copies carry no files
            return ApplyOutcome.applied()

        if not in_branch(item.item_path_primary, source_path):
            # A shared file changed through another folder
            return ApplyOutcome.fallback(
                f'{item.item_path_primary} is outside the current branch'
            )

        self.logger.debug(
            f'get {item.item_path_primary} version {item.affected_revision}'
        )
        self._with_retry(
            lambda: self.client.fetch_path(
                item.item_path_primary, item.affected_revision, False
            ),
            f'Getting {item.item_path_primary} version {item.affected_revision}',
        )
        self.sanitizer.sanitize(self.to_local(source_path, item.item_path_primary))
        return ApplyOutcome.applied()

    def refresh_folder(self, source_path: str, record: TransactionRecord) -> None:
        """Wipe the working folder and fetch the whole branch folder.

        Vault does not remove files deleted, moved or renamed by the
        transaction, so those are removed afterwards.

        Raises:
            ReplayError: If the folder or the transaction details cannot be
                fetched after one retry
        """
        if not clear_working_folder(self.working_folder, self.preserved_names):
            self.logger.warning(
                f'{self.working_folder} could not be emptied completely; '
                'the Vault get will fail if that matters'
            )

        try:
            self._with_retry(
                lambda: self.client.fetch_path(source_path, record.source_revision, True),
                f'Getting version {record.source_revision} of {source_path}',
            )
            items = self._with_retry(
                lambda: self.client.get_transaction_detail(record.transaction_id),
                f'Getting details of transaction {record.transaction_id}',
            )
        except VaultError as e:
            raise ReplayError(
                f'Cannot get version {record.source_revision} '
                f'(transaction {record.transaction_id}) of {source_path}: {e}',
                revision=record.source_revision,
                transaction_id=record.transaction_id,
            ) from e

        for item in self._removals(items):
            if in_branch(item.item_path_primary, source_path):
                self._remove(source_path, item.item_path_primary)

        self.sanitizer.sanitize_tree(self.working_folder)

    def to_local(self, source_path: str, vault_path: str) -> Path:
        """Translate a Vault path inside the branch folder to a local path."""
        relative = vault_path.rstrip('/')[len(source_path.rstrip('/')):]
        parts = [part for part in relative.split('/') if part]
        return self.working_folder.joinpath(*parts)

    def _relocate(self, source_path: str, item: TxDetailItem, move: bool) -> ApplyOutcome:
        """Move, rename or share an item inside the working folder."""
        primary = item.item_path_primary
        secondary = self._destination(item)

        if not in_branch(primary, source_path):
            # The state of files outside the branch is unknown here
            return ApplyOutcome.fallback(f'source {primary} is outside the current branch')

        if secondary is None:
            return ApplyOutcome.fallback(f'{item.operation.value} of {primary} has no destination')

        source = self.to_local(source_path, primary)

        if not in_branch(secondary, source_path):
            if move:
                self.logger.debug(f'{primary} moved out of the branch; deleting it')
                self._remove(source_path, primary)
            else:
                self.logger.debug(f'Ignoring share of {primary} to {secondary}')
            return ApplyOutcome.applied()

        destination = self.to_local(source_path, secondary)
        if not source.exists():
            return ApplyOutcome.fallback(f'{primary} is missing from the working folder')

        self.logger.debug(
            f'{"Moving" if move else "Copying"} {primary} to {secondary}'
        )
        if move:
            move_path(source, destination)
        elif source.is_dir():
            copy_tree(source, destination)
        else:
            destination.parent.mkdir(parents=True, exist_ok=True)
            if destination.exists():
                remove_path(destination)
            shutil.copy2(source, destination)
        return ApplyOutcome.applied()

    @staticmethod
    def _destination(item: TxDetailItem) -> Optional[str]:
        """Full Vault path of the destination; renames may carry a bare name."""
        secondary = item.item_path_secondary
        if not secondary:
            return None
        if secondary.startswith('$'):
            return secondary.rstrip('/')
        parent = item.item_path_primary.rstrip('/').rsplit('/', 1)[0]
        return f'{parent}/{secondary}'

    def _remove(self, source_path: str, vault_path: str) -> None:
        local = self.to_local(source_path, vault_path)
        if local == self.working_folder:
            clear_working_folder(self.working_folder, self.preserved_names)
            return
        self.logger.debug(f'delete {vault_path} => {local}')
        remove_path(local)

    @staticmethod
    def _removals(items: List[TxDetailItem]) -> List[TxDetailItem]:
        return [item for item in items if item.operation in _REMOVING_OPERATIONS]

    def _with_retry(self, action: Callable[[], T], description: str) -> T:
        """Run a Vault call, retrying once after a delay.

        The server can lag behind a version that was just created, so the
        first failure is not trusted.
        """
        try:
            return action()
        except VaultError as e:
            self.logger.warning(
                f'{description} failed: {e}. '
                f'Waiting {self.retry_delay} seconds and retrying...'
            )
            self.sleep(self.retry_delay)
            return action()
