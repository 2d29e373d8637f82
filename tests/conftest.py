"""Shared fixtures: an in-memory Vault server and a scratch git repository."""

import shutil
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest
from loguru import logger

from vault_migrate.config.config import Config
from vault_migrate.models.transaction import (
    LabelRecord,
    OperationKind,
    TransactionRecord,
    TxDetailItem,
)
from vault_migrate.vault.client import SourceClient
from vault_migrate.vault.exceptions import VaultFetchError, WorkingFolderConflictError


class FakeVault(SourceClient):
    """In-memory SourceClient.

    Each folder version is stored as a full snapshot of its files, so both the
    per-file get and the whole-folder get can be served from it.
    """

    def __init__(self, root_folder: Optional[str] = None):
        self.history: Dict[str, List[TransactionRecord]] = {}
        self.details: Dict[int, List[TxDetailItem]] = {}
        self.snapshots: Dict[Tuple[str, int], Dict[str, str]] = {}
        self.files: Dict[Tuple[str, int], str] = {}
        self.labels: List[LabelRecord] = []
        self.working_folders: Dict[str, str] = {}
        if root_folder:
            self.working_folders['$'] = root_folder
        self.failures: Dict[Tuple[str, int], int] = {}
        self.conflicts: List[str] = []
        self.calls: List[tuple] = []
        self.logged_in = False

    def add_version(
        self,
        folder: str,
        revision: int,
        transaction_id: int,
        items: List[Tuple[str, str, Optional[str]]],
        tree: Dict[str, str],
        user: str = 'jdoe',
        comment: str = '',
        timestamp: Optional[datetime] = None,
    ) -> TransactionRecord:
        """Add one folder version.

        Args:
            folder: Vault folder, e.g. ``$/proj``
            revision: Folder version
            transaction_id: Transaction producing the version
            items: ``(operation, primary path, secondary path)`` per changed item
            tree: Every file of the folder after the transaction, relative path
                to content
        """
        record = TransactionRecord(
            source_revision=revision,
            transaction_id=transaction_id,
            author_login=user,
            comment=comment,
            timestamp=timestamp or datetime(2020, 1, revision, 12, 0, 0),
        )
        self.history.setdefault(folder, []).append(record)
        self.snapshots[(folder, revision)] = dict(tree)

        details = self.details.setdefault(transaction_id, [])
        for operation, primary, secondary in items:
            # Files keep the folder version number in this fake
            details.append(
                TxDetailItem(
                    item_path_primary=primary,
                    item_path_secondary=secondary,
                    operation=OperationKind.parse(operation),
                    affected_revision=revision,
                )
            )
            relative = primary[len(folder):].lstrip('/')
            if relative in tree:
                self.files[(primary, revision)] = tree[relative]
        return record

    def fail_fetch(self, path: str, revision: int, times: int = 1) -> None:
        self.failures[(path, revision)] = times

    def login(self) -> None:
        self.calls.append(('login',))
        self.logged_in = True

    def logout(self) -> None:
        self.calls.append(('logout',))
        self.logged_in = False

    def list_history(self, path, from_time, to_time):
        self.calls.append(('history', path))
        return sorted(self.history.get(path, []), key=lambda r: r.source_revision)

    def get_transaction_detail(self, transaction_id):
        self.calls.append(('txdetail', transaction_id))
        return list(self.details.get(transaction_id, []))

    def fetch_path(self, path, revision, recursive):
        self.calls.append(('get', path, revision, recursive))
        remaining = self.failures.get((path, revision), 0)
        if remaining:
            self.failures[(path, revision)] = remaining - 1
            raise VaultFetchError(f'cannot get {path} version {revision}')

        local = self._local_path(path)
        if recursive:
            local.mkdir(parents=True, exist_ok=True)
            for relative, content in self.snapshots[(path, revision)].items():
                target = local / relative
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(content)
        else:
            if (path, revision) not in self.files:
                raise VaultFetchError(f'{path} has no version {revision}')
            local.parent.mkdir(parents=True, exist_ok=True)
            local.write_text(self.files[(path, revision)])

    def set_working_folder(self, path, local_dir):
        self.calls.append(('set_wf', path, local_dir))
        if self.conflicts:
            conflicts, self.conflicts = self.conflicts, []
            raise WorkingFolderConflictError(
                f'working folder conflict with {conflicts[0]}', conflicts=conflicts
            )
        self.working_folders[path] = local_dir

    def get_working_folders(self):
        return dict(self.working_folders)

    def remove_working_folder(self, path):
        self.calls.append(('unset_wf', path))
        self.working_folders.pop(path, None)

    def list_labels(self, root_path):
        self.calls.append(('labels', root_path))
        return list(self.labels)

    def _local_path(self, path: str) -> Path:
        # Longest bound folder wins, like Vault's inherited working folders
        bound = sorted(
            (p for p in self.working_folders
             if path.lower() == p.lower() or path.lower().startswith(p.lower().rstrip('/') + '/')),
            key=len,
        )
        if not bound:
            raise VaultFetchError(f'No working folder for {path}')
        base = bound[-1]
        relative = path[len(base):].lstrip('/')
        local = Path(self.working_folders[base])
        return local.joinpath(*relative.split('/')) if relative else local


def git(cwd: Path, *args: str) -> str:
    """Run git in ``cwd`` and return its standard output."""
    return subprocess.run(
        ['git', *args],
        cwd=cwd,
        check=True,
        capture_output=True,
        text=True,
    ).stdout


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop log sinks a test installed; they may point at closed streams."""
    yield
    logger.remove()


@pytest.fixture
def work_tree(tmp_path) -> Path:
    """Empty git repository whose unborn HEAD is ``main``."""
    if shutil.which('git') is None:
        pytest.skip('git not installed')
    work = tmp_path / 'work'
    work.mkdir()
    git(work, 'init', '-q')
    git(work, 'symbolic-ref', 'HEAD', 'refs/heads/main')
    git(work, 'config', 'commit.gpgsign', 'false')
    git(work, 'config', 'tag.gpgsign', 'false')
    return work


@pytest.fixture
def fake_vault(tmp_path) -> FakeVault:
    root = tmp_path / 'vault-root'
    root.mkdir()
    return FakeVault(root_folder=str(root))


@pytest.fixture
def make_config(tmp_path):
    """Build a Config for the scratch repository, with overridable sections."""

    def _make(work: Path, **migration) -> Config:
        settings = {
            'paths': {'main': '$/proj'},
            'assume_first_revision': True,
            'retry_delay_seconds': 0,
        }
        settings.update(migration)
        return Config(
            vault={
                'server': 'vault.example.com',
                'user': 'migrator',
                'password': 'secret',
                'repository': 'Default',
            },
            git={'working_folder': str(work), 'domain_name': 'example.com'},
            migration=settings,
        )

    return _make
