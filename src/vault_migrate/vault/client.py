"""Vault client interface and command-line implementation."""

import re
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from loguru import logger

from ..config.config import VaultConfig
from ..git.runner import CommandError, CommandRunner
from ..models.transaction import (
    LabelRecord,
    OperationKind,
    TransactionRecord,
    TxDetailItem,
)
from .exceptions import (
    VaultAuthenticationError,
    VaultError,
    VaultFetchError,
    WorkingFolderConflictError,
)


class SourceClient(ABC):
    """Operations the migration needs from the source Vault server."""

    @abstractmethod
    def login(self) -> None:
        """Authenticate against the server."""

    @abstractmethod
    def logout(self) -> None:
        """End the session."""

    @abstractmethod
    def list_history(
        self, path: str, from_time: datetime, to_time: datetime
    ) -> List[TransactionRecord]:
        """List the versions of a folder, oldest first.

        Args:
            path: Vault folder
            from_time: Start of the time window
            to_time: End of the time window

        Returns:
            One record per folder version, ascending by revision
        """

    @abstractmethod
    def get_transaction_detail(self, transaction_id: int) -> List[TxDetailItem]:
        """List the file-level operations of a transaction."""

    @abstractmethod
    def fetch_path(self, path: str, revision: int, recursive: bool) -> None:
        """Retrieve a file or folder version into its working folder.

        Args:
            path: Vault file or folder
            revision: Version of that item
            recursive: Retrieve the whole subtree of a folder
        """

    @abstractmethod
    def set_working_folder(self, path: str, local_dir: str) -> None:
        """Bind a Vault folder to a local directory.

        Raises:
            WorkingFolderConflictError: If an existing binding conflicts
        """

    @abstractmethod
    def get_working_folders(self) -> Dict[str, str]:
        """Current bindings, Vault path to local directory."""

    @abstractmethod
    def remove_working_folder(self, path: str) -> None:
        """Drop the binding of a Vault folder."""

    @abstractmethod
    def list_labels(self, root_path: str) -> List[LabelRecord]:
        """List every label found recursively under ``root_path``."""

    def close(self) -> None:
        """Release client resources."""

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


# Vault command-line client sub-commands
_COMMANDS = {
    'login': 'REMEMBERLOGIN',
    'logout': 'FORGETLOGIN',
    'history': 'VERSIONHISTORY',
    'txdetail': 'TXDETAIL',
    'get': 'GETVERSION',
    'set_wf': 'SETWORKINGFOLDER',
    'unset_wf': 'UNSETWORKINGFOLDER',
    'list_wf': 'LISTWORKINGFOLDERS',
    'labels': 'LABELQUERY',
}

_VAULT_DATE = '%Y-%m-%d %H:%M:%S'
_CONFLICT_PATH = re.compile(r'(\$[^\s"\']*)')


class VaultCommandClient(SourceClient):
    """Source client driving the Vault command-line client.

    Every call runs one sub-command with the connection options and parses the
    XML document the client prints.
    """

    def __init__(self, config: VaultConfig, runner: Optional[CommandRunner] = None):
        """Initialize Vault client.

        Args:
            config: Vault server configuration
            runner: Command runner for the Vault executable
        """
        self.config = config
        self.runner = runner or CommandRunner(
            config.command, masked=[config.password]
        )
        self.logged_in = False
        self.logger = logger.bind(component='VaultClient')

        self.logger.info(f'Initialized Vault client for {config.url}')

    def _connection_args(self) -> List[str]:
        return [
            '-host',
            self.config.server,
            '-user',
            self.config.user,
            '-password',
            self.config.password,
            '-repository',
            self.config.repository,
        ]

    def _execute(
        self,
        command: str,
        *args: str,
        error_class=VaultError,
    ) -> ET.Element:
        """Run a Vault sub-command and return the parsed output document.

        Args:
            command: Key into the sub-command table
            *args: Sub-command arguments
            error_class: Exception raised on failure

        Returns:
            Root element of the XML output

        Raises:
            VaultError: Or the given subclass when the command fails
        """
        verb = _COMMANDS[command]
        try:
            result = self.runner.run([verb, *self._connection_args(), *args])
        except CommandError as e:
            raise error_class(
                f'Vault {verb} failed: {e}', command=verb, output=e.stderr
            ) from e

        output = '\n'.join(result.lines)
        return self._handle_output(verb, output, error_class)

    def _handle_output(self, verb: str, output: str, error_class) -> ET.Element:
        """Parse the XML output and raise if it reports a failure."""
        start = output.find('<')
        if start < 0:
            raise error_class(
                f'Vault {verb} returned no XML output', command=verb, output=output
            )

        try:
            root = ET.fromstring(output[start:])
        except ET.ParseError as e:
            raise error_class(
                f'Vault {verb} returned malformed output: {e}',
                command=verb,
                output=output,
            ) from e

        success = root.findtext('result/success')
        if success is not None and success.strip().lower() != 'true':
            error = (root.findtext('error') or root.findtext('result/error') or '').strip()
            if 'conflict' in error.lower():
                raise WorkingFolderConflictError(
                    f'Vault {verb} failed: {error}',
                    conflicts=_CONFLICT_PATH.findall(error),
                    command=verb,
                    output=output,
                )
            raise error_class(
                f'Vault {verb} failed: {error or "unknown error"}',
                command=verb,
                output=output,
            )
        return root

    def login(self) -> None:
        self._execute('login', error_class=VaultAuthenticationError)
        self.logged_in = True
        self.logger.info(
            f'Logged in to {self.config.url} as {self.config.user} '
            f'(repository {self.config.repository})'
        )

    def logout(self) -> None:
        if not self.logged_in:
            return
        self._execute('logout')
        self.logged_in = False
        self.logger.info('Logged out of Vault')

    def list_history(
        self, path: str, from_time: datetime, to_time: datetime
    ) -> List[TransactionRecord]:
        root = self._execute(
            'history',
            '-begindate',
            from_time.strftime(_VAULT_DATE),
            '-enddate',
            to_time.strftime(_VAULT_DATE),
            '-rowlimit',
            '0',
            path,
            error_class=VaultFetchError,
        )

        records = []
        for item in root.iter('item'):
            records.append(
                TransactionRecord(
                    source_revision=int(item.get('version', '0')),
                    transaction_id=int(item.get('txid', '0')),
                    author_login=item.get('user', ''),
                    comment=item.get('comment', ''),
                    timestamp=_parse_date(item.get('date', '')),
                )
            )
        records.sort(key=lambda r: r.source_revision)
        self.logger.debug(f'{len(records)} versions found for {path}')
        return records

    def get_transaction_detail(self, transaction_id: int) -> List[TxDetailItem]:
        root = self._execute(
            'txdetail', str(transaction_id), error_class=VaultFetchError
        )
        return [
            TxDetailItem(
                item_path_primary=item.get('path', ''),
                item_path_secondary=item.get('path2') or None,
                operation=OperationKind.parse(item.get('requesttype', '')),
                affected_revision=int(item.get('version', '0')),
            )
            for item in root.iter('item')
        ]

    def fetch_path(self, path: str, revision: int, recursive: bool) -> None:
        args = [
            '-merge',
            'overwrite',
            '-makewritable',
            '-performdeletions',
            'removeworkingcopy',
            '-setfiletime',
            'modification',
        ]
        if not recursive:
            args.append('-norecursive')
        self._execute(
            'get', *args, str(revision), path, error_class=VaultFetchError
        )

    def set_working_folder(self, path: str, local_dir: str) -> None:
        self._execute('set_wf', '-forcesubfolderstoinherit', path, local_dir)
        self.logger.debug(f'Working folder of {path} set to {local_dir}')

    def get_working_folders(self) -> Dict[str, str]:
        root = self._execute('list_wf')
        return {
            wf.get('reposfolder', ''): wf.get('localfolder', '')
            for wf in root.iter('workingfolder')
        }

    def remove_working_folder(self, path: str) -> None:
        self._execute('unset_wf', path)
        self.logger.debug(f'Working folder of {path} removed')

    def list_labels(self, root_path: str) -> List[LabelRecord]:
        root = self._execute(
            'labels', '-recursive', root_path, error_class=VaultFetchError
        )
        return [
            LabelRecord(
                transaction_id=int(label.get('txid', '0')),
                label=label.get('label', ''),
                comment=label.get('comment', ''),
            )
            for label in root.iter('label')
        ]

    def test_connection(self) -> bool:
        """Test connection to the Vault server.

        Returns:
            True if the working folder list can be read
        """
        try:
            self.get_working_folders()
            return True
        except VaultError:
            return False


class VaultClientFactory:
    """Factory for creating Vault clients."""

    @staticmethod
    def create_client(
        config: VaultConfig, runner: Optional[CommandRunner] = None
    ) -> SourceClient:
        """Create a Vault client.

        Args:
            config: Vault server configuration
            runner: Optional command runner override

        Returns:
            Vault client instance
        """
        return VaultCommandClient(config, runner)


def _parse_date(value: str) -> datetime:
    for fmt in (_VAULT_DATE, '%m/%d/%Y %I:%M:%S %p', '%Y-%m-%dT%H:%M:%S'):
        try:
            return datetime.strptime(value.strip(), fmt)
        except ValueError:
            continue
    raise VaultError(f'Unrecognised Vault date: {value!r}')
