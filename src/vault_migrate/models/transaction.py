"""Vault history entity models."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OperationKind(str, Enum):
    """Kind of file-level operation inside a Vault transaction."""

    ADD = 'add'
    EDIT = 'edit'
    DELETE = 'delete'
    RENAME = 'rename'
    MOVE = 'move'
    SHARE = 'share'
    ADD_FOLDER = 'add_folder'
    BRANCH_COPY = 'branch_copy'
    OTHER = 'other'

    @classmethod
    def parse(cls, value: str) -> 'OperationKind':
        """Map a Vault request type name onto an operation kind.

        Unknown names become ``OTHER`` so they are fetched like edits.
        """
        key = value.strip().lower().replace(' ', '').replace('_', '')
        return _REQUEST_TYPES.get(key, cls.OTHER)


_REQUEST_TYPES = {
    'add': OperationKind.ADD,
    'addfile': OperationKind.ADD,
    'edit': OperationKind.EDIT,
    'checkin': OperationKind.EDIT,
    'delete': OperationKind.DELETE,
    'rename': OperationKind.RENAME,
    'move': OperationKind.MOVE,
    'share': OperationKind.SHARE,
    'addfolder': OperationKind.ADD_FOLDER,
    'branchcopy': OperationKind.BRANCH_COPY,
    'copybranch': OperationKind.BRANCH_COPY,
}


class BranchMapping(BaseModel):
    """Pairing of a git branch with the Vault folder it is built from."""

    model_config = ConfigDict(frozen=True)

    target_branch: str = Field(..., description='Git branch name')
    source_path: str = Field(..., description='Vault folder, e.g. $/Project/Trunk')

    @field_validator('source_path')
    @classmethod
    def validate_source_path(cls, v):
        """Validate Vault path and drop trailing slashes."""
        if not v.startswith('$'):
            raise ValueError('Vault path must start with $')
        return v.rstrip('/') or '$'


class TransactionRecord(BaseModel):
    """One Vault version of a folder, produced by one transaction."""

    model_config = ConfigDict(frozen=True)

    source_revision: int = Field(..., description='Folder version number')
    transaction_id: int = Field(..., description='Vault transaction id')
    author_login: str = Field(..., description='Vault user login')
    comment: str = Field(default='', description='Check-in comment')
    timestamp: datetime = Field(..., description='Transaction date')


class TxDetailItem(BaseModel):
    """One file-level operation of a transaction."""

    model_config = ConfigDict(frozen=True)

    item_path_primary: str = Field(..., description='Affected Vault path')
    item_path_secondary: Optional[str] = Field(
        default=None, description='Destination path for move, rename and share'
    )
    operation: OperationKind = Field(..., description='Operation kind')
    affected_revision: int = Field(default=0, description='Item version')


class LabelRecord(BaseModel):
    """A Vault label attached to a transaction."""

    model_config = ConfigDict(frozen=True)

    transaction_id: int = Field(..., description='Labelled transaction id')
    label: str = Field(..., description='Label text')
    comment: str = Field(default='', description='Label comment')
