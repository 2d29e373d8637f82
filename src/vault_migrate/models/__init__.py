"""Data models for Vault history entities."""

from .transaction import (
    BranchMapping,
    LabelRecord,
    OperationKind,
    TransactionRecord,
    TxDetailItem,
)

__all__ = [
    'BranchMapping',
    'LabelRecord',
    'OperationKind',
    'TransactionRecord',
    'TxDetailItem',
]
