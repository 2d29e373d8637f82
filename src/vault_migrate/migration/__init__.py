"""Migration engine and its components."""

from .committer import CommitResult, CommitSynthesizer, ProvenanceMap
from .engine import MigrationEngine, MigrationSummary
from .exceptions import (
    BranchCheckoutError,
    MigrationError,
    ReplayError,
    ResumePointError,
    RootWorkingFolderError,
)
from .orchestrator import (
    PROGRESS_FINALIZE,
    PROGRESS_GC,
    PROGRESS_INIT,
    PROGRESS_TAGS,
    BranchOrchestrator,
    BranchResult,
    BranchState,
    OrchestrationResult,
)
from .provenance import (
    PROVENANCE_MARKER,
    ProvenanceTag,
    build_commit_message,
    format_provenance_tag,
    parse_provenance_tag,
)
from .replayer import ApplyOutcome, ApplyStatus, ChangesetReplayer
from .resume import ResumePoint, ResumeResolver
from .tags import TagSummary, TagSynthesizer, tag_name

__all__ = [
    'ApplyOutcome',
    'ApplyStatus',
    'BranchCheckoutError',
    'BranchOrchestrator',
    'BranchResult',
    'BranchState',
    'ChangesetReplayer',
    'CommitResult',
    'CommitSynthesizer',
    'MigrationEngine',
    'MigrationError',
    'MigrationSummary',
    'OrchestrationResult',
    'PROGRESS_FINALIZE',
    'PROGRESS_GC',
    'PROGRESS_INIT',
    'PROGRESS_TAGS',
    'PROVENANCE_MARKER',
    'ProvenanceMap',
    'ProvenanceTag',
    'ReplayError',
    'ResumePoint',
    'ResumePointError',
    'ResumeResolver',
    'RootWorkingFolderError',
    'TagSummary',
    'TagSynthesizer',
    'build_commit_message',
    'format_provenance_tag',
    'parse_provenance_tag',
    'tag_name',
]
